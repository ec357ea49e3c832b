"""
JAX-compiled fused multiply-accumulate kernel for skip-ahead.

Skip-ahead spends its time in one operation: for every lag of every set ID
bit, the N-wide accumulator absorbs coeff * Y (mod 2^61 - 1). This module
compiles that step with jax.jit so it runs on whatever accelerator JAX finds
(TPU, GPU, or the default CPU backend).

JAX defaults to 32-bit types; the kernel needs uint64, so 64-bit mode is
enabled before the kernel is built. The limb decomposition and reduction are
the same as the NumPy path in modarith, and the results are bit-identical.
"""

import logging

import jax
import jax.numpy as jnp
import numpy as np

from .params import BITS, MERSBASE

logger = logging.getLogger(__name__)


def get_device():
    """
    Return the JAX device the kernel will run on.

    Prefers a TPU, then a GPU, then the default backend.
    """
    for platform in ("tpu", "gpu"):
        try:
            found = jax.devices(platform)
        except RuntimeError:
            continue
        if found:
            logger.info(f"Found {len(found)} {platform.upper()} device(s): {found}")
            return found[0]

    device = jax.devices()[0]
    logger.info(f"No accelerator found, using default JAX device {device}")
    return device


def _build_fused_kernel():
    """
    Build the JIT-compiled fused multiply-accumulate kernel.

    Returns a function taking:
      - acc: (N,) uint64 accumulator
      - coeff: () uint64 coefficient
      - y: (N,) uint64 residues
    and returning (acc + coeff * y) mod M as (N,) uint64.
    """
    jax.config.update("jax_enable_x64", True)

    mask32 = np.uint64(0xFFFFFFFF)
    mersbase = np.uint64(MERSBASE)
    bits = np.uint64(BITS)
    shift32 = np.uint64(32)
    shift3 = np.uint64(3)

    @jax.jit
    def fused_kernel(acc, coeff, y):
        a_lo = coeff & mask32
        a_hi = coeff >> shift32
        b_lo = y & mask32
        b_hi = y >> shift32

        p0 = a_lo * b_lo
        mid = a_lo * b_hi + a_hi * b_lo
        p3 = a_hi * b_hi

        lo = p0 + (mid << shift32)
        hi = p3 + (mid >> shift32) + (lo < p0).astype(jnp.uint64)

        # fold in the accumulator with carry
        lo2 = lo + acc
        hi = hi + (lo2 < lo).astype(jnp.uint64)

        s1 = (lo2 & mersbase) + (hi << shift3) + (lo2 >> bits)
        return (s1 & mersbase) + (s1 >> bits)

    return fused_kernel


class JaxFusedMulAdd:
    """
    Device-resident fused multiply-accumulate for skip-ahead.

    Usage:
        kernel = JaxFusedMulAdd()
        acc = kernel(acc, coeff, y)   # NumPy in, NumPy out
    """

    name = "jax"

    def __init__(self, device=None):
        self._device = device if device is not None else get_device()
        self._kernel = _build_fused_kernel()
        logger.info(f"Fused multiply-accumulate compiled for {self._device}")

    def __call__(self, acc: np.ndarray, coeff: int, y) -> np.ndarray:
        acc_dev = jax.device_put(jnp.asarray(acc, dtype=jnp.uint64), self._device)
        y_dev = jax.device_put(jnp.asarray(np.asarray(y, dtype=np.uint64)), self._device)
        coeff_dev = jnp.asarray(np.uint64(coeff))
        out = self._kernel(acc_dev, coeff_dev, y_dev)
        return np.asarray(out, dtype=np.uint64)
