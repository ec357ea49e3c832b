"""
Modular arithmetic kernel for the Mersenne prime 2^61 - 1.

Reduction by a Mersenne modulus needs only shifts, masks and adds:
  2^61 == 1 (mod M)  so  k == (k & M) + (k >> 61)
  2^64 == 8 (mod M)  so  a 128-bit value hi:lo == (lo & M) + 8*hi + (lo >> 61)

The scalar functions emulate the 64-bit and 128-bit unsigned words of the
reference implementation exactly, so every result is the same representative
(including the occasional M standing in for 0). The *_vec functions are the
NumPy batch path; they build the 128-bit product from 32-bit limbs and must
agree with the scalar path bit for bit.
"""

import numpy as np

from .params import BITS, MERSBASE, MASK64, INV_MERSBASE

_U64_MASK32 = np.uint64(0xFFFFFFFF)
_U64_MERSBASE = np.uint64(MERSBASE)
_U64_BITS = np.uint64(BITS)
_U64_32 = np.uint64(32)
_U64_3 = np.uint64(3)
_U64_MASK30 = np.uint64((1 << 30) - 1)
_U64_MASK31 = np.uint64((1 << 31) - 1)
_U64_30 = np.uint64(30)
_U64_31 = np.uint64(31)
_U64_ZERO = np.uint64(0)


def mod_mersenne(k: int) -> int:
    """Single Payne fold of a 64-bit word."""
    return (k & MERSBASE) + (k >> BITS)


def reduce(s: int) -> int:
    """
    Reduce a 128-bit accumulator modulo 2^61 - 1.

    The 64-bit intermediate is wrapped the same way the native word would be;
    inputs produced by this package never come close to wrapping.
    """
    lo = s & MASK64
    hi = (s >> 64) & MASK64
    s1 = ((lo & MERSBASE) + ((hi << 3) & MASK64) + (lo >> BITS)) & MASK64
    return mod_mersenne(s1)


def modadd(a: int, b: int) -> int:
    """(a + b) mod M for residues a, b in [0, M]."""
    return mod_mersenne(a + b)


def modmul(a: int, b: int) -> int:
    """(a * b) mod M through the full 128-bit product."""
    return reduce(a * b)


def fused_modmul_add(acc: int, a: int, b: int) -> int:
    """(acc + a * b) mod M in one widened computation."""
    return reduce(a * b + acc)


def mod_mulspec(special: int, k: int) -> int:
    """
    special * k mod M for the special correction term.

    A multiplier of -1 (stored as M - 1) is the plain negation M - k, which
    keeps M as the representative of zero when k is 0.
    """
    if special == MERSBASE - 1:
        return MERSBASE - k
    return modmul(special, k)


# ---------------------------------------------------------------------------
# NumPy batch path
# ---------------------------------------------------------------------------

def _mul_wide(a: np.ndarray, b: np.ndarray):
    """
    Full 64x64 -> 128-bit product of uint64 arrays as (hi, lo).

    Operands are below 2^62, so the cross terms cannot overflow a word.
    """
    a_lo = a & _U64_MASK32
    a_hi = a >> _U64_32
    b_lo = b & _U64_MASK32
    b_hi = b >> _U64_32

    p0 = a_lo * b_lo
    mid = a_lo * b_hi + a_hi * b_lo
    p3 = a_hi * b_hi

    lo = p0 + (mid << _U64_32)
    carry = (lo < p0).astype(np.uint64)
    hi = p3 + (mid >> _U64_32) + carry
    return hi, lo


def _reduce_wide(hi: np.ndarray, lo: np.ndarray) -> np.ndarray:
    s1 = (lo & _U64_MERSBASE) + (hi << _U64_3) + (lo >> _U64_BITS)
    return (s1 & _U64_MERSBASE) + (s1 >> _U64_BITS)


def fused_modmul_add_vec(acc: np.ndarray, coeff: int, y: np.ndarray) -> np.ndarray:
    """
    Element-wise (acc + coeff * y) mod M for uint64 arrays.

    Args:
        acc: (N,) uint64 accumulator
        coeff: Scalar coefficient in [0, 2^62)
        y: (N,) uint64 residues

    Returns:
        (N,) uint64 array, identical to fused_modmul_add applied per element
    """
    acc = np.asarray(acc, dtype=np.uint64)
    y = np.asarray(y, dtype=np.uint64)
    a = np.full(y.shape, coeff, dtype=np.uint64)

    hi, lo = _mul_wide(a, y)
    lo2 = lo + acc
    hi = hi + (lo2 < lo).astype(np.uint64)
    return _reduce_wide(hi, lo2)


def modadd_vec(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Element-wise modadd for uint64 arrays."""
    k = np.asarray(a, dtype=np.uint64) + np.asarray(b, dtype=np.uint64)
    return (k & _U64_MERSBASE) + (k >> _U64_BITS)


def chain_modadd_vec(values: np.ndarray, start: int = 0) -> np.ndarray:
    """
    Running modadd of `values`, starting from `start`, without a Python loop.

    Returns the same representatives as

        r = start
        for i, v in enumerate(values):
            r = out[i] = modadd(r, v)

    A modadd of two representatives is 0 only when both are 0, and otherwise
    the representative of its class in [1, M]. So each output is fixed by the
    class of the prefix sum and by whether any input so far was nonzero.
    Prefix sums are taken on 31-bit limbs so the uint64 cumsum cannot wrap.
    """
    v = np.asarray(values, dtype=np.uint64)
    lo = np.cumsum(v & _U64_MASK31, dtype=np.uint64)
    hi = np.cumsum(v >> _U64_31, dtype=np.uint64)

    # hi * 2^31 == (hi >> 30) + (hi & (2^30 - 1)) * 2^31  (mod M)
    s = lo + (hi >> _U64_30) + ((hi & _U64_MASK30) << _U64_31)
    s = s + np.uint64(start % MERSBASE)
    s = (s & _U64_MERSBASE) + (s >> _U64_BITS)
    s = (s & _U64_MERSBASE) + (s >> _U64_BITS)

    nonzero = np.logical_or.accumulate(v != 0)
    if start:
        nonzero[:] = True
    rep = np.where(s == _U64_ZERO, _U64_MERSBASE, s)
    return np.where(nonzero, rep, _U64_ZERO)


def to_uniform(values) -> np.ndarray:
    """
    Convert residues to doubles in [0, 1].

    The residue is reinterpreted as a signed 64-bit integer before scaling,
    exactly as the single-value path does.
    """
    raw = np.asarray(values, dtype=np.uint64)
    return raw.astype(np.int64).astype(np.float64) * INV_MERSBASE
