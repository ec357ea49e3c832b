"""
Skip-ahead: derive independent sub-streams from a mother vector.

A stream is identified by four 32-bit IDs (cluster, machine, run, stream).
Each set bit r of the ID at level L selects the table row for the jump
A^(2^(r + 32*L)) written as a polynomial in A of degree < N:

    Y' = sum_j c_j * A^j * Y

The polynomial is evaluated by accumulating c_j * Y into an N-wide
accumulator while advancing Y by one raw iteration per lag. Jumps for
different bits commute, so bits are applied from the lowest level and lowest
bit upward. The raw steps run on NumPy arrays (iterate_raw_np) and the
multiply-accumulate uses the kernel of the selected backend.

Substreams derived from the SAME mother vector never collide provided at least
one ID bit differs and fewer than 10^100 values are drawn from each. Derive
from a fixed mother vector (the unit vector e_0) and never from a derived one.
"""

import logging
from typing import Callable, List, Sequence, Tuple

import numpy as np

from ..core.engine import iterate_raw_np, iterate_raw_vec
from ..core.modarith import fused_modmul_add, fused_modmul_add_vec
from ..core.params import MixMaxParams
from ..core.state import precalc_checksum
from ..errors import InvalidParametersError, InvalidStreamIdError, SkipTableFormatError
from .tables import ID_BITS, ID_LEVELS, SkipTable

logger = logging.getLogger(__name__)

BACKENDS = ("numpy", "jax", "python")

FusedMulAdd = Callable[[np.ndarray, int, Sequence[int]], np.ndarray]


def _python_fused(acc, coeff: int, y) -> np.ndarray:
    """Scalar reference: the kernel applied one element at a time."""
    return np.array(
        [fused_modmul_add(int(c), coeff, int(v)) for c, v in zip(acc, y)],
        dtype=np.uint64,
    )


def get_fused_kernel(backend: str = "numpy") -> FusedMulAdd:
    """
    Return the fused multiply-accumulate for a backend.

    Args:
        backend: "numpy" (default), "jax" (compiled, accelerator if present)
                 or "python" (scalar reference)
    """
    if backend == "numpy":
        return fused_modmul_add_vec
    if backend == "python":
        return _python_fused
    if backend == "jax":
        from ..core.jax_kernel import JaxFusedMulAdd
        return JaxFusedMulAdd()
    raise InvalidParametersError(
        f"Unknown backend {backend!r}, expected one of {BACKENDS}"
    )


def validate_ids(ids: Sequence[int]) -> Tuple[int, int, int, int]:
    """Check a (cluster, machine, run, stream) tuple and return it as ints."""
    if len(ids) != ID_LEVELS:
        raise InvalidStreamIdError(
            f"Expected {ID_LEVELS} IDs (cluster, machine, run, stream), got {len(ids)}"
        )
    out = []
    for name, value in zip(("cluster", "machine", "run", "stream"), ids):
        value = int(value)
        if not 0 <= value < (1 << ID_BITS):
            raise InvalidStreamIdError(
                f"{name} ID {value} does not fit in {ID_BITS} bits"
            )
        out.append(value)
    return tuple(out)


def apply_bigskip(
    vin: Sequence[int],
    ids: Sequence[int],
    table: SkipTable,
    params: MixMaxParams,
    fused: FusedMulAdd = fused_modmul_add_vec,
) -> Tuple[List[int], int]:
    """
    Compute the derived vector for a hierarchical ID.

    Args:
        vin: Mother vector (N residues), not modified
        ids: (clusterID, machineID, runID, streamID)
        table: Skip table for params.n
        params: Parameter set
        fused: Fused multiply-accumulate kernel (see get_fused_kernel)

    Returns:
        (derived vector, checksum of the derived vector)
    """
    n = params.n
    if table.n != n:
        raise SkipTableFormatError(f"Skip table is for N={table.n}, state has N={n}")
    cluster_id, machine_id, run_id, stream_id = validate_ids(ids)

    y = np.array([int(v) for v in vin], dtype=np.uint64)
    sumtot = precalc_checksum(y.tolist())

    # lowest level first
    for level, ident in enumerate((stream_id, run_id, machine_id, cluster_id)):
        r = 0
        while ident:
            if ident & 1:
                row = table.row(r, level)
                logger.debug(f"Applying skip row {table.row_index(r, level)}")
                cum = np.zeros(n, dtype=np.uint64)
                for j in range(n):
                    cum = fused(cum, int(row[j]), y)
                    y, sumtot = iterate_raw_np(y, sumtot, params)
                y = np.asarray(cum, dtype=np.uint64)
                sumtot = precalc_checksum(y.tolist())
            ident >>= 1
            r += 1

    vout = y.tolist()
    return vout, precalc_checksum(vout)


def fallback_stream_vector(ids: Sequence[int], params: MixMaxParams) -> Tuple[List[int], int]:
    """
    Seed a stream by injecting the IDs directly into the vector.

    Used for sizes without a skip table. Streams seeded this way are NOT
    guaranteed to be non-colliding.

    Returns:
        (vector, checksum)
    """
    cluster_id, machine_id, run_id, stream_id = validate_ids(ids)
    y = [0] * params.n
    y[:8] = [
        cluster_id,
        machine_id,
        run_id,
        stream_id,
        cluster_id << 5,
        machine_id << 7,
        run_id << 11,
        stream_id << 13,
    ]
    sumtot = precalc_checksum(y)
    sumtot = iterate_raw_vec(y, sumtot, params)
    sumtot = iterate_raw_vec(y, sumtot, params)
    return y, sumtot
