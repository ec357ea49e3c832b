"""
MIXMAX iteration engine.

One raw iteration multiplies the state vector by the MIXMAX matrix A. The
matrix is never materialised; the product is computed with two running sums:
  Y[0]  <- Y[0] + sum(old Y[1:])
  Y[i]  <- Y[i-1] + (old Y[1] + ... + old Y[i])      for i = 1..N-1
plus, for parameter sets with a special multiplier, a correction term
  Y[2]  <- Y[2] + special * old Y[1]

The new checksum is accumulated on the fly in a wide integer and reduced
once at the end.
"""

from typing import List, Tuple

import numpy as np

from .modarith import chain_modadd_vec, modadd, mod_mulspec, reduce
from .params import MixMaxParams, INV_MERSBASE
from .state import MixMaxState

# Extra iterations per logical iterate() call
DEFAULT_SKIP_NUMBER = 2


def iterate_raw_vec(y: List[int], sumtot_old: int, params: MixMaxParams) -> int:
    """
    Advance a raw vector by one step of the recurrence, in place.

    Args:
        y: N residues, modified in place
        sumtot_old: Checksum of y before the step
        params: Parameter set (N and special multiplier)

    Returns:
        Checksum of the new vector
    """
    n = params.n
    special = params.special_mul
    temp2 = y[1]

    temp_v = modadd(y[0], sumtot_old)
    y[0] = temp_v
    sumtot = 0
    temp_p = 0
    for i in range(1, n):
        temp_p = modadd(temp_p, y[i])
        temp_v = modadd(temp_v, temp_p)
        y[i] = temp_v
        sumtot += temp_v

    if special:
        temp2 = mod_mulspec(special, temp2)
        y[2] = modadd(y[2], temp2)
        sumtot += temp2

    return reduce(sumtot)


def iterate_raw_np(y: np.ndarray, sumtot_old: int, params: MixMaxParams) -> Tuple[np.ndarray, int]:
    """
    NumPy form of iterate_raw_vec for the skip-ahead loop.

    Both running sums are evaluated with chain_modadd_vec, so the new vector
    holds exactly the representatives iterate_raw_vec would produce.

    Args:
        y: (N,) uint64 residues, not modified
        sumtot_old: Checksum of y before the step
        params: Parameter set

    Returns:
        (new vector, checksum of the new vector)
    """
    y0 = modadd(int(y[0]), sumtot_old)
    partial = chain_modadd_vec(y[1:])
    tail = chain_modadd_vec(partial, y0)

    out = np.empty(params.n, dtype=np.uint64)
    out[0] = y0
    out[1:] = tail

    total = chain_modadd_vec(tail)[-1]
    if params.special_mul:
        temp2 = mod_mulspec(params.special_mul, int(y[1]))
        out[2] = modadd(int(out[2]), temp2)
        total = modadd(int(total), temp2)

    return out, int(total)


def iterate(state: MixMaxState, params: MixMaxParams,
            skip_number: int = DEFAULT_SKIP_NUMBER) -> None:
    """Apply skip_number + 1 raw iterations to a state."""
    for _ in range(skip_number + 1):
        state.checksum = iterate_raw_vec(state.vector, state.checksum, params)


def iterate_and_fill(state: MixMaxState, params: MixMaxParams,
                     out: np.ndarray, offset: int) -> None:
    """
    One raw iteration that also writes the new Y[1:] as uniforms.

    out[offset + i - 1] receives Y[i] for i = 1..N-1; Y[0] is never written.
    With a special multiplier the corrected Y[2] replaces its slot, so the
    block always equals what single-value reads of Y[1:] would return.
    """
    y = state.vector
    n = params.n
    special = params.special_mul
    temp2 = y[1]

    temp_v = modadd(y[0], state.checksum)
    y[0] = temp_v
    sumtot = 0
    temp_p = 0
    for i in range(1, n):
        temp_p = modadd(temp_p, y[i])
        temp_v = modadd(temp_v, temp_p)
        y[i] = temp_v
        sumtot += temp_v
        out[offset + i - 1] = temp_v * INV_MERSBASE

    if special:
        temp2 = mod_mulspec(special, temp2)
        y[2] = modadd(y[2], temp2)
        out[offset + 1] = y[2] * INV_MERSBASE
        sumtot += temp2

    state.checksum = reduce(sumtot)
