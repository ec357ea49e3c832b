"""
MIXMAX parameter sets.

A parameter set fixes the vector dimension N, the modulus exponent BITS (61 in
every supported configuration) and the optional "special" multiplier that adds
a correction term to element 2 on every iteration. It is created once and
shared read-only by every state built on it.

Reference: N.Z. Akopov, G.K. Savvidy and N.G. Ter-Arutyunian, Matrix Generator
of Pseudorandom Numbers, J.Comput.Phys. 97, 573 (1991).
"""

from dataclasses import dataclass
from functools import lru_cache

from ..errors import InvalidParametersError

BITS = 61
MERSBASE = (1 << BITS) - 1
MASK64 = 0xFFFFFFFFFFFFFFFF

# 2^-61; the signed-int cast of a residue times this lands in [0, 1]
INV_MERSBASE = 0.43368086899420177360298e-18

# Sizes that ship with skip coefficient tables
SKIP_SIZES = (88, 256, 1000, 3150)

# Special multipliers are field elements mod M; N=256 multiplies by -1
_SPECIAL_MUL = {
    256: MERSBASE - 1,
}

MIN_N = 8


@dataclass(frozen=True)
class MixMaxParams:
    """Compile-time style constants of one generator family."""
    n: int
    bits: int = BITS
    special_mul: int = 0

    def __post_init__(self):
        if self.bits != BITS:
            raise InvalidParametersError(
                f"Only BITS={BITS} is supported, got {self.bits}"
            )
        if self.n < MIN_N:
            raise InvalidParametersError(
                f"Vector size must be at least {MIN_N}, got {self.n}"
            )
        if not 0 <= self.special_mul < MERSBASE:
            raise InvalidParametersError(
                f"Special multiplier must be a residue in [0, {MERSBASE}), "
                f"got {self.special_mul}"
            )

    @property
    def mersbase(self) -> int:
        return (1 << self.bits) - 1

    @property
    def has_special(self) -> bool:
        return self.special_mul != 0

    @property
    def has_skip_table(self) -> bool:
        """True when a skip table is published for this N."""
        return self.n in SKIP_SIZES


@lru_cache(maxsize=None)
def params_for(n: int) -> MixMaxParams:
    """
    Return the canonical parameter set for vector size `n`.

    Args:
        n: Vector dimension (88, 256, 1000, 3150, or any other n >= 8)

    Returns:
        Shared MixMaxParams instance
    """
    return MixMaxParams(n=n, special_mul=_SPECIAL_MUL.get(n, 0))
