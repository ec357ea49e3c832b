"""
MIXMAX state vector.

A state is N residues, a cached checksum and a read cursor:
  - checksum == sum(vector[1:]) mod M  (element 0 is excluded; it is folded in
    by the next iteration, which adds the old checksum to vector[0])
  - 0 <= vector[i] <= M
  - 0 <= cursor <= N; cursor == N means the next read must iterate first

States are built by the seeding operations in generator.py, by direct vector
assignment (MixMaxState.from_vector), or by import_state from a snapshot.
"""

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from .modarith import reduce
from .params import MixMaxParams, MERSBASE
from ..errors import (
    ImportChecksumMismatchError,
    ImportInvalidCursorError,
    ImportOutOfRangeValueError,
    StateInvariantError,
)


def precalc_checksum(vector: Sequence[int]) -> int:
    """Checksum of a vector: sum of elements 1..N-1, reduced mod M."""
    return reduce(sum(vector[1:]))


@dataclass(frozen=True)
class StateSnapshot:
    """
    Plain record exchanged with persistence layers.

    Mirrors the fields of the textual state format: vector size, the N
    residues in order, the cursor, and the checksum.
    """
    n: int
    vector: Tuple[int, ...]
    cursor: int
    checksum: int


@dataclass
class MixMaxState:
    """Mutable state of one generator."""
    vector: List[int]
    checksum: int
    cursor: int = field(default=0)

    @property
    def n(self) -> int:
        return len(self.vector)

    @classmethod
    def from_vector(cls, vector: Sequence[int]) -> 'MixMaxState':
        """
        Install a caller-supplied vector and recompute its checksum.

        The cursor is left at 2, so the next reads return vector[2:] before
        any iteration happens.
        """
        vec = [int(v) for v in vector]
        for i, v in enumerate(vec):
            if not 0 <= v <= MERSBASE:
                raise ImportOutOfRangeValueError(
                    f"Vector element {i} = {v} is outside [0, {MERSBASE}]"
                )
        return cls(vector=vec, checksum=precalc_checksum(vec), cursor=2)

    def copy(self) -> 'MixMaxState':
        return MixMaxState(list(self.vector), self.checksum, self.cursor)

    def recompute_checksum(self) -> int:
        """Re-derive the cached checksum from vector[1:] and return it."""
        self.checksum = precalc_checksum(self.vector)
        return self.checksum

    def check_invariants(self) -> None:
        """
        Raise StateInvariantError if any state invariant is broken.
        """
        n = len(self.vector)
        for i, v in enumerate(self.vector):
            if not 0 <= v <= MERSBASE:
                raise StateInvariantError(f"vector[{i}] = {v} out of range")
        if not 0 <= self.cursor <= n:
            raise StateInvariantError(f"cursor {self.cursor} outside [0, {n}]")
        if self.checksum % MERSBASE != sum(self.vector[1:]) % MERSBASE:
            raise StateInvariantError(
                f"checksum {self.checksum} does not match vector"
            )


def export_state(state: MixMaxState) -> StateSnapshot:
    """Copy a state out into an immutable snapshot."""
    return StateSnapshot(
        n=state.n,
        vector=tuple(state.vector),
        cursor=state.cursor,
        checksum=state.checksum,
    )


def import_state(snapshot: StateSnapshot, params: MixMaxParams) -> MixMaxState:
    """
    Validate a snapshot and build a state from it.

    Args:
        snapshot: Snapshot read from storage
        params: Parameter set the state will be used with

    Returns:
        New MixMaxState

    Raises:
        ImportOutOfRangeValueError: wrong size, or a residue above MERSBASE
        ImportInvalidCursorError: cursor outside [0, N]
        ImportChecksumMismatchError: checksum does not match vector[1:]
    """
    n = params.n
    if snapshot.n != n or len(snapshot.vector) != n:
        raise ImportOutOfRangeValueError(
            f"State has N={snapshot.n} with {len(snapshot.vector)} values, "
            f"generator expects N={n}"
        )

    vector = [int(v) for v in snapshot.vector]
    for i, v in enumerate(vector):
        # == MERSBASE is a legal stand-in for zero
        if not 0 <= v <= params.mersbase:
            raise ImportOutOfRangeValueError(
                f"Invalid state vector value V[{i}] = {v} "
                f"(must not exceed {params.mersbase})"
            )

    if not 0 <= snapshot.cursor <= n:
        raise ImportInvalidCursorError(
            f"Invalid counter = {snapshot.cursor}, must be 0 <= counter <= {n}"
        )

    checksum = precalc_checksum(vector)
    if checksum != snapshot.checksum:
        raise ImportChecksumMismatchError(
            f"Checksum error: stored {snapshot.checksum}, computed {checksum} "
            "- corrupted state?"
        )

    return MixMaxState(vector=vector, checksum=checksum, cursor=snapshot.cursor)
