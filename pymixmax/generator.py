"""
MixMaxGenerator — the user-facing MIXMAX random number generator.

Ties together the parameter set, the state vector, the iteration engine and
skip-ahead:

    gen = MixMaxGenerator(n=256, seed=12345)
    x = gen.next_uniform()            # one double in [0, 1]
    block = gen.fill_uniform(10_000)  # NumPy float64 array

    gen.seed_unique_stream(0, 0, run_id, stream_id)  # independent substream

Each generator owns its state and its skip number; nothing is shared between
generators, so separate generators may be used from separate threads.
"""

import logging
from typing import Iterator, Optional, Sequence

import numpy as np

from .core.engine import DEFAULT_SKIP_NUMBER, iterate, iterate_and_fill, iterate_raw_vec
from .core.modarith import reduce, to_uniform
from .core.params import INV_MERSBASE, MASK64, MixMaxParams, params_for
from .core.state import MixMaxState, StateSnapshot, export_state, import_state
from .errors import InvalidIndexError, MissingSkipTableError, ZeroSeedError
from .persist.state_text import load_state, save_state
from .skip.bigskip import (
    apply_bigskip,
    fallback_stream_vector,
    get_fused_kernel,
    validate_ids,
)
from .skip.tables import SkipTableRegistry, default_registry

logger = logging.getLogger(__name__)

# Knuth's 64-bit LCG multiplier
MULT64 = 6364136223846793005


class MixMaxGenerator:
    """
    MIXMAX generator over GF(2^61 - 1).

    The constructor always leaves a seeded state: LCG seeding with `seed`.
    Reseed with seed_basis, seed_linear or seed_unique_stream.
    """

    def __init__(
        self,
        n: int = 256,
        seed: int = 1,
        skip_number: int = DEFAULT_SKIP_NUMBER,
        backend: str = "numpy",
        skip_tables: Optional[SkipTableRegistry] = None,
    ):
        """
        Args:
            n: Vector size (88, 256, 1000, 3150 have skip tables)
            seed: Nonzero 64-bit seed for the initial LCG seeding
            skip_number: Extra raw iterations per refill (default 2)
            backend: Kernel for skip-ahead: "numpy", "jax" or "python"
            skip_tables: Table registry; defaults to the process-wide one
        """
        self._params: MixMaxParams = params_for(n)
        self._skip_number = 0
        self.set_skip_number(skip_number)
        self._backend = backend
        self._fused = None
        self._skip_tables = skip_tables
        self._state: MixMaxState = self._linear_state(seed)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def params(self) -> MixMaxParams:
        return self._params

    @property
    def n(self) -> int:
        return self._params.n

    def get_n(self) -> int:
        return self._params.n

    @property
    def state(self) -> MixMaxState:
        """The live state (mutated by every draw)."""
        return self._state

    def get_skip_number(self) -> int:
        return self._skip_number

    def set_skip_number(self, nskip: int) -> None:
        """Set the number of extra raw iterations performed per refill."""
        if int(nskip) < 0:
            raise ValueError(f"Skip number must be >= 0, got {nskip}")
        self._skip_number = int(nskip)

    skip_number = property(get_skip_number, set_skip_number)

    @property
    def skip_tables(self) -> SkipTableRegistry:
        if self._skip_tables is None:
            self._skip_tables = default_registry()
        return self._skip_tables

    def _fused_kernel(self):
        if self._fused is None:
            self._fused = get_fused_kernel(self._backend)
            logger.debug(f"Skip-ahead backend: {self._backend}")
        return self._fused

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed_basis(self, index: int) -> None:
        """
        Seed with the index-th unit vector.

        Raises:
            InvalidIndexError: index outside [0, N)
        """
        n = self._params.n
        if not 0 <= index < n:
            raise InvalidIndexError(
                f"Out of bounds index {index}, is not (0 <= index < {n})"
            )
        vector = [0] * n
        vector[index] = 1
        # checksum covers vector[1:], so e_0 sums to zero
        self._state = MixMaxState(vector=vector, checksum=1 if index else 0, cursor=n)

    def _linear_state(self, seed: int) -> MixMaxState:
        if seed == 0:
            raise ZeroSeedError("Try seeding with a nonzero seed next time")
        if not 0 < seed <= MASK64:
            raise ValueError(f"Seed must fit in 64 bits, got {seed}")

        mersbase = self._params.mersbase
        vector = [seed & mersbase]
        sumtot = 0
        state = seed
        for _ in range(1, self._params.n):
            state = (state * MULT64) & MASK64
            state = ((state << 32) & MASK64) ^ (state >> 32)
            value = state & mersbase
            vector.append(value)
            sumtot += value

        return MixMaxState(vector=vector, checksum=reduce(sumtot), cursor=self._params.n)

    def seed_linear(self, seed: int) -> None:
        """
        Seed from a 64-bit LCG with a 32-bit half swap per step.

        Raises:
            ZeroSeedError: seed == 0
        """
        self._state = self._linear_state(seed)

    def seed_unique_stream(
        self,
        cluster_id: int,
        machine_id: int,
        run_id: int,
        stream_id: int,
        require_skip: bool = False,
    ) -> bool:
        """
        Seed the substream identified by (cluster, machine, run, stream).

        The mother vector is the unit vector e_0. When no skip table exists
        for N, the IDs are injected directly into the vector instead; that
        fallback carries no non-collision guarantee.

        Args:
            cluster_id, machine_id, run_id, stream_id: 32-bit IDs
            require_skip: Raise instead of falling back when no table exists

        Returns:
            True if the guaranteed skip-ahead was used, False for the fallback

        Raises:
            MissingSkipTableError: no table and require_skip is set
            InvalidStreamIdError: an ID does not fit in 32 bits
        """
        ids = validate_ids((cluster_id, machine_id, run_id, stream_id))
        n = self._params.n
        table = self.skip_tables.find(n)

        if table is None:
            if require_skip:
                raise MissingSkipTableError(
                    f"No skip coefficient table for N={n}; "
                    "non-colliding streams cannot be guaranteed"
                )
            logger.warning(
                f"No skip coefficients for N={n}, seeding stream {ids} by direct "
                "injection; streams are NOT guaranteed to be non-colliding"
            )
            vector, checksum = fallback_stream_vector(ids, self._params)
            self._state = MixMaxState(vector=vector, checksum=checksum, cursor=n)
            return False

        mother = [0] * n
        mother[0] = 1
        vector, checksum = apply_bigskip(mother, ids, table, self._params, self._fused_kernel())
        self._state = MixMaxState(vector=vector, checksum=checksum, cursor=n)
        return True

    def branch_inplace(self, id_vec: Sequence[int]) -> None:
        """
        Skip the current vector ahead by the jump for an ID vector.

        The cursor is reset to N, so the next read iterates the derived
        vector first.

        Args:
            id_vec: IDs ordered (stream, run, machine, cluster)

        Raises:
            MissingSkipTableError: no table for N
        """
        stream_id, run_id, machine_id, cluster_id = id_vec
        table = self.skip_tables.get(self._params.n)
        vector, checksum = apply_bigskip(
            self._state.vector,
            (cluster_id, machine_id, run_id, stream_id),
            table,
            self._params,
            self._fused_kernel(),
        )
        self._state = MixMaxState(vector=vector, checksum=checksum, cursor=self._params.n)

    # ------------------------------------------------------------------
    # Iteration and extraction
    # ------------------------------------------------------------------

    def iterate(self) -> None:
        """Advance the state by skip_number + 1 raw iterations."""
        iterate(self._state, self._params, self._skip_number)

    def iterate_raw(self) -> None:
        """Advance the state by exactly one raw iteration."""
        state = self._state
        state.checksum = iterate_raw_vec(state.vector, state.checksum, self._params)

    def next_raw(self) -> int:
        """
        Return the next residue in [0, M].

        On refill the freshly iterated vector[0] and the cursor position 1 are
        consumed together: vector[1] is returned and reading resumes at 2.
        """
        state = self._state
        i = state.cursor
        if i < self._params.n:
            state.cursor = i + 1
            return state.vector[i]
        iterate(state, self._params, self._skip_number)
        state.cursor = 2
        return state.vector[1]

    def next_uniform(self) -> float:
        """Return the next double in [0, 1]."""
        return self.next_raw() * INV_MERSBASE

    random = next_uniform

    def fill_uniform(self, count: int, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Fill an array with `count` uniform doubles.

        Whole blocks of N-1 values come straight from the fused
        iterate-and-fill path. A trailing partial block of rem values takes
        vector[0:rem] after one more iterate, and leaves the cursor at rem so
        single-value reads continue from the next unread slot.

        The result equals `count` sequential next_uniform() calls only when
        `count` is a whole multiple of N-1. A partial block starts at
        vector[0], which single-value reads never return.

        Args:
            count: Number of values
            out: Optional float64 array of at least `count` elements

        Returns:
            The filled array (`out` if given)
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        if out is None:
            out = np.empty(count, dtype=np.float64)
        elif out.shape[0] < count:
            raise ValueError(f"Output array holds {out.shape[0]} values, need {count}")

        params = self._params
        state = self._state
        block = params.n - 1
        full_blocks, rem = divmod(count, block)

        for i in range(full_blocks):
            for _ in range(self._skip_number + 1):
                iterate_and_fill(state, params, out, i * block)

        if rem:
            iterate(state, params, self._skip_number)
            start = full_blocks * block
            out[start:start + rem] = to_uniform(state.vector[:rem])
            state.cursor = rem
        else:
            state.cursor = params.n

        return out

    def __iter__(self) -> Iterator[float]:
        while True:
            yield self.next_uniform()

    # ------------------------------------------------------------------
    # State exchange
    # ------------------------------------------------------------------

    def export_state(self) -> StateSnapshot:
        return export_state(self._state)

    def import_state(self, snapshot: StateSnapshot) -> None:
        """Replace the state with a validated snapshot."""
        self._state = import_state(snapshot, self._params)

    def save_state(self, path) -> None:
        """Write the state to `path` in the text format."""
        save_state(self._state, path)

    def load_state(self, path) -> None:
        """Replace the state with a validated one read from `path`."""
        self._state = load_state(path, self._params)

    @classmethod
    def from_snapshot(cls, snapshot: StateSnapshot, **kwargs) -> 'MixMaxGenerator':
        gen = cls(n=snapshot.n, **kwargs)
        gen.import_state(snapshot)
        return gen

    @classmethod
    def from_vector(cls, vector: Sequence[int], **kwargs) -> 'MixMaxGenerator':
        """Build a generator around a caller-supplied vector."""
        gen = cls(n=len(vector), **kwargs)
        gen._state = MixMaxState.from_vector(vector)
        return gen

    def copy(self) -> 'MixMaxGenerator':
        """Independent generator with the same parameters and state."""
        clone = MixMaxGenerator.__new__(MixMaxGenerator)
        clone._params = self._params
        clone._skip_number = self._skip_number
        clone._backend = self._backend
        clone._fused = self._fused
        clone._skip_tables = self._skip_tables
        clone._state = self._state.copy()
        return clone

    def __repr__(self) -> str:
        return (
            f"MixMaxGenerator(n={self._params.n}, skip_number={self._skip_number}, "
            f"cursor={self._state.cursor}, checksum={self._state.checksum})"
        )
