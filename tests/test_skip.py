"""
Tests for skip-ahead stream derivation.

The published coefficient tables are large external data, so most tests use
synthetic tables. A row holding a single 1 at lag k is the polynomial A^k,
which lets skip-ahead be checked against k plain raw iterations:
  - single bits, several bits, and every ID level
  - linear combinations of lags
  - NumPy, scalar and JAX kernels agree bit for bit
  - table loading from .npy and C initializer text
  - fallback seeding for sizes without a table

Tests against the real tables run when PYMIXMAX_SKIP_TABLE_DIR points at them.
"""

import logging
import pytest
import numpy as np
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from pymixmax.core.params import MERSBASE, params_for
from pymixmax.core.engine import iterate_raw_vec
from pymixmax.core.modarith import fused_modmul_add, fused_modmul_add_vec
from pymixmax.core.state import precalc_checksum
from pymixmax.generator import MixMaxGenerator
from pymixmax.skip.bigskip import (
    apply_bigskip,
    fallback_stream_vector,
    get_fused_kernel,
)
from pymixmax.skip.tables import (
    SKIP_ROWS,
    SKIP_TABLE_DIR_ENV,
    SkipTable,
    SkipTableRegistry,
    parse_c_initializer,
)
from pymixmax.errors import (
    InvalidParametersError,
    InvalidStreamIdError,
    MissingSkipTableError,
    SkipTableFormatError,
)


M = MERSBASE
N = 88


def monomial_table(n, lags):
    """Table whose row i is the unit vector at lag lags[i] (A^lags[i])."""
    rows = np.zeros((SKIP_ROWS, n), dtype=np.uint64)
    for row, lag in lags.items():
        rows[row, lag] = 1
    return SkipTable(n, rows)


def random_table(n, seed=0):
    rng = np.random.default_rng(seed)
    return SkipTable(n, rng.integers(0, M, size=(SKIP_ROWS, n), dtype=np.uint64))


def generator_with(table, n=N, **kwargs):
    registry = SkipTableRegistry(table_dir=None)
    registry.register(table)
    return MixMaxGenerator(n=n, skip_tables=registry, **kwargs)


def raw_steps_from_e0(n, steps):
    """Vector and checksum of e_0 after `steps` raw iterations."""
    gen = MixMaxGenerator(n=n)
    gen.seed_basis(0)
    for _ in range(steps):
        gen.iterate_raw()
    return gen.state.vector, gen.state.checksum


class TestMonomialSkips:
    """Skip-ahead with A^k rows must equal k raw iterations."""

    def test_single_stream_bit(self):
        gen = generator_with(monomial_table(N, {0: 5}))
        assert gen.seed_unique_stream(0, 0, 0, 1) is True
        vector, checksum = raw_steps_from_e0(N, 5)
        assert gen.state.vector == vector
        assert gen.state.checksum == checksum
        assert gen.state.cursor == N

    def test_bits_compose(self):
        """Set bits add their jumps: A^3 * A^2 = A^5."""
        gen = generator_with(monomial_table(N, {0: 2, 1: 3}))
        gen.seed_unique_stream(0, 0, 0, 3)
        vector, _ = raw_steps_from_e0(N, 5)
        assert gen.state.vector == vector

    def test_unset_bits_are_identity(self):
        gen = generator_with(monomial_table(N, {0: 2, 1: 3, 2: 11}))
        gen.seed_unique_stream(0, 0, 0, 4)
        vector, _ = raw_steps_from_e0(N, 11)
        assert gen.state.vector == vector

    @pytest.mark.parametrize("level,ids", [
        (1, (0, 0, 1, 0)),
        (2, (0, 1, 0, 0)),
        (3, (1, 0, 0, 0)),
    ])
    def test_levels_use_their_rows(self, level, ids):
        """Bit 0 of level L reads row 32 * L."""
        gen = generator_with(monomial_table(N, {32 * level: 7, 0: 1}))
        gen.seed_unique_stream(*ids)
        vector, _ = raw_steps_from_e0(N, 7)
        assert gen.state.vector == vector

    def test_all_levels_together(self):
        lags = {0: 1, 32: 2, 64: 3, 96: 4}
        gen = generator_with(monomial_table(N, lags))
        gen.seed_unique_stream(1, 1, 1, 1)
        vector, _ = raw_steps_from_e0(N, 10)
        assert gen.state.vector == vector

    def test_zero_ids_give_mother_vector(self):
        gen = generator_with(monomial_table(N, {0: 5}))
        gen.seed_unique_stream(0, 0, 0, 0)
        expected = [0] * N
        expected[0] = 1
        assert gen.state.vector == expected
        assert gen.state.checksum == 0

    def test_special_term_size(self):
        """The N=256 special term goes through the per-lag iterations too."""
        gen = generator_with(monomial_table(256, {0: 4}), n=256)
        gen.seed_unique_stream(0, 0, 0, 1)
        vector, checksum = raw_steps_from_e0(256, 4)
        assert gen.state.vector == vector
        assert gen.state.checksum % M == checksum % M

    def test_branch_inplace(self):
        """branch_inplace jumps the current vector; IDs ordered stream first."""
        gen = generator_with(monomial_table(N, {32: 6}), seed=1234)
        ref = gen.copy()
        gen.branch_inplace([0, 1, 0, 0])
        for _ in range(6):
            ref.iterate_raw()
        assert gen.state.vector == ref.state.vector
        assert gen.state.checksum == ref.state.checksum

    def test_branch_inplace_resets_cursor(self):
        """Reads after a branch start from a fresh iterate of the derived vector."""
        gen = generator_with(monomial_table(N, {0: 3}), seed=4321)
        for _ in range(5):
            gen.next_raw()
        assert gen.state.cursor == 6
        gen.branch_inplace([1, 0, 0, 0])
        assert gen.state.cursor == N

        ref = gen.copy()
        ref.iterate()
        assert gen.next_raw() == ref.state.vector[1]


class TestGeneralSkips:

    def test_linear_combination(self):
        """Row c0 + c1*A gives c0*Y + c1*A*Y."""
        c0, c1 = 123456789, M - 5
        rows = np.zeros((SKIP_ROWS, N), dtype=np.uint64)
        rows[0, 0] = c0
        rows[0, 1] = c1
        gen = generator_with(SkipTable(N, rows))
        gen.seed_unique_stream(0, 0, 0, 1)

        a_y, _ = raw_steps_from_e0(N, 1)
        e0 = [1] + [0] * (N - 1)
        expected = [(c0 * e + c1 * v) % M for e, v in zip(e0, a_y)]
        assert [v % M for v in gen.state.vector] == expected

    def test_distinct_ids_distinct_vectors(self):
        table = random_table(N, seed=7)
        a = generator_with(table)
        b = generator_with(table)
        a.seed_unique_stream(0, 0, 0, 1)
        b.seed_unique_stream(0, 0, 0, 2)
        assert a.state.vector != b.state.vector
        assert [a.next_raw() for _ in range(10)] != [b.next_raw() for _ in range(10)]

    def test_deterministic(self):
        table = random_table(N, seed=7)
        a = generator_with(table)
        b = generator_with(table)
        a.seed_unique_stream(3, 2, 1, 5)
        b.seed_unique_stream(3, 2, 1, 5)
        assert a.state.vector == b.state.vector

    def test_invariants_after_skip(self):
        gen = generator_with(random_table(N, seed=9))
        gen.seed_unique_stream(0, 1, 0, 6)
        gen.state.check_invariants()
        assert gen.state.checksum == precalc_checksum(gen.state.vector)
        gen.fill_uniform(1000)
        gen.state.check_invariants()

    def test_mother_not_modified(self):
        table = random_table(N, seed=2)
        mother = [1] + [0] * (N - 1)
        apply_bigskip(mother, (0, 0, 0, 1), table, params_for(N))
        assert mother == [1] + [0] * (N - 1)

    def test_table_size_mismatch(self):
        with pytest.raises(SkipTableFormatError):
            apply_bigskip([1] + [0] * 255, (0, 0, 0, 1), random_table(N), params_for(256))


class TestKernels:
    """The fused kernel backends must agree bit for bit."""

    def test_python_backend_matches_numpy(self):
        table = random_table(N, seed=11)
        a = generator_with(table, backend="numpy")
        b = generator_with(table, backend="python")
        a.seed_unique_stream(0, 0, 0, 5)
        b.seed_unique_stream(0, 0, 0, 5)
        assert a.state.vector == b.state.vector
        assert a.state.checksum == b.state.checksum

    @pytest.mark.parametrize("n", [N, 256])
    def test_matches_scalar_evaluation(self, n):
        """One set bit, evaluated lag by lag with the scalar step and kernel."""
        table = random_table(n, seed=n)
        params = params_for(n)
        vout, checksum = apply_bigskip([1] + [0] * (n - 1), (0, 0, 0, 1), table, params)

        y = [1] + [0] * (n - 1)
        sumtot = 0
        cum = [0] * n
        for j in range(n):
            c = int(table.data[0, j])
            cum = [fused_modmul_add(a, c, v) for a, v in zip(cum, y)]
            sumtot = iterate_raw_vec(y, sumtot, params)
        assert vout == cum
        assert checksum == precalc_checksum(cum)

    def test_numpy_kernel_is_default(self):
        assert get_fused_kernel() is fused_modmul_add_vec

    def test_unknown_backend(self):
        with pytest.raises(InvalidParametersError):
            get_fused_kernel("cuda")

    def test_jax_matches_numpy(self):
        pytest.importorskip("jax")
        kernel = get_fused_kernel("jax")
        rng = np.random.default_rng(5)
        acc = rng.integers(0, M, size=N, dtype=np.uint64, endpoint=True)
        y = rng.integers(0, M, size=N, dtype=np.uint64, endpoint=True)
        for coeff in (0, 1, M - 1, M, 987654321987654321):
            np.testing.assert_array_equal(
                kernel(acc, coeff, y), fused_modmul_add_vec(acc, coeff, y)
            )


class TestStreamIds:

    def test_id_too_large(self):
        gen = generator_with(monomial_table(N, {0: 1}))
        with pytest.raises(InvalidStreamIdError):
            gen.seed_unique_stream(0, 0, 0, 1 << 32)
        with pytest.raises(InvalidStreamIdError):
            gen.seed_unique_stream(-1, 0, 0, 0)

    def test_failed_seed_keeps_state(self):
        gen = generator_with(monomial_table(N, {0: 1}), seed=77)
        before = gen.export_state()
        with pytest.raises(InvalidStreamIdError):
            gen.seed_unique_stream(0, 0, 0, 1 << 40)
        assert gen.export_state() == before


class TestFallbackSeeding:
    """Sizes without a table inject the IDs directly."""

    def _empty_registry(self, tmp_path):
        return SkipTableRegistry(table_dir=tmp_path)

    def test_fallback_vector(self):
        params = params_for(17)
        vector, checksum = fallback_stream_vector((1, 2, 3, 4), params)

        expected = [1, 2, 3, 4, 1 << 5, 2 << 7, 3 << 11, 4 << 13] + [0] * 9
        gen = MixMaxGenerator.from_vector(expected, skip_number=0)
        gen.iterate_raw()
        gen.iterate_raw()
        assert vector == gen.state.vector
        assert checksum == gen.state.checksum

    def test_fallback_is_reported(self, tmp_path, caplog):
        gen = MixMaxGenerator(n=17, skip_tables=self._empty_registry(tmp_path))
        with caplog.at_level(logging.WARNING):
            guaranteed = gen.seed_unique_stream(1, 2, 3, 4)
        assert guaranteed is False
        assert "NOT guaranteed" in caplog.text
        assert gen.state.cursor == 17
        gen.state.check_invariants()

    def test_require_skip(self, tmp_path):
        gen = MixMaxGenerator(n=N, skip_tables=self._empty_registry(tmp_path))
        with pytest.raises(MissingSkipTableError):
            gen.seed_unique_stream(0, 0, 0, 1, require_skip=True)

    def test_branch_needs_table(self, tmp_path):
        gen = MixMaxGenerator(n=N, skip_tables=self._empty_registry(tmp_path))
        with pytest.raises(MissingSkipTableError):
            gen.branch_inplace([1, 0, 0, 0])

    def test_distinct_fallback_streams(self, tmp_path):
        registry = self._empty_registry(tmp_path)
        a = MixMaxGenerator(n=17, skip_tables=registry)
        b = MixMaxGenerator(n=17, skip_tables=registry)
        a.seed_unique_stream(0, 0, 0, 1)
        b.seed_unique_stream(0, 0, 0, 2)
        assert a.state.vector != b.state.vector


class TestTableLoading:

    def test_npy_file(self, tmp_path):
        table = random_table(N, seed=3)
        np.save(tmp_path / f"mixmax_skip_N{N}.npy", table.data)
        registry = SkipTableRegistry(table_dir=tmp_path)
        loaded = registry.get(N)
        np.testing.assert_array_equal(loaded.data, table.data)
        assert registry.get(N) is loaded

    def test_c_initializer_file(self, tmp_path):
        table = random_table(N, seed=4)
        lines = ["// skip coefficients", "{"]
        for row in table.data:
            lines.append("{" + ", ".join(f"{int(v)}ULL" for v in row) + "}, /* row */")
        lines.append("}")
        (tmp_path / f"mixmax_skip_N{N}.icc").write_text("\n".join(lines))

        loaded = SkipTableRegistry(table_dir=tmp_path).get(N)
        np.testing.assert_array_equal(loaded.data, table.data)

    def test_env_directory(self, tmp_path, monkeypatch):
        np.save(tmp_path / f"mixmax_skip_N{N}.npy", random_table(N).data)
        monkeypatch.setenv(SKIP_TABLE_DIR_ENV, str(tmp_path))
        registry = SkipTableRegistry()
        assert registry.table_dir == tmp_path
        assert registry.find(N) is not None

    def test_missing(self, tmp_path):
        registry = SkipTableRegistry(table_dir=tmp_path)
        assert registry.find(N) is None
        with pytest.raises(MissingSkipTableError):
            registry.get(N)

    def test_wrong_count(self):
        with pytest.raises(SkipTableFormatError):
            parse_c_initializer("{ {1, 2, 3} }", N)

    def test_hex_values(self):
        text = ", ".join(["0x10"] + ["0"] * (SKIP_ROWS * N - 1))
        rows = parse_c_initializer(text, N)
        assert rows[0, 0] == 16

    def test_wrong_shape(self):
        with pytest.raises(SkipTableFormatError):
            SkipTable(N, np.zeros((SKIP_ROWS, N - 1), dtype=np.uint64))

    def test_out_of_range_coefficient(self):
        rows = np.zeros((SKIP_ROWS, N), dtype=np.uint64)
        rows[5, 5] = M + 1
        with pytest.raises(SkipTableFormatError):
            SkipTable(N, rows)

    def test_read_only(self):
        table = random_table(N)
        with pytest.raises(ValueError):
            table.data[0, 0] = 1


@pytest.mark.skipif(
    not os.environ.get(SKIP_TABLE_DIR_ENV),
    reason=f"{SKIP_TABLE_DIR_ENV} not set; published skip tables unavailable",
)
class TestPublishedTables:

    def test_n256_streams_differ(self):
        registry = SkipTableRegistry()
        if registry.find(256) is None:
            pytest.skip("No N=256 table in the table directory")
        a = MixMaxGenerator(n=256, skip_tables=registry)
        b = MixMaxGenerator(n=256, skip_tables=registry)
        assert a.seed_unique_stream(0, 0, 0, 1, require_skip=True)
        assert b.seed_unique_stream(0, 0, 0, 2, require_skip=True)
        assert a.state.vector != b.state.vector
        a.state.check_invariants()
        b.state.check_invariants()

        xa = a.fill_uniform(100_000)
        xb = b.fill_uniform(100_000)
        assert abs(np.corrcoef(xa, xb)[0, 1]) < 0.02


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
