"""
Skip coefficient tables.

A skip table holds 128 rows of N coefficients. Row r + 32*level is the
polynomial in A (coefficients for lags 0..N-1) equal to the jump for bit r of
the ID component at the given level (0=stream, 1=run, 2=machine, 3=cluster).

The tables are large constant data published per N. They are loaded from
either a NumPy .npy file or the C initializer text the tables are distributed
as (mixmax_skip_N256.icc and friends), and cached per N by the registry.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from ..core.params import MERSBASE
from ..errors import MissingSkipTableError, SkipTableFormatError

logger = logging.getLogger(__name__)

ID_BITS = 32
ID_LEVELS = 4
SKIP_ROWS = ID_BITS * ID_LEVELS

SKIP_TABLE_DIR_ENV = "PYMIXMAX_SKIP_TABLE_DIR"

_FILE_PATTERNS = (
    "mixmax_skip_N{n}.npy",
    "mixmax_skip_N{n}.icc",
    "mixmax_skip_N{n}.c",
)

_COMMENT_RE = re.compile(r"/\*.*?\*/|//[^\n]*", re.DOTALL)
_INT_RE = re.compile(r"\b(0[xX][0-9a-fA-F]+|\d+)(?:[uUlL]*)\b")


class SkipTable:
    """
    Validated 128 x N coefficient table for one vector size.
    """

    def __init__(self, n: int, rows):
        """
        Args:
            n: Vector size the table belongs to
            rows: (128, n) array-like of residues in [0, MERSBASE]
        """
        data = np.asarray(rows, dtype=object)
        if data.shape != (SKIP_ROWS, n):
            raise SkipTableFormatError(
                f"Skip table for N={n} must have shape ({SKIP_ROWS}, {n}), "
                f"got {data.shape}"
            )
        flat = [int(v) for v in data.ravel()]
        bad = [v for v in flat if not 0 <= v <= MERSBASE]
        if bad:
            raise SkipTableFormatError(
                f"Skip table for N={n} has {len(bad)} coefficient(s) outside "
                f"[0, {MERSBASE}], e.g. {bad[0]}"
            )
        self._n = n
        self._data = np.array(flat, dtype=np.uint64).reshape(SKIP_ROWS, n)
        self._data.setflags(write=False)

    @property
    def n(self) -> int:
        return self._n

    @property
    def data(self) -> np.ndarray:
        """The raw (128, N) uint64 coefficients (read-only)."""
        return self._data

    @staticmethod
    def row_index(bit: int, level: int) -> int:
        """Row holding the jump for `bit` of the ID at `level`."""
        return bit + ID_BITS * level

    def row(self, bit: int, level: int) -> np.ndarray:
        return self._data[self.row_index(bit, level)]

    @classmethod
    def from_file(cls, path: Union[str, Path], n: int) -> 'SkipTable':
        """
        Load a table from .npy or C initializer text.

        Args:
            path: File to read
            n: Expected vector size

        Returns:
            SkipTable instance
        """
        path = Path(path)
        if path.suffix == ".npy":
            rows = np.load(path, allow_pickle=False)
        else:
            rows = parse_c_initializer(path.read_text(), n)
        table = cls(n, rows)
        logger.info(f"Loaded skip table for N={n} from {path}")
        return table


def parse_c_initializer(text: str, n: int) -> np.ndarray:
    """
    Parse a C array initializer of 128 x n integers.

    Comments, braces, separators and integer suffixes (ULL) are ignored; only
    the count of numbers has to be exactly 128 * n.
    """
    body = _COMMENT_RE.sub(" ", text)
    values = [int(tok, 16) if tok[:2] in ("0x", "0X") else int(tok)
              for tok in _INT_RE.findall(body)]
    if len(values) != SKIP_ROWS * n:
        raise SkipTableFormatError(
            f"Expected {SKIP_ROWS * n} coefficients for N={n}, found {len(values)}"
        )
    return np.array(values, dtype=object).reshape(SKIP_ROWS, n)


class SkipTableRegistry:
    """
    Per-N cache of skip tables.

    Tables come from explicit registration or from files named
    mixmax_skip_N<n>.{npy,icc,c} in a search directory. The directory defaults
    to the PYMIXMAX_SKIP_TABLE_DIR environment variable.
    """

    def __init__(self, table_dir: Optional[Union[str, Path]] = None):
        if table_dir is None:
            table_dir = os.environ.get(SKIP_TABLE_DIR_ENV) or None
        self._table_dir = Path(table_dir) if table_dir else None
        self._tables: Dict[int, SkipTable] = {}

    @property
    def table_dir(self) -> Optional[Path]:
        return self._table_dir

    def register(self, table: SkipTable) -> None:
        """Make `table` the table for its N, replacing any cached one."""
        self._tables[table.n] = table

    def _find_file(self, n: int) -> Optional[Path]:
        if self._table_dir is None:
            return None
        for pattern in _FILE_PATTERNS:
            candidate = self._table_dir / pattern.format(n=n)
            if candidate.is_file():
                return candidate
        return None

    def find(self, n: int) -> Optional[SkipTable]:
        """Return the table for `n`, or None if none is available."""
        table = self._tables.get(n)
        if table is not None:
            return table
        path = self._find_file(n)
        if path is None:
            logger.debug(f"No skip table for N={n} (dir={self._table_dir})")
            return None
        table = SkipTable.from_file(path, n)
        self._tables[n] = table
        return table

    def get(self, n: int) -> SkipTable:
        """
        Return the table for `n`.

        Raises:
            MissingSkipTableError: no registered table and no file found
        """
        table = self.find(n)
        if table is None:
            raise MissingSkipTableError(
                f"No skip coefficient table for N={n}; register one or set "
                f"{SKIP_TABLE_DIR_ENV}"
            )
        return table


_default_registry: Optional[SkipTableRegistry] = None


def default_registry() -> SkipTableRegistry:
    """Process-wide registry, created on first use from the environment."""
    global _default_registry
    if _default_registry is None:
        _default_registry = SkipTableRegistry()
    return _default_registry
