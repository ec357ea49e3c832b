"""
pymixmax — MIXMAX matrix random number generator over GF(2^61 - 1).
"""

from .core.params import MERSBASE, SKIP_SIZES, MixMaxParams, params_for
from .core.state import MixMaxState, StateSnapshot
from .errors import (
    ImportChecksumMismatchError,
    ImportInvalidCursorError,
    ImportOutOfRangeValueError,
    InvalidIndexError,
    InvalidParametersError,
    InvalidStreamIdError,
    MissingSkipTableError,
    MixMaxError,
    SkipTableFormatError,
    StateFormatError,
    StateInvariantError,
    ZeroSeedError,
)
from .generator import MixMaxGenerator
from .skip.tables import SkipTable, SkipTableRegistry

__version__ = "0.1.0"
