"""
Exception hierarchy for pymixmax.

Every failure is a local, synchronous programmer or data error. Nothing here
is retried and nothing terminates the process; callers get an exception and
the generator keeps its previous state.
"""


class MixMaxError(Exception):
    """Base class for all pymixmax errors."""


class InvalidParametersError(MixMaxError, ValueError):
    """Unsupported vector size or modulus exponent."""


class InvalidIndexError(MixMaxError, IndexError):
    """Basis-seed index outside [0, N)."""


class ZeroSeedError(MixMaxError, ValueError):
    """The linear-congruential seed was zero (degenerate fixed point)."""


class InvalidStreamIdError(MixMaxError, ValueError):
    """A hierarchical stream ID component does not fit in 32 bits."""


class ImportOutOfRangeValueError(MixMaxError, ValueError):
    """An imported residue is larger than MERSBASE."""


class ImportInvalidCursorError(MixMaxError, ValueError):
    """An imported cursor lies outside [0, N]."""


class ImportChecksumMismatchError(MixMaxError, ValueError):
    """The imported checksum does not match the vector (data corruption)."""


class MissingSkipTableError(MixMaxError, LookupError):
    """No skip coefficient table is available for the configured N."""


class SkipTableFormatError(MixMaxError, ValueError):
    """A skip coefficient table has the wrong shape or illegal values."""


class StateFormatError(MixMaxError, ValueError):
    """A textual state could not be parsed."""


class StateInvariantError(MixMaxError, AssertionError):
    """A state violates one of the checksum, range or cursor invariants."""
