"""
Text persistence for MIXMAX states.

Format (file version 1.0):

    mixmax state, file version 1.0
    N=256; V[N]={v0, v1, ..., v255}; counter=<cursor>; sumtot=<checksum>;

Reading cross-checks the stored checksum against the one recomputed from the
vector and rejects the state on mismatch.
"""

import logging
import re
from pathlib import Path
from typing import TextIO, Union

from ..core.params import MixMaxParams
from ..core.state import MixMaxState, StateSnapshot, export_state, import_state
from ..errors import StateFormatError

logger = logging.getLogger(__name__)

HEADER = "mixmax state, file version 1.0"

_STATE_RE = re.compile(
    r"N\s*=\s*(?P<n>\d+)\s*;\s*"
    r"V\[N\]\s*=\s*\{(?P<vector>[^}]*)\}\s*;\s*"
    r"counter\s*=\s*(?P<counter>\d+)\s*;\s*"
    r"sumtot\s*=\s*(?P<sumtot>\d+)\s*;?",
)


def dumps(state: MixMaxState) -> str:
    """Render a state in the text format."""
    snap = export_state(state)
    values = ", ".join(str(v) for v in snap.vector)
    return (
        f"{HEADER}\n"
        f"N={snap.n}; V[N]={{{values}}}; counter={snap.cursor}; "
        f"sumtot={snap.checksum};\n"
    )


def dump(state: MixMaxState, fh: TextIO) -> None:
    fh.write(dumps(state))


def parse_snapshot(text: str) -> StateSnapshot:
    """
    Parse the text format into an unvalidated snapshot.

    Raises:
        StateFormatError: text does not follow the format
    """
    match = _STATE_RE.search(text)
    if match is None:
        raise StateFormatError("Could not find a mixmax state in the input")

    try:
        vector = tuple(int(tok) for tok in match.group("vector").split(","))
    except ValueError as exc:
        raise StateFormatError(f"Error reading state vector: {exc}") from exc

    return StateSnapshot(
        n=int(match.group("n")),
        vector=vector,
        cursor=int(match.group("counter")),
        checksum=int(match.group("sumtot")),
    )


def loads(text: str, params: MixMaxParams) -> MixMaxState:
    """
    Parse and validate a state.

    Raises:
        StateFormatError: malformed text or N mismatch
        ImportOutOfRangeValueError, ImportInvalidCursorError,
        ImportChecksumMismatchError: see core.state.import_state
    """
    snap = parse_snapshot(text)
    if snap.n != params.n or len(snap.vector) != params.n:
        raise StateFormatError(
            f"State has N={snap.n} and {len(snap.vector)} values, "
            f"expected N={params.n}"
        )
    state = import_state(snap, params)
    logger.debug(f"Read state, checksum ok: {state.checksum}")
    return state


def load(fh: TextIO, params: MixMaxParams) -> MixMaxState:
    return loads(fh.read(), params)


def save_state(state: MixMaxState, path: Union[str, Path]) -> None:
    """Write a state to a file."""
    Path(path).write_text(dumps(state))
    logger.info(f"Saved mixmax state to {path}")


def load_state(path: Union[str, Path], params: MixMaxParams) -> MixMaxState:
    """Read and validate a state from a file."""
    state = loads(Path(path).read_text(), params)
    logger.info(f"Loaded mixmax state from {path}")
    return state
