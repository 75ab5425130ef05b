"""
db/storage.py

Responsibility: Reads and atomically replaces the JSON state document on disk.
Does NOT: take locks, interpret individual fields, or log business events.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from db.models import PersistedState

logger = logging.getLogger(__name__)


class DocumentMissing(Exception):
    """The state document has not been created yet."""


class DocumentCorrupted(Exception):
    """The state document exists but is not a valid PersistedState."""


class DocumentUnreadable(Exception):
    """The state document exists but the OS refused to read it."""


def read_document(path: Path) -> PersistedState:
    """
    Loads and validates the state document.

    Args:
        path: Canonical location of the state document.

    Returns:
        The parsed PersistedState.

    Raises:
        DocumentMissing: If no document exists at path.
        DocumentCorrupted: If the file is not valid JSON for PersistedState.
        DocumentUnreadable: If the file exists but cannot be read.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise DocumentMissing(str(path)) from exc
    except OSError as exc:
        raise DocumentUnreadable(f"failed to read state file {path}: {exc}") from exc

    try:
        return PersistedState.model_validate_json(raw)
    except ValidationError as exc:
        raise DocumentCorrupted(f"failed to parse state file {path}: {exc}") from exc


def write_document(path: Path, state: PersistedState) -> None:
    """
    Writes the full document to a temporary file, then atomically replaces
    the canonical file with it.

    A crash at any point leaves the canonical file either fully old or fully
    new; at worst an orphaned temporary file remains in the same directory.

    Args:
        path: Canonical location of the state document.
        state: The complete state to persist.

    Raises:
        OSError: If the directory cannot be created or the write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = state.model_dump_json(indent=2)

    # NOTE: the temp file must live in the same directory so os.replace
    # stays on one filesystem and is atomic.
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            logger.warning("Could not remove temporary state file %s", temp_path)
        raise

    logger.debug("State document written to %s", path)
