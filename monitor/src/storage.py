"""
Whole-document file storage with atomic replace.

Every persisted document (archive, daily stats + charger state, alert
settings) is written as a complete JSON text to a temporary sibling file and
then moved over the target with ``os.replace``. A crash mid-write therefore
leaves either the previous document or the new one, never a truncated file.

CHANGELOG:
- 2026-10-19: Document UnicodeDecodeError from read_text (STORY-026)
- 2026-10-04: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def write_atomic(path: str | Path, text: str) -> None:
    """Write *text* to *path* atomically.

    Creates the parent directory when missing.

    Args:
        path: Target file path.
        text: Full document contents.

    Raises:
        OSError: If the directory cannot be created or the write fails.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_text(path: str | Path) -> str | None:
    """Return the contents of *path*, or ``None`` when it does not exist.

    Raises:
        OSError: For any read failure other than a missing file.
        UnicodeDecodeError: If the file is not valid UTF-8.
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
