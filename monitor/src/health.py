"""
Health file writer for the monitor daemon.

Writes a JSON health file at a configurable path with four fields:
- last_sample_ts: ISO timestamp of the most recent ingested sample.
- last_persist_ts: ISO timestamp of the most recent successful archive save.
- message_count: Messages ingested since startup.
- archived_points: Points currently held in the archive.

The file is rewritten atomically after every persist cycle, providing a
simple liveness signal that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-15: Track samples/persist cycles instead of polls/uploads (STORY-021)
- 2026-10-15: Initial creation (STORY-021)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from monitor.src.storage import write_atomic


class HealthWriter:
    """Writes monitor health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_sample_ts: str | None = None
        self._last_persist_ts: str | None = None
        self._message_count: int = 0
        self._archived_points: int = 0

    def update(
        self,
        *,
        last_sample: datetime | None,
        message_count: int,
        archived_points: int,
        persisted: bool,
    ) -> None:
        """Record the outcome of one persist cycle and write the health file.

        Args:
            last_sample: Receive time of the latest sample, if any.
            message_count: Messages ingested since startup.
            archived_points: Points currently in the archive.
            persisted: Whether the archive save of this cycle succeeded.
        """
        if last_sample is not None:
            self._last_sample_ts = last_sample.isoformat()
        if persisted:
            self._last_persist_ts = datetime.now(tz=UTC).isoformat()
        self._message_count = message_count
        self._archived_points = archived_points
        self._write()

    def as_dict(self) -> dict[str, str | int | None]:
        return {
            "last_sample_ts": self._last_sample_ts,
            "last_persist_ts": self._last_persist_ts,
            "message_count": self._message_count,
            "archived_points": self._archived_points,
        }

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        write_atomic(self.path, json.dumps(self.as_dict()))
