"""
Throttled, bounded, retention-pruned time-series archive for tracked metrics.

Only metrics on the tracked allow-list are archived, and at most one point
per metric is appended per archive interval. The interval is enforced with a
per-metric *last archived* watermark taken from the wall clock, not from the
sample timestamp, so bursty ingestion cannot pack several points into one
interval. Every series is also a ring buffer capped at ``max_points``.

Operations:
- record(metric_key, value, timestamp): throttled append of a numeric value.
- prune(retention_days, now): drop points older than the retention window.
- query(metric_key, start, end): inclusive, timestamp-ascending range scan.
- persist() / load(): whole-document JSON with atomic replace.

All public methods take an internal lock so the periodic persist can run in a
worker thread while ingestion keeps recording.

CHANGELOG:
- 2026-10-19: Treat undecodable store files as corrupt (STORY-026)
- 2026-10-06: Guard against out-of-order timestamps on append (STORY-007)
- 2026-10-04: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import threading
from collections import deque
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from monitor.src.cache import to_float
from monitor.src.metrics import TRACKED_METRICS
from monitor.src.models import ArchivePoint
from monitor.src.storage import read_text, write_atomic

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_INTERVAL_S: float = 60.0
"""Minimum seconds between two archived points of the same metric."""

DEFAULT_MAX_POINTS: int = 10000
"""Length cap per series; oldest points are evicted first."""

DEFAULT_RETENTION_DAYS: int = 365
"""Calendar retention for archived points."""

_DOCUMENT_ADAPTER = TypeAdapter(dict[str, list[ArchivePoint]])


class ArchiveStore:
    """Per-metric archived series with throttling, length cap and retention.

    Args:
        path: JSON file the archive is persisted to.
        tracked: Allow-list of metric keys eligible for archival.
        archive_interval_s: Minimum seconds between points per metric.
        max_points: Length cap for each series.
        retention_days: Default calendar retention used by prune and load.

    Usage::

        archive = ArchiveStore("/data/data_history.json")
        archive.load()
        archive.record(PV_POWER, 2450, ts)
        points = archive.query(PV_POWER, start, end)
        archive.persist()
    """

    def __init__(
        self,
        path: str | Path,
        tracked: Iterable[str] = TRACKED_METRICS,
        archive_interval_s: float = DEFAULT_ARCHIVE_INTERVAL_S,
        max_points: int = DEFAULT_MAX_POINTS,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> None:
        self.path = Path(path)
        self._tracked: tuple[str, ...] = tuple(tracked)
        self._interval = dt.timedelta(seconds=archive_interval_s)
        self._max_points = max_points
        self.retention_days = retention_days
        self._lock = threading.RLock()
        self._series: dict[str, deque[ArchivePoint]] = {}
        self._last_archived: dict[str, dt.datetime] = {}
        self._reset()

    @property
    def tracked(self) -> tuple[str, ...]:
        return self._tracked

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_tracked(self, metric_key: str) -> bool:
        return metric_key in self._series

    def record(
        self,
        metric_key: str,
        value: Any,
        timestamp: dt.datetime,
        now: dt.datetime | None = None,
    ) -> bool:
        """Append a point for *metric_key* if the throttle allows it.

        Args:
            metric_key: Metric the value belongs to.
            value: Raw sample value; must parse as a finite number.
            timestamp: Timestamp stored with the point.
            now: Wall-clock time used for the throttle watermark.
                Defaults to the current UTC time.

        Returns:
            True if a point was appended, False if the sample was skipped
            (untracked, throttled, non-numeric or out of order).
        """
        if metric_key not in self._series:
            return False
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)

        with self._lock:
            last = self._last_archived.get(metric_key)
            if last is not None and now - last < self._interval:
                return False

            number = to_float(value)
            if number is None:
                return False

            series = self._series[metric_key]
            point = ArchivePoint(timestamp=timestamp, value=number)
            if series and point.timestamp < series[-1].timestamp:
                logger.debug(
                    "Skipping out-of-order point for %s (%s < %s)",
                    metric_key,
                    point.timestamp.isoformat(),
                    series[-1].timestamp.isoformat(),
                )
                return False

            # deque(maxlen) evicts the oldest point on overflow.
            series.append(point)
            self._last_archived[metric_key] = now
            return True

    def prune(
        self,
        retention_days: int | None = None,
        now: dt.datetime | None = None,
    ) -> int:
        """Remove points older than *retention_days* before *now*.

        *retention_days* defaults to the store's configured retention.

        Returns:
            Number of points removed.
        """
        if retention_days is None:
            retention_days = self.retention_days
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)
        cutoff = now - dt.timedelta(days=retention_days)
        pruned = 0
        with self._lock:
            for series in self._series.values():
                # Series are timestamp-ascending, so stale points sit at the left.
                while series and series[0].timestamp < cutoff:
                    series.popleft()
                    pruned += 1
        if pruned:
            logger.info(
                "Pruned %d archived points older than %d days", pruned, retention_days
            )
        return pruned

    def query(
        self,
        metric_key: str,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
    ) -> list[ArchivePoint]:
        """Return points of *metric_key* with ``start <= timestamp <= end``.

        Either bound may be ``None`` for an open range. Unknown metrics
        return an empty list.
        """
        with self._lock:
            series = self._series.get(metric_key)
            if not series:
                return []
            return [
                p
                for p in series
                if (start is None or p.timestamp >= start)
                and (end is None or p.timestamp <= end)
            ]

    def latest(self, metric_key: str) -> ArchivePoint | None:
        with self._lock:
            series = self._series.get(metric_key)
            return series[-1] if series else None

    def point_count(self) -> int:
        """Total number of archived points across all series."""
        with self._lock:
            return sum(len(s) for s in self._series.values())

    def snapshot(self) -> dict[str, list[ArchivePoint]]:
        """Return a consistent copy of every series."""
        with self._lock:
            return {key: list(series) for key, series in self._series.items()}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def dumps(self) -> str:
        """Serialise the whole archive to a JSON document."""
        snapshot = self.snapshot()
        return json.dumps(
            {
                key: [p.model_dump(mode="json") for p in points]
                for key, points in snapshot.items()
            }
        )

    def persist(self) -> bool:
        """Write the archive to :attr:`path`.

        Persistence errors are logged and swallowed so the daemon keeps
        serving from memory.

        Returns:
            True on success, False if the write failed.
        """
        try:
            text = self.dumps()
            write_atomic(self.path, text)
        except OSError:
            logger.error("Failed to save archive to %s", self.path, exc_info=True)
            return False
        logger.info(
            "Saved archive (%d data points) to %s", self.point_count(), self.path
        )
        return True

    def load(self, now: dt.datetime | None = None) -> None:
        """Load the archive from :attr:`path`, replacing in-memory series.

        A missing, unreadable or corrupt file leaves an empty series for every
        tracked metric. Untracked keys in the file are ignored; each loaded
        series is sorted, capped and pruned to the configured retention.
        """
        try:
            text = read_text(self.path)
        except (OSError, UnicodeDecodeError):
            logger.error("Failed to read archive %s", self.path, exc_info=True)
            text = None

        if text is None:
            logger.info("No archive file at %s, starting fresh", self.path)
            with self._lock:
                self._reset()
            return

        try:
            document = _DOCUMENT_ADAPTER.validate_json(text)
        except ValidationError:
            logger.error(
                "Archive file %s is corrupt, starting fresh", self.path, exc_info=True
            )
            with self._lock:
                self._reset()
            return

        with self._lock:
            self._reset()
            for key, points in document.items():
                if key not in self._series:
                    continue
                points.sort(key=lambda p: p.timestamp)
                self._series[key].extend(points)
        logger.info(
            "Loaded archive (%d data points) from %s", self.point_count(), self.path
        )
        self.prune(now=now)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        self._series = {
            key: deque(maxlen=self._max_points) for key in self._tracked
        }
        self._last_archived = {}
