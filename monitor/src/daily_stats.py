"""
Per-day statistics tracker and the state file it shares with the charger.

DailyStatsTracker owns the ``(current_date, stats)`` pair. Day rollover is an
explicit reset: every access compares the stored ``date`` with the local date
of *now* (``datetime.date`` objects, never strings) and starts a fresh record
when they differ. Baselines for cumulative-energy counters are captured once
per day; solar peaks are tracked overall and per local hour.

StateFile persists DailyStats together with the charger ControlState in one
JSON document (``daily_stats.json``). Charger state is kept across day
boundaries; only the daily statistics reset.

CHANGELOG:
- 2026-10-19: Treat undecodable store files as corrupt (STORY-026)
- 2026-10-07: Keep charger state across day rollover on load (STORY-009)
- 2026-10-05: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from monitor.src.metrics import CUMULATIVE_ENERGY_METRICS
from monitor.src.models import DailyStats, PersistedState
from monitor.src.storage import read_text, write_atomic

logger = logging.getLogger(__name__)


class DailyStatsTracker:
    """Holds today's DailyStats and resets them when the local date changes.

    Args:
        tz: Timezone defining the calendar day.
        stats: Previously persisted stats, if any. Stats from another day are
            discarded at the first access.
    """

    def __init__(self, tz: ZoneInfo | dt.tzinfo, stats: DailyStats | None = None) -> None:
        self._tz = tz
        self._stats = stats

    @property
    def stats(self) -> DailyStats | None:
        """Current record without triggering a rollover (for persistence)."""
        return self._stats

    def local_date(self, now: dt.datetime) -> dt.date:
        return now.astimezone(self._tz).date()

    def rollover(self, now: dt.datetime) -> bool:
        """Start a fresh record if *now* falls on a different local date.

        Returns:
            True if the stats were reset.
        """
        today = self.local_date(now)
        if self._stats is not None and self._stats.date == today:
            return False
        previous = self._stats.date if self._stats is not None else None
        self._stats = DailyStats(
            date=today,
            baseline_values={key: None for key in CUMULATIVE_ENERGY_METRICS},
        )
        logger.info("Daily stats rollover: %s -> %s", previous, today)
        return True

    def current(self, now: dt.datetime) -> DailyStats:
        """Return today's stats, rolling over first if needed."""
        self.rollover(now)
        assert self._stats is not None
        return self._stats

    def baseline(self, metric_key: str, now: dt.datetime) -> float | None:
        return self.current(now).baseline_values.get(metric_key)

    def set_baseline(self, metric_key: str, value: float, now: dt.datetime) -> None:
        self.current(now).baseline_values[metric_key] = value

    def record_power(self, power: float, now: dt.datetime) -> None:
        """Update today's overall and hourly solar peaks with *power*."""
        stats = self.current(now)
        if power > stats.peak_power.value:
            stats.peak_power.value = power
            stats.peak_power.time = now
        hour = now.astimezone(self._tz).hour
        previous = stats.peak_power_hourly.get(hour)
        if previous is None or power > previous:
            stats.peak_power_hourly[hour] = power


class StateFile:
    """JSON document holding DailyStats and the charger ControlState.

    Args:
        path: Filesystem path of the state document.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> PersistedState:
        """Load the state document.

        Returns:
            The persisted state, or a default one when the file is missing,
            unreadable or corrupt.
        """
        try:
            text = read_text(self.path)
        except (OSError, UnicodeDecodeError):
            logger.error("Failed to read state file %s", self.path, exc_info=True)
            return PersistedState()
        if text is None:
            logger.info("No state file at %s, starting with defaults", self.path)
            return PersistedState()
        try:
            state = PersistedState.model_validate_json(text)
        except ValidationError:
            logger.error(
                "State file %s is corrupt, starting with defaults",
                self.path,
                exc_info=True,
            )
            return PersistedState()
        logger.info(
            "Loaded state from %s (charger %s)",
            self.path,
            "ON" if state.charger_state.is_on else "OFF",
        )
        return state

    def save(self, state: PersistedState) -> bool:
        """Write the state document; errors are logged, not raised."""
        try:
            write_atomic(self.path, state.model_dump_json(indent=2))
        except OSError:
            logger.error("Failed to save state file %s", self.path, exc_info=True)
            return False
        return True
