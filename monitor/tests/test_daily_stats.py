"""
Unit tests for the daily stats tracker and the shared state file.

Tests verify:
- Rollover compares local calendar dates in the configured timezone.
- Baselines are captured once per day and reset at rollover.
- Solar peaks are tracked overall and per local hour.
- StateFile round trip; charger state survives across days.
- Missing or corrupt state files fall back to defaults.

CHANGELOG:
- 2026-10-19: Undecodable store file (STORY-026)
- 2026-10-07: Charger state across rollover (STORY-009)
- 2026-10-05: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

from monitor.src.daily_stats import DailyStatsTracker, StateFile
from monitor.src.metrics import PV_ENERGY
from monitor.src.models import ControlState, DailyStats, PersistedState

_PHOENIX = ZoneInfo("America/Phoenix")


class TestRollover:
    """Day boundaries follow the local calendar date."""

    def test_first_access_creates_record(self) -> None:
        tracker = DailyStatsTracker(UTC)
        now = datetime(2026, 6, 15, 8, 0, tzinfo=UTC)

        stats = tracker.current(now)

        assert stats.date == date(2026, 6, 15)
        assert stats.baseline_values[PV_ENERGY] is None

    def test_same_day_does_not_reset(self) -> None:
        tracker = DailyStatsTracker(UTC)
        now = datetime(2026, 6, 15, 8, 0, tzinfo=UTC)
        tracker.set_baseline(PV_ENERGY, 100.0, now)

        assert tracker.rollover(now + timedelta(hours=10)) is False
        assert tracker.baseline(PV_ENERGY, now + timedelta(hours=10)) == 100.0

    def test_new_day_resets_baselines(self) -> None:
        tracker = DailyStatsTracker(UTC)
        now = datetime(2026, 6, 15, 23, 59, tzinfo=UTC)
        tracker.set_baseline(PV_ENERGY, 100.0, now)

        tomorrow = now + timedelta(minutes=2)
        assert tracker.rollover(tomorrow) is True
        assert tracker.baseline(PV_ENERGY, tomorrow) is None
        assert tracker.current(tomorrow).date == date(2026, 6, 16)

    def test_local_timezone_defines_the_day(self) -> None:
        tracker = DailyStatsTracker(_PHOENIX)
        # 06:30 UTC is 23:30 the previous evening in Phoenix (UTC-7).
        now = datetime(2026, 6, 16, 6, 30, tzinfo=UTC)

        assert tracker.current(now).date == date(2026, 6, 15)

    def test_stale_persisted_stats_are_replaced(self) -> None:
        old = DailyStats(date=date(2026, 6, 1), baseline_values={PV_ENERGY: 5.0})
        tracker = DailyStatsTracker(UTC, old)
        now = datetime(2026, 6, 15, 8, 0, tzinfo=UTC)

        assert tracker.current(now).date == date(2026, 6, 15)
        assert tracker.baseline(PV_ENERGY, now) is None


class TestPeaks:
    """Solar peaks are tracked overall and per hour."""

    def test_record_power(self) -> None:
        tracker = DailyStatsTracker(UTC)
        t1 = datetime(2026, 6, 15, 11, 10, tzinfo=UTC)
        t2 = datetime(2026, 6, 15, 12, 5, tzinfo=UTC)
        t3 = datetime(2026, 6, 15, 12, 40, tzinfo=UTC)

        tracker.record_power(1800, t1)
        tracker.record_power(2450, t2)
        tracker.record_power(2000, t3)

        stats = tracker.current(t3)
        assert stats.peak_power.value == 2450
        assert stats.peak_power.time == t2
        assert stats.peak_power_hourly == {11: 1800, 12: 2450}


class TestStateFile:
    """StateFile persists daily stats together with the charger state."""

    def test_round_trip(self, tmp_path: Path) -> None:
        tracker = DailyStatsTracker(UTC)
        now = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)
        tracker.set_baseline(PV_ENERGY, 1234.5, now)
        tracker.record_power(2450, now)
        charger = ControlState(
            is_on=True, last_action="ON", last_action_time=now, last_soc=44.0
        )
        state_file = StateFile(tmp_path / "daily_stats.json")

        assert state_file.save(
            PersistedState(daily_stats=tracker.stats, charger_state=charger)
        )
        loaded = state_file.load()

        assert loaded.daily_stats is not None
        assert loaded.daily_stats.baseline_values[PV_ENERGY] == 1234.5
        assert loaded.daily_stats.peak_power_hourly == {12: 2450}
        assert loaded.charger_state.is_on is True
        assert loaded.charger_state.last_action_time == now

    def test_charger_state_survives_day_change(self, tmp_path: Path) -> None:
        yesterday = datetime(2026, 6, 14, 18, 0, tzinfo=UTC)
        state_file = StateFile(tmp_path / "daily_stats.json")
        state_file.save(
            PersistedState(
                daily_stats=DailyStats(date=yesterday.date()),
                charger_state=ControlState(is_on=True, last_action="ON"),
            )
        )

        loaded = state_file.load()
        tracker = DailyStatsTracker(UTC, loaded.daily_stats)
        tracker.rollover(datetime(2026, 6, 15, 8, 0, tzinfo=UTC))

        assert tracker.stats.date == date(2026, 6, 15)
        assert loaded.charger_state.is_on is True

    def test_missing_file_defaults(self, tmp_path: Path) -> None:
        loaded = StateFile(tmp_path / "missing.json").load()

        assert loaded.daily_stats is None
        assert loaded.charger_state == ControlState()

    def test_corrupt_file_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "daily_stats.json"
        path.write_text('{"daily_stats": {"date": "not-a-date"}}', encoding="utf-8")

        loaded = StateFile(path).load()

        assert loaded.daily_stats is None
        assert loaded.charger_state.is_on is False

    def test_undecodable_file_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "daily_stats.json"
        path.write_bytes(b"\xff\xfe{garbage")

        loaded = StateFile(path).load()

        assert loaded.daily_stats is None
        assert loaded.charger_state.is_on is False
