"""
Unit tests for the throttled, bounded, retention-pruned archive.

Tests verify:
- Only tracked, numeric samples are archived.
- At most one point per metric per archive interval (wall-clock watermark).
- Each series is capped at max_points, oldest evicted first.
- prune() drops points older than the retention window.
- query() is inclusive and ascending.
- persist() / load() round trip; corrupt or missing files start fresh.
- Out-of-order timestamps are skipped.

CHANGELOG:
- 2026-10-19: Undecodable store file (STORY-026)
- 2026-10-06: Out-of-order guard (STORY-007)
- 2026-10-04: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

from monitor.src.archive import ArchiveStore
from monitor.src.metrics import BATTERY_SOC, PV_ENERGY, PV_POWER

_T0 = datetime(2026, 6, 15, 12, 0, 0, tzinfo=UTC)


def _store(tmp_path: Path, **kwargs: object) -> ArchiveStore:
    return ArchiveStore(tmp_path / "data_history.json", **kwargs)


class TestRecordFiltering:
    """Only tracked numeric samples are archived."""

    def test_untracked_metric_is_ignored(self, tmp_path: Path) -> None:
        store = _store(tmp_path)

        assert store.record(PV_ENERGY, 12.5, _T0, now=_T0) is False
        assert store.is_tracked(PV_ENERGY) is False
        assert store.query(PV_ENERGY) == []

    def test_non_numeric_value_is_ignored(self, tmp_path: Path) -> None:
        store = _store(tmp_path)

        assert store.record(PV_POWER, "offline", _T0, now=_T0) is False
        assert store.point_count() == 0

    def test_numeric_string_is_archived(self, tmp_path: Path) -> None:
        store = _store(tmp_path)

        assert store.record(PV_POWER, "2450", _T0, now=_T0) is True
        assert store.latest(PV_POWER).value == 2450.0


class TestThrottle:
    """One point per archive interval per metric."""

    def test_second_sample_within_interval_is_dropped(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=60)

        assert store.record(PV_POWER, 100, _T0, now=_T0) is True
        later = _T0 + timedelta(seconds=59)
        assert store.record(PV_POWER, 200, later, now=later) is False
        later = _T0 + timedelta(seconds=60)
        assert store.record(PV_POWER, 300, later, now=later) is True

        assert [p.value for p in store.query(PV_POWER)] == [100.0, 300.0]

    def test_throttle_is_per_metric(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=60)

        assert store.record(PV_POWER, 100, _T0, now=_T0) is True
        assert store.record(BATTERY_SOC, 55, _T0, now=_T0) is True

    def test_rejected_value_does_not_advance_watermark(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=60)

        assert store.record(PV_POWER, "n/a", _T0, now=_T0) is False
        later = _T0 + timedelta(seconds=1)
        assert store.record(PV_POWER, 100, later, now=later) is True


class TestLengthCap:
    """Series never exceed max_points."""

    def test_oldest_point_evicted(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=1, max_points=3)
        for i in range(5):
            ts = _T0 + timedelta(minutes=i)
            store.record(PV_POWER, i, ts, now=ts)

        assert [p.value for p in store.query(PV_POWER)] == [2.0, 3.0, 4.0]


class TestOutOfOrder:
    """A point older than the series tail is skipped."""

    def test_older_timestamp_is_skipped(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=1)
        store.record(PV_POWER, 100, _T0, now=_T0)
        now = _T0 + timedelta(minutes=5)

        assert store.record(PV_POWER, 50, _T0 - timedelta(minutes=1), now=now) is False
        assert len(store.query(PV_POWER)) == 1


class TestPrune:
    """prune() removes points older than the retention window."""

    def test_prune_drops_old_points(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=1)
        old = _T0 - timedelta(days=10)
        store.record(PV_POWER, 1, old, now=old)
        store.record(PV_POWER, 2, _T0, now=_T0)

        removed = store.prune(retention_days=7, now=_T0)

        assert removed == 1
        assert [p.value for p in store.query(PV_POWER)] == [2.0]

    def test_prune_uses_configured_retention(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=1, retention_days=1)
        old = _T0 - timedelta(days=2)
        store.record(PV_POWER, 1, old, now=old)

        assert store.prune(now=_T0) == 1


class TestQuery:
    """query() bounds are inclusive."""

    def test_inclusive_bounds(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=1)
        stamps = [_T0 + timedelta(minutes=i) for i in range(4)]
        for i, ts in enumerate(stamps):
            store.record(PV_POWER, i, ts, now=ts)

        points = store.query(PV_POWER, stamps[1], stamps[2])

        assert [p.timestamp for p in points] == stamps[1:3]

    def test_unknown_metric(self, tmp_path: Path) -> None:
        assert _store(tmp_path).query("no/such/metric") == []


class TestPersistence:
    """persist() and load() use a whole-document JSON file."""

    def test_persist_and_load(self, tmp_path: Path) -> None:
        store = _store(tmp_path, archive_interval_s=1)
        store.record(PV_POWER, 2450, _T0, now=_T0)
        store.record(BATTERY_SOC, 67, _T0, now=_T0)

        assert store.persist() is True

        reloaded = _store(tmp_path)
        reloaded.load(now=_T0)
        assert reloaded.latest(PV_POWER).value == 2450.0
        assert reloaded.latest(PV_POWER).timestamp == _T0
        assert reloaded.point_count() == 2

    def test_missing_file_starts_empty(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        store.load()

        assert store.point_count() == 0
        assert store.is_tracked(PV_POWER)

    def test_corrupt_file_starts_empty(self, tmp_path: Path) -> None:
        (tmp_path / "data_history.json").write_text("{not json", encoding="utf-8")
        store = _store(tmp_path)
        store.load()

        assert store.point_count() == 0

    def test_undecodable_file_starts_empty(self, tmp_path: Path) -> None:
        (tmp_path / "data_history.json").write_bytes(b"\xff\xfe{garbage")
        store = _store(tmp_path)
        store.load()

        assert store.point_count() == 0
        assert store.query(PV_POWER) == []

    def test_load_drops_untracked_and_expired(self, tmp_path: Path) -> None:
        document = {
            PV_POWER: [
                {"timestamp": (_T0 - timedelta(days=400)).isoformat(), "value": 1},
                {"timestamp": _T0.isoformat(), "value": 2},
            ],
            "solar_assistant/unknown/thing/state": [
                {"timestamp": _T0.isoformat(), "value": 3},
            ],
        }
        (tmp_path / "data_history.json").write_text(json.dumps(document), encoding="utf-8")
        store = _store(tmp_path)
        store.load(now=_T0)

        assert [p.value for p in store.query(PV_POWER)] == [2.0]
        assert store.point_count() == 1

    def test_persist_failure_returns_false(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x", encoding="utf-8")
        store = ArchiveStore(blocker / "data_history.json")

        assert store.persist() is False

    def test_dumps_is_valid_json(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        store.record(PV_POWER, 5, _T0, now=_T0)

        document = json.loads(store.dumps())
        assert document[PV_POWER] == [{"timestamp": "2026-06-15T12:00:00Z", "value": 5.0}]
