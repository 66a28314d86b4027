"""
Unit tests for the battery threshold alert engine and alert history.

Tests verify:
- Hysteresis: low fires once below the low threshold, recovered fires once
  above the high threshold, nothing in between.
- Disabled alerts do no bookkeeping.
- State is committed even when the email fails.
- History is bounded and newest-first.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from monitor.src.alerts import AlertEngine, AlertHistory
from monitor.src.models import AlertHistoryEntry, AlertState
from monitor.src.settings_store import AlertSettings

_T0 = datetime(2026, 6, 15, 18, 0, 0, tzinfo=UTC)


def _engine(
    enabled: bool = True, notify_ok: bool = True
) -> tuple[AlertEngine, AsyncMock, AlertHistory]:
    settings = AlertSettings(enabled=enabled, low_threshold=50, high_threshold=80)
    notifier = AsyncMock()
    notifier.notify = AsyncMock(return_value=notify_ok)
    history = AlertHistory()
    return AlertEngine(lambda: settings, notifier, history), notifier, history


class TestHysteresis:
    """Edge-triggered low / recovered transitions."""

    @pytest.mark.asyncio
    async def test_soc_sequence(self) -> None:
        """60, 40, 35, 45, 85, 30 fires low, recovered, low."""
        engine, notifier, history = _engine()

        results = []
        for i, soc in enumerate([60, 40, 35, 45, 85, 30]):
            results.append(await engine.check(soc, _T0 + timedelta(minutes=i)))

        assert results == [None, "low", None, None, "recovered", "low"]
        subjects = [call.args[0] for call in notifier.notify.await_args_list]
        assert subjects == ["Low Battery Alert", "Battery Recovered", "Low Battery Alert"]
        assert [entry.type for entry in history.latest()] == ["low", "recovered", "low"]

    @pytest.mark.asyncio
    async def test_thresholds_are_strict(self) -> None:
        engine, notifier, _ = _engine()

        assert await engine.check(50, _T0) is None
        assert await engine.check(49.9, _T0) == "low"
        assert await engine.check(80, _T0) is None
        assert await engine.check(80.1, _T0) == "recovered"

    @pytest.mark.asyncio
    async def test_state_records_last_alert(self) -> None:
        engine, _, _ = _engine()

        await engine.check(42, _T0)

        assert engine.state == AlertState(
            below_threshold=True, last_alert_time=_T0, last_alert_type="low"
        )

    @pytest.mark.asyncio
    async def test_non_numeric_soc_ignored(self) -> None:
        engine, notifier, _ = _engine()

        assert await engine.check("unknown", _T0) is None
        notifier.notify.assert_not_awaited()


class TestDisabled:
    @pytest.mark.asyncio
    async def test_no_bookkeeping_when_disabled(self) -> None:
        engine, notifier, history = _engine(enabled=False)

        assert await engine.check(10, _T0) is None
        assert engine.state.below_threshold is False
        assert len(history) == 0
        notifier.notify.assert_not_awaited()


class TestNotificationFailure:
    @pytest.mark.asyncio
    async def test_state_committed_when_email_fails(self) -> None:
        engine, notifier, history = _engine(notify_ok=False)

        assert await engine.check(30, _T0) == "low"
        assert engine.state.below_threshold is True
        assert len(history) == 1
        # No duplicate low alert on the next sample.
        assert await engine.check(29, _T0) is None
        assert notifier.notify.await_count == 1


class TestAlertHistory:
    def test_bounded_newest_first(self) -> None:
        history = AlertHistory(max_entries=3)
        for i in range(5):
            history.add(
                AlertHistoryEntry(
                    type="low", message=f"#{i}", timestamp=_T0 + timedelta(minutes=i)
                )
            )

        assert len(history) == 3
        assert [e.message for e in history.latest()] == ["#4", "#3", "#2"]
        assert [e.message for e in history.latest(2)] == ["#4", "#3"]
