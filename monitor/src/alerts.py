"""
Edge-triggered battery threshold alerts and the shared alert history.

AlertEngine is a two-state machine (Normal / BelowThreshold) with hysteresis:
it enters BelowThreshold when SOC drops strictly below the low threshold and
only returns to Normal when SOC rises strictly above the high threshold.
Samples that do not cross a boundary do nothing. With the master switch off
the engine does no bookkeeping at all, so re-enabling it starts from the
state it was left in.

State transitions are committed before the notification is awaited; a failed
email is logged and does not roll the state back.

AlertHistory is the bounded, newest-first log shared with the peak-discharge
monitor and the daily-summary dispatcher.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING

from monitor.src.cache import to_float
from monitor.src.models import AlertHistoryEntry, AlertState

if TYPE_CHECKING:
    from monitor.src.notify import Notifier
    from monitor.src.settings_store import AlertSettings

logger = logging.getLogger(__name__)

MAX_HISTORY: int = 50


class AlertHistory:
    """Bounded alert log, newest entry first."""

    def __init__(self, max_entries: int = MAX_HISTORY) -> None:
        self._entries: deque[AlertHistoryEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, entry: AlertHistoryEntry) -> None:
        # appendleft on a full deque drops the oldest entry from the right.
        self._entries.appendleft(entry)

    def latest(self, limit: int | None = None) -> list[AlertHistoryEntry]:
        entries = list(self._entries)
        return entries if limit is None else entries[:limit]


class AlertEngine:
    """Low-battery / recovered alerting with hysteresis.

    Args:
        settings: Callable returning the current AlertSettings.
        notifier: Notification dispatcher.
        history: Shared alert history.
    """

    def __init__(
        self,
        settings: Callable[[], AlertSettings],
        notifier: Notifier,
        history: AlertHistory,
    ) -> None:
        self._settings = settings
        self._notifier = notifier
        self._history = history
        self.state = AlertState()

    async def check(self, soc: object, now: dt.datetime | None = None) -> str | None:
        """Evaluate one SOC sample.

        Returns:
            ``"low"`` or ``"recovered"`` when a transition fired, else None.
        """
        settings = self._settings()
        if not settings.enabled:
            return None
        value = to_float(soc)
        if value is None:
            return None
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)

        if not self.state.below_threshold and value < settings.low_threshold:
            self._transition(True, "low", now)
            self._history.add(
                AlertHistoryEntry(
                    type="low",
                    message=f"Battery dropped to {value:g}%",
                    timestamp=now,
                    threshold=settings.low_threshold,
                    value=value,
                )
            )
            logger.warning("Low battery alert: SOC at %s%%", value)
            await self._notifier.notify(
                "Low Battery Alert",
                f"Battery State of Charge has dropped to {value:g}% "
                f"(below {settings.low_threshold:g}% threshold).\n\n"
                f"Time: {now.isoformat()}",
            )
            return "low"

        if self.state.below_threshold and value > settings.high_threshold:
            self._transition(False, "recovered", now)
            self._history.add(
                AlertHistoryEntry(
                    type="recovered",
                    message=f"Battery recovered to {value:g}%",
                    timestamp=now,
                    threshold=settings.high_threshold,
                    value=value,
                )
            )
            logger.info("Battery recovered: SOC at %s%%", value)
            await self._notifier.notify(
                "Battery Recovered",
                f"Battery State of Charge has recovered to {value:g}% "
                f"(above {settings.high_threshold:g}% threshold).\n\n"
                f"Time: {now.isoformat()}",
            )
            return "recovered"

        return None

    def _transition(self, below: bool, alert_type: str, now: dt.datetime) -> None:
        self.state = AlertState(
            below_threshold=below, last_alert_time=now, last_alert_type=alert_type
        )
