"""
Battery-charger automation: hysteresis + cooldown + temperature interlock.

The loop drives an IFTTT smart plug through two webhook events:
``battery_low`` (turn ON) and ``battery_charged`` (turn OFF). Guards are
checked in order and each one vetoes the evaluation:

1. Charger control enabled and a webhook key configured.
2. Battery temperature above ``max_temp``: no state change either way.
3. Cooldown since the last successful action (default 300 s).

OFF -> ON fires when ``soc <= low_threshold``; ON -> OFF when
``soc >= high_threshold``. The state is committed and persisted only after the
actuator confirms; a rejected or failed call leaves it unchanged and sends a
failure notification. There is no retry: the next eligible sample is the
retry.

One trigger is in flight at a time. An evaluation arriving while another
holds the lock is skipped rather than queued.

CHANGELOG:
- 2026-10-12: Skip evaluations while a trigger is in flight (STORY-016)
- 2026-10-11: Initial creation (STORY-016)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Literal

from monitor.src.actuator import TriggerResult
from monitor.src.cache import to_float
from monitor.src.models import ControlState

if TYPE_CHECKING:
    from monitor.src.actuator import IftttActuator
    from monitor.src.notify import Notifier
    from monitor.src.settings_store import AlertSettings

logger = logging.getLogger(__name__)

EVENT_ON = "battery_low"
EVENT_OFF = "battery_charged"


class ChargerControlUnavailable(ValueError):
    """Raised by a manual trigger when charger control cannot be used."""


class ControlLoop:
    """Charger ON/OFF state machine.

    Args:
        settings: Callable returning the current AlertSettings.
        actuator: Webhook actuator.
        notifier: Notification dispatcher.
        state: Persisted ControlState loaded at startup.
        temperature: Callable returning the current battery temperature
            (None when unknown).
        persist: Awaitable callback that writes the state file.
    """

    def __init__(
        self,
        *,
        settings: Callable[[], AlertSettings],
        actuator: IftttActuator,
        notifier: Notifier,
        state: ControlState | None = None,
        temperature: Callable[[], float | None] = lambda: None,
        persist: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self._settings = settings
        self._actuator = actuator
        self._notifier = notifier
        self.state = state if state is not None else ControlState()
        self._temperature = temperature
        self._persist = persist
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while a trigger is in flight."""
        return self._lock.locked()

    async def evaluate(
        self, soc: object, now: dt.datetime | None = None
    ) -> Literal["ON", "OFF"] | None:
        """Evaluate one SOC sample.

        Returns:
            The action committed (``"ON"`` / ``"OFF"``), or None when nothing
            changed.
        """
        settings = self._settings()
        charger = settings.charger_control
        if not charger.enabled or not charger.ifttt_webhook_key:
            return None
        value = to_float(soc)
        if value is None:
            return None
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)

        temperature = self._temperature()
        if temperature is not None and temperature > charger.max_temp:
            logger.warning(
                "Battery temperature too high (%s > %s), leaving charger %s",
                temperature,
                charger.max_temp,
                "ON" if self.state.is_on else "OFF",
            )
            return None

        if self._in_cooldown(now, charger.cooldown_s):
            return None

        if value <= charger.low_threshold and not self.state.is_on:
            action: Literal["ON", "OFF"] = "ON"
        elif value >= charger.high_threshold and self.state.is_on:
            action = "OFF"
        else:
            return None

        if self._lock.locked():
            logger.debug("Charger trigger in flight, skipping SOC %s", value)
            return None

        async with self._lock:
            return await self._fire(action, value, now, settings, reason="Automatic")

    async def manual_trigger(
        self, action: str, now: dt.datetime | None = None, soc: float | None = None
    ) -> TriggerResult:
        """Fire the ON or OFF event directly, ignoring thresholds and guards.

        Only the enabled/webhook-key check applies.

        Args:
            action: ``"on"`` or ``"off"``.

        Raises:
            ChargerControlUnavailable: If the action is invalid, control is
                disabled or no webhook key is configured.
        """
        action = action.lower()
        if action not in ("on", "off"):
            raise ChargerControlUnavailable('Invalid action. Use "on" or "off".')
        settings = self._settings()
        charger = settings.charger_control
        if not charger.enabled:
            raise ChargerControlUnavailable(
                "Charger control is not enabled. Please enable it in settings first."
            )
        if not charger.ifttt_webhook_key:
            raise ChargerControlUnavailable("IFTTT webhook key is not configured.")
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)

        async with self._lock:
            event = EVENT_ON if action == "on" else EVENT_OFF
            result = await self._actuator.trigger(
                charger.ifttt_webhook_key, event, soc, charger.plug_name, now
            )
            if not result:
                logger.error("Manual charger %s failed: %s", action.upper(), result)
                return result
            await self._commit("ON" if action == "on" else "OFF", soc, now, "Manual test")
            logger.info("Manual charger %s command sent", action.upper())
            soc_text = "N/A" if soc is None else f"{soc:g}%"
            await self._notifier.notify(
                f"Test: Battery Charger {action.upper()} Command Sent",
                f"A manual test command was sent to turn the battery charger "
                f"{action.upper()} via IFTTT.\n\n"
                f"Trigger Event: {event}\n"
                f"Current Battery SOC: {soc_text}\n"
                f"Plug: {charger.plug_name}\n"
                f"Time: {now.isoformat()}\n\n"
                "This was a MANUAL TEST - not an automatic trigger.",
            )
            return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _in_cooldown(self, now: dt.datetime, cooldown_s: float) -> bool:
        last = self.state.last_action_time
        return last is not None and (now - last).total_seconds() < cooldown_s

    async def _fire(
        self,
        action: Literal["ON", "OFF"],
        soc: float,
        now: dt.datetime,
        settings: AlertSettings,
        reason: str,
    ) -> Literal["ON", "OFF"] | None:
        charger = settings.charger_control
        event = EVENT_ON if action == "ON" else EVENT_OFF
        threshold_line = (
            f"Low Threshold: {charger.low_threshold:g}%"
            if action == "ON"
            else f"High Threshold: {charger.high_threshold:g}%"
        )

        result = await self._actuator.trigger(
            charger.ifttt_webhook_key, event, soc, charger.plug_name, now
        )

        if result:
            await self._commit(action, soc, now, reason)
            logger.info("Charger turned %s at SOC %s%% (%s)", action, soc, threshold_line)
            if action == "ON":
                subject = "Battery Charger Activated"
                closing = (
                    "The charger will automatically turn off when battery reaches "
                    f"{charger.high_threshold:g}%."
                )
            else:
                subject = "Battery Charger Deactivated"
                closing = "Battery is now fully charged."
            await self._notifier.notify(
                subject,
                f"Your battery charger has been automatically turned {action} via IFTTT.\n\n"
                f"IFTTT Trigger Event: {event}\n"
                f"Current Battery SOC: {soc:g}%\n"
                f"{threshold_line}\n"
                f"Plug: {charger.plug_name}\n"
                f"Time: {now.isoformat()}\n\n"
                f"{closing}",
            )
            return action

        if result.error is not None:
            await self._notifier.notify(
                "Battery Charger Control Error",
                "An error occurred while trying to control the battery charger via IFTTT.\n\n"
                f"Error: {result.error}\n"
                f"Current Battery SOC: {soc:g}%\n"
                f"Time: {now.isoformat()}\n\n"
                "Please check your network connection and IFTTT configuration.",
            )
        else:
            await self._notifier.notify(
                "Battery Charger Control Failed",
                f"Failed to turn {action} the battery charger via IFTTT.\n\n"
                f"IFTTT Trigger Event: {event}\n"
                f"HTTP Status: {result.status_code}\n"
                f"Current Battery SOC: {soc:g}%\n"
                f"{threshold_line}\n"
                f"Time: {now.isoformat()}\n\n"
                "Please check your IFTTT configuration and webhook key.",
            )
        return None

    async def _commit(
        self,
        action: Literal["ON", "OFF"],
        soc: float | None,
        now: dt.datetime,
        reason: str,
    ) -> None:
        self.state = ControlState(
            is_on=action == "ON",
            last_action=action,
            last_action_time=now,
            last_soc=soc,
            last_action_reason=reason,
        )
        if self._persist is not None:
            await self._persist()
