"""
IFTTT Maker webhook actuator for the battery-charger smart plug.

``trigger(event, soc, label, timestamp)`` POSTs to
``https://maker.ifttt.com/trigger/{event}/with/key/{key}`` with the body
``{"value1": soc, "value2": label, "value3": timestamp}`` and reports a
:class:`TriggerResult`. Only the outcome matters to the caller; the call is
bounded by a timeout and never retried.

CHANGELOG:
- 2026-10-11: Return the HTTP status alongside the outcome (STORY-014)
- 2026-10-11: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

IFTTT_URL = "https://maker.ifttt.com/trigger/{event}/with/key/{key}"
_DEFAULT_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class TriggerResult:
    """Outcome of one webhook call.

    Attributes:
        ok: True for a 2xx response.
        status_code: HTTP status, or None when the request never completed.
        error: Transport error text, if any.
    """

    ok: bool
    status_code: int | None = None
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class IftttActuator:
    """Fires IFTTT Maker webhook events.

    Args:
        timeout_s: Request timeout in seconds.
    """

    def __init__(self, timeout_s: float = _DEFAULT_TIMEOUT_S) -> None:
        self._timeout_s = timeout_s

    async def trigger(
        self,
        key: str,
        event: str,
        soc: float | None,
        label: str,
        timestamp: dt.datetime,
    ) -> TriggerResult:
        """Fire *event* with the given context.

        Args:
            key: IFTTT webhook key.
            event: Event name (``battery_low`` / ``battery_charged``).
            soc: Battery SOC at trigger time, if known.
            label: Plug name.
            timestamp: Trigger time.
        """
        url = IFTTT_URL.format(event=event, key=key)
        body = {"value1": soc, "value2": label, "value3": timestamp.isoformat()}
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            logger.error("IFTTT trigger '%s' failed: %s", event, exc)
            return TriggerResult(ok=False, error=str(exc) or type(exc).__name__)

        if response.is_success:
            logger.info("IFTTT trigger '%s' accepted", event)
            return TriggerResult(ok=True, status_code=response.status_code)

        logger.error(
            "IFTTT trigger '%s' rejected (HTTP %d)", event, response.status_code
        )
        return TriggerResult(ok=False, status_code=response.status_code)
