"""
/settings endpoints: alert settings, alert history and manual test actions.

Credentials are never returned in full: the read side shows ``"***"`` plus
the last 8 characters, and a posted value that is empty or still masked
leaves the stored credential untouched.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-024)

TODO:
- None
"""

import datetime as dt
import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, ValidationError

from monitor.src.api.deps import Context
from monitor.src.control import ChargerControlUnavailable
from monitor.src.metrics import BATTERY_SOC, LOAD_POWER, PV_POWER
from monitor.src.settings_store import AlertSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])

HISTORY_LIMIT = 10


class ThresholdTest(BaseModel):
    soc: float


class ChargerTest(BaseModel):
    action: Literal["on", "off"]


def _is_unchanged_secret(value: Any) -> bool:
    return not value or (isinstance(value, str) and value.startswith("***"))


def merge_settings(current: AlertSettings, update: dict[str, Any]) -> AlertSettings:
    """Apply a partial settings update on top of *current*.

    Nested sections are merged key by key. Masked or empty credentials are
    ignored.

    Raises:
        pydantic.ValidationError: If the merged settings are invalid.
    """
    merged = current.model_dump()
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            section = dict(value)
            if key == "charger_control" and _is_unchanged_secret(
                section.get("ifttt_webhook_key")
            ):
                section.pop("ifttt_webhook_key", None)
            merged[key].update(section)
        elif key == "sendgrid_api_key" and _is_unchanged_secret(value):
            continue
        else:
            merged[key] = value
    return AlertSettings.model_validate(merged)


def _settings_view(context: Context) -> dict:
    return {
        "settings": context.alert_settings.masked(),
        "state": context.alerts.state,
        "charger_state": context.control.state,
        "history": context.history.latest(HISTORY_LIMIT),
    }


@router.get("/alerts")
async def get_alert_settings(context: Context) -> dict:
    """Return masked settings, alert state, charger state and recent history."""
    return _settings_view(context)


@router.post("/alerts")
async def update_alert_settings(
    context: Context, update: dict[str, Any] = Body(...)
) -> dict:
    """Merge a partial update into the alert settings and save them.

    Raises:
        HTTPException: 422 if the merged settings are invalid.
    """
    try:
        settings = merge_settings(context.alert_settings, update)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc
    context.update_alert_settings(settings)
    logger.info("Alert settings updated via API")
    return {"success": True, "settings": context.alert_settings.masked()}


@router.get("/alerts/history")
async def get_alert_history(context: Context) -> dict:
    return {"history": context.history.latest(HISTORY_LIMIT)}


@router.post("/alerts/test")
async def send_test_alert(context: Context) -> dict:
    """Send a test email with the current SOC, solar and load figures."""
    cache = context.cache

    def current(key: str) -> str:
        value = cache.numeric(key)
        return "N/A" if value is None else f"{value:g}"

    ok = await context.notifier.notify(
        "Test Alert - Solar Monitor",
        "This is a test email from your solar monitor.\n\n"
        "Current Status:\n"
        f"- Battery SOC: {current(BATTERY_SOC)}%\n"
        f"- Solar Power: {current(PV_POWER)}W\n"
        f"- Load Power: {current(LOAD_POWER)}W\n\n"
        f"Time: {dt.datetime.now(tz=dt.UTC).isoformat()}\n\n"
        "If you received this email, your alert system is working correctly!",
    )
    if ok:
        return {"success": True, "message": "Test email sent successfully!"}
    return {"success": False, "message": "Failed to send test email. Check the logs."}


@router.post("/alerts/test-threshold")
async def test_threshold(context: Context, body: ThresholdTest) -> dict:
    """Run the alert engine and the charger loop against a simulated SOC."""
    alert = await context.alerts.check(body.soc)
    action = await context.control.evaluate(body.soc)
    settings = context.alert_settings
    return {
        "success": True,
        "message": f"Alert and charger check triggered with SOC: {body.soc:g}%",
        "alert_fired": alert,
        "charger_action": action,
        "current_state": {
            **context.alerts.state.model_dump(),
            "low_threshold": settings.low_threshold,
            "high_threshold": settings.high_threshold,
        },
        "charger_state": {
            **context.control.state.model_dump(),
            "charger_enabled": settings.charger_control.enabled,
        },
    }


@router.post("/charger/test")
async def test_charger(context: Context, body: ChargerTest) -> dict:
    """Fire the charger ON/OFF webhook directly.

    Raises:
        HTTPException: 400 if charger control is disabled or has no key,
            502 if the webhook call failed.
    """
    try:
        result = await context.control.manual_trigger(
            body.action, soc=context.cache.numeric(BATTERY_SOC)
        )
    except ChargerControlUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not result:
        detail = result.error or f"IFTTT webhook returned status {result.status_code}"
        raise HTTPException(status_code=502, detail=detail)
    return {
        "success": True,
        "message": f"Charger {body.action.upper()} command sent successfully!",
        "charger_state": context.control.state,
    }


@router.post("/daily-summary/test")
async def test_daily_summary(context: Context) -> dict:
    ok = await context.summary.send()
    if ok:
        return {"success": True, "message": "Test daily summary sent successfully!"}
    return {
        "success": False,
        "message": "Failed to send daily summary. Check the logs for details.",
    }
