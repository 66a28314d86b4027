"""
GET /data endpoints: live snapshot, archived history and derived statistics.

- ``/data``: every cached metric plus connection, weather and charger state.
  503 until the first message has arrived.
- ``/data/history``: archived series, optionally one metric and a time range.
- ``/data/peak-performance``: solar peak, optionally over the last N hours.
- ``/data/daily-stats``: today's energy totals, runtime, peaks, arrays.
- ``/data/battery``: bank totals, per-battery values and their series.

CHANGELOG:
- 2026-10-18: Add /data/battery (STORY-025)
- 2026-10-17: Initial creation (STORY-024)

TODO:
- None
"""

import datetime as dt
import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from monitor.src.analytics import format_clock
from monitor.src.api.deps import Context
from monitor.src.metrics import (
    ARRAY_METRICS,
    BATTERY_CURRENT,
    BATTERY_ENERGY_IN,
    BATTERY_ENERGY_OUT,
    BATTERY_IDS,
    BATTERY_POWER,
    BATTERY_SOC,
    BATTERY_TEMPERATURE,
    BATTERY_VOLTAGE,
    LOAD_ENERGY,
    PV_ENERGY,
    battery_metric,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/data", tags=["data"])

_BATTERY_FIELDS = {
    "voltage": "voltage",
    "current": "current",
    "power": "power",
    "temperature": "temperature",
    "soc": "state_of_charge",
}


@router.get("")
async def get_data(context: Context) -> dict:
    """Return the full latest-value snapshot.

    Raises:
        HTTPException: 503 if no message has been received yet.
    """
    status = context.source.connection_status if context.source else "Not connected"
    if len(context.cache) == 0:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "No data available yet",
                "status": status,
                "message_count": context.pipeline.message_count,
            },
        )
    snapshot = context.cache.snapshot()
    return {
        "data": {
            key: sample.model_dump(mode="json", exclude={"metric_key"})
            for key, sample in snapshot.items()
        },
        "last_update": context.pipeline.last_update,
        "message_count": context.pipeline.message_count,
        "status": status,
        "topics": len(snapshot),
        "weather": context.weather,
        "charger_state": context.control.state,
        "power_balance": context.analytics.current_power_balance(),
    }


@router.get("/history")
async def get_history(
    context: Context,
    metric: Annotated[str | None, Query(description="Tracked metric key.")] = None,
    start: Annotated[dt.datetime | None, Query(description="Inclusive lower bound.")] = None,
    end: Annotated[dt.datetime | None, Query(description="Inclusive upper bound.")] = None,
) -> dict:
    """Return archived series, all tracked metrics unless *metric* is given.

    Raises:
        HTTPException: 404 if *metric* is not on the tracked allow-list.
    """
    archive = context.archive
    if metric is not None and not archive.is_tracked(metric):
        raise HTTPException(status_code=404, detail=f"Metric '{metric}' is not tracked")
    start, end = _aware(start), _aware(end)
    keys = [metric] if metric is not None else list(archive.tracked)
    data = {key: archive.query(key, start, end) for key in keys}
    return {
        "data": data,
        "tracked_topics": list(archive.tracked),
        "data_points": sum(len(points) for points in data.values()),
        "retention_days": archive.retention_days,
    }


@router.get("/peak-performance")
async def get_peak_performance(
    context: Context,
    hours: Annotated[float | None, Query(gt=0, description="Look-back window.")] = None,
) -> dict[str, str]:
    return {"peak": context.analytics.peak_performance_label(hours)}


@router.get("/daily-stats")
async def get_daily_stats(context: Context) -> dict:
    """Return today's energy totals, runtime estimate, peaks and arrays."""
    now = dt.datetime.now(tz=dt.UTC)
    analytics = context.analytics
    stats = context.daily_stats.current(now)
    start = analytics.tracking_start_time(now)
    return {
        "energy_produced": round(analytics.daily_energy(PV_ENERGY, now), 2),
        "energy_consumed": round(analytics.daily_energy(LOAD_ENERGY, now), 2),
        "battery_energy_in": round(analytics.daily_energy(BATTERY_ENERGY_IN, now), 2),
        "battery_energy_out": round(analytics.daily_energy(BATTERY_ENERGY_OUT, now), 2),
        "battery_runtime": analytics.battery_runtime(),
        "power_balance": analytics.current_power_balance(),
        "peak_performance": analytics.peak_performance_label(1, now),
        "peak_power": stats.peak_power,
        "peak_power_hourly": stats.peak_power_hourly,
        "date": stats.date,
        "tracking_start_time": (
            format_clock(start.astimezone(context.tz)) if start else "Just started"
        ),
        "arrays": {
            name: {
                "percentage": analytics.array_percentage(name),
                "peak_24h": analytics.array_24h_peak(name, now),
                "performance": analytics.array_performance_percentage(name, now),
            }
            for name in ARRAY_METRICS
        },
    }


@router.get("/battery")
async def get_battery(context: Context) -> dict:
    """Return bank totals, per-battery values and per-battery series."""
    cache, archive = context.cache, context.archive
    total = {
        "soc": cache.numeric(BATTERY_SOC),
        "power": cache.numeric(BATTERY_POWER),
        "temperature": cache.numeric(BATTERY_TEMPERATURE),
        "energy_in": cache.numeric(BATTERY_ENERGY_IN),
        "energy_out": cache.numeric(BATTERY_ENERGY_OUT),
        "voltage": cache.numeric(BATTERY_VOLTAGE),
        "current": cache.numeric(BATTERY_CURRENT),
    }
    batteries = [
        {
            "id": num,
            **{
                name: cache.numeric(battery_metric(num, field))
                for name, field in _BATTERY_FIELDS.items()
            },
        }
        for num in BATTERY_IDS
    ]
    history = {
        name: {
            f"battery_{num}": archive.query(battery_metric(num, field))
            for num in BATTERY_IDS
        }
        for name, field in _BATTERY_FIELDS.items()
    }
    history["total_power"] = archive.query(BATTERY_POWER)
    history["total_soc"] = archive.query(BATTERY_SOC)
    history["total_temp"] = archive.query(BATTERY_TEMPERATURE)
    return {
        "total": total,
        "batteries": batteries,
        "runtime": context.analytics.battery_runtime(),
        "history": history,
    }


def _aware(value: dt.datetime | None) -> dt.datetime | None:
    """Treat naive query timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value
