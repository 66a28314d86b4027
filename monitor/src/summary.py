"""
End-of-day summary: statistics from today's archived series, a plain-text
report with insights, and the once-a-day dispatcher.

All energy figures are trapezoidal integrals over the archived power series
for the local calendar day, rounded to 0.01 kWh. Efficiency is solar energy
as a percentage of load energy and is 0 when there was no load.

CHANGELOG:
- 2026-10-19: Count only today's points; DST-safe send-time delay (STORY-026)
- 2026-10-14: Configurable send time via DailySummarySettings (STORY-019)
- 2026-10-13: Initial creation (STORY-019)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from monitor.src.analytics import integrate_energy_kwh, local_day_bounds, peak_of
from monitor.src.metrics import BATTERY_SOC, LOAD_POWER, PV_POWER, PV_POWER_1, PV_POWER_2
from monitor.src.models import AlertHistoryEntry, WeatherSnapshot
from monitor.src.weather import describe_weather

if TYPE_CHECKING:
    from monitor.src.alerts import AlertHistory
    from monitor.src.archive import ArchiveStore
    from monitor.src.notify import Notifier
    from monitor.src.settings_store import AlertSettings

logger = logging.getLogger(__name__)


class SolarEnergy(BaseModel):
    total: float = 0.0
    array1: float = 0.0
    array2: float = 0.0


class PeakPowers(BaseModel):
    solar: float = 0.0
    load: float = 0.0
    solar_time: dt.datetime | None = None
    load_time: dt.datetime | None = None


class SocRange(BaseModel):
    start: float | None = None
    end: float | None = None
    peak: float | None = None
    low: float | None = None


class DailySummary(BaseModel):
    """Figures for one local calendar day."""

    date: dt.date
    solar_energy: SolarEnergy = Field(default_factory=SolarEnergy)
    load_energy: float = 0.0
    peak_power: PeakPowers = Field(default_factory=PeakPowers)
    battery_soc: SocRange = Field(default_factory=SocRange)
    net_balance: float = 0.0
    efficiency: int = 0
    data_points: int = 0
    weather: WeatherSnapshot | None = None


def build_daily_summary(
    archive: ArchiveStore,
    weather: WeatherSnapshot | None,
    now: dt.datetime,
    tz: ZoneInfo | dt.tzinfo,
) -> DailySummary:
    """Compute today's summary from the archive."""
    start, end = local_day_bounds(now, tz)

    def series(key: str):
        return archive.query(key, start, end)

    solar = series(PV_POWER)
    load = series(LOAD_POWER)
    summary = DailySummary(
        date=start.date(),
        solar_energy=SolarEnergy(
            total=round(integrate_energy_kwh(solar), 2),
            array1=round(integrate_energy_kwh(series(PV_POWER_1)), 2),
            array2=round(integrate_energy_kwh(series(PV_POWER_2)), 2),
        ),
        load_energy=round(integrate_energy_kwh(load), 2),
        data_points=sum(len(series(key)) for key in archive.tracked),
        weather=weather,
    )

    solar_peak = peak_of(solar)
    if solar_peak is not None:
        summary.peak_power.solar = round(solar_peak.value)
        summary.peak_power.solar_time = solar_peak.time
    load_peak = peak_of(load)
    if load_peak is not None:
        summary.peak_power.load = round(load_peak.value)
        summary.peak_power.load_time = load_peak.time

    soc = [p.value for p in series(BATTERY_SOC)]
    if soc:
        summary.battery_soc = SocRange(
            start=round(soc[0]),
            end=round(soc[-1]),
            peak=round(max(soc)),
            low=round(min(soc)),
        )

    summary.net_balance = round(summary.solar_energy.total - summary.load_energy, 2)
    if summary.load_energy > 0:
        summary.efficiency = round(summary.solar_energy.total / summary.load_energy * 100)
    return summary


def daily_insights(summary: DailySummary) -> list[str]:
    insights: list[str] = []
    if summary.efficiency >= 120:
        insights.append(
            "Excellent efficiency! Your solar system is generating significantly "
            "more than you're consuming."
        )
    elif summary.efficiency >= 100:
        insights.append(
            "Great efficiency! You're generating as much or more than you're consuming."
        )
    elif summary.efficiency >= 80:
        insights.append(
            "Good efficiency. Consider optimizing load timing to better utilize "
            "solar production."
        )
    else:
        insights.append(
            "Lower efficiency detected. Consider reviewing your energy consumption patterns."
        )

    soc = summary.battery_soc
    if soc.start is not None and soc.end is not None:
        if soc.end > soc.start:
            insights.append("Battery charged throughout the day - great solar utilization!")
        elif soc.end < soc.start:
            insights.append(
                "Battery discharged during the day. Consider reducing evening consumption."
            )

    if summary.weather is not None:
        if summary.weather.solar_radiation > 800:
            insights.append("Excellent solar conditions today with high irradiance.")
        elif summary.weather.solar_radiation < 400:
            insights.append(
                "Cloudy conditions reduced solar production. Tomorrow should be better!"
            )

    if summary.peak_power.solar > 2000:
        insights.append(
            "Outstanding peak power generation! Your panels are performing excellently."
        )
    return insights


def summary_subject(summary: DailySummary) -> str:
    return f"Daily Solar Summary - {summary.date:%a %b %d %Y}"


def render_summary_body(summary: DailySummary, tz: ZoneInfo | dt.tzinfo) -> str:
    """Plain-text report for the daily summary email."""

    def fmt(value: float | None, suffix: str = "") -> str:
        return "N/A" if value is None else f"{value:g}{suffix}"

    def at(ts: dt.datetime | None) -> str:
        return f" at {ts.astimezone(tz):%H:%M}" if ts is not None else ""

    soc = summary.battery_soc
    lines = [
        f"Daily Solar Summary for {summary.date:%A, %B %d, %Y}",
        "",
        "Solar Performance",
        f"- Total Solar Energy: {summary.solar_energy.total:g} kWh",
        f"- Array 1: {summary.solar_energy.array1:g} kWh",
        f"- Array 2: {summary.solar_energy.array2:g} kWh",
        f"- Peak Power: {summary.peak_power.solar:g} W{at(summary.peak_power.solar_time)}",
        "",
        "Consumption",
        f"- Load Energy: {summary.load_energy:g} kWh",
        f"- Peak Load: {summary.peak_power.load:g} W{at(summary.peak_power.load_time)}",
        f"- Net Balance: {summary.net_balance:+g} kWh",
        f"- Efficiency: {summary.efficiency}%",
        "",
        "Battery Status",
        f"- Starting SOC: {fmt(soc.start, '%')}",
        f"- Ending SOC: {fmt(soc.end, '%')}",
        f"- Peak SOC: {fmt(soc.peak, '%')}",
        f"- Lowest SOC: {fmt(soc.low, '%')}",
        "",
        "Weather",
    ]
    weather = summary.weather
    if weather is None:
        lines.append("- Weather data unavailable")
    else:
        lines += [
            f"- Conditions: {describe_weather(weather.weather_code)}",
            f"- Temperature: {weather.temperature:g}F",
            f"- Humidity: {weather.humidity:g}%",
            f"- Solar Irradiance: {weather.solar_radiation:g} W/m2",
        ]
    lines += ["", f"Data Points: {summary.data_points}", "", "Insights"]
    lines += [f"- {insight}" for insight in daily_insights(summary)]
    return "\n".join(lines)


def seconds_until_next(send_time: str, now: dt.datetime, tz: ZoneInfo | dt.tzinfo) -> float:
    """Seconds from *now* until the next local ``HH:MM``.

    When *now* is exactly at or past today's send time, the next one is
    tomorrow's.
    """
    hour, minute = (int(part) for part in send_time.split(":"))
    local = now.astimezone(tz)
    target = dt.datetime.combine(local.date(), dt.time(hour, minute), tzinfo=tz)
    if local >= target:
        target = dt.datetime.combine(
            local.date() + dt.timedelta(days=1), dt.time(hour, minute), tzinfo=tz
        )
    return (target.astimezone(dt.UTC) - now.astimezone(dt.UTC)).total_seconds()


class DailySummaryDispatcher:
    """Builds and emails the daily summary.

    Args:
        settings: Callable returning the current AlertSettings.
        notifier: Notification dispatcher.
        history: Shared alert history.
        build: Callable producing the summary for a given time.
        tz: Local timezone.
    """

    def __init__(
        self,
        *,
        settings: Callable[[], AlertSettings],
        notifier: Notifier,
        history: AlertHistory,
        build: Callable[[dt.datetime], DailySummary],
        tz: ZoneInfo | dt.tzinfo,
    ) -> None:
        self._settings = settings
        self._notifier = notifier
        self._history = history
        self._build = build
        self._tz = tz

    def seconds_until_next(self, now: dt.datetime | None = None) -> float:
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)
        return seconds_until_next(self._settings().daily_summary.send_time, now, self._tz)

    async def send(self, now: dt.datetime | None = None) -> bool:
        """Send today's summary if enabled.

        Returns:
            True if the email was accepted.
        """
        settings = self._settings()
        if not settings.enabled or not settings.daily_summary.enabled:
            logger.info("Daily summary disabled or alerts disabled")
            return False
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)

        summary = self._build(now)
        subject = summary_subject(summary)
        logger.info("Sending daily summary for %s", summary.date)
        ok = await self._notifier.notify(subject, render_summary_body(summary, self._tz))
        if ok:
            self._history.add(
                AlertHistoryEntry(
                    type="daily_summary",
                    message=f"Daily summary sent for {summary.date:%a %b %d %Y}",
                    timestamp=now,
                )
            )
        else:
            logger.error("Daily summary for %s was not sent", summary.date)
        return ok
