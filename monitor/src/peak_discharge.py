"""
Detector for sustained battery discharge during peak sunlight hours.

The peak window is centred on solar noon and its width depends on the season
of the local month (see PeakWindowSettings). On each battery-power sample:

- inside the window and power below the discharge threshold (-50 W): start an
  episode, or check how long the current one has lasted;
- once the episode has lasted ``duration_minutes`` whole minutes, emit one
  alert for it;
- anything else ends the episode and clears all of its state.

Nothing carries over between episodes and nothing fires retroactively.

CHANGELOG:
- 2026-10-13: Read season months and widths from settings (STORY-012)
- 2026-10-12: Initial creation (STORY-017)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from monitor.src.cache import to_float
from monitor.src.metrics import BATTERY_SOC, LOAD_POWER, PV_POWER
from monitor.src.models import AlertHistoryEntry, PeakDischargeState, WeatherSnapshot
from monitor.src.settings_store import PeakWindowSettings

if TYPE_CHECKING:
    from monitor.src.alerts import AlertHistory
    from monitor.src.cache import SampleCache
    from monitor.src.notify import Notifier
    from monitor.src.settings_store import AlertSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeakWindow:
    """Start and end of the peak window in fractional local hours."""

    start_hour: float
    end_hour: float
    season: str

    def contains(self, hour: float) -> bool:
        return self.start_hour <= hour <= self.end_hour


def peak_window(month: int, settings: PeakWindowSettings | None = None) -> PeakWindow:
    """Return the peak window for a calendar *month* (1-12)."""
    if settings is None:
        settings = PeakWindowSettings()
    if month in settings.summer_months:
        width, season = settings.summer_hours, "Summer"
    elif month in settings.shoulder_months:
        width, season = settings.shoulder_hours, "Spring/Fall"
    else:
        width, season = settings.winter_hours, "Winter"
    half = width / 2
    return PeakWindow(
        start_hour=settings.solar_noon_hour - half,
        end_hour=settings.solar_noon_hour + half,
        season=season,
    )


def is_within_peak_window(
    now: dt.datetime,
    tz: ZoneInfo | dt.tzinfo,
    settings: PeakWindowSettings | None = None,
) -> bool:
    local = now.astimezone(tz)
    hour = local.hour + local.minute / 60
    return peak_window(local.month, settings).contains(hour)


def format_hour(hour: float) -> str:
    """Format a fractional hour as 12-hour time, e.g. ``9.75 -> "9:45 AM"``."""
    h = math.floor(hour)
    m = round((hour - h) * 60)
    if m == 60:
        h, m = h + 1, 0
    suffix = "PM" if h >= 12 else "AM"
    display = h - 12 if h > 12 else (12 if h == 0 else h)
    return f"{display}:{m:02d} {suffix}"


class PeakDischargeMonitor:
    """Raises one alert per sustained peak-hours discharge episode.

    Args:
        settings: Callable returning the current AlertSettings.
        notifier: Notification dispatcher.
        history: Shared alert history.
        cache: Sample cache, read for the alert body.
        tz: Local timezone for the peak window.
        weather: Callable returning the latest WeatherSnapshot, if any.
    """

    def __init__(
        self,
        *,
        settings: Callable[[], AlertSettings],
        notifier: Notifier,
        history: AlertHistory,
        cache: SampleCache,
        tz: ZoneInfo | dt.tzinfo,
        weather: Callable[[], WeatherSnapshot | None] = lambda: None,
    ) -> None:
        self._settings = settings
        self._notifier = notifier
        self._history = history
        self._cache = cache
        self._tz = tz
        self._weather = weather
        self.state = PeakDischargeState()

    async def check(self, battery_power: object, now: dt.datetime | None = None) -> bool:
        """Evaluate one battery-power sample.

        Returns:
            True if an alert fired for this sample.
        """
        settings = self._settings()
        alert = settings.peak_discharge_alert
        if not alert.enabled:
            return False
        power = to_float(battery_power)
        if power is None:
            return False
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)

        in_window = is_within_peak_window(now, self._tz, settings.peak_window)
        if not (in_window and power < alert.power_threshold_w):
            if self.state.is_discharging:
                logger.info("Peak discharge episode ended")
            self.state = PeakDischargeState()
            return False

        if not self.state.is_discharging:
            self.state = PeakDischargeState(is_discharging=True, discharge_start_time=now)
            logger.info("Peak discharge started: battery discharging during peak hours")
            return False

        start = self.state.discharge_start_time
        assert start is not None
        minutes = math.floor((now - start).total_seconds() / 60)
        if minutes < alert.duration_minutes or self.state.alert_sent:
            return False

        self.state.alert_sent = True
        self.state.last_alert_time = now
        await self._send_alert(power, minutes, start, now, settings)
        return True

    async def _send_alert(
        self,
        power: float,
        minutes: int,
        start: dt.datetime,
        now: dt.datetime,
        settings: AlertSettings,
    ) -> None:
        solar = self._cache.numeric(PV_POWER) or 0.0
        load = self._cache.numeric(LOAD_POWER) or 0.0
        soc = self._cache.numeric(BATTERY_SOC) or 0.0
        local_now = now.astimezone(self._tz)
        window = peak_window(local_now.month, settings.peak_window)
        weather = self._weather()

        logger.warning(
            "Peak discharge alert: battery discharging for %d minutes during peak hours",
            minutes,
        )
        lines = [
            f"Your battery has been discharging for {minutes} minutes during peak "
            "sunlight hours.",
            "",
            "Discharge Period:",
            f"- Started: {start.astimezone(self._tz):%H:%M:%S}",
            f"- Duration: {minutes} minutes",
            "",
            f"Peak Hours ({window.season}): {format_hour(window.start_hour)} - "
            f"{format_hour(window.end_hour)}",
            "",
            "Current Status:",
            f"- Battery Discharge: {abs(round(power))}W",
            f"- Solar Production: {round(solar)}W",
            f"- Load: {round(load)}W",
            f"- Battery SOC: {soc:g}%",
            "",
            "Possible Causes:",
        ]
        if solar < 500:
            lines.append("- Low solar production - check panels")
        if load > solar + 1000:
            lines.append("- High load exceeding production")
        if weather is not None and weather.cloud_cover > 70:
            lines.append("- Heavy cloud cover")
        lines += ["", f"Time: {local_now.isoformat()}"]

        self._history.add(
            AlertHistoryEntry(
                type="peak_discharge",
                message=f"Battery discharged for {minutes}min during peak hours",
                timestamp=now,
                value=power,
                details={
                    "discharge_power": round(power),
                    "solar_power": round(solar),
                    "load_power": round(load),
                    "duration": minutes,
                },
            )
        )
        await self._notifier.notify("Battery Discharging During Peak Hours", "\n".join(lines))
