"""
Current-conditions pull from the Open-Meteo forecast API.

``WeatherClient.fetch()`` returns a flat WeatherSnapshot (temperature in F,
wind in mph, cloud cover %, shortwave radiation W/m^2) or ``None`` on any
failure. The snapshot is read-only context for the peak-discharge alert and
the daily summary.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-018)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import logging

import httpx
from pydantic import ValidationError

from monitor.src.models import WeatherSnapshot

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
_CURRENT_FIELDS = (
    "temperature_2m,weather_code,relative_humidity_2m,"
    "wind_speed_10m,cloud_cover,shortwave_radiation"
)

WMO_DESCRIPTIONS: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def describe_weather(code: int) -> str:
    """Map a WMO weather code to text; unknown codes give ``"Unknown"``."""
    return WMO_DESCRIPTIONS.get(code, "Unknown")


class WeatherClient:
    """Open-Meteo current-conditions client.

    Args:
        latitude: Site latitude.
        longitude: Site longitude.
        timeout_s: Request timeout in seconds.
    """

    def __init__(self, latitude: float, longitude: float, timeout_s: float = 5.0) -> None:
        self._params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": _CURRENT_FIELDS,
            "temperature_unit": "fahrenheit",
            "wind_speed_unit": "mph",
        }
        self._timeout_s = timeout_s

    async def fetch(self) -> WeatherSnapshot | None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.get(OPEN_METEO_URL, params=self._params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error fetching weather data: %s", exc)
            return None

        current = data.get("current") if isinstance(data, dict) else None
        if not current:
            logger.warning("Weather response has no current conditions")
            return None

        try:
            snapshot = WeatherSnapshot(
                temperature=round(current["temperature_2m"]),
                weather_code=current["weather_code"],
                humidity=current["relative_humidity_2m"],
                wind_speed=round(current["wind_speed_10m"], 1),
                cloud_cover=current["cloud_cover"],
                solar_radiation=round(current["shortwave_radiation"]),
                last_update=dt.datetime.now(tz=dt.UTC),
            )
        except (KeyError, TypeError, ValidationError) as exc:
            logger.error("Malformed weather response: %s", exc)
            return None

        logger.info(
            "Weather updated: %sF, humidity %s%%, wind %smph, clouds %s%%, solar %sW/m2",
            snapshot.temperature,
            snapshot.humidity,
            snapshot.wind_speed,
            snapshot.cloud_cover,
            snapshot.solar_radiation,
        )
        return snapshot
