"""
Pydantic models for telemetry samples and monitor state.

Defines the immutable Sample produced per ingestion event, the archived
series point, and the state records owned by the analytics, alerting and
charger-control components. State models double as the on-disk JSON schema
via ``model_dump_json`` / ``model_validate_json``.

CHANGELOG:
- 2026-10-05: Add PersistedState document for daily stats + charger state (STORY-008)
- 2026-10-02: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: dt.datetime) -> dt.datetime:
    """Treat naive timestamps (e.g. from older state files) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value


class Sample(BaseModel):
    """A single telemetry reading as received from the ingestion source.

    The value is kept exactly as decoded (number, string or JSON structure);
    numeric interpretation is left to the consumers.

    Attributes:
        metric_key: Topic the reading was published on.
        value: Decoded payload value.
        timestamp: Receive time of the reading.
        raw: Undecoded payload text, when available.
    """

    model_config = {"frozen": True}

    metric_key: str
    value: Any
    timestamp: dt.datetime
    raw: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_aware(cls, v: dt.datetime) -> dt.datetime:
        return _as_utc(v)


class ArchivePoint(BaseModel):
    """One archived (timestamp, value) point of a tracked metric."""

    timestamp: dt.datetime
    value: float

    @field_validator("timestamp")
    @classmethod
    def _timestamp_aware(cls, v: dt.datetime) -> dt.datetime:
        return _as_utc(v)


class PeakReading(BaseModel):
    """Maximum value observed and when it was observed."""

    value: float = 0.0
    time: dt.datetime | None = None


class DailyStats(BaseModel):
    """Per-calendar-day energy baselines and solar peaks.

    Attributes:
        date: Local calendar date these stats belong to.
        baseline_values: Cumulative-energy counter value captured at the
            first observation of the day (``None`` until captured).
        peak_power: Highest solar power seen today.
        peak_power_hourly: Highest solar power per local hour (0-23).
    """

    date: dt.date
    baseline_values: dict[str, float | None] = Field(default_factory=dict)
    peak_power: PeakReading = Field(default_factory=PeakReading)
    peak_power_hourly: dict[int, float] = Field(default_factory=dict)


class ControlState(BaseModel):
    """Persisted state of the charger control loop."""

    is_on: bool = False
    last_action: Literal["ON", "OFF"] | None = None
    last_action_time: dt.datetime | None = None
    last_soc: float | None = None
    last_action_reason: str | None = None

    @field_validator("last_action_time")
    @classmethod
    def _action_time_aware(cls, v: dt.datetime | None) -> dt.datetime | None:
        return None if v is None else _as_utc(v)


class AlertState(BaseModel):
    """Edge-triggered battery threshold alert state (not persisted)."""

    below_threshold: bool = False
    last_alert_time: dt.datetime | None = None
    last_alert_type: str | None = None


class AlertHistoryEntry(BaseModel):
    """An entry in the bounded alert history shown to operators."""

    type: str
    message: str
    timestamp: dt.datetime
    threshold: float | None = None
    value: float | None = None
    details: dict[str, float] | None = None


class PeakDischargeState(BaseModel):
    """Transient state of the peak-hours discharge detector."""

    is_discharging: bool = False
    discharge_start_time: dt.datetime | None = None
    alert_sent: bool = False
    last_alert_time: dt.datetime | None = None


class WeatherSnapshot(BaseModel):
    """Flat current-conditions record from the weather source."""

    temperature: float = 0.0
    weather_code: int = 0
    humidity: float = 0.0
    wind_speed: float = 0.0
    cloud_cover: float = 0.0
    solar_radiation: float = 0.0
    last_update: dt.datetime | None = None


class PersistedState(BaseModel):
    """On-disk document holding daily stats and charger state together."""

    daily_stats: DailyStats | None = None
    charger_state: ControlState = Field(default_factory=ControlState)
