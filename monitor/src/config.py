"""
Monitor daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Process-level values (broker, storage, timing, credentials) come from
environment variables or a .env file. User-tunable alert thresholds live in
the runtime alert settings file instead (see settings_store.py).

CHANGELOG:
- 2026-10-06: Add outbound timeout and API listener settings (STORY-011)
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class MonitorSettings(BaseSettings):
    """Monitor daemon configuration.

    All values are loaded from environment variables. Every field has a
    default so the daemon starts on a bare host; credentials left empty
    disable the features that need them.

    Attributes:
        mqtt_broker_host: SolarAssistant MQTT broker hostname.
        mqtt_broker_port: MQTT broker port (default 1883).
        mqtt_username: Optional MQTT username.
        mqtt_password: Optional MQTT password.
        mqtt_topic: Topic filter to subscribe to.
        data_dir: Directory holding the archive, state and settings files.
        archive_interval_s: Minimum seconds between archived points per metric.
        save_interval_s: Seconds between prune-and-persist cycles.
        retention_days: Calendar retention for archived points.
        max_points_per_metric: Length cap for each archived series.
        timezone: IANA zone used for day rollover and peak windows.
        weather_latitude: Latitude for the weather refresh.
        weather_longitude: Longitude for the weather refresh.
        weather_interval_s: Seconds between weather refreshes.
        battery_capacity_ah: Total bank capacity in amp-hours.
        default_battery_voltage: Voltage used when none has been reported.
        outbound_timeout_s: Timeout for webhook and email calls.
        ifttt_webhook_key: IFTTT Maker webhook key for the charger plug.
        sendgrid_api_key: SendGrid API key for notification email.
        api_enabled: Serve the read/control API alongside the daemon.
        api_host: API bind address.
        api_port: API bind port.
        health_path: Path of the JSON health file.
    """

    mqtt_broker_host: str = "localhost"
    mqtt_broker_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_topic: str = "solar_assistant/#"
    data_dir: str = "/data"
    archive_interval_s: float = 60.0
    save_interval_s: float = 60.0
    retention_days: int = 365
    max_points_per_metric: int = 10000
    timezone: str = "UTC"
    weather_latitude: float = 33.2487
    weather_longitude: float = -111.6343
    weather_interval_s: float = 300.0
    battery_capacity_ah: float = 300.0
    default_battery_voltage: float = 48.0
    outbound_timeout_s: float = 5.0
    ifttt_webhook_key: str = ""
    sendgrid_api_key: str = ""
    api_enabled: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 3434
    health_path: str = "/data/health.json"

    @field_validator("mqtt_broker_port", "api_port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator(
        "archive_interval_s",
        "save_interval_s",
        "weather_interval_s",
        "outbound_timeout_s",
    )
    @classmethod
    def interval_must_be_positive(cls, v: float) -> float:
        """Validate timing values are strictly positive."""
        if v <= 0:
            raise ValueError("Intervals and timeouts must be > 0")
        return v

    @field_validator("retention_days", "max_points_per_metric")
    @classmethod
    def limit_must_be_positive(cls, v: int) -> int:
        """Validate retention and series cap are at least 1."""
        if v < 1:
            raise ValueError("RETENTION_DAYS and MAX_POINTS_PER_METRIC must be >= 1")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate the timezone is a known IANA zone name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown TIMEZONE '{v}'") from exc
        return v

    @property
    def tz(self) -> ZoneInfo:
        """Return the configured timezone as a ZoneInfo."""
        return ZoneInfo(self.timezone)

    @property
    def archive_path(self) -> Path:
        return Path(self.data_dir) / "data_history.json"

    @property
    def state_path(self) -> Path:
        return Path(self.data_dir) / "daily_stats.json"

    @property
    def alert_settings_path(self) -> Path:
        return Path(self.data_dir) / "alert_settings.json"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
