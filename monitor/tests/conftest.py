"""
Shared test fixtures for monitor daemon tests.

All monitor env vars are cleaned before each test to ensure isolation, and
the working directory is moved to tmp_path so no .env file is picked up.
Provides settings, a fully wired MonitorContext on a temporary data dir,
and a TestClient for the API.

CHANGELOG:
- 2026-10-17: Add context and API client fixtures (STORY-024)
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from monitor.src.config import MonitorSettings
from monitor.src.context import MonitorContext

# All MonitorSettings environment variable names, used for cleanup.
_ALL_MONITOR_ENV_VARS = (
    "MQTT_BROKER_HOST",
    "MQTT_BROKER_PORT",
    "MQTT_USERNAME",
    "MQTT_PASSWORD",
    "MQTT_TOPIC",
    "DATA_DIR",
    "ARCHIVE_INTERVAL_S",
    "SAVE_INTERVAL_S",
    "RETENTION_DAYS",
    "MAX_POINTS_PER_METRIC",
    "TIMEZONE",
    "WEATHER_LATITUDE",
    "WEATHER_LONGITUDE",
    "WEATHER_INTERVAL_S",
    "BATTERY_CAPACITY_AH",
    "DEFAULT_BATTERY_VOLTAGE",
    "OUTBOUND_TIMEOUT_S",
    "IFTTT_WEBHOOK_KEY",
    "SENDGRID_API_KEY",
    "API_ENABLED",
    "API_HOST",
    "API_PORT",
    "HEALTH_PATH",
)

NOON = datetime(2026, 6, 15, 12, 0, 0, tzinfo=UTC)
"""A summer midday reference time used across the suite."""


@pytest.fixture(autouse=True)
def _clean_monitor_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all monitor env vars and isolate from .env files before each test."""
    for var in _ALL_MONITOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def settings(tmp_path: Path) -> MonitorSettings:
    """MonitorSettings pointing every file at tmp_path, API disabled."""
    return MonitorSettings(
        data_dir=str(tmp_path / "data"),
        health_path=str(tmp_path / "data" / "health.json"),
        api_enabled=False,
    )


@pytest.fixture()
def context(settings: MonitorSettings) -> MonitorContext:
    """A MonitorContext loaded from an empty data directory."""
    return MonitorContext.load(settings)


@pytest.fixture()
def client(context: MonitorContext) -> Generator[TestClient, None, None]:
    """TestClient for the API bound to the ``context`` fixture."""
    from monitor.src.api.main import create_app

    with TestClient(create_app(context)) as test_client:
        yield test_client
