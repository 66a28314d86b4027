"""
Integration tests for the monitor API.

Tests verify:
- GET / and GET /health respond without any data.
- GET /data returns 503 until the first message, then the full snapshot.
- GET /data/history filters by tracked metric and rejects untracked ones.
- Derived statistics endpoints respond with sentinels on an empty system.
- GET /settings/alerts masks credentials.
- POST /settings/alerts merges partial updates, ignores masked secrets,
  persists without secrets and rejects invalid values.
- Test endpoints report failures without raising.
- POST /settings/charger/test maps unavailable control to 400 and webhook
  failures to 502.

CHANGELOG:
- 2026-10-18: Battery endpoint (STORY-025)
- 2026-10-17: Initial creation (STORY-024)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
from monitor.src.actuator import TriggerResult
from monitor.src.config import MonitorSettings
from monitor.src.context import MonitorContext
from monitor.src.metrics import BATTERY_SOC, LOAD_POWER, PV_ENERGY, PV_POWER
from monitor.src.models import Sample
from monitor.src.settings_store import AlertSettings, ChargerControlSettings

_NOW = datetime(2026, 6, 15, 12, 0, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ingest(context: MonitorContext, key: str, value: object) -> None:
    context.pipeline.ingest(
        Sample(metric_key=key, value=value, timestamp=_NOW, raw=str(value)), _NOW
    )


def _enable_charger(context: MonitorContext) -> None:
    context.update_alert_settings(
        AlertSettings(
            charger_control=ChargerControlSettings(
                enabled=True, ifttt_webhook_key="ifttt-key-0123456789"
            )
        )
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_root(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health(self, client: TestClient, context: MonitorContext) -> None:
        _ingest(context, PV_POWER, 100)

        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["message_count"] == 1
        assert body["archived_points"] == 1
        assert body["last_sample_ts"] is not None


# ---------------------------------------------------------------------------
# /data
# ---------------------------------------------------------------------------


class TestData:
    def test_no_data_yet(self, client: TestClient) -> None:
        response = client.get("/data")

        assert response.status_code == 503
        detail = response.json()["detail"]
        assert detail["error"] == "No data available yet"
        assert detail["message_count"] == 0

    def test_snapshot(self, client: TestClient, context: MonitorContext) -> None:
        _ingest(context, PV_POWER, 2000)
        _ingest(context, LOAD_POWER, 1800)
        _ingest(context, "solar_assistant/inverter_1/device_mode/state", "Solar/Battery")

        response = client.get("/data")

        assert response.status_code == 200
        body = response.json()
        assert body["topics"] == 3
        assert body["message_count"] == 3
        assert body["status"] == "Not connected"
        assert body["data"][PV_POWER]["value"] == 2000
        assert (
            body["data"]["solar_assistant/inverter_1/device_mode/state"]["value"]
            == "Solar/Battery"
        )
        assert body["power_balance"] == 200
        assert body["charger_state"]["is_on"] is False
        assert body["weather"] is None


class TestHistory:
    def test_all_tracked(self, client: TestClient, context: MonitorContext) -> None:
        _ingest(context, PV_POWER, 2450)

        body = client.get("/data/history").json()

        assert PV_POWER in body["tracked_topics"]
        assert set(body["data"]) == set(body["tracked_topics"])
        assert body["data"][PV_POWER][0]["value"] == 2450
        assert body["data_points"] == 1
        assert body["retention_days"] == 365

    def test_single_metric_and_range(
        self, client: TestClient, context: MonitorContext
    ) -> None:
        _ingest(context, PV_POWER, 2450)

        body = client.get(
            "/data/history",
            params={
                "metric": PV_POWER,
                "start": "2026-06-15T11:00:00Z",
                "end": "2026-06-15T13:00:00Z",
            },
        ).json()
        assert list(body["data"]) == [PV_POWER]
        assert len(body["data"][PV_POWER]) == 1

        body = client.get(
            "/data/history", params={"metric": PV_POWER, "start": "2026-06-15T12:30:00"}
        ).json()
        assert body["data"][PV_POWER] == []

    def test_untracked_metric(self, client: TestClient) -> None:
        response = client.get("/data/history", params={"metric": PV_ENERGY})

        assert response.status_code == 404


class TestDerived:
    def test_peak_performance(self, client: TestClient, context: MonitorContext) -> None:
        assert client.get("/data/peak-performance").json() == {"peak": "N/A"}

        _ingest(context, PV_POWER, 2450)
        assert client.get("/data/peak-performance").json() == {
            "peak": "2450W @ 12:00 PM (Jun 15)"
        }

    def test_peak_performance_rejects_non_positive_hours(self, client: TestClient) -> None:
        assert client.get("/data/peak-performance", params={"hours": 0}).status_code == 422

    def test_daily_stats_empty(self, client: TestClient) -> None:
        body = client.get("/data/daily-stats").json()

        assert body["energy_produced"] == 0
        assert body["energy_consumed"] == 0
        assert body["battery_runtime"] == "N/A"
        assert body["power_balance"] is None
        assert body["peak_performance"] == "N/A"
        assert body["tracking_start_time"] == "Just started"
        assert set(body["arrays"]) == {"array1", "array2"}

    def test_battery(self, client: TestClient, context: MonitorContext) -> None:
        _ingest(context, BATTERY_SOC, 67)

        body = client.get("/data/battery").json()

        assert body["total"]["soc"] == 67
        assert [b["id"] for b in body["batteries"]] == [1, 2, 3]
        assert body["history"]["total_soc"][0]["value"] == 67
        assert set(body["history"]["soc"]) == {"battery_1", "battery_2", "battery_3"}


# ---------------------------------------------------------------------------
# /settings
# ---------------------------------------------------------------------------


class TestAlertSettings:
    def test_get_masks_credentials(
        self, client: TestClient, context: MonitorContext
    ) -> None:
        context.update_alert_settings(AlertSettings(sendgrid_api_key="SG.abcdefghijklmnop"))

        body = client.get("/settings/alerts").json()

        assert body["settings"]["sendgrid_api_key"] == "***ijklmnop"
        assert body["state"]["below_threshold"] is False
        assert body["charger_state"]["is_on"] is False
        assert body["history"] == []

    def test_partial_update(
        self,
        client: TestClient,
        context: MonitorContext,
        settings: MonitorSettings,
    ) -> None:
        context.update_alert_settings(AlertSettings(sendgrid_api_key="SG.abcdefghijklmnop"))

        response = client.post(
            "/settings/alerts",
            json={
                "enabled": True,
                "low_threshold": 40,
                "sendgrid_api_key": "***ijklmnop",
                "charger_control": {"enabled": True, "cooldown_s": 600},
            },
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        current = context.alert_settings
        assert current.enabled is True
        assert current.low_threshold == 40
        assert current.high_threshold == 80
        assert current.sendgrid_api_key == "SG.abcdefghijklmnop"
        assert current.charger_control.enabled is True
        assert current.charger_control.cooldown_s == 600
        assert current.charger_control.low_threshold == 45

        saved = json.loads(settings.alert_settings_path.read_text(encoding="utf-8"))
        assert saved["low_threshold"] == 40
        assert "sendgrid_api_key" not in saved

    def test_new_secret_replaces_old(
        self, client: TestClient, context: MonitorContext
    ) -> None:
        client.post(
            "/settings/alerts",
            json={"charger_control": {"ifttt_webhook_key": "new-ifttt-key"}},
        )

        assert context.alert_settings.charger_control.ifttt_webhook_key == "new-ifttt-key"

    def test_invalid_update_rejected(
        self, client: TestClient, context: MonitorContext
    ) -> None:
        response = client.post(
            "/settings/alerts", json={"daily_summary": {"send_time": "25:00"}}
        )

        assert response.status_code == 422
        assert context.alert_settings.daily_summary.send_time == "20:00"

    def test_history(self, client: TestClient) -> None:
        assert client.get("/settings/alerts/history").json() == {"history": []}


class TestTestEndpoints:
    def test_email_test_reports_failure(self, client: TestClient) -> None:
        body = client.post("/settings/alerts/test").json()

        assert body["success"] is False

    def test_threshold_test(self, client: TestClient, context: MonitorContext) -> None:
        context.update_alert_settings(AlertSettings(enabled=True))

        body = client.post("/settings/alerts/test-threshold", json={"soc": 40}).json()

        assert body["alert_fired"] == "low"
        assert body["charger_action"] is None
        assert body["current_state"]["below_threshold"] is True
        assert body["current_state"]["low_threshold"] == 50
        assert body["charger_state"]["charger_enabled"] is False
        assert client.get("/settings/alerts/history").json()["history"][0]["type"] == "low"

    def test_daily_summary_test_disabled(self, client: TestClient) -> None:
        body = client.post("/settings/daily-summary/test").json()

        assert body["success"] is False


class TestChargerTest:
    def test_disabled_is_400(self, client: TestClient) -> None:
        response = client.post("/settings/charger/test", json={"action": "on"})

        assert response.status_code == 400
        assert "not enabled" in response.json()["detail"]

    def test_invalid_action_is_422(self, client: TestClient) -> None:
        response = client.post("/settings/charger/test", json={"action": "toggle"})

        assert response.status_code == 422

    def test_success(self, client: TestClient, context: MonitorContext) -> None:
        _enable_charger(context)
        context.actuator.trigger = AsyncMock(
            return_value=TriggerResult(ok=True, status_code=200)
        )

        response = client.post("/settings/charger/test", json={"action": "on"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["charger_state"]["is_on"] is True
        assert body["charger_state"]["last_action_reason"] == "Manual test"

    def test_webhook_failure_is_502(
        self, client: TestClient, context: MonitorContext
    ) -> None:
        _enable_charger(context)
        context.actuator.trigger = AsyncMock(
            return_value=TriggerResult(ok=False, status_code=401)
        )

        response = client.post("/settings/charger/test", json={"action": "off"})

        assert response.status_code == 502
        assert "401" in response.json()["detail"]
        assert context.control.state.is_on is False
