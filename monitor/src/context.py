"""
Process-wide monitor context.

MonitorContext owns every stateful component and wires them together once,
at startup, via :meth:`MonitorContext.load` (load from disk or default).
Components receive their collaborators explicitly.

The coarse ``lock`` serialises persistence snapshots (archive + state file)
between the periodic persist cycle, the control loop and the API.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-022)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from monitor.src.actuator import IftttActuator
from monitor.src.alerts import AlertEngine, AlertHistory
from monitor.src.analytics import EnergyAnalytics
from monitor.src.archive import ArchiveStore
from monitor.src.cache import SampleCache
from monitor.src.config import MonitorSettings
from monitor.src.control import ControlLoop
from monitor.src.daily_stats import DailyStatsTracker, StateFile
from monitor.src.health import HealthWriter
from monitor.src.ingest import Pipeline
from monitor.src.metrics import BATTERY_TEMPERATURE
from monitor.src.models import PersistedState, WeatherSnapshot
from monitor.src.notify import Notifier
from monitor.src.peak_discharge import PeakDischargeMonitor
from monitor.src.settings_store import AlertSettings, AlertSettingsStore
from monitor.src.summary import DailySummary, DailySummaryDispatcher, build_daily_summary
from monitor.src.weather import WeatherClient

if TYPE_CHECKING:
    from monitor.src.ingest import MqttSource

logger = logging.getLogger(__name__)


class MonitorContext:
    """Every stateful component of the monitor, wired together.

    Use :meth:`load` rather than the constructor.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        *,
        archive: ArchiveStore,
        state_file: StateFile,
        persisted: PersistedState,
        settings_store: AlertSettingsStore,
        alert_settings: AlertSettings,
    ) -> None:
        self.settings = settings
        self.tz = settings.tz
        self.lock = asyncio.Lock()
        self.started_at = dt.datetime.now(tz=dt.UTC)

        self.cache = SampleCache()
        self.archive = archive
        self.state_file = state_file
        self.settings_store = settings_store
        self.alert_settings = alert_settings
        self.weather: WeatherSnapshot | None = None
        self.source: MqttSource | None = None
        self.history = AlertHistory()
        self.daily_stats = DailyStatsTracker(self.tz, persisted.daily_stats)

        self.notifier = Notifier(self.current_alert_settings, settings.outbound_timeout_s)
        self.actuator = IftttActuator(settings.outbound_timeout_s)
        self.weather_client = WeatherClient(
            settings.weather_latitude,
            settings.weather_longitude,
            settings.outbound_timeout_s,
        )

        self.control = ControlLoop(
            settings=self.current_alert_settings,
            actuator=self.actuator,
            notifier=self.notifier,
            state=persisted.charger_state,
            temperature=self.battery_temperature,
            persist=self.save_state,
        )
        self.alerts = AlertEngine(self.current_alert_settings, self.notifier, self.history)
        self.analytics = EnergyAnalytics(
            cache=self.cache,
            archive=self.archive,
            daily_stats=self.daily_stats,
            charger_state=lambda: self.control.state,
            tz=self.tz,
            battery_capacity_ah=settings.battery_capacity_ah,
            default_battery_voltage=settings.default_battery_voltage,
        )
        self.peak_discharge = PeakDischargeMonitor(
            settings=self.current_alert_settings,
            notifier=self.notifier,
            history=self.history,
            cache=self.cache,
            tz=self.tz,
            weather=lambda: self.weather,
        )
        self.summary = DailySummaryDispatcher(
            settings=self.current_alert_settings,
            notifier=self.notifier,
            history=self.history,
            build=self.build_summary,
            tz=self.tz,
        )
        self.pipeline = Pipeline(
            cache=self.cache,
            archive=self.archive,
            analytics=self.analytics,
            alerts=self.alerts,
            control=self.control,
            peak_discharge=self.peak_discharge,
        )
        self.health = HealthWriter(settings.health_path)

    @classmethod
    def load(cls, settings: MonitorSettings) -> MonitorContext:
        """Build the context, loading persisted state or falling back to defaults."""
        Path(settings.data_dir).mkdir(parents=True, exist_ok=True)

        archive = ArchiveStore(
            settings.archive_path,
            archive_interval_s=settings.archive_interval_s,
            max_points=settings.max_points_per_metric,
            retention_days=settings.retention_days,
        )
        archive.load()

        state_file = StateFile(settings.state_path)
        persisted = state_file.load()

        settings_store = AlertSettingsStore(
            settings.alert_settings_path,
            sendgrid_api_key=settings.sendgrid_api_key,
            ifttt_webhook_key=settings.ifttt_webhook_key,
        )
        alert_settings = settings_store.load()

        context = cls(
            settings,
            archive=archive,
            state_file=state_file,
            persisted=persisted,
            settings_store=settings_store,
            alert_settings=alert_settings,
        )
        logger.info(
            "Monitor context loaded (archived points=%d, charger=%s)",
            archive.point_count(),
            "ON" if context.control.state.is_on else "OFF",
        )
        return context

    # ------------------------------------------------------------------
    # Accessors handed to components
    # ------------------------------------------------------------------

    def current_alert_settings(self) -> AlertSettings:
        return self.alert_settings

    def battery_temperature(self) -> float | None:
        return self.cache.numeric(BATTERY_TEMPERATURE)

    def build_summary(self, now: dt.datetime) -> DailySummary:
        return build_daily_summary(self.archive, self.weather, now, self.tz)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_alert_settings(self, settings: AlertSettings) -> AlertSettings:
        """Replace the runtime alert settings and save them (without secrets)."""
        self.alert_settings = self.settings_store.apply_env(settings)
        self.settings_store.save(self.alert_settings)
        return self.alert_settings

    def persisted_state(self) -> PersistedState:
        return PersistedState(
            daily_stats=self.daily_stats.stats,
            charger_state=self.control.state,
        )

    async def save_state(self) -> bool:
        """Snapshot daily stats + charger state and write the state file."""
        async with self.lock:
            snapshot = self.persisted_state().model_copy(deep=True)
            return await asyncio.to_thread(self.state_file.save, snapshot)

    async def persist_archive(self) -> bool:
        async with self.lock:
            return await asyncio.to_thread(self.archive.persist)
