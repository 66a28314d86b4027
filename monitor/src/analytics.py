"""
Energy analytics over the sample cache and the archived series.

The module-level functions are pure (no I/O, no clock): trapezoidal energy
integration, power balance, runtime estimation and peak search. The
EnergyAnalytics class binds them to the live cache, archive and daily stats.

Integration rule for consecutive points ``(t0, p0)`` and ``(t1, p1)`` in watts::

    energy_kwh += ((p0 + p1) / 2) * (t1 - t0 in hours) / 1000

Divisions that could hit zero short-circuit to a sentinel (0 % or "N/A")
rather than producing NaN or infinity.

CHANGELOG:
- 2026-10-09: Rebuild missing daily baselines from today's power series (STORY-010)
- 2026-10-08: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from monitor.src.cache import to_float
from monitor.src.metrics import (
    ARRAY_METRICS,
    BATTERY_POWER,
    BATTERY_SOC,
    BATTERY_VOLTAGE,
    CUMULATIVE_ENERGY_METRICS,
    LOAD_POWER,
    PV_POWER,
)
from monitor.src.models import ArchivePoint, ControlState, PeakReading

if TYPE_CHECKING:
    from monitor.src.archive import ArchiveStore
    from monitor.src.cache import SampleCache
    from monitor.src.daily_stats import DailyStatsTracker

logger = logging.getLogger(__name__)

RUNTIME_INDEFINITE = "Indefinite"
RUNTIME_INFINITE = "Infinite"
NOT_AVAILABLE = "N/A"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def integrate_energy_kwh(points: Sequence[ArchivePoint]) -> float:
    """Integrate a power series (W) into energy (kWh) with the trapezoid rule.

    Fewer than two points integrate to 0.
    """
    energy = 0.0
    for prev, curr in zip(points, points[1:]):
        hours = (curr.timestamp - prev.timestamp).total_seconds() / 3600.0
        energy += ((prev.value + curr.value) / 2.0) * hours / 1000.0
    return energy


def peak_of(points: Sequence[ArchivePoint]) -> PeakReading | None:
    """Return the maximum point (first one on ties), or None for no points."""
    if not points:
        return None
    best = points[0]
    for point in points[1:]:
        if point.value > best.value:
            best = point
    return PeakReading(value=best.value, time=best.timestamp)


def power_balance(
    solar: float,
    load: float,
    charger_state: ControlState | None,
    battery_power: float | None,
) -> float:
    """Net power in watts: positive = net charging, negative = net discharging.

    Battery power only counts as an extra input while the external charger is
    ON and the battery is actually charging.
    """
    external = 0.0
    if charger_state is not None and charger_state.is_on and battery_power and battery_power > 0:
        external = battery_power
    return solar + external - load


def format_runtime_hours(hours: float) -> str:
    """Format a runtime in minutes, hours or days depending on magnitude."""
    if hours < 1:
        return f"{round(hours * 60)} min"
    if hours < 24:
        return f"{hours:.1f} hrs"
    return f"{hours / 24:.1f} days"


def estimated_runtime(
    soc: float,
    balance: float,
    capacity_ah: float,
    voltage: float,
) -> str:
    """Estimate how long the bank lasts at the current power balance.

    Returns:
        ``"Indefinite"`` while net charging, ``"Infinite"`` when exactly
        balanced, otherwise the formatted time to empty.
    """
    if balance > 0:
        return RUNTIME_INDEFINITE
    if balance == 0:
        return RUNTIME_INFINITE
    available_wh = capacity_ah * voltage * soc / 100.0
    return format_runtime_hours(available_wh / abs(balance))


def local_day_bounds(
    now: dt.datetime, tz: ZoneInfo | dt.tzinfo
) -> tuple[dt.datetime, dt.datetime]:
    """Return the inclusive ``(start, end)`` of the local calendar day of *now*."""
    local = now.astimezone(tz)
    start = dt.datetime.combine(local.date(), dt.time.min, tzinfo=tz)
    end = start + dt.timedelta(days=1) - dt.timedelta(microseconds=1)
    return start, end


def format_clock(ts: dt.datetime) -> str:
    """Format a time as ``"12:34 PM"``."""
    hour = ts.hour % 12 or 12
    suffix = "PM" if ts.hour >= 12 else "AM"
    return f"{hour}:{ts.minute:02d} {suffix}"


# ---------------------------------------------------------------------------
# Live analytics
# ---------------------------------------------------------------------------


class EnergyAnalytics:
    """Daily energy, peaks, power balance and runtime over live data.

    Args:
        cache: Latest-value cache.
        archive: Archived series.
        daily_stats: Today's baselines and peaks.
        charger_state: Callable returning the current charger ControlState.
        tz: Timezone defining the calendar day.
        battery_capacity_ah: Total bank capacity in amp-hours.
        default_battery_voltage: Used when no bank voltage has been reported.
    """

    def __init__(
        self,
        *,
        cache: SampleCache,
        archive: ArchiveStore,
        daily_stats: DailyStatsTracker,
        charger_state: Callable[[], ControlState],
        tz: ZoneInfo | dt.tzinfo,
        battery_capacity_ah: float = 300.0,
        default_battery_voltage: float = 48.0,
    ) -> None:
        self._cache = cache
        self._archive = archive
        self._daily_stats = daily_stats
        self._charger_state = charger_state
        self._tz = tz
        self._capacity_ah = battery_capacity_ah
        self._default_voltage = default_battery_voltage

    # ------------------------------------------------------------------
    # Ingestion hook
    # ------------------------------------------------------------------

    def observe(self, metric_key: str, value: Any, now: dt.datetime) -> None:
        """Update daily stats for one sample.

        Captures the first baseline of the day for cumulative-energy counters
        and tracks solar peaks. Non-numeric values are ignored.
        """
        number = to_float(value)
        if number is None:
            return
        if metric_key in CUMULATIVE_ENERGY_METRICS:
            if self._daily_stats.baseline(metric_key, now) is None:
                self._resolve_baseline(metric_key, number, now)
        elif metric_key == PV_POWER:
            self._daily_stats.record_power(number, now)
        else:
            self._daily_stats.rollover(now)

    # ------------------------------------------------------------------
    # Energy
    # ------------------------------------------------------------------

    def daily_energy(self, metric_key: str, now: dt.datetime | None = None) -> float:
        """Energy (kWh) accumulated today by a cumulative-energy counter.

        Returns 0.0 when the counter has not been reported. Calling twice
        without new samples yields the same value.
        """
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)
        current = self._cache.numeric(metric_key)
        if current is None:
            return 0.0
        baseline = self._daily_stats.baseline(metric_key, now)
        if baseline is None:
            baseline = self._resolve_baseline(metric_key, current, now)
        return max(0.0, current - baseline)

    def today_series(self, metric_key: str, now: dt.datetime) -> list[ArchivePoint]:
        start, end = local_day_bounds(now, self._tz)
        return self._archive.query(metric_key, start, end)

    def _resolve_baseline(self, metric_key: str, current: float, now: dt.datetime) -> float:
        """Set today's baseline for *metric_key* and return it.

        Prefers ``current - integral(today's power series)`` so a restart in
        the middle of the day keeps counting from midnight; falls back to the
        first-seen value.
        """
        baseline = current
        power_key = CUMULATIVE_ENERGY_METRICS.get(metric_key)
        if power_key is not None:
            points = self.today_series(power_key, now)
            if len(points) > 1:
                produced = integrate_energy_kwh(points)
                baseline = current - produced
                logger.info(
                    "Estimated daily baseline for %s: %.2f kWh (today so far: %.2f kWh)",
                    metric_key,
                    baseline,
                    produced,
                )
        self._daily_stats.set_baseline(metric_key, baseline, now)
        return baseline

    # ------------------------------------------------------------------
    # Peaks
    # ------------------------------------------------------------------

    def peak_power(
        self,
        metric_key: str = PV_POWER,
        since: dt.datetime | None = None,
    ) -> PeakReading | None:
        """Maximum archived value of *metric_key*, optionally since a time."""
        return peak_of(self._archive.query(metric_key, start=since))

    def peak_performance_label(
        self,
        hours: float | None = None,
        now: dt.datetime | None = None,
    ) -> str:
        """Human-readable solar peak, e.g. ``"2450W @ 12:34 PM (Jun 1)"``."""
        since = None
        if hours is not None:
            if now is None:
                now = dt.datetime.now(tz=dt.UTC)
            since = now - dt.timedelta(hours=hours)
        peak = self.peak_power(PV_POWER, since)
        if peak is None or peak.time is None or peak.value <= 0:
            return NOT_AVAILABLE
        local = peak.time.astimezone(self._tz)
        return f"{round(peak.value)}W @ {format_clock(local)} ({local:%b} {local.day})"

    # ------------------------------------------------------------------
    # Balance and runtime
    # ------------------------------------------------------------------

    def current_power_balance(self) -> float | None:
        """Power balance from cached values, or None if solar/load are unknown."""
        solar = self._cache.numeric(PV_POWER)
        load = self._cache.numeric(LOAD_POWER)
        if solar is None or load is None:
            return None
        return power_balance(
            solar, load, self._charger_state(), self._cache.numeric(BATTERY_POWER)
        )

    def battery_runtime(self) -> str:
        """Estimated runtime from cached values, or ``"N/A"``."""
        soc = self._cache.numeric(BATTERY_SOC)
        balance = self.current_power_balance()
        if soc is None or balance is None:
            return NOT_AVAILABLE
        voltage = self._cache.numeric(BATTERY_VOLTAGE) or self._default_voltage
        return estimated_runtime(soc, balance, self._capacity_ah, voltage)

    # ------------------------------------------------------------------
    # Solar arrays
    # ------------------------------------------------------------------

    def array_percentage(self, array: str) -> int:
        """Share (%) of current solar power produced by *array*; 0 if no power."""
        if array not in ARRAY_METRICS:
            return 0
        powers = {name: self._cache.numeric(key) or 0.0 for name, key in ARRAY_METRICS.items()}
        total = sum(powers.values())
        if total == 0:
            return 0
        return round(powers[array] / total * 100)

    def array_24h_peak(self, array: str, now: dt.datetime | None = None) -> float:
        key = ARRAY_METRICS.get(array)
        if key is None:
            return 0.0
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)
        peak = self.peak_power(key, now - dt.timedelta(hours=24))
        return peak.value if peak is not None else 0.0

    def array_performance_percentage(self, array: str, now: dt.datetime | None = None) -> int:
        """Current array power as a % of its 24-hour peak; 0 if no peak."""
        key = ARRAY_METRICS.get(array)
        if key is None:
            return 0
        peak = self.array_24h_peak(array, now)
        if peak <= 0:
            return 0
        current = self._cache.numeric(key) or 0.0
        return round(current / peak * 100)

    def tracking_start_time(self, now: dt.datetime | None = None) -> dt.datetime | None:
        """Timestamp of the first solar point archived today, if any."""
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)
        points = self.today_series(PV_POWER, now)
        return points[0].timestamp if points else None
