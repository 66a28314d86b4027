"""
SolarAssistant metric key map -- single source of truth.

Defines the MQTT topic keys the monitor reacts to, which of them are archived
as time series (the tracked allow-list), and which cumulative-energy counters
get a daily baseline.

References:
    - SolarAssistant MQTT integration topic layout
      (``solar_assistant/<device>/<metric>/state``)

CHANGELOG:
- 2026-10-03: Add per-battery metrics to the tracked allow-list (STORY-004)
- 2026-10-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MetricDef:
    """Definition of a single telemetry metric.

    Attributes:
        key: Full MQTT topic used as the cache/archive key.
        unit: Engineering unit string (e.g. ``"W"``, ``"kWh"``, ``"%"``).
        tracked: Whether the metric is archived as a time series.
        description: Free-text description of the metric.
    """

    key: str
    unit: str
    tracked: bool = False
    description: str = ""


_PREFIX = "solar_assistant"


def _topic(device: str, name: str) -> str:
    return f"{_PREFIX}/{device}/{name}/state"


# ---------------------------------------------------------------------------
# Inverter / bank totals
# ---------------------------------------------------------------------------

PV_POWER = _topic("inverter_1", "pv_power")
PV_POWER_1 = _topic("inverter_1", "pv_power_1")
PV_POWER_2 = _topic("inverter_1", "pv_power_2")
LOAD_POWER = _topic("inverter_1", "load_power")
BATTERY_VOLTAGE = _topic("inverter_1", "battery_voltage")
BATTERY_CURRENT = _topic("inverter_1", "battery_current")
BATTERY_SOC = _topic("total", "battery_state_of_charge")
BATTERY_POWER = _topic("total", "battery_power")
BATTERY_TEMPERATURE = _topic("total", "battery_temperature")
PV_ENERGY = _topic("total", "pv_energy")
LOAD_ENERGY = _topic("total", "load_energy")
BATTERY_ENERGY_IN = _topic("total", "battery_energy_in")
BATTERY_ENERGY_OUT = _topic("total", "battery_energy_out")

BATTERY_IDS: tuple[int, ...] = (1, 2, 3)

_BANK_METRICS: list[MetricDef] = [
    MetricDef(PV_POWER, "W", tracked=True, description="Total solar production"),
    MetricDef(PV_POWER_1, "W", tracked=True, description="Solar array 1 production"),
    MetricDef(PV_POWER_2, "W", tracked=True, description="Solar array 2 production"),
    MetricDef(LOAD_POWER, "W", tracked=True, description="House load consumption"),
    MetricDef(BATTERY_SOC, "%", tracked=True, description="Battery state of charge"),
    MetricDef(
        BATTERY_POWER,
        "W",
        tracked=True,
        description="Battery power (positive=charging, negative=discharging)",
    ),
    MetricDef(BATTERY_TEMPERATURE, "F", tracked=True, description="Bank temperature"),
    MetricDef(BATTERY_CURRENT, "A", tracked=True, description="Bank current"),
    MetricDef(BATTERY_VOLTAGE, "V", description="Bank voltage"),
    MetricDef(PV_ENERGY, "kWh", description="Cumulative solar energy"),
    MetricDef(LOAD_ENERGY, "kWh", description="Cumulative load energy"),
    MetricDef(BATTERY_ENERGY_IN, "kWh", description="Cumulative battery charge"),
    MetricDef(BATTERY_ENERGY_OUT, "kWh", description="Cumulative battery discharge"),
]

# ---------------------------------------------------------------------------
# Individual battery modules
# ---------------------------------------------------------------------------

_BATTERY_FIELDS: tuple[tuple[str, str], ...] = (
    ("voltage", "V"),
    ("current", "A"),
    ("temperature", "F"),
    ("state_of_charge", "%"),
    ("power", "W"),
)

_BATTERY_METRICS: list[MetricDef] = [
    MetricDef(
        _topic(f"battery_{num}", field),
        unit,
        tracked=True,
        description=f"Battery {num} {field.replace('_', ' ')}",
    )
    for num in BATTERY_IDS
    for field, unit in _BATTERY_FIELDS
]

ALL_METRICS: dict[str, MetricDef] = {
    m.key: m for m in (*_BANK_METRICS, *_BATTERY_METRICS)
}
"""All known metrics keyed by topic."""

TRACKED_METRICS: tuple[str, ...] = tuple(
    m.key for m in ALL_METRICS.values() if m.tracked
)
"""Allow-list of metrics archived as time series."""

CUMULATIVE_ENERGY_METRICS: dict[str, str | None] = {
    PV_ENERGY: PV_POWER,
    LOAD_ENERGY: LOAD_POWER,
    BATTERY_ENERGY_IN: None,
    BATTERY_ENERGY_OUT: None,
}
"""Maps cumulative-energy counter -> power series used to rebuild its baseline."""

ARRAY_METRICS: dict[str, str] = {
    "array1": PV_POWER_1,
    "array2": PV_POWER_2,
}


def battery_metric(num: int, field: str) -> str:
    """Return the topic for a per-battery field (e.g. ``battery_metric(2, "power")``)."""
    return _topic(f"battery_{num}", field)
