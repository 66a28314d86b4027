"""
In-memory latest-value cache for every telemetry metric.

The cache is the single source of "current value" truth: every ingested
sample overwrites the entry for its metric key, whether or not the value is
numeric. Nothing here is persisted; the cache lives for the process uptime.

CHANGELOG:
- 2026-10-03: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import math
from typing import Any

from monitor.src.models import Sample


def to_float(value: Any) -> float | None:
    """Parse a telemetry value as a finite float.

    Accepts ints, floats and numeric strings (surrounding whitespace allowed).
    Booleans, NaN, infinities and anything unparseable return ``None``.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(result):
        return None
    return result


class SampleCache:
    """Latest Sample per metric key.

    Usage::

        cache = SampleCache()
        cache.put("solar_assistant/total/battery_power/state", -420, now)
        cache.numeric("solar_assistant/total/battery_power/state")  # -420.0
    """

    def __init__(self) -> None:
        self._samples: dict[str, Sample] = {}

    def __len__(self) -> int:
        return len(self._samples)

    def __contains__(self, metric_key: object) -> bool:
        return metric_key in self._samples

    def put(
        self,
        metric_key: str,
        value: Any,
        timestamp: dt.datetime,
        raw: str | None = None,
    ) -> Sample:
        """Overwrite the entry for *metric_key* and return the stored Sample."""
        sample = Sample(metric_key=metric_key, value=value, timestamp=timestamp, raw=raw)
        self._samples[metric_key] = sample
        return sample

    def put_sample(self, sample: Sample) -> None:
        """Overwrite the entry for ``sample.metric_key`` with *sample*."""
        self._samples[sample.metric_key] = sample

    def get(self, metric_key: str) -> Sample | None:
        return self._samples.get(metric_key)

    def numeric(self, metric_key: str) -> float | None:
        """Return the cached value for *metric_key* as a float, if parseable."""
        sample = self._samples.get(metric_key)
        if sample is None:
            return None
        return to_float(sample.value)

    def snapshot(self) -> dict[str, Sample]:
        """Return a shallow copy of the whole cache."""
        return dict(self._samples)
