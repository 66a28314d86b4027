"""
Telemetry ingestion: MQTT subscription and the per-sample pipeline.

Pipeline.process(sample) runs the inline steps for one sample in order
(cache put, archive record, daily-stats observe) and then the reactions:
battery-SOC samples drive the alert engine and the charger control loop,
battery-power samples drive the peak-discharge monitor.

Pipeline.handle(sample) runs the same inline steps but dispatches the
reactions as tracked background tasks, so a slow webhook or email call does
not hold up the next message. Pipeline.drain() awaits whatever is still
pending (used at shutdown and in tests).

MqttSource subscribes to the SolarAssistant topic filter with aiomqtt and
reconnects after 5 seconds on any broker error.

CHANGELOG:
- 2026-10-15: Dispatch reactions as tracked tasks (STORY-020)
- 2026-10-14: Initial creation (STORY-020)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import aiomqtt

from monitor.src.metrics import BATTERY_POWER, BATTERY_SOC
from monitor.src.models import Sample

if TYPE_CHECKING:
    from monitor.src.alerts import AlertEngine
    from monitor.src.analytics import EnergyAnalytics
    from monitor.src.archive import ArchiveStore
    from monitor.src.cache import SampleCache
    from monitor.src.control import ControlLoop
    from monitor.src.peak_discharge import PeakDischargeMonitor

logger = logging.getLogger(__name__)

RECONNECT_DELAY_S = 5.0
_LOG_EVERY_N = 10


def parse_payload(payload: bytes | bytearray | str | None) -> tuple[Any, str]:
    """Decode an MQTT payload.

    Returns:
        ``(value, raw)`` where *value* is the JSON-decoded payload when it
        parses, otherwise the raw text.
    """
    if payload is None:
        raw = ""
    elif isinstance(payload, (bytes, bytearray)):
        raw = bytes(payload).decode("utf-8", errors="replace")
    else:
        raw = str(payload)
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return value, raw


class Pipeline:
    """Per-sample processing shared by every ingestion source.

    Args:
        cache: Latest-value cache.
        archive: Time-series archive.
        analytics: Daily stats / energy analytics.
        alerts: Battery threshold alert engine.
        control: Charger control loop.
        peak_discharge: Peak-hours discharge monitor.
    """

    def __init__(
        self,
        *,
        cache: SampleCache,
        archive: ArchiveStore,
        analytics: EnergyAnalytics,
        alerts: AlertEngine,
        control: ControlLoop,
        peak_discharge: PeakDischargeMonitor,
    ) -> None:
        self._cache = cache
        self._archive = archive
        self._analytics = analytics
        self._alerts = alerts
        self._control = control
        self._peak_discharge = peak_discharge
        self._tasks: set[asyncio.Task[Any]] = set()
        self.message_count = 0
        self.last_update: dt.datetime | None = None

    @property
    def pending(self) -> int:
        """Number of reaction tasks still running."""
        return len(self._tasks)

    def ingest(self, sample: Sample, now: dt.datetime | None = None) -> None:
        """Run the inline steps for *sample*: cache, archive, daily stats."""
        if now is None:
            now = dt.datetime.now(tz=dt.UTC)
        self.message_count += 1
        self._cache.put_sample(sample)
        self._archive.record(sample.metric_key, sample.value, sample.timestamp, now=now)
        self._analytics.observe(sample.metric_key, sample.value, sample.timestamp)
        self.last_update = now
        if self.message_count % _LOG_EVERY_N == 1:
            logger.info(
                "Message #%d topic=%s value=%s",
                self.message_count,
                sample.metric_key,
                (sample.raw or str(sample.value))[:100],
            )

    def reactions(self, sample: Sample) -> list[Callable[[], Awaitable[Any]]]:
        """Return the reaction coroutines *sample* should trigger."""
        ts = sample.timestamp
        if sample.metric_key == BATTERY_SOC:
            return [
                lambda: self._alerts.check(sample.value, ts),
                lambda: self._control.evaluate(sample.value, ts),
            ]
        if sample.metric_key == BATTERY_POWER:
            return [lambda: self._peak_discharge.check(sample.value, ts)]
        return []

    async def process(self, sample: Sample, now: dt.datetime | None = None) -> None:
        """Run every step for *sample*, awaiting the reactions in order."""
        self.ingest(sample, now)
        for reaction in self.reactions(sample):
            await _guarded(reaction, sample.metric_key)

    def handle(self, sample: Sample, now: dt.datetime | None = None) -> None:
        """Run the inline steps and schedule the reactions in the background."""
        self.ingest(sample, now)
        reactions = self.reactions(sample)
        if not reactions:
            return
        task = asyncio.create_task(_run_in_order(reactions, sample.metric_key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for all pending reaction tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def _guarded(reaction: Callable[[], Awaitable[Any]], metric_key: str) -> None:
    try:
        await reaction()
    except Exception:
        logger.error("Error processing reaction for %s", metric_key, exc_info=True)


async def _run_in_order(
    reactions: list[Callable[[], Awaitable[Any]]], metric_key: str
) -> None:
    for reaction in reactions:
        await _guarded(reaction, metric_key)


class MqttSource:
    """aiomqtt subscriber feeding a Pipeline.

    Args:
        pipeline: Pipeline receiving every message.
        hostname: Broker hostname.
        port: Broker port.
        topic: Topic filter to subscribe to.
        username: Optional broker username.
        password: Optional broker password.
        identifier: Optional MQTT client id.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        *,
        hostname: str,
        port: int = 1883,
        topic: str = "solar_assistant/#",
        username: str | None = None,
        password: str | None = None,
        identifier: str | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._hostname = hostname
        self._port = port
        self._topic = topic
        self._username = username
        self._password = password
        self._identifier = identifier
        self.connection_status = "Connecting..."

    def on_message(self, topic: str, payload: bytes | bytearray | str | None) -> Sample:
        """Turn one MQTT message into a Sample and hand it to the pipeline."""
        value, raw = parse_payload(payload)
        now = dt.datetime.now(tz=dt.UTC)
        sample = Sample(metric_key=topic, value=value, timestamp=now, raw=raw)
        self._pipeline.handle(sample, now)
        return sample

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Consume messages, reconnecting on broker errors, until shutdown.

        The caller cancels this coroutine to stop it mid-subscription; the
        shutdown event only ends the reconnect wait.
        """
        logger.info(
            "MQTT source starting (broker=%s:%s, topic=%s)",
            self._hostname,
            self._port,
            self._topic,
        )
        while not shutdown_event.is_set():
            try:
                async with aiomqtt.Client(
                    hostname=self._hostname,
                    port=self._port,
                    username=self._username,
                    password=self._password,
                    identifier=self._identifier,
                ) as client:
                    await client.subscribe(self._topic)
                    self.connection_status = "Connected"
                    logger.info("Connected to MQTT broker, subscribed to %s", self._topic)

                    async for message in client.messages:
                        try:
                            self.on_message(str(message.topic), message.payload)
                        except Exception:
                            logger.error(
                                "Error processing message from %s",
                                message.topic,
                                exc_info=True,
                            )
            except aiomqtt.MqttError as exc:
                self.connection_status = f"Error: {exc}"
                logger.error("MQTT connection error: %s", exc)
            except Exception:
                self.connection_status = "Error"
                logger.error("Unexpected error in MQTT client", exc_info=True)

            if shutdown_event.is_set():
                break
            self.connection_status = "Reconnecting..."
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(shutdown_event.wait(), timeout=RECONNECT_DELAY_S)
        logger.info("MQTT source stopped")
