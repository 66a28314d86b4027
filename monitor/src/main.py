"""
Monitor daemon main loop for the SolarAssistant telemetry monitor.

Runs these concurrent asyncio loops around one MonitorContext:
1. **Ingest loop**: the MQTT source pushes every message through the
   Pipeline (cache, archive, daily stats, then alert/control/peak reactions).
2. **Persist loop**: every ``save_interval_s`` rolls the daily stats over if
   the date changed, prunes the archive to its retention window, saves the
   archive and the state file, and rewrites the health file.
3. **Weather loop**: refreshes current conditions every ``weather_interval_s``.
4. **Summary loop**: sleeps until the configured send time, emails the daily
   summary and reschedules itself.
5. **API server**: uvicorn serving the read/control API, when enabled.

Every loop is resilient: an exception in one iteration is logged and does
not crash the loop or affect the others. Graceful shutdown on SIGTERM/SIGINT
sets a shared asyncio.Event; loops finish their current iteration, pending
reaction tasks are drained and one final persist is attempted before exit.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-17: Serve the API from the daemon event loop (STORY-024)
- 2026-10-16: Add weather and daily-summary loops (STORY-023)
- 2026-10-16: Initial creation (STORY-023)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from monitor.src.config import MonitorSettings
    from monitor.src.context import MonitorContext
    from monitor.src.ingest import MqttSource

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging() -> None:
    """Configure structured JSON logging for the monitor daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: MonitorSettings) -> None:
    """Log a config summary at startup, excluding secrets.

    Credentials (MQTT password, IFTTT key, SendGrid key) are reduced to a
    length + hash fingerprint.
    """
    logger.info(
        "Monitor daemon starting with config: "
        "mqtt_broker=%s:%s, mqtt_topic=%s, mqtt_username=%s, "
        "data_dir=%s, archive_interval_s=%s, save_interval_s=%s, "
        "retention_days=%s, max_points_per_metric=%s, timezone=%s, "
        "weather_interval_s=%s, outbound_timeout_s=%s, "
        "api_enabled=%s, api=%s:%s, "
        "mqtt_password_masked=%s, ifttt_key_masked=%s, sendgrid_key_masked=%s",
        settings.mqtt_broker_host,
        settings.mqtt_broker_port,
        settings.mqtt_topic,
        settings.mqtt_username,
        settings.data_dir,
        settings.archive_interval_s,
        settings.save_interval_s,
        settings.retention_days,
        settings.max_points_per_metric,
        settings.timezone,
        settings.weather_interval_s,
        settings.outbound_timeout_s,
        settings.api_enabled,
        settings.api_host,
        settings.api_port,
        _masked_token(settings.mqtt_password),
        _masked_token(settings.ifttt_webhook_key),
        _masked_token(settings.sendgrid_api_key),
    )


# ---------------------------------------------------------------------------
# Single-iteration functions (easily testable)
# ---------------------------------------------------------------------------


async def _persist_once(
    context: MonitorContext, now: datetime | None = None
) -> bool:
    """Execute a single rollover-prune-persist cycle.

    Catches all exceptions so that the caller's loop is never broken. The
    health file is updated after every attempt.

    Returns:
        True if the archive was saved.
    """
    if now is None:
        now = datetime.now(tz=UTC)
    saved = False
    try:
        context.daily_stats.rollover(now)
        context.archive.prune(now=now)
        saved = await context.persist_archive()
        await context.save_state()
    except Exception:
        logger.error("Persist cycle error", exc_info=True)

    try:
        context.health.update(
            last_sample=context.pipeline.last_update,
            message_count=context.pipeline.message_count,
            archived_points=context.archive.point_count(),
            persisted=saved,
        )
    except Exception:
        logger.warning("Failed to write health file", exc_info=True)
    return saved


async def _weather_once(context: MonitorContext) -> bool:
    """Refresh the weather snapshot; keeps the previous one on failure."""
    try:
        snapshot = await context.weather_client.fetch()
    except Exception:
        logger.error("Weather refresh error", exc_info=True)
        return False
    if snapshot is None:
        return False
    context.weather = snapshot
    return True


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


async def _wait_or_shutdown(shutdown_event: asyncio.Event, timeout: float) -> None:
    # Use wait with timeout so we can check shutdown between sleeps
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(shutdown_event.wait(), timeout=timeout)


async def _persist_loop(
    *,
    context: MonitorContext,
    save_interval_s: float,
    shutdown_event: asyncio.Event,
) -> None:
    """Run the persist loop until shutdown_event is set."""
    logger.info("Persist loop started (interval=%ss)", save_interval_s)
    while not shutdown_event.is_set():
        await _wait_or_shutdown(shutdown_event, save_interval_s)
        if shutdown_event.is_set():
            break
        await _persist_once(context)
    logger.info("Persist loop stopped")


async def _weather_loop(
    *,
    context: MonitorContext,
    weather_interval_s: float,
    shutdown_event: asyncio.Event,
) -> None:
    """Refresh weather immediately and then every weather_interval_s."""
    logger.info("Weather loop started (interval=%ss)", weather_interval_s)
    while not shutdown_event.is_set():
        await _weather_once(context)
        await _wait_or_shutdown(shutdown_event, weather_interval_s)
    logger.info("Weather loop stopped")


async def _summary_loop(
    *,
    context: MonitorContext,
    shutdown_event: asyncio.Event,
) -> None:
    """Send the daily summary at the configured time, once per day."""
    logger.info("Daily summary loop started")
    while not shutdown_event.is_set():
        delay = context.summary.seconds_until_next()
        logger.info("Next daily summary in %.0fs", delay)
        await _wait_or_shutdown(shutdown_event, delay)
        if shutdown_event.is_set():
            break
        try:
            await context.summary.send()
        except Exception:
            logger.error("Daily summary error", exc_info=True)
        # Step past the send minute before computing the next delay.
        await _wait_or_shutdown(shutdown_event, 1.0)
    logger.info("Daily summary loop stopped")


async def _ingest_loop(
    *,
    source: MqttSource,
    shutdown_event: asyncio.Event,
) -> None:
    """Run the MQTT source until shutdown, then cancel its subscription."""
    task = asyncio.create_task(source.run(shutdown_event))
    await shutdown_event.wait()
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    logger.info("Ingest loop stopped")


async def _api_loop(
    *,
    context: MonitorContext,
    shutdown_event: asyncio.Event,
) -> None:
    """Serve the read/control API with uvicorn until shutdown."""
    import uvicorn

    from monitor.src.api.main import create_app

    config = uvicorn.Config(
        create_app(context),
        host=context.settings.api_host,
        port=context.settings.api_port,
        log_config=None,
    )
    server = uvicorn.Server(config)
    task = asyncio.create_task(server.serve())
    await shutdown_event.wait()
    server.should_exit = True
    with contextlib.suppress(Exception):
        await task
    logger.info("API server stopped")


# ---------------------------------------------------------------------------
# Concurrent runner with graceful shutdown
# ---------------------------------------------------------------------------


async def run_loops(
    *,
    context: MonitorContext,
    shutdown_event: asyncio.Event,
    source: MqttSource | None = None,
) -> None:
    """Run all daemon loops concurrently until shutdown.

    When the shutdown_event is set every loop finishes its current iteration,
    pending reaction tasks are drained, then a final persist is attempted.

    Args:
        context: The monitor context.
        shutdown_event: Event to signal graceful shutdown.
        source: MQTT source, or None to run without ingestion.
    """
    settings = context.settings
    logger.info("Starting monitor loops")

    loops = [
        _persist_loop(
            context=context,
            save_interval_s=settings.save_interval_s,
            shutdown_event=shutdown_event,
        ),
        _weather_loop(
            context=context,
            weather_interval_s=settings.weather_interval_s,
            shutdown_event=shutdown_event,
        ),
        _summary_loop(context=context, shutdown_event=shutdown_event),
    ]
    if source is not None:
        loops.append(_ingest_loop(source=source, shutdown_event=shutdown_event))
    if settings.api_enabled:
        loops.append(_api_loop(context=context, shutdown_event=shutdown_event))

    await asyncio.gather(*loops)

    logger.info("Draining %d pending reaction tasks", context.pipeline.pending)
    await context.pipeline.drain()
    logger.info("Attempting final persist before exit")
    await _persist_once(context)
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build the context, run loops.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    configure_logging()

    from monitor.src.config import MonitorSettings
    from monitor.src.context import MonitorContext
    from monitor.src.ingest import MqttSource

    settings = MonitorSettings()
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    context = MonitorContext.load(settings)
    source = MqttSource(
        context.pipeline,
        hostname=settings.mqtt_broker_host,
        port=settings.mqtt_broker_port,
        topic=settings.mqtt_topic,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
    )
    context.source = source

    await run_loops(context=context, shutdown_event=shutdown_event, source=source)


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the monitor daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
