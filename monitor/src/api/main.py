"""
FastAPI application factory for the monitor API.

The app is built around an already-loaded MonitorContext and is served by
uvicorn inside the daemon's own event loop, so route handlers and the
ingestion pipeline share the same in-memory state.

CHANGELOG:
- 2026-10-18: Register battery data route (STORY-025)
- 2026-10-17: Initial creation (STORY-024)
"""

import logging

from fastapi import FastAPI

from monitor.src.api.data import router as data_router
from monitor.src.api.health import router as health_router
from monitor.src.api.settings import router as settings_router
from monitor.src.context import MonitorContext

logger = logging.getLogger(__name__)


def create_app(context: MonitorContext) -> FastAPI:
    """Build the API application for *context*.

    Args:
        context: The process-wide monitor context.

    Returns:
        FastAPI: The configured application.
    """
    app = FastAPI(
        title="Solar Monitor API",
        description="Live telemetry, history and alert settings for a SolarAssistant site.",
        version="0.1.0",
    )
    app.state.context = context

    app.include_router(health_router)
    app.include_router(data_router)
    app.include_router(settings_router)

    @app.get("/")
    async def root() -> dict:
        """Root health check endpoint."""
        return {"status": "ok"}

    logger.info("Monitor API ready")
    return app
