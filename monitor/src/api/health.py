"""
Health check endpoint for the monitor API.

Provides a simple GET /health endpoint returning the daemon's liveness
figures with HTTP 200. Intended for Docker HEALTHCHECK and internal
monitoring.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-024)

TODO:
- None
"""

from fastapi import APIRouter

from monitor.src.api.deps import Context

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(context: Context) -> dict:
    """Return the health status.

    Returns:
        dict: ``status`` plus the live health figures.
    """
    last_sample = context.pipeline.last_update
    return {
        "status": "ok",
        "last_sample_ts": last_sample.isoformat() if last_sample else None,
        "last_persist_ts": context.health.as_dict()["last_persist_ts"],
        "message_count": context.pipeline.message_count,
        "archived_points": context.archive.point_count(),
    }
