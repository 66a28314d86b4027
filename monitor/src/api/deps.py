"""
FastAPI dependency injection providers.

Route handlers receive the process-wide MonitorContext, stored on
``app.state.context`` by :func:`monitor.src.api.main.create_app`.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-024)
"""

from typing import Annotated

from fastapi import Depends, Request

from monitor.src.context import MonitorContext


def get_context(request: Request) -> MonitorContext:
    """Return the MonitorContext attached to the application."""
    return request.app.state.context


# Type alias for injecting the context via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(context: Context):
#       context.cache.snapshot()
Context = Annotated[MonitorContext, Depends(get_context)]
