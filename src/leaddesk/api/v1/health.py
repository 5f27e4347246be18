"""Health check endpoint.

Liveness only: reports the environment and which persistence branch the
session's synchronizer took. The hosted store is not probed; in remote
mode its failures degrade silently anyway.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from src.leaddesk.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Basic liveness check, no external dependencies touched."""
    settings = get_settings()
    synchronizer = getattr(request.app.state, "synchronizer", None)
    if synchronizer is None:
        store = "uninitialized"
    else:
        store = "remote" if synchronizer.is_remote else "local"
    return {"status": "ok", "environment": settings.ENVIRONMENT.value, "store": store}
