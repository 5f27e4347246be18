"""Structured request logging middleware.

Logs every request with method, path, status_code, duration_ms and a
per-request UUID, which is also returned to the client as X-Request-ID.
Store mode ("remote" / "local") is attached so log lines from a
local-only session are easy to tell apart.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = structlog.get_logger(__name__)


def _store_mode(request: Request) -> str | None:
    synchronizer = getattr(request.app.state, "synchronizer", None)
    if synchronizer is None:
        return None
    return "remote" if synchronizer.is_remote else "local"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs every request with timing."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request.error",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                request_id=request_id,
            )
            raise

        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id

        log_method = logger.info if response.status_code < 400 else logger.warning
        if response.status_code >= 500:
            log_method = logger.error

        log_method(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            store_mode=_store_mode(request),
            request_id=request_id,
        )
        return response
