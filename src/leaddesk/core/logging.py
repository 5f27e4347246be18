"""Structured logging setup.

JSON lines in production, console output elsewhere. Every event carries
the service name and, once the synchronizer branch is known, the store
mode ("remote" or "local") so log lines from the two branches can be told
apart without per-call binding.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from src.leaddesk.config import Environment, get_settings

SERVICE_NAME = "leaddesk"


def service_context(store_mode: str | None = None) -> Processor:
    """Build a processor stamping ``service`` and ``store_mode`` onto each event.

    Values already on the event (e.g. from the request middleware) win.
    """

    def processor(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        if store_mode is not None:
            event_dict.setdefault("store_mode", store_mode)
        return event_dict

    return processor


def configure_structlog(store_mode: str | None = None) -> None:
    """Configure structlog for the current environment.

    Args:
        store_mode: "remote" or "local"; omitted before the synchronizer exists.
    """
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        service_context(store_mode),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == Environment.production:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
