"""FastAPI application factory.

Creates the app with logging middleware, CORS, lifespan events for the
session synchronizer, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.leaddesk.api.middleware.logging import LoggingMiddleware
from src.leaddesk.api.v1.router import router as v1_router
from src.leaddesk.config import Settings, get_settings
from src.leaddesk.core.logging import configure_structlog
from src.leaddesk.crm.supabase import SupabaseGateway
from src.leaddesk.crm.synchronizer import EntitySynchronizer

logger = structlog.get_logger(__name__)


def build_synchronizer(settings: Settings) -> EntitySynchronizer:
    """Build the session synchronizer, remote-backed only when the store is configured."""
    gateway = None
    if settings.supabase_configured():
        gateway = SupabaseGateway(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            timeout=settings.SUPABASE_TIMEOUT,
        )
    return EntitySynchronizer(gateway)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build and load the synchronizer, close the gateway on shutdown."""
    settings = get_settings()
    configure_structlog()

    owned: EntitySynchronizer | None = None
    if getattr(app.state, "synchronizer", None) is None:
        owned = build_synchronizer(settings)
        app.state.synchronizer = owned

    store_mode = "remote" if app.state.synchronizer.is_remote else "local"
    configure_structlog(store_mode=store_mode)
    if owned is not None:
        await owned.load_all()

    logger.info("app.started", environment=settings.ENVIRONMENT.value, store=store_mode)

    yield

    if owned is not None:
        await owned.aclose()
    logger.info("app.stopped")


def create_app(synchronizer: EntitySynchronizer | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        synchronizer: Pre-built synchronizer (tests inject one). When None,
            the lifespan builds one from settings and loads it.
    """
    settings = get_settings()

    app = FastAPI(
        title="Lead Desk API",
        version="0.1.0",
        description="CRM, pipeline and outreach state for construction lead generation",
        lifespan=lifespan,
    )
    app.state.synchronizer = synchronizer

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (outermost -- logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router)

    return app


# Module-level app for uvicorn
app = create_app()
