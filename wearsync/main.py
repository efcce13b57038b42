"""wearsync API — FastAPI application entry point.

Run locally:
    uvicorn wearsync.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from wearsync.adapters import build_adapters
from wearsync.config import get_settings
from wearsync.errors import WearSyncError
from wearsync.routers import devices, health
from wearsync.service import WearablesService
from wearsync.store import InMemoryDeviceStore
from wearsync.sync.scheduler import SyncScheduler

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("wearsync")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.

    Builds the default wiring (in-memory store, configured vendor adapters)
    unless a service was supplied to ``create_app``.
    """
    settings = get_settings()
    logger.info("Starting wearsync API v%s [%s]", settings.app_version, settings.environment)

    if getattr(app.state, "service", None) is None:
        app.state.service = WearablesService(
            InMemoryDeviceStore(),
            build_adapters(settings=settings),
            sync_interval=timedelta(minutes=settings.sync_interval_minutes),
        )
    if getattr(app.state, "scheduler", None) is None:
        app.state.scheduler = SyncScheduler(
            app.state.service,
            max_concurrent=settings.max_concurrent_syncs,
            refresh_buffer_seconds=settings.token_refresh_buffer_seconds,
        )
    yield
    logger.info("wearsync API shut down")


# ---------- Error handling ----------

async def wearsync_error_handler(request: Request, exc: WearSyncError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ---------- App factory ----------

def create_app(
    service: WearablesService | None = None,
    scheduler: SyncScheduler | None = None,
) -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="wearsync API",
        description=(
            "Wearable device registration, vendor data sync, validation and "
            "daily aggregation."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.scheduler = scheduler or (SyncScheduler(service) if service else None)

    app.add_exception_handler(WearSyncError, wearsync_error_handler)

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(devices.router, prefix="/api/v1")

    return app


app = create_app()
