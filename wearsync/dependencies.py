"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from wearsync.config import Settings, get_settings
from wearsync.service import WearablesService
from wearsync.sync.scheduler import SyncScheduler


def get_service(request: Request) -> WearablesService:
    """Return the WearablesService created during app startup."""
    return request.app.state.service


def get_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler


# Annotated shortcuts for route signatures
Service = Annotated[WearablesService, Depends(get_service)]
Scheduler = Annotated[SyncScheduler, Depends(get_scheduler)]
AppSettings = Annotated[Settings, Depends(get_settings)]
