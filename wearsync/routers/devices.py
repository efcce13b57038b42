"""Device registration, sync, token refresh and metric read endpoints."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from fastapi import APIRouter, Query

from wearsync.base import MetricType, utc_now
from wearsync.dependencies import Scheduler, Service
from wearsync.models import (
    DeviceCreate,
    DeviceRead,
    MetricRead,
    SyncRequest,
    SyncResultRead,
)

router = APIRouter(prefix="/devices", tags=["devices"])


# ---------- Devices ----------

@router.post("", response_model=DeviceRead, status_code=201)
async def register_device(service: Service, body: DeviceCreate) -> Any:
    device = await service.register_device(body.to_device())
    return DeviceRead.model_validate(device)


@router.get("", response_model=list[DeviceRead])
async def list_devices(service: Service, user_id: str = Query(..., min_length=1)) -> Any:
    """Return the devices connected for ``user_id``."""
    return [DeviceRead.model_validate(d) for d in await service.list_devices(user_id)]


@router.get("/{device_id}", response_model=DeviceRead)
async def get_device(device_id: str, service: Service) -> Any:
    return DeviceRead.model_validate(await service.get_device(device_id))


@router.post("/{device_id}/token/refresh", response_model=DeviceRead)
async def refresh_token(device_id: str, service: Service) -> Any:
    return DeviceRead.model_validate(await service.refresh_device_token(device_id))


# ---------- Sync ----------

@router.post("/{device_id}/sync", response_model=SyncResultRead)
async def sync_device(
    device_id: str, scheduler: Scheduler, body: SyncRequest | None = None
) -> Any:
    """Sync one device now.

    Failures are reported in the body (``success: false``), not as an
    error status.
    """
    options = body.to_options() if body else None
    return await scheduler.sync_device(device_id, options)


# ---------- Metrics ----------

@router.get("/{device_id}/metrics", response_model=list[MetricRead])
async def list_metrics(
    device_id: str,
    service: Service,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    types: list[MetricType] | None = Query(default=None),
) -> Any:
    """Return stored metrics in ``[start, end]`` (default: the last 24 hours)."""
    end = end or utc_now()
    start = start or end - timedelta(days=1)
    await service.get_device(device_id)
    return await service.get_device_metrics(device_id, start, end, types)


@router.get("/{device_id}/metrics/daily", response_model=MetricRead)
async def daily_aggregate(
    device_id: str,
    service: Service,
    day: date = Query(...),
    type: MetricType = Query(...),
) -> Any:
    await service.get_device(device_id)
    return await service.aggregate_metrics(device_id, day, type)
