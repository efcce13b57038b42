"""Pydantic request/response schemas for the HTTP surface."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from wearsync.base import DeviceType, MetricType, SyncOptions, SyncStatus, WearableDevice


class WearSyncBase(BaseModel):
    """Base model with shared config for all wearsync schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------- Devices ----------


class DeviceCreate(WearSyncBase):
    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    type: DeviceType
    manufacturer: str = Field(min_length=1)
    model: str = Field(min_length=1)
    firmware_version: str = Field(min_length=1)
    is_active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_device(self) -> WearableDevice:
        return WearableDevice(**self.model_dump())


class DeviceRead(WearSyncBase):
    """A device as returned to API clients.  Tokens are never exposed."""

    id: str
    user_id: str
    type: DeviceType
    manufacturer: str
    model: str
    firmware_version: str
    is_active: bool
    sync_status: SyncStatus
    registered_at: datetime
    last_sync_at: datetime | None = None
    token_expires_at: datetime | None = None
    is_registered: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------- Metrics ----------


class MetricRead(WearSyncBase):
    id: str
    device_id: str
    type: MetricType
    value: float
    unit: str
    timestamp: datetime
    source: str | None = None
    confidence: float | None = None
    metadata: dict[str, Any] | None = None


# ---------- Sync ----------


class SyncRequest(WearSyncBase):
    start_date: datetime | None = None
    end_date: datetime | None = None
    metric_types: list[MetricType] | None = None

    def to_options(self) -> SyncOptions:
        return SyncOptions(
            start_date=self.start_date,
            end_date=self.end_date,
            metric_types=self.metric_types,
        )


class SyncResultRead(WearSyncBase):
    device_id: str
    success: bool
    metrics_count: int
    synced_at: datetime
    error_message: str | None = None
    next_sync_at: datetime | None = None


# ---------- System ----------


class HealthResponse(WearSyncBase):
    status: str
    version: str
    environment: str
    vendors: dict[str, str]
    timestamp: datetime


class ErrorDetail(BaseModel):
    detail: str
