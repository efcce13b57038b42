"""Device store contract and an in-memory implementation.

The orchestrator only talks to storage through ``DeviceStore``.  Production
deployments plug in a database-backed implementation; tests and the default
app wiring use ``InMemoryDeviceStore``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Protocol

from wearsync.base import HealthMetric, MetricType, SyncStatus, WearableDevice, as_utc
from wearsync.errors import DeviceNotFoundError

logger = logging.getLogger("wearsync.store")

LAST_SYNC_ERROR_KEY = "lastSyncError"


class DeviceStore(Protocol):
    async def get_device(self, device_id: str) -> WearableDevice:
        """Return the device or raise DeviceNotFoundError."""
        ...

    async def save_device(self, device: WearableDevice) -> WearableDevice:
        """Insert or replace a device record."""
        ...

    async def list_devices(self, user_id: str) -> list[WearableDevice]:
        """Return every device owned by ``user_id``, oldest registration first."""
        ...

    async def update_device_status(
        self,
        device_id: str,
        status: SyncStatus,
        *,
        last_sync_at: datetime | None = None,
        error_message: str | None = None,
    ) -> WearableDevice:
        """Persist a new sync status and return the updated record."""
        ...

    async def get_device_metrics(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        metric_types: Iterable[MetricType] | None = None,
    ) -> list[HealthMetric]:
        """Return metrics with ``start <= timestamp <= end``, optionally filtered by type."""
        ...

    async def save_metrics(self, device_id: str, metrics: Iterable[HealthMetric]) -> int:
        """Store metrics, replacing any existing metric with the same id."""
        ...


class InMemoryDeviceStore:
    """Dict-backed DeviceStore.

    Records are copied on the way in and out so callers cannot mutate
    stored state by accident.
    """

    def __init__(self, devices: Iterable[WearableDevice] = ()) -> None:
        self._devices: dict[str, WearableDevice] = {d.id: d for d in devices}
        self._metrics: dict[str, dict[str, HealthMetric]] = {}
        self._lock = asyncio.Lock()

    async def get_device(self, device_id: str) -> WearableDevice:
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return replace(device, metadata=dict(device.metadata))

    async def save_device(self, device: WearableDevice) -> WearableDevice:
        async with self._lock:
            self._devices[device.id] = replace(device, metadata=dict(device.metadata))
        return device

    async def list_devices(self, user_id: str) -> list[WearableDevice]:
        owned = [d for d in self._devices.values() if d.user_id == user_id]
        owned.sort(key=lambda d: as_utc(d.registered_at))
        return [replace(d, metadata=dict(d.metadata)) for d in owned]

    async def update_device_status(
        self,
        device_id: str,
        status: SyncStatus,
        *,
        last_sync_at: datetime | None = None,
        error_message: str | None = None,
    ) -> WearableDevice:
        async with self._lock:
            current = self._devices.get(device_id)
            if current is None:
                raise DeviceNotFoundError(device_id)
            metadata = dict(current.metadata)
            if status is SyncStatus.FAILED and error_message:
                metadata[LAST_SYNC_ERROR_KEY] = error_message
            elif status is SyncStatus.SYNCED:
                metadata.pop(LAST_SYNC_ERROR_KEY, None)
            updated = replace(
                current,
                sync_status=status,
                last_sync_at=last_sync_at or current.last_sync_at,
                metadata=metadata,
            )
            self._devices[device_id] = updated
        logger.debug("Device %s → %s", device_id, status.value)
        return replace(updated, metadata=dict(updated.metadata))

    async def get_device_metrics(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        metric_types: Iterable[MetricType] | None = None,
    ) -> list[HealthMetric]:
        start_utc, end_utc = as_utc(start), as_utc(end)
        wanted = set(metric_types) if metric_types else None
        rows = [
            m
            for m in self._metrics.get(device_id, {}).values()
            if start_utc <= as_utc(m.timestamp) <= end_utc
            and (wanted is None or m.type in wanted)
        ]
        return sorted(rows, key=lambda m: as_utc(m.timestamp))

    async def save_metrics(self, device_id: str, metrics: Iterable[HealthMetric]) -> int:
        count = 0
        async with self._lock:
            bucket = self._metrics.setdefault(device_id, {})
            for metric in metrics:
                bucket[metric.id] = metric
                count += 1
        return count

    def __len__(self) -> int:
        return len(self._devices)
