"""Synchronization orchestrator.

WearablesService is the single entry point callers use to register devices,
sync them, refresh their tokens and read their metrics.  It owns the
per-device sync state machine:

    register            →  PENDING
    sync (active)       →  SYNCING  →  SYNCED | FAILED
    sync (inactive)     →  no transition

Vendor work is dispatched by device type to a VendorAdapter; storage goes
through the DeviceStore contract.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Mapping

from wearsync.adapters import build_adapters
from wearsync.aggregator import aggregate_daily
from wearsync.base import (
    DeviceType,
    HealthMetric,
    MetricType,
    SyncOptions,
    SyncResult,
    SyncStatus,
    VendorAdapter,
    WearableDevice,
    utc_now,
)
from wearsync.config import get_settings
from wearsync.errors import (
    InactiveDeviceError,
    MissingRefreshTokenError,
    UnsupportedDeviceTypeError,
    WearSyncError,
)
from wearsync.store import DeviceStore
from wearsync.validator import DeviceDataValidator

logger = logging.getLogger("wearsync.service")


class WearablesService:
    """Coordinate vendor adapters, validation and the device store.

    ``sync_device_data`` performs no per-device mutual exclusion: callers
    must not run two syncs for the same device id at once.  Use
    ``wearsync.sync.scheduler.SyncScheduler`` (or ``DeviceLocks``) when
    syncs can overlap.

    Usage::

        service = WearablesService(InMemoryDeviceStore(), build_adapters())
        device = await service.register_device(device)
        result = await service.sync_device_data(device.id)
    """

    def __init__(
        self,
        store: DeviceStore,
        adapters: Mapping[DeviceType, VendorAdapter] | None = None,
        validator: DeviceDataValidator | None = None,
        sync_interval: timedelta | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store:         Device and metric persistence.
            adapters:      Device type → adapter.  Built from configuration
                           when omitted.
            validator:     Device/metric validator.
            sync_interval: Suggested gap between syncs, reported as
                           ``next_sync_at``.  Defaults to the
                           ``sync_interval_minutes`` setting.
        """
        if adapters is None:
            adapters = build_adapters()
        if sync_interval is None:
            sync_interval = timedelta(minutes=get_settings().sync_interval_minutes)

        self._store = store
        self._adapters: dict[DeviceType, VendorAdapter] = dict(adapters)
        self._validator = validator or DeviceDataValidator()
        self._sync_interval = sync_interval

    @property
    def store(self) -> DeviceStore:
        return self._store

    @property
    def sync_interval(self) -> timedelta:
        return self._sync_interval

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_device(self, device: WearableDevice) -> WearableDevice:
        """Validate a device, register it with its vendor and persist it.

        Args:
            device: The device to register.

        Returns:
            A copy of ``device`` carrying the vendor's OAuth bundle, with
            ``sync_status`` set to PENDING.

        Raises:
            DeviceValidationError:      If the device is malformed (no network call is made).
            UnsupportedDeviceTypeError: If the device type has no vendor integration.
            UpstreamError:              If the vendor call fails.
        """
        self._validator.validate_device(device).raise_for_errors("device")
        adapter = self._adapter_for(device.type, "Unsupported device type")

        tokens = await adapter.register_device(device)
        registered = device.with_tokens(tokens)
        registered.sync_status = SyncStatus.PENDING

        await self._store.save_device(registered)
        logger.info("Registered %s device %s for user %s", device.type.value, device.id, device.user_id)
        return registered

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_device_data(
        self, device_id: str, options: SyncOptions | None = None
    ) -> SyncResult:
        """Pull, validate and store new metrics for one device.

        Never raises: every failure is reported through the returned
        SyncResult.  Once the device has been found, a failure also moves it
        to FAILED and records the error message on the device record.

        Args:
            device_id: Device to sync.
            options:   Optional window and metric-type filter.

        Returns:
            SyncResult; on success ``next_sync_at`` is now + the sync interval.
        """
        options = options or SyncOptions()
        device: WearableDevice | None = None
        try:
            device = await self._store.get_device(device_id)
            if not device.is_active:
                logger.info("Skipping sync of inactive device %s", device_id)
                return SyncResult.failed(device_id, InactiveDeviceError(device_id).message)

            await self._store.update_device_status(device_id, SyncStatus.SYNCING)
            adapter = self._adapter_for(device.type, "Unsupported device type")

            metrics = await adapter.pull_metrics(device, options)
            if options.metric_types:
                wanted = {MetricType(t) for t in options.metric_types}
                metrics = [m for m in metrics if m.type in wanted]

            for metric in metrics:
                self._validator.validate_metric(metric).raise_for_errors("metric")

            stored = await self._store.save_metrics(device_id, metrics)
            synced_at = utc_now()
            await self._store.update_device_status(
                device_id, SyncStatus.SYNCED, last_sync_at=synced_at
            )
        except Exception as exc:
            message = _error_message(exc)
            logger.warning("Sync failed for device %s: %s", device_id, message)
            if device is not None:
                await self._mark_failed(device_id, message)
            return SyncResult.failed(device_id, message)

        logger.info("Synced %d metrics for device %s", stored, device_id)
        return SyncResult.succeeded(device_id, stored, self._sync_interval)

    async def _mark_failed(self, device_id: str, message: str) -> None:
        try:
            await self._store.update_device_status(
                device_id, SyncStatus.FAILED, error_message=message
            )
        except Exception:
            logger.exception("Could not record FAILED status for device %s", device_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_device(self, device_id: str) -> WearableDevice:
        return await self._store.get_device(device_id)

    async def list_devices(self, user_id: str) -> list[WearableDevice]:
        """Return the devices connected for one user."""
        return await self._store.list_devices(user_id)

    async def get_device_metrics(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        metric_types: Iterable[MetricType] | None = None,
    ) -> list[HealthMetric]:
        """Return stored metrics with ``start <= timestamp <= end``."""
        return await self._store.get_device_metrics(device_id, start, end, metric_types)

    async def aggregate_metrics(
        self, device_id: str, day: date, metric_type: MetricType
    ) -> HealthMetric:
        """Aggregate one UTC day of ``metric_type`` metrics into a daily value.

        Raises:
            NoMetricDataError: If the device has no such metrics that day.
        """
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = datetime.combine(day, time.max, tzinfo=timezone.utc)
        metrics = await self._store.get_device_metrics(device_id, start, end, [metric_type])
        return aggregate_daily(metrics, metric_type)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def refresh_device_token(self, device_id: str) -> WearableDevice:
        """Refresh a device's access token and persist the new bundle.

        The stored refresh token is kept when the vendor does not issue a
        new one.

        Raises:
            DeviceNotFoundError:        If the device does not exist.
            MissingRefreshTokenError:   If the device holds no refresh token.
            UnsupportedDeviceTypeError: If the device type cannot be refreshed.
            UpstreamError:              If the vendor call fails.
        """
        device = await self._store.get_device(device_id)
        if not device.refresh_token:
            raise MissingRefreshTokenError(device_id)
        adapter = self._adapter_for(device.type, "Token refresh not supported for device type")

        tokens = await adapter.refresh_token(device)
        refreshed = device.with_tokens(tokens)
        await self._store.save_device(refreshed)
        logger.info("Refreshed token for device %s", device_id)
        return refreshed

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_service_health(self) -> dict[str, str]:
        """Return the circuit-breaker state of every configured vendor."""
        return {
            adapter.VENDOR_KEY: adapter.circuit_state()
            for adapter in self._adapters.values()
        }

    def get_vendor_health(self, device_type: DeviceType | str) -> str:
        adapter = self._adapter_for(DeviceType(device_type), "Unsupported device type")
        return adapter.circuit_state()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _adapter_for(self, device_type: DeviceType, message: str) -> VendorAdapter:
        adapter = self._adapters.get(DeviceType(device_type))
        if adapter is None:
            raise UnsupportedDeviceTypeError(f"{message}: {DeviceType(device_type).value}")
        return adapter


def _error_message(exc: Exception) -> str:
    if isinstance(exc, WearSyncError):
        return exc.message
    return str(exc) or exc.__class__.__name__
