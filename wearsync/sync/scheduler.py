"""Background sync scheduler for wearable devices.

Coordinates the sync workflow for many devices at once:
1. Determine which devices are due (interval since last successful sync)
2. Refresh OAuth tokens that are about to expire
3. Run ``WearablesService.sync_device_data`` for each device

Syncs run concurrently up to ``max_concurrent`` at a time, but never more
than one at a time for the same device id.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator

from wearsync.base import SyncOptions, SyncResult, WearableDevice, as_utc, utc_now
from wearsync.errors import WearSyncError
from wearsync.service import WearablesService

logger = logging.getLogger("wearsync.sync.scheduler")


class DeviceLocks:
    """Per-device asyncio locks.

    A device's lock exists only while some coroutine holds or waits for it,
    so the table stays bounded by the number of syncs in flight.

    Usage::

        async with locks("device-1"):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def __call__(self, device_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(device_id, asyncio.Lock())
        self._users[device_id] = self._users.get(device_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[device_id] -= 1
            if not self._users[device_id]:
                del self._users[device_id]
                del self._locks[device_id]

    def is_locked(self, device_id: str) -> bool:
        lock = self._locks.get(device_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class SyncScheduler:
    """Schedule and execute device syncs.

    The scheduler keeps a queue of device ids and processes them
    concurrently up to ``max_concurrent`` at a time.  A second sync for a
    device that is already syncing waits for the first to finish.

    Usage::

        scheduler = SyncScheduler(service, max_concurrent=5)
        scheduler.enqueue("device-1", "device-2")
        results = await scheduler.run_all()
    """

    def __init__(
        self,
        service: WearablesService,
        max_concurrent: int = 5,
        interval: timedelta | None = None,
        refresh_buffer_seconds: int = 300,
        locks: DeviceLocks | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            service:                The orchestrator that performs each sync.
            max_concurrent:         Maximum number of simultaneous syncs.
            interval:               Minimum gap between successful syncs of a
                                    device.  Defaults to the service's interval.
            refresh_buffer_seconds: Refresh tokens expiring within this many seconds.
            locks:                  Shared per-device locks (e.g. with the HTTP layer).
        """
        self._service = service
        self._max_concurrent = max_concurrent
        self._interval = interval if interval is not None else service.sync_interval
        self._refresh_buffer_seconds = refresh_buffer_seconds
        self._locks = locks if locks is not None else DeviceLocks()
        self._queue: list[str] = []

    @property
    def locks(self) -> DeviceLocks:
        return self._locks

    def enqueue(self, *device_ids: str) -> None:
        """Add devices to the queue; ids already queued are ignored."""
        for device_id in device_ids:
            if device_id not in self._queue:
                self._queue.append(device_id)
                logger.debug("Enqueued sync for device %s", device_id)

    async def run_all(
        self, options: SyncOptions | None = None, force: bool = False
    ) -> list[SyncResult]:
        """Execute every queued sync.

        Args:
            options: Passed to each sync.
            force:   Sync devices even if they are not due yet.

        Returns:
            One SyncResult per device that was actually synced.
        """
        if not self._queue:
            logger.debug("SyncScheduler: no devices in queue")
            return []

        device_ids, self._queue = self._queue, []
        logger.info("SyncScheduler: running %d device syncs", len(device_ids))

        semaphore = asyncio.Semaphore(self._max_concurrent)
        outcomes = await asyncio.gather(
            *(self._run_one(device_id, semaphore, options, force) for device_id in device_ids)
        )
        results = [r for r in outcomes if r is not None]

        logger.info(
            "SyncScheduler: %d syncs complete, %d failed, %d skipped",
            len(results),
            sum(1 for r in results if not r.success),
            len(device_ids) - len(results),
        )
        return results

    async def sync_device(
        self, device_id: str, options: SyncOptions | None = None
    ) -> SyncResult:
        """Sync one device now, serialized with any other sync of the same device."""
        async with self._locks(device_id):
            return await self._service.sync_device_data(device_id, options)

    def should_sync(self, last_sync_at: datetime | None) -> bool:
        """Return True if a device last synced at ``last_sync_at`` is due."""
        if last_sync_at is None:
            return True
        return utc_now() - as_utc(last_sync_at) >= self._interval

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_one(
        self,
        device_id: str,
        semaphore: asyncio.Semaphore,
        options: SyncOptions | None,
        force: bool,
    ) -> SyncResult | None:
        async with semaphore, self._locks(device_id):
            try:
                device = await self._service.get_device(device_id)
            except WearSyncError as exc:
                logger.warning("SyncScheduler: cannot sync %s: %s", device_id, exc)
                return SyncResult.failed(device_id, exc.message)

            if not force and not self.should_sync(device.last_sync_at):
                logger.debug("SyncScheduler: device %s not due yet", device_id)
                return None

            await self._refresh_if_needed(device)
            return await self._service.sync_device_data(device_id, options)

    async def _refresh_if_needed(self, device: WearableDevice) -> None:
        if not device.refresh_token or not device.needs_token_refresh(self._refresh_buffer_seconds):
            return
        try:
            await self._service.refresh_device_token(device.id)
            logger.info("Refreshed token for device %s before sync", device.id)
        except WearSyncError as exc:
            logger.warning(
                "Token refresh failed for device %s: %s. Using existing token.",
                device.id, exc,
            )
