"""Tests for SyncScheduler: concurrency limits, per-device serialization, due checks."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from wearsync.base import SyncResult, WearableDevice
from wearsync.errors import DeviceNotFoundError, UpstreamError
from wearsync.sync.scheduler import DeviceLocks, SyncScheduler
from wearsync.tests.conftest import make_device


def _mock_service(devices: dict[str, WearableDevice], delay: float = 0.0) -> MagicMock:
    service = MagicMock()
    service.sync_interval = timedelta(minutes=30)
    service.active = 0
    service.peak = 0
    service.per_device = {}
    service.overlap = False

    async def get_device(device_id: str) -> WearableDevice:
        if device_id not in devices:
            raise DeviceNotFoundError(device_id)
        return devices[device_id]

    async def sync_device_data(device_id: str, options=None) -> SyncResult:
        service.active += 1
        service.peak = max(service.peak, service.active)
        service.per_device[device_id] = service.per_device.get(device_id, 0) + 1
        if service.per_device[device_id] > 1:
            service.overlap = True
        await asyncio.sleep(delay)
        service.per_device[device_id] -= 1
        service.active -= 1
        return SyncResult.succeeded(device_id, 1, timedelta(minutes=30))

    service.get_device = AsyncMock(side_effect=get_device)
    service.sync_device_data = AsyncMock(side_effect=sync_device_data)
    service.refresh_device_token = AsyncMock()
    return service


class TestDeviceLocks:
    @pytest.mark.asyncio
    async def test_is_locked(self) -> None:
        locks = DeviceLocks()
        assert not locks.is_locked("a")
        async with locks("a"):
            assert locks.is_locked("a")
            assert not locks.is_locked("b")
        assert not locks.is_locked("a")

    @pytest.mark.asyncio
    async def test_same_id_is_serialized(self) -> None:
        locks = DeviceLocks()
        order: list[str] = []

        async def hold(name: str) -> None:
            async with locks("a"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(hold("first"), hold("second"))
        assert order == ["first-in", "first-out", "second-in", "second-out"]

    @pytest.mark.asyncio
    async def test_released_locks_are_dropped(self) -> None:
        locks = DeviceLocks()
        async with locks("a"):
            async with locks("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_survives_while_a_waiter_remains(self) -> None:
        locks = DeviceLocks()
        entered = asyncio.Event()

        async def waiter() -> None:
            async with locks("a"):
                entered.set()

        async with locks("a"):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0)
        await asyncio.wait_for(entered.wait(), timeout=1)
        await task
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_is_dropped_after_an_error(self) -> None:
        locks = DeviceLocks()
        with pytest.raises(RuntimeError):
            async with locks("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0


class TestSyncScheduler:
    @pytest.mark.asyncio
    async def test_empty_queue(self) -> None:
        scheduler = SyncScheduler(_mock_service({}))
        assert await scheduler.run_all() == []

    @pytest.mark.asyncio
    async def test_runs_every_queued_device(self) -> None:
        devices = {f"d{i}": make_device(f"d{i}") for i in range(4)}
        scheduler = SyncScheduler(_mock_service(devices))
        scheduler.enqueue(*devices)

        results = await scheduler.run_all()

        assert sorted(r.device_id for r in results) == ["d0", "d1", "d2", "d3"]
        assert await scheduler.run_all() == []

    @pytest.mark.asyncio
    async def test_duplicate_enqueue_is_ignored(self) -> None:
        service = _mock_service({"d1": make_device("d1")})
        scheduler = SyncScheduler(service)
        scheduler.enqueue("d1", "d1")
        scheduler.enqueue("d1")
        await scheduler.run_all()
        assert service.sync_device_data.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        devices = {f"d{i}": make_device(f"d{i}") for i in range(6)}
        service = _mock_service(devices, delay=0.01)
        scheduler = SyncScheduler(service, max_concurrent=2)
        scheduler.enqueue(*devices)

        await scheduler.run_all()

        assert service.peak == 2

    @pytest.mark.asyncio
    async def test_same_device_never_overlaps(self) -> None:
        service = _mock_service({"d1": make_device("d1")}, delay=0.01)
        scheduler = SyncScheduler(service)

        await asyncio.gather(*(scheduler.sync_device("d1") for _ in range(3)))

        assert service.sync_device_data.await_count == 3
        assert not service.overlap

    @pytest.mark.asyncio
    async def test_unknown_ids_leave_no_locks_behind(self) -> None:
        scheduler = SyncScheduler(_mock_service({}))
        for i in range(1000):
            await scheduler.sync_device(f"nope-{i}")
        assert len(scheduler.locks) == 0

    @pytest.mark.asyncio
    async def test_devices_not_due_are_skipped_unless_forced(self) -> None:
        recent = make_device("d1", last_sync_at=datetime.now(timezone.utc) - timedelta(minutes=5))
        service = _mock_service({"d1": recent})
        scheduler = SyncScheduler(service)

        scheduler.enqueue("d1")
        assert await scheduler.run_all() == []

        scheduler.enqueue("d1")
        assert len(await scheduler.run_all(force=True)) == 1

    @pytest.mark.asyncio
    async def test_unknown_device_reports_failure(self) -> None:
        scheduler = SyncScheduler(_mock_service({}))
        scheduler.enqueue("ghost")
        (result,) = await scheduler.run_all()
        assert not result.success
        assert result.error_message == "Device not found: ghost"

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed_first(self) -> None:
        device = make_device(
            "d1",
            refresh_token="r",
            token_expires_at=datetime.now(timezone.utc) + timedelta(seconds=60),
        )
        service = _mock_service({"d1": device})
        scheduler = SyncScheduler(service, refresh_buffer_seconds=300)
        scheduler.enqueue("d1")

        await scheduler.run_all()

        service.refresh_device_token.assert_awaited_once_with("d1")
        service.sync_device_data.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_failure_still_syncs(self) -> None:
        device = make_device(
            "d1", refresh_token="r", token_expires_at=datetime.now(timezone.utc)
        )
        service = _mock_service({"d1": device})
        service.refresh_device_token.side_effect = UpstreamError("HTTP 500: Server Error")
        scheduler = SyncScheduler(service)
        scheduler.enqueue("d1")

        (result,) = await scheduler.run_all()
        assert result.success


class TestShouldSync:
    def test_never_synced(self) -> None:
        assert SyncScheduler(_mock_service({})).should_sync(None)

    def test_interval_elapsed(self) -> None:
        scheduler = SyncScheduler(_mock_service({}), interval=timedelta(minutes=10))
        now = datetime.now(timezone.utc)
        assert scheduler.should_sync(now - timedelta(minutes=11))
        assert not scheduler.should_sync(now - timedelta(minutes=9))
