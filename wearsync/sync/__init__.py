"""Caller-side sync coordination: per-device locking and batch scheduling."""

from wearsync.sync.scheduler import DeviceLocks, SyncScheduler

__all__ = ["DeviceLocks", "SyncScheduler"]
