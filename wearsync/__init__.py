"""wearsync — wearable device data synchronization engine.

This package registers third-party fitness devices with their vendors,
pulls raw vendor data, normalizes it into one canonical metric model,
validates it against physiological bounds, tracks per-device sync state,
and produces daily aggregates.

Subpackages:
    adapters/ — Vendor integrations (Apple-style, Fitbit-style)
    routers/  — FastAPI routes
    sync/     — Per-device locking and batch sync scheduling

Core modules:
    base            — Canonical data model and the VendorAdapter ABC
    validator       — Structural and physiological validation
    normalizer      — Vendor payload → canonical metric mapping
    aggregator      — Daily sum/average aggregation
    client          — Fault-tolerant vendor HTTP client
    circuit_breaker — Per-vendor circuit breaker
    service         — WearablesService orchestrator
    store           — DeviceStore contract and in-memory store
    config_loader   — Load/validate/hot-reload vendors.yaml
"""

from wearsync.base import (
    DeviceType,
    HealthMetric,
    MetricType,
    OAuthTokens,
    SyncOptions,
    SyncResult,
    SyncStatus,
    VendorAdapter,
    WearableDevice,
    create_metric,
)
from wearsync.config_loader import VendorConfig, get_vendor_config
from wearsync.service import WearablesService
from wearsync.store import DeviceStore, InMemoryDeviceStore

__all__ = [
    "DeviceType",
    "MetricType",
    "SyncStatus",
    "WearableDevice",
    "HealthMetric",
    "OAuthTokens",
    "SyncOptions",
    "SyncResult",
    "VendorAdapter",
    "create_metric",
    "DeviceStore",
    "InMemoryDeviceStore",
    "WearablesService",
    "VendorConfig",
    "get_vendor_config",
]
