"""Vendor adapters for wearsync.

Each adapter implements the VendorAdapter ABC and handles:
- Exchanging device identity for OAuth tokens at registration
- Pulling raw data points and normalizing them into canonical metrics
- Refreshing access tokens

Available adapters:
    AppleHealthAdapter — Apple-style health platform (camelCase JSON)
    FitbitAdapter      — Fitbit-style activity platform (snake_case JSON)

Garmin and Samsung devices are part of the data model but have no vendor
integration; lookups for them raise UnsupportedDeviceTypeError.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from wearsync.adapters.apple_health import AppleHealthAdapter
from wearsync.adapters.fitbit import FitbitAdapter
from wearsync.base import DeviceType, VendorAdapter
from wearsync.client import VendorApiClient
from wearsync.config import Settings, get_settings
from wearsync.config_loader import VendorConfig, get_vendor_config
from wearsync.errors import UnsupportedDeviceTypeError

logger = logging.getLogger("wearsync.adapters")

__all__ = [
    "AppleHealthAdapter",
    "FitbitAdapter",
    "ADAPTER_REGISTRY",
    "get_adapter",
    "build_adapters",
]

# Registry: device type → adapter class
ADAPTER_REGISTRY: dict[DeviceType, type[VendorAdapter]] = {
    DeviceType.APPLE_WATCH: AppleHealthAdapter,
    DeviceType.FITBIT: FitbitAdapter,
}


def get_adapter(device_type: DeviceType | str) -> type[VendorAdapter]:
    """Return the adapter class for a device type.

    Args:
        device_type: e.g. DeviceType.FITBIT or 'FITBIT'.

    Returns:
        The adapter class (not an instance).

    Raises:
        UnsupportedDeviceTypeError: If no integration exists for the type.
    """
    key = DeviceType(device_type)
    if key not in ADAPTER_REGISTRY:
        raise UnsupportedDeviceTypeError(f"Unsupported device type: {key.value}")
    return ADAPTER_REGISTRY[key]


def build_adapters(
    vendor_config: VendorConfig | None = None,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[DeviceType, VendorAdapter]:
    """Instantiate one adapter per configured vendor.

    Each adapter gets its own VendorApiClient (and so its own circuit
    breaker).  Vendors missing from vendors.yaml are skipped with a warning.

    Args:
        vendor_config: Client policies; defaults to the global singleton.
        settings:      Credential source; defaults to ``get_settings()``.
        http_client:   Optional shared httpx client (for testing).
    """
    settings = settings or get_settings()
    if vendor_config is None:
        path = Path(settings.vendor_config_path) if settings.vendor_config_path else None
        vendor_config = get_vendor_config(path)

    adapters: dict[DeviceType, VendorAdapter] = {}
    for device_type, adapter_cls in ADAPTER_REGISTRY.items():
        key = adapter_cls.VENDOR_KEY
        if not vendor_config.has_vendor(key):
            logger.warning("No client config for vendor '%s'; %s disabled", key, device_type.value)
            continue
        client = VendorApiClient(vendor_config.vendor(key), http_client=http_client)
        adapters[device_type] = adapter_cls(
            client,
            client_id=getattr(settings, f"{key}_client_id", ""),
            client_secret=getattr(settings, f"{key}_client_secret", ""),
        )
    logger.info("Vendor adapters ready: %s", [t.value for t in adapters])
    return adapters

