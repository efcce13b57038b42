"""Apple-style health platform adapter.

The vendor speaks camelCase JSON for registration and reports data points
with a ``timestamp`` field.

Endpoints used:
    POST /devices/register  — Exchange device identity for tokens
    GET  /health-data       — Data points for one device (rows under ``data``)
    POST /oauth/token       — Refresh an access token
"""

from __future__ import annotations

import logging

from wearsync.base import (
    DeviceType,
    HealthMetric,
    OAuthTokens,
    SyncOptions,
    VendorAdapter,
    WearableDevice,
    parse_iso_datetime,
)
from wearsync.circuit_breaker import CircuitBreakerState
from wearsync.client import ApiClient
from wearsync.normalizer import NORMALIZERS, normalize_batch

logger = logging.getLogger("wearsync.adapters.apple_health")


class AppleHealthAdapter(VendorAdapter):
    """Apple-style vendor integration.

    Pull windows are sent as full ISO-8601 timestamps
    (``2023-10-01T00:00:00.000Z``).
    """

    DEVICE_TYPE = DeviceType.APPLE_WATCH
    DISPLAY_NAME = "Apple Health"
    VENDOR_KEY = "apple_health"

    def __init__(self, client: ApiClient, client_id: str = "", client_secret: str = "") -> None:
        """Initialize the adapter.

        Args:
            client:        Fault-tolerant client bound to the Apple API base URL.
            client_id:     OAuth client id (WEARSYNC_APPLE_HEALTH_CLIENT_ID).
            client_secret: OAuth client secret (WEARSYNC_APPLE_HEALTH_CLIENT_SECRET).
        """
        self._client = client
        self._client_id = client_id
        self._client_secret = client_secret
        if not client_id or not client_secret:
            logger.warning("Apple Health: client credentials are not configured")

    # ------------------------------------------------------------------
    # VendorAdapter interface
    # ------------------------------------------------------------------

    async def register_device(self, device: WearableDevice) -> OAuthTokens:
        logger.info("Apple Health: registering device %s for user %s", device.id, device.user_id)
        response = await self._client.post(
            "/devices/register",
            {
                "deviceId": device.id,
                "userId": device.user_id,
                "clientId": self._client_id,
                "deviceInfo": {
                    "manufacturer": device.manufacturer,
                    "model": device.model,
                    "firmwareVersion": device.firmware_version,
                },
            },
        )
        return OAuthTokens(
            access_token=self._require_field(response, "accessToken"),
            refresh_token=response.get("refreshToken"),
            expires_at=parse_iso_datetime(response.get("expiresAt")),
        )

    async def pull_metrics(
        self, device: WearableDevice, options: SyncOptions
    ) -> list[HealthMetric]:
        params: dict[str, str] = {"device_id": device.id}
        if options.start_date is not None:
            params["start_date"] = self._iso_timestamp(options.start_date)
        if options.end_date is not None:
            params["end_date"] = self._iso_timestamp(options.end_date)

        response = await self._client.get(
            "/health-data", params=params, headers=self._bearer_headers(device)
        )
        rows = self._rows(response, "data")
        logger.info("Apple Health: pulled %d data points for %s", len(rows), device.id)
        return normalize_batch(rows, device.id, NORMALIZERS[self.DEVICE_TYPE])

    async def refresh_token(self, device: WearableDevice) -> OAuthTokens:
        logger.info("Apple Health: refreshing token for device %s", device.id)
        response = await self._client.post(
            "/oauth/token",
            {
                "grant_type": "refresh_token",
                "refresh_token": device.refresh_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )
        return OAuthTokens(
            access_token=self._require_field(response, "access_token"),
            refresh_token=response.get("refresh_token"),
            expires_at=parse_iso_datetime(response.get("expires_at")),
        )

    def circuit_state(self) -> str:
        return CircuitBreakerState(self._client.get_circuit_breaker_state()).value
