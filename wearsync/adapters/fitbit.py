"""Fitbit-style activity platform adapter.

Registration and token payloads are snake_case; data points use
kebab-case metric keys and a ``recorded_at`` timestamp.

Endpoints used:
    POST /devices/register  — Exchange device identity for tokens
    GET  /activities        — Activity rows for one device (rows under ``activities``)
    POST /oauth2/token      — Refresh an access token (expiry given as ``expires_in``)
"""

from __future__ import annotations

import logging
from datetime import timedelta

from wearsync.base import (
    DeviceType,
    HealthMetric,
    OAuthTokens,
    SyncOptions,
    VendorAdapter,
    WearableDevice,
    parse_iso_datetime,
    utc_now,
)
from wearsync.circuit_breaker import CircuitBreakerState
from wearsync.client import ApiClient
from wearsync.errors import InvalidResponseError
from wearsync.normalizer import NORMALIZERS, normalize_batch

logger = logging.getLogger("wearsync.adapters.fitbit")

# Used when the token endpoint omits expires_in
_DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class FitbitAdapter(VendorAdapter):
    """Fitbit-style vendor integration.

    Pull windows are sent as calendar dates (``2023-10-01``); the vendor
    returns whole days.
    """

    DEVICE_TYPE = DeviceType.FITBIT
    DISPLAY_NAME = "Fitbit"
    VENDOR_KEY = "fitbit"

    def __init__(self, client: ApiClient, client_id: str = "", client_secret: str = "") -> None:
        self._client = client
        self._client_id = client_id
        self._client_secret = client_secret
        if not client_id or not client_secret:
            logger.warning("Fitbit: client credentials are not configured")

    # ------------------------------------------------------------------
    # VendorAdapter interface
    # ------------------------------------------------------------------

    async def register_device(self, device: WearableDevice) -> OAuthTokens:
        logger.info("Fitbit: registering device %s for user %s", device.id, device.user_id)
        response = await self._client.post(
            "/devices/register",
            {
                "device_id": device.id,
                "user_id": device.user_id,
                "client_id": self._client_id,
                "device_info": {
                    "manufacturer": device.manufacturer,
                    "model": device.model,
                    "firmware_version": device.firmware_version,
                },
            },
        )
        return OAuthTokens(
            access_token=self._require_field(response, "access_token"),
            refresh_token=response.get("refresh_token"),
            expires_at=parse_iso_datetime(response.get("expires_at")),
        )

    async def pull_metrics(
        self, device: WearableDevice, options: SyncOptions
    ) -> list[HealthMetric]:
        params: dict[str, str] = {"device_id": device.id}
        if options.start_date is not None:
            params["start_date"] = self._iso_date(options.start_date)
        if options.end_date is not None:
            params["end_date"] = self._iso_date(options.end_date)

        response = await self._client.get(
            "/activities", params=params, headers=self._bearer_headers(device)
        )
        rows = self._rows(response, "activities")
        logger.info("Fitbit: pulled %d activity rows for %s", len(rows), device.id)
        return normalize_batch(rows, device.id, NORMALIZERS[self.DEVICE_TYPE])

    async def refresh_token(self, device: WearableDevice) -> OAuthTokens:
        """Refresh the access token.

        The token endpoint reports a lifetime in seconds rather than an
        absolute expiry; it is converted relative to now.
        """
        logger.info("Fitbit: refreshing token for device %s", device.id)
        response = await self._client.post(
            "/oauth2/token",
            {
                "grant_type": "refresh_token",
                "refresh_token": device.refresh_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )
        access_token = self._require_field(response, "access_token")
        return OAuthTokens(
            access_token=access_token,
            refresh_token=response.get("refresh_token"),
            expires_at=utc_now() + self._token_lifetime(response.get("expires_in")),
        )

    def circuit_state(self) -> str:
        return CircuitBreakerState(self._client.get_circuit_breaker_state()).value

    @staticmethod
    def _token_lifetime(expires_in: object) -> timedelta:
        if expires_in in (None, ""):
            return timedelta(seconds=_DEFAULT_TOKEN_LIFETIME_SECONDS)
        try:
            lifetime = timedelta(seconds=float(expires_in))
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidResponseError(
                f"Fitbit 'expires_in' is not a number of seconds: {expires_in!r}"
            ) from exc
        if lifetime < timedelta(0):
            raise InvalidResponseError(f"Fitbit 'expires_in' is negative: {expires_in!r}")
        return lifetime
