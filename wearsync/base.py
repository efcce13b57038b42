"""Canonical data models and the vendor adapter interface for wearsync.

Every vendor adapter must subclass VendorAdapter and hand back canonical
HealthMetric values.  These types are the single source of truth consumed
by the validator, the aggregator, the orchestrator, and the API layer.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any

from wearsync.errors import DeviceNotRegisteredError, InvalidResponseError

logger = logging.getLogger("wearsync")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: object) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) to aware UTC.

    Returns None if the value is missing or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        logger.warning("Could not parse datetime string: %r", value)
        return None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DeviceType(str, Enum):
    """Physical device families.  Only some have a vendor integration."""

    APPLE_WATCH = "APPLE_WATCH"
    FITBIT = "FITBIT"
    GARMIN = "GARMIN"
    SAMSUNG_GALAXY = "SAMSUNG_GALAXY"


class MetricType(str, Enum):
    HEART_RATE = "HEART_RATE"
    STEPS = "STEPS"
    SLEEP_DURATION = "SLEEP_DURATION"
    CALORIES_BURNED = "CALORIES_BURNED"
    DISTANCE = "DISTANCE"
    BLOOD_OXYGEN = "BLOOD_OXYGEN"
    BLOOD_PRESSURE = "BLOOD_PRESSURE"
    WEIGHT = "WEIGHT"
    BODY_TEMPERATURE = "BODY_TEMPERATURE"


class SyncStatus(str, Enum):
    """Per-device sync state.

    Transitions:
        PENDING | SYNCED | FAILED  →  SYNCING  →  SYNCED | FAILED
    PENDING is only ever set by registration.
    """

    PENDING = "PENDING"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# OAuth tokens
# ---------------------------------------------------------------------------


@dataclass
class OAuthTokens:
    """OAuth credential bundle returned by registration or refresh.

    Attributes:
        access_token:  Bearer token for data pulls.
        refresh_token: Long-lived token used to obtain a new access_token.
                       None when the vendor did not rotate it.
        expires_at:    UTC datetime when the access_token expires.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


# ---------------------------------------------------------------------------
# Canonical models
# ---------------------------------------------------------------------------


@dataclass
class WearableDevice:
    """One paired device owned by exactly one user.

    Attributes:
        id:               Opaque unique identifier.
        user_id:          Owning user reference.
        type:             Device family.
        manufacturer:     Free-text manufacturer name.
        model:            Free-text model name.
        firmware_version: Free-text firmware version.
        is_active:        Inactive devices are never synced.
        sync_status:      Current state in the sync state machine.
        registered_at:    Creation timestamp, never changed after creation.
        last_sync_at:     Set on every successful sync.
        oauth_token:      Access token; present iff registration completed.
        refresh_token:    Refresh token, if the vendor issued one.
        token_expires_at: Access token expiry.
        metadata:         Vendor-specific extras.
    """

    id: str
    user_id: str
    type: DeviceType
    manufacturer: str
    model: str
    firmware_version: str
    is_active: bool = True
    sync_status: SyncStatus = SyncStatus.PENDING
    registered_at: datetime = field(default_factory=utc_now)
    last_sync_at: datetime | None = None
    oauth_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_registered(self) -> bool:
        return bool(self.oauth_token)

    def with_tokens(self, tokens: OAuthTokens) -> WearableDevice:
        """Return a copy carrying ``tokens``.

        The existing refresh token is kept when ``tokens`` carries none.
        """
        return replace(
            self,
            oauth_token=tokens.access_token,
            refresh_token=tokens.refresh_token or self.refresh_token,
            token_expires_at=tokens.expires_at,
            metadata=dict(self.metadata),
        )

    def needs_token_refresh(self, buffer_seconds: int = 300) -> bool:
        """Return True if the access token expires within ``buffer_seconds``."""
        if self.token_expires_at is None:
            return False
        remaining = as_utc(self.token_expires_at) - utc_now()
        return remaining.total_seconds() < buffer_seconds


@dataclass
class HealthMetric:
    """One observation of one physiological quantity at one instant.

    Metrics are never updated after creation; a changed observation is a
    new metric (aggregates are replaced by id).

    Attributes:
        id:         Unique identifier.
        device_id:  Owning device.
        type:       Canonical metric type.
        value:      Numeric value in ``unit``.
        unit:       Unit string ("bpm", "steps", "minutes", ...).
        timestamp:  Instant the observation applies to (never in the future).
        metadata:   Optional extras; aggregates record how they were built.
        source:     Vendor tag ("apple-health", "fitbit").
        confidence: Optional 0.0–1.0 confidence.
    """

    id: str
    device_id: str
    type: MetricType
    value: float
    unit: str
    timestamp: datetime
    metadata: dict[str, Any] | None = None
    source: str | None = None
    confidence: float | None = None

    @property
    def day(self) -> date:
        return as_utc(self.timestamp).date()


def create_metric(
    device_id: str,
    type: MetricType,
    value: float,
    unit: str,
    timestamp: datetime | None = None,
    metadata: dict[str, Any] | None = None,
    source: str | None = None,
    prefix: str = "metric",
) -> HealthMetric:
    """Build a HealthMetric with a fresh unique id.

    ``timestamp`` defaults to now (UTC); ``metadata`` is passed through as-is.
    """
    metric_type = MetricType(type)
    return HealthMetric(
        id=f"{prefix}-{metric_type.value}-{uuid.uuid4().hex}",
        device_id=device_id,
        type=metric_type,
        value=value,
        unit=unit,
        timestamp=timestamp if timestamp is not None else utc_now(),
        metadata=metadata,
        source=source,
    )


# ---------------------------------------------------------------------------
# Sync records
# ---------------------------------------------------------------------------


@dataclass
class SyncOptions:
    """Optional restrictions for one sync attempt.

    Attributes:
        start_date:   Start of the pulled window (None = vendor default).
        end_date:     End of the pulled window (None = vendor default).
        metric_types: Only keep these metric types (None = all).
    """

    start_date: datetime | None = None
    end_date: datetime | None = None
    metric_types: list[MetricType] | None = None


@dataclass
class SyncResult:
    """Outcome of a single ``sync_device_data`` call.

    Attributes:
        device_id:     Device that was synced.
        success:       True if metrics were pulled, validated and stored.
        metrics_count: Number of stored metrics (0 on failure).
        synced_at:     UTC completion time.
        error_message: Failure reason when ``success`` is False.
        next_sync_at:  Suggested next sync time (success only).
    """

    device_id: str
    success: bool
    metrics_count: int = 0
    synced_at: datetime = field(default_factory=utc_now)
    error_message: str | None = None
    next_sync_at: datetime | None = None

    @classmethod
    def failed(cls, device_id: str, error_message: str) -> SyncResult:
        return cls(device_id=device_id, success=False, error_message=error_message)

    @classmethod
    def succeeded(
        cls, device_id: str, metrics_count: int, interval: timedelta
    ) -> SyncResult:
        now = utc_now()
        return cls(
            device_id=device_id,
            success=True,
            metrics_count=metrics_count,
            synced_at=now,
            next_sync_at=now + interval,
        )


# ---------------------------------------------------------------------------
# Abstract vendor adapter
# ---------------------------------------------------------------------------


class VendorAdapter(ABC):
    """Abstract base class for vendor integrations.

    Each adapter owns one fault-tolerant API client and implements the
    three capabilities the orchestrator dispatches to by device type.

    Subclasses must implement:
        - register_device()
        - pull_metrics()
        - refresh_token()
        - circuit_state()
    """

    #: Device family this adapter serves; selects its normalizer.
    DEVICE_TYPE: DeviceType

    #: Human-readable name for logging and health output.
    DISPLAY_NAME: str = "Unknown Vendor"

    #: Key under `vendors:` in vendors.yaml and prefix of the credential settings.
    VENDOR_KEY: str = ""

    @abstractmethod
    async def register_device(self, device: WearableDevice) -> OAuthTokens:
        """Exchange device identity for an OAuth credential bundle.

        Args:
            device: A validated device that has not been registered yet.

        Returns:
            OAuthTokens issued by the vendor.
        """

    @abstractmethod
    async def pull_metrics(
        self, device: WearableDevice, options: SyncOptions
    ) -> list[HealthMetric]:
        """Pull raw data for ``device`` and normalize it into canonical metrics.

        Args:
            device:  Registered device whose ``oauth_token`` authorizes the pull.
            options: Window restrictions (vendor default when unset).

        Returns:
            Canonical metrics, unvalidated.
        """

    @abstractmethod
    async def refresh_token(self, device: WearableDevice) -> OAuthTokens:
        """Refresh the device's access token.

        Returns:
            New OAuthTokens; ``refresh_token`` is None if the vendor did
            not rotate it.
        """

    @abstractmethod
    def circuit_state(self) -> str:
        """Return the circuit-breaker state of this vendor's API client."""

    # ------------------------------------------------------------------
    # Shared helpers for adapters
    # ------------------------------------------------------------------

    @staticmethod
    def _bearer_headers(device: WearableDevice) -> dict[str, str]:
        """Build the Authorization header for a data pull.

        Raises:
            DeviceNotRegisteredError: If the device holds no access token.
        """
        if not device.oauth_token:
            raise DeviceNotRegisteredError(device.id)
        return {"Authorization": f"Bearer {device.oauth_token}"}

    def _require_field(self, response: object, key: str) -> Any:
        """Return ``response[key]`` or raise InvalidResponseError naming the vendor."""
        if not isinstance(response, dict) or response.get(key) in (None, ""):
            raise InvalidResponseError(f"{self.DISPLAY_NAME} response is missing '{key}'")
        return response[key]

    def _rows(self, response: object, key: str) -> list[dict]:
        """Return the list of data points stored under ``key`` (empty if absent)."""
        if not isinstance(response, dict):
            raise InvalidResponseError(f"{self.DISPLAY_NAME} returned a non-object response")
        rows = response.get(key) or []
        if not isinstance(rows, list):
            raise InvalidResponseError(f"{self.DISPLAY_NAME} '{key}' is not a list")
        return rows

    @staticmethod
    def _iso_timestamp(value: datetime) -> str:
        """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
        utc = as_utc(value)
        return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"

    @staticmethod
    def _iso_date(value: datetime) -> str:
        return as_utc(value).date().isoformat()
