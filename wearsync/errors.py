"""Exception hierarchy for the wearsync engine.

Every error raised by the engine derives from ``WearSyncError`` so callers
can catch the whole family at one seam.  The HTTP layer maps each family to
a status code via ``status_code``.
"""

from __future__ import annotations


class WearSyncError(Exception):
    """Base class for all wearsync errors.

    Attributes:
        message:     Human-readable error message.
        status_code: HTTP status used when surfaced through the API layer.
    """

    status_code: int = 500

    def __init__(self, message: str = "Wearable sync error") -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class DeviceValidationError(WearSyncError, ValueError):
    """Raised when a device or metric fails structural / domain validation.

    Attributes:
        errors: Ordered list of human-readable validation messages.
    """

    status_code = 422

    def __init__(self, errors: list[str], subject: str = "device") -> None:
        self.errors = list(errors)
        super().__init__(f"Invalid {subject} data: " + "; ".join(self.errors))


class NormalizationError(WearSyncError, ValueError):
    """Raised when a vendor payload cannot be mapped to canonical metrics."""

    status_code = 422


# ---------------------------------------------------------------------------
# Lookup / state
# ---------------------------------------------------------------------------


class DeviceNotFoundError(WearSyncError, LookupError):
    status_code = 404

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"Device not found: {device_id}")


class InactiveDeviceError(WearSyncError):
    status_code = 409

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__("Device is not active")


class MissingRefreshTokenError(WearSyncError):
    status_code = 409

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__("No refresh token available for device")


class DeviceNotRegisteredError(WearSyncError):
    """Raised when a data pull is attempted before vendor registration."""

    status_code = 409

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__("Device has no OAuth token; register it first")


class UnsupportedDeviceTypeError(WearSyncError):
    """Raised when no vendor integration exists for a device type."""

    status_code = 409


class NoMetricDataError(WearSyncError):
    status_code = 404


# ---------------------------------------------------------------------------
# Upstream (vendor API) failures
# ---------------------------------------------------------------------------


class UpstreamError(WearSyncError):
    """Network-level failure talking to a vendor API."""

    status_code = 502


class UpstreamHTTPError(UpstreamError):
    """Vendor API answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str) -> None:
        super().__init__(f"HTTP {status_code}: {reason}")
        self.upstream_status = status_code

    @property
    def retryable(self) -> bool:
        return self.upstream_status >= 500


class InvalidResponseError(UpstreamError):
    """Vendor API answered 2xx with a body that cannot be used."""


class RequestTimeoutError(UpstreamError):
    def __init__(self, message: str = "Request timeout") -> None:
        super().__init__(message)


class CircuitOpenError(UpstreamError):
    def __init__(self, message: str = "Circuit breaker is OPEN") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigValidationError(WearSyncError, ValueError):
    """Raised when vendors.yaml fails validation."""
