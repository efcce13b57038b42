"""Structural and physiological validation for devices and metrics.

Structural rules are pydantic schemas; physiological rules are a per-type
bounds table applied on top.  Validation never raises for bad input: every
violation is reported as a message in ``ValidationResult.errors``.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from wearsync.base import (
    DeviceType,
    HealthMetric,
    MetricType,
    SyncStatus,
    WearableDevice,
    as_utc,
    parse_iso_datetime,
    utc_now,
)
from wearsync.errors import DeviceValidationError

logger = logging.getLogger("wearsync.validator")

FUTURE_TIMESTAMP_MESSAGE = "Timestamp cannot be in the future"


@dataclass(frozen=True)
class MetricBounds:
    """Inclusive physiological range for one metric type."""

    low: float
    high: float
    message: str

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high


METRIC_BOUNDS: dict[MetricType, MetricBounds] = {
    MetricType.HEART_RATE: MetricBounds(30, 220, "Heart rate must be between 30 and 220 bpm"),
    MetricType.STEPS: MetricBounds(0, 100_000, "Steps must be between 0 and 100,000"),
    MetricType.BLOOD_OXYGEN: MetricBounds(70, 100, "Blood oxygen must be between 70% and 100%"),
    # Fahrenheit
    MetricType.BODY_TEMPERATURE: MetricBounds(
        90, 110, "Body temperature must be between 90°F and 110°F"
    ),
    MetricType.WEIGHT: MetricBounds(20, 1000, "Weight must be between 20kg and 1000kg"),
}


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> ValidationResult:
        return cls(is_valid=not errors, errors=list(errors))

    def raise_for_errors(self, subject: str = "device") -> None:
        """Raise DeviceValidationError if this result is invalid."""
        if not self.is_valid:
            raise DeviceValidationError(self.errors, subject=subject)


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class _SchemaBase(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        protected_namespaces=(),
    )


class _DeviceSchema(_SchemaBase):
    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    type: DeviceType
    manufacturer: str = Field(min_length=1)
    model: str = Field(min_length=1)
    firmware_version: str = Field(min_length=1)
    is_active: StrictBool
    sync_status: SyncStatus
    registered_at: datetime
    last_sync_at: datetime | None = None
    oauth_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    metadata: dict[str, Any] | None = None


class _MetricSchema(_SchemaBase):
    id: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    type: MetricType
    value: float = Field(allow_inf_nan=False)
    unit: str = Field(min_length=1)
    timestamp: datetime
    metadata: dict[str, Any] | None = None
    source: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("value", mode="before")
    @classmethod
    def _reject_bool(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("value must be a number")
        return value


def _as_mapping(obj: WearableDevice | HealthMetric | Mapping[str, Any]) -> dict[str, Any]:
    """Flatten a dataclass or mapping, dropping None so absent fields read as missing."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        raw = {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    elif isinstance(obj, Mapping):
        raw = dict(obj)
    else:
        return {}
    return {k: v for k, v in raw.items() if v is not None}


def _format_errors(exc: ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "value"
        msg = err["msg"]
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{loc}: {msg}")
    return messages


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class DeviceDataValidator:
    """Validate devices and metrics before they are persisted or acted upon.

    Usage::

        validator = DeviceDataValidator()
        result = validator.validate_metric(metric)
        if not result.is_valid:
            logger.warning("Rejected metric: %s", result.errors)
    """

    def validate_device(
        self, device: WearableDevice | Mapping[str, Any]
    ) -> ValidationResult:
        """Check required fields, enum membership and field types of a device."""
        raw = _as_mapping(device)
        if not raw:
            return ValidationResult.from_errors(["device: must be a device record"])
        try:
            _DeviceSchema.model_validate(raw)
        except ValidationError as exc:
            return ValidationResult.from_errors(_format_errors(exc))
        return ValidationResult.from_errors([])

    def validate_metric(
        self,
        metric: HealthMetric | Mapping[str, Any],
        now: datetime | None = None,
    ) -> ValidationResult:
        """Check structure, the no-future-timestamp rule and per-type bounds.

        Args:
            metric: Metric to validate.
            now:    Reference time for the future check (defaults to now, UTC).

        Returns:
            ValidationResult.  Per-type bounds are only checked once the
            structural and timestamp checks pass.
        """
        raw = _as_mapping(metric)
        if not raw:
            return ValidationResult.from_errors(["metric: must be a metric record"])

        errors: list[str] = []
        timestamp: datetime | None
        try:
            parsed = _MetricSchema.model_validate(raw)
            timestamp = as_utc(parsed.timestamp)
        except ValidationError as exc:
            errors.extend(_format_errors(exc))
            timestamp = parse_iso_datetime(raw.get("timestamp"))

        if timestamp is not None and timestamp > as_utc(now or utc_now()):
            errors.append(FUTURE_TIMESTAMP_MESSAGE)

        # Domain rules only apply to structurally valid metrics
        if not errors:
            errors.extend(self._domain_errors(parsed))
        if errors:
            logger.debug("Metric %s rejected: %s", raw.get("id"), errors)
        return ValidationResult.from_errors(errors)

    @staticmethod
    def _domain_errors(metric: _MetricSchema) -> list[str]:
        bounds = METRIC_BOUNDS.get(metric.type)
        if bounds is not None and not bounds.contains(metric.value):
            return [bounds.message]
        return []
