"""Vendor payload → canonical HealthMetric normalization.

Each vendor family is described by a VendorFieldMap: which payload key
carries the observation time and which optional keys map to which metric
type and unit.  Normalization is a pure function: no I/O, no side effects.

Adding a vendor means adding one field map and one NORMALIZERS entry.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from wearsync.base import DeviceType, HealthMetric, MetricType, create_metric, parse_iso_datetime
from wearsync.errors import NormalizationError

logger = logging.getLogger("wearsync.normalizer")


@dataclass(frozen=True)
class FieldMapping:
    payload_key: str
    metric_type: MetricType
    unit: str
    #: Short tag used in generated metric ids ("steps", "hr", ...).
    id_tag: str


@dataclass(frozen=True)
class VendorFieldMap:
    """Field-mapping table for one vendor family.

    Attributes:
        source:        Vendor tag written to HealthMetric.source.
        id_prefix:     Prefix for generated metric ids.
        timestamp_key: Payload key holding the observation time.
        fields:        Ordered metric mappings; output follows this order.
    """

    source: str
    id_prefix: str
    timestamp_key: str
    fields: tuple[FieldMapping, ...]


APPLE_HEALTH_FIELDS = VendorFieldMap(
    source="apple-health",
    id_prefix="apple",
    timestamp_key="timestamp",
    fields=(
        FieldMapping("steps", MetricType.STEPS, "steps", "steps"),
        FieldMapping("heartRate", MetricType.HEART_RATE, "bpm", "hr"),
        FieldMapping("sleepDuration", MetricType.SLEEP_DURATION, "minutes", "sleep"),
        FieldMapping("activeEnergyBurned", MetricType.CALORIES_BURNED, "kcal", "calories"),
        FieldMapping("distanceWalkingRunning", MetricType.DISTANCE, "km", "distance"),
        FieldMapping("oxygenSaturation", MetricType.BLOOD_OXYGEN, "%", "spo2"),
    ),
)

FITBIT_FIELDS = VendorFieldMap(
    source="fitbit",
    id_prefix="fitbit",
    timestamp_key="recorded_at",
    fields=(
        FieldMapping("steps-count", MetricType.STEPS, "steps", "steps"),
        FieldMapping("heart-rate-bpm", MetricType.HEART_RATE, "bpm", "hr"),
        FieldMapping("sleep-minutes", MetricType.SLEEP_DURATION, "minutes", "sleep"),
        FieldMapping("calories-out", MetricType.CALORIES_BURNED, "kcal", "calories"),
        FieldMapping("distance-km", MetricType.DISTANCE, "km", "distance"),
        FieldMapping("spo2-percent", MetricType.BLOOD_OXYGEN, "%", "spo2"),
    ),
)


def _coerce_number(value: Any, key: str) -> float | int:
    if isinstance(value, bool):
        raise NormalizationError(f"Non-numeric value for '{key}': {value!r}")
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise NormalizationError(f"Non-numeric value for '{key}': {value!r}") from exc
    if isinstance(number, float) and not math.isfinite(number):
        raise NormalizationError(f"Non-finite value for '{key}': {value!r}")
    return number


def normalize_payload(
    data: Mapping[str, Any], device_id: str, mapping: VendorFieldMap
) -> list[HealthMetric]:
    """Convert one vendor data point into canonical metrics.

    Emits one metric per present field; absent (or null) fields are skipped.

    Args:
        data:      One raw data point from the vendor API.
        device_id: Owning device id.
        mapping:   The vendor's field-mapping table.

    Returns:
        Canonical metrics in field-map order (possibly empty).

    Raises:
        NormalizationError: If a metric field is present but the timestamp is
            missing/unparseable, or a metric value is not numeric.
    """
    present = [f for f in mapping.fields if data.get(f.payload_key) is not None]
    if not present:
        return []

    timestamp = parse_iso_datetime(data.get(mapping.timestamp_key))
    if timestamp is None:
        raise NormalizationError(
            f"{mapping.source} payload has no valid '{mapping.timestamp_key}'"
        )

    return [
        create_metric(
            device_id=device_id,
            type=f.metric_type,
            value=_coerce_number(data[f.payload_key], f.payload_key),
            unit=f.unit,
            timestamp=timestamp,
            source=mapping.source,
            prefix=f"{mapping.id_prefix}-{f.id_tag}",
        )
        for f in present
    ]


def normalize_from_apple_health(data: Mapping[str, Any], device_id: str) -> list[HealthMetric]:
    """Normalize an Apple-style data point (camelCase keys, ``timestamp``)."""
    return normalize_payload(data, device_id, APPLE_HEALTH_FIELDS)


def normalize_from_fitbit(data: Mapping[str, Any], device_id: str) -> list[HealthMetric]:
    """Normalize a Fitbit-style data point (kebab-case keys, ``recorded_at``)."""
    return normalize_payload(data, device_id, FITBIT_FIELDS)


NORMALIZERS: dict[DeviceType, Callable[[Mapping[str, Any], str], list[HealthMetric]]] = {
    DeviceType.APPLE_WATCH: normalize_from_apple_health,
    DeviceType.FITBIT: normalize_from_fitbit,
}


def normalize_batch(
    rows: list[Mapping[str, Any]],
    device_id: str,
    normalizer: Callable[[Mapping[str, Any], str], list[HealthMetric]],
) -> list[HealthMetric]:
    """Normalize every row of a vendor response, flattening the result."""
    metrics: list[HealthMetric] = []
    for row in rows:
        metrics.extend(normalizer(row, device_id))
    logger.debug("Normalized %d rows into %d metrics for %s", len(rows), len(metrics), device_id)
    return metrics
