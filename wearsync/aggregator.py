"""Daily aggregation of same-type metrics.

Cumulative types (steps, calories, distance) are summed; everything else is
an instantaneous reading and is averaged, rounded half-up to an integer.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, time, timezone
from typing import Iterable

from wearsync.base import HealthMetric, MetricType, utc_now
from wearsync.errors import NoMetricDataError

logger = logging.getLogger("wearsync.aggregator")

CUMULATIVE_TYPES: frozenset[MetricType] = frozenset(
    {MetricType.STEPS, MetricType.CALORIES_BURNED, MetricType.DISTANCE}
)


def is_cumulative(metric_type: MetricType) -> bool:
    return metric_type in CUMULATIVE_TYPES


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregated_metric_id(metric_type: MetricType, day: datetime) -> str:
    """Deterministic id for a daily aggregate: ``aggregated-<TYPE>-<YYYY-MM-DD>``."""
    return f"aggregated-{metric_type.value}-{day.date().isoformat()}"


def aggregate_daily(metrics: Iterable[HealthMetric], metric_type: MetricType) -> HealthMetric:
    """Collapse one day's metrics of ``metric_type`` into one daily metric.

    Args:
        metrics:     Metrics for a single day; other types are ignored.
        metric_type: The type to aggregate.

    Returns:
        A new HealthMetric dated 00:00 UTC of the first metric's day.  Its
        id is deterministic, so re-aggregating replaces the previous value.

    Raises:
        NoMetricDataError: If no metric of ``metric_type`` is present.
    """
    metric_type = MetricType(metric_type)
    selected = [m for m in metrics if m.type == metric_type]
    if not selected:
        raise NoMetricDataError(f"No metrics found for type {metric_type.value}")

    first = selected[0]
    total = sum(m.value for m in selected)
    if is_cumulative(metric_type):
        value: float = total
        aggregation_type = "sum"
    else:
        value = _round_half_up(total / len(selected))
        aggregation_type = "average"

    day_start = datetime.combine(first.day, time.min, tzinfo=timezone.utc)

    logger.debug(
        "Aggregated %d %s metrics for %s on %s → %s (%s)",
        len(selected), metric_type.value, first.device_id, first.day, value, aggregation_type,
    )
    return HealthMetric(
        id=aggregated_metric_id(metric_type, day_start),
        device_id=first.device_id,
        type=metric_type,
        value=value,
        unit=first.unit,
        timestamp=day_start,
        source=first.source,
        metadata={
            "aggregationType": aggregation_type,
            "sourceMetricCount": len(selected),
            "aggregatedAt": utc_now(),
        },
    )
