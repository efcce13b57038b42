"""Health check endpoint: liveness plus per-vendor circuit state."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from wearsync.base import utc_now
from wearsync.circuit_breaker import CircuitBreakerState
from wearsync.dependencies import AppSettings, Service
from wearsync.models import HealthResponse

router = APIRouter(tags=["system"])
logger = logging.getLogger("wearsync.health")


@router.get("/health", response_model=HealthResponse)
async def health_check(service: Service, settings: AppSettings) -> HealthResponse:
    """Liveness probe. Returns 200 if the API process is up.

    The status is "degraded" while any vendor circuit is not CLOSED.
    """
    vendors = service.get_service_health()
    degraded = [name for name, state in vendors.items() if state != CircuitBreakerState.CLOSED.value]
    if degraded:
        logger.warning("Health check: vendor circuits not closed: %s", degraded)

    return HealthResponse(
        status="degraded" if degraded else "healthy",
        version=settings.app_version,
        environment=settings.environment,
        vendors=vendors,
        timestamp=utc_now(),
    )
