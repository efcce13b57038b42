"""Circuit breaker guarding calls to one vendor API.

CLOSED   — calls pass through; failures inside the monitoring period are counted.
OPEN     — calls fail fast with CircuitOpenError until the recovery timeout elapses.
HALF_OPEN — the next call is a trial: success closes the circuit, failure re-opens it.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from wearsync.errors import CircuitOpenError

logger = logging.getLogger("wearsync.circuit_breaker")

T = TypeVar("T")


class CircuitBreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Thresholds for one breaker.

    Attributes:
        failure_threshold:         Failures that open the circuit.
        recovery_timeout_seconds:  Time spent OPEN before a trial call.
        monitoring_period_seconds: Window in which failures are counted.
    """

    failure_threshold: int = 5
    recovery_timeout_seconds: float = 60.0
    monitoring_period_seconds: float = 120.0


class CircuitBreaker:
    """Count failures of an async callable and stop calling it when it keeps failing.

    Usage::

        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=3), name="fitbit")
        data = await breaker.call(lambda: client.get("/activities"))
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._name = name
        self._clock = clock
        self._state = CircuitBreakerState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None

    @property
    def state(self) -> CircuitBreakerState:
        if (
            self._state is CircuitBreakerState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self._config.recovery_timeout_seconds
        ):
            self._state = CircuitBreakerState.HALF_OPEN
            logger.info("Circuit breaker %s HALF_OPEN, allowing a trial call", self._name)
        return self._state

    @property
    def failure_count(self) -> int:
        self._prune()
        return len(self._failures)

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` under the breaker.

        Raises:
            CircuitOpenError: If the circuit is OPEN.
            Exception:        Whatever ``func`` raised (recorded as a failure).
        """
        if self.state is CircuitBreakerState.OPEN:
            raise CircuitOpenError()

        try:
            result = await func()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        if self._state is not CircuitBreakerState.CLOSED or self._failures:
            logger.info("Circuit breaker %s CLOSED after successful call", self._name)
        self._state = CircuitBreakerState.CLOSED
        self._failures.clear()
        self._opened_at = None

    def record_failure(self) -> None:
        now = self._clock()
        if self.state is CircuitBreakerState.HALF_OPEN:
            self._open(now)
            return
        self._failures.append(now)
        self._prune()
        if len(self._failures) >= self._config.failure_threshold:
            self._open(now)

    def reset(self) -> None:
        self._state = CircuitBreakerState.CLOSED
        self._failures.clear()
        self._opened_at = None

    def _open(self, now: float) -> None:
        self._state = CircuitBreakerState.OPEN
        self._opened_at = now
        logger.warning(
            "Circuit breaker %s OPEN for %.0fs after %d failures",
            self._name,
            self._config.recovery_timeout_seconds,
            len(self._failures),
        )

    def _prune(self) -> None:
        cutoff = self._clock() - self._config.monitoring_period_seconds
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()
