"""Fault-tolerant JSON client for one vendor API.

Wraps httpx with a per-request timeout, bounded retries with exponential
backoff, and a circuit breaker.  Transport failures are translated into the
wearsync upstream error family so callers never see raw httpx exceptions.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Protocol

import httpx

from wearsync.circuit_breaker import CircuitBreaker, CircuitBreakerState
from wearsync.config_loader import VendorClientConfig
from wearsync.errors import (
    InvalidResponseError,
    RequestTimeoutError,
    UpstreamError,
    UpstreamHTTPError,
)

logger = logging.getLogger("wearsync.client")

NETWORK_ERROR_MESSAGE = "Network error: Unable to reach server"
INVALID_JSON_MESSAGE = "Invalid JSON response"


class ApiClient(Protocol):
    """The narrow client surface vendor adapters depend on."""

    async def get(
        self, path: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> Any: ...

    async def post(
        self, path: str, body: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> Any: ...

    def get_circuit_breaker_state(self) -> CircuitBreakerState: ...


def _is_retryable(exc: UpstreamError) -> bool:
    if isinstance(exc, UpstreamHTTPError):
        return exc.retryable
    return not isinstance(exc, InvalidResponseError)


class VendorApiClient:
    """Concrete ApiClient over httpx.

    One instance per vendor: an open circuit for one vendor never blocks
    calls to another.  Safe for concurrent use from many coroutines.

    Usage::

        client = VendorApiClient(get_vendor_config().vendor("fitbit"))
        data = await client.get("/activities", params={"device_id": "abc"})
    """

    def __init__(
        self,
        config: VendorClientConfig,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config:      Vendor policy (base URL, timeout, retries, breaker).
            http_client: Optional pre-configured httpx client (for testing).
            clock:       Monotonic clock for the circuit breaker.
            sleep:       Backoff sleep; replaced in tests.
        """
        self._config = config
        self._http_client = http_client
        self._timeout = httpx.Timeout(config.timeout_seconds)
        self._sleep = sleep
        self._breaker = CircuitBreaker(config.circuit_breaker, name=config.name, clock=clock)

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def get_circuit_breaker_state(self) -> CircuitBreakerState:
        return self._breaker.state

    async def get(
        self, path: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> Any:
        return await self._request("GET", path, params=params, headers=headers)

    async def post(
        self, path: str, body: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> Any:
        return await self._request("POST", path, json=body, headers=headers)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        return await self._breaker.call(lambda: self._send_with_retry(method, path, **kwargs))

    async def _send_with_retry(self, method: str, path: str, **kwargs: Any) -> Any:
        attempts = self._config.retry_attempts + 1
        for attempt in range(attempts):
            try:
                return await self._send_once(method, path, **kwargs)
            except UpstreamError as exc:
                if attempt == attempts - 1 or not _is_retryable(exc):
                    raise
                delay = self._config.retry_backoff_seconds * (2 ** attempt)
                logger.warning(
                    "%s %s%s failed (%s), retry %d/%d in %.2fs",
                    method, self._config.name, path, exc, attempt + 1, attempts - 1, delay,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")

    async def _send_once(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._config.base_url}{path}"
        try:
            if self._http_client:
                response = await self._http_client.request(
                    method, url, timeout=self._timeout, **kwargs
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError() from exc
        except httpx.HTTPStatusError as exc:
            raise UpstreamHTTPError(exc.response.status_code, exc.response.reason_phrase) from exc
        except httpx.RequestError as exc:
            raise UpstreamError(NETWORK_ERROR_MESSAGE) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponseError(INVALID_JSON_MESSAGE) from exc
