"""Shared fixtures and mock API responses for wearsync tests."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from wearsync.adapters.apple_health import AppleHealthAdapter
from wearsync.adapters.fitbit import FitbitAdapter
from wearsync.base import DeviceType, MetricType, SyncStatus, WearableDevice, create_metric
from wearsync.circuit_breaker import CircuitBreakerConfig, CircuitBreakerState
from wearsync.config_loader import VendorClientConfig, VendorConfig, load_vendor_config
from wearsync.service import WearablesService
from wearsync.store import InMemoryDeviceStore

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

TEST_USER_ID = "user-123"
TEST_DAY = datetime(2023, 10, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeApiClient:
    """In-process ApiClient: records calls and replays canned responses.

    ``responses`` maps ``(method, path)`` to a JSON body or an exception
    instance (raised instead of returned).
    """

    def __init__(self, responses: dict[tuple[str, str], Any] | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: list[dict[str, Any]] = []
        self.state = CircuitBreakerState.CLOSED

    async def get(self, path, params=None, headers=None):
        self.calls.append({"method": "GET", "path": path, "params": params, "headers": headers})
        return self._reply("GET", path)

    async def post(self, path, body=None, headers=None):
        self.calls.append({"method": "POST", "path": path, "body": body, "headers": headers})
        return self._reply("POST", path)

    def get_circuit_breaker_state(self) -> CircuitBreakerState:
        return self.state

    def _reply(self, method: str, path: str) -> Any:
        reply = self.responses.get((method, path))
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise AssertionError(f"Unexpected call: {method} {path}")
        return reply


def make_device(
    device_id: str = "device-1",
    device_type: DeviceType = DeviceType.APPLE_WATCH,
    **overrides: Any,
) -> WearableDevice:
    fields: dict[str, Any] = {
        "id": device_id,
        "user_id": TEST_USER_ID,
        "type": device_type,
        "manufacturer": "Apple" if device_type is DeviceType.APPLE_WATCH else "Acme",
        "model": "Watch Series 9",
        "firmware_version": "10.1",
    }
    fields.update(overrides)
    return WearableDevice(**fields)


def make_mock_response(status_code: int = 200, body: Any = None) -> MagicMock:
    """A MagicMock shaped like an httpx.Response."""
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.reason_phrase = {200: "OK", 404: "Not Found", 503: "Service Unavailable"}.get(
        status_code, "Error"
    )
    response.json.return_value = body if body is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            f"{status_code}", request=MagicMock(spec=httpx.Request), response=response
        )
    else:
        response.raise_for_status.return_value = None
    return response


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vendor_config() -> VendorConfig:
    """Load the bundled vendors.yaml."""
    return load_vendor_config()


@pytest.fixture
def client_config() -> VendorClientConfig:
    return VendorClientConfig(
        name="test",
        base_url="https://api.example.com",
        timeout_seconds=1.0,
        retry_attempts=2,
        retry_backoff_seconds=0.5,
        circuit_breaker=CircuitBreakerConfig(
            failure_threshold=3, recovery_timeout_seconds=30, monitoring_period_seconds=60
        ),
    )


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_http_client() -> MagicMock:
    client = MagicMock(spec=httpx.AsyncClient)
    client.request = AsyncMock(return_value=make_mock_response(200, {"ok": True}))
    return client


@pytest.fixture
def apple_client() -> FakeApiClient:
    return FakeApiClient()


@pytest.fixture
def fitbit_client() -> FakeApiClient:
    return FakeApiClient()


# ---------------------------------------------------------------------------
# JSON fixture loaders
# ---------------------------------------------------------------------------


@pytest.fixture
def apple_health_raw() -> dict:
    return json.loads((FIXTURES_DIR / "apple_health_data.json").read_text())


@pytest.fixture
def fitbit_activities_raw() -> dict:
    return json.loads((FIXTURES_DIR / "fitbit_activities.json").read_text())


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def apple_device() -> WearableDevice:
    return make_device("apple-1", DeviceType.APPLE_WATCH)


@pytest.fixture
def fitbit_device() -> WearableDevice:
    return make_device("fitbit-1", DeviceType.FITBIT, manufacturer="Fitbit", model="Charge 6")


@pytest.fixture
def registered_apple_device(apple_device: WearableDevice) -> WearableDevice:
    apple_device.oauth_token = "apple-access"
    apple_device.refresh_token = "apple-refresh"
    apple_device.token_expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    apple_device.sync_status = SyncStatus.PENDING
    return apple_device


@pytest.fixture
def heart_rate_metric():
    return create_metric(
        "apple-1", MetricType.HEART_RATE, 72, "bpm", timestamp=TEST_DAY + timedelta(hours=9)
    )


@pytest.fixture
def store() -> InMemoryDeviceStore:
    return InMemoryDeviceStore()


@pytest.fixture
def apple_adapter(apple_client: FakeApiClient) -> AppleHealthAdapter:
    return AppleHealthAdapter(apple_client, client_id="apple-id", client_secret="apple-secret")


@pytest.fixture
def fitbit_adapter(fitbit_client: FakeApiClient) -> FitbitAdapter:
    return FitbitAdapter(fitbit_client, client_id="fitbit-id", client_secret="fitbit-secret")


@pytest.fixture
def service(
    store: InMemoryDeviceStore,
    apple_adapter: AppleHealthAdapter,
    fitbit_adapter: FitbitAdapter,
) -> WearablesService:
    return WearablesService(
        store,
        {DeviceType.APPLE_WATCH: apple_adapter, DeviceType.FITBIT: fitbit_adapter},
        sync_interval=timedelta(minutes=30),
    )
