"""
Pytest configuration and fixtures for D365 CRM proxy tests
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from d365crm.config import Settings
from d365crm.factories import MockD365Client, MockTokenProvider
from d365crm.services.crm import CRMService

BASE_URL = "https://contoso.crm.dynamics.com"
FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced epoch-seconds clock"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    """Wraps a handler in httpx.MockTransport and keeps every request it saw"""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def json_response(status_code: int, payload: Any = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    content = b"" if payload is None else json.dumps(payload).encode()
    merged = {"Content-Type": "application/json"} if payload is not None else {}
    merged.update(headers or {})
    return httpx.Response(status_code, content=content, headers=merged)


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "d365_base_url": BASE_URL,
        "d365_client_id": "11111111-2222-3333-4444-555555555555",
        "d365_client_secret": "s3cret",
        "d365_tenant_id": "contoso-tenant",
        "app_env": "test",
        "auth_provider": "client_credentials",
        "d365_client": "odata",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    """Build Settings with overrides, ignoring any local .env"""
    return make_settings


@pytest.fixture
def recording_transport():
    """Factory: handler -> RecordingTransport"""
    return RecordingTransport


@pytest.fixture
def respond():
    """Factory for JSON httpx responses"""
    return json_response


@pytest.fixture
def settings():
    """Fully configured settings pointing at a fake tenant"""
    return make_settings()


@pytest.fixture
def mock_settings():
    """Settings selecting the in-memory token provider and client"""
    return make_settings(auth_provider="mock", d365_client="mock")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_token_provider():
    return MockTokenProvider()


@pytest.fixture
def mock_d365_client(mock_token_provider):
    return MockD365Client(mock_token_provider)


@pytest.fixture
def crm_service(mock_d365_client, mock_token_provider):
    """CRM service over the in-memory client with a frozen clock"""
    return CRMService(mock_d365_client, token_provider=mock_token_provider, now=lambda: FIXED_NOW)


@pytest.fixture
def sample_contact():
    return {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "phone": "+44 20 7946 0000",
        "jobTitle": "Analyst",
        "company": "Analytical Engines",
        "city": "London",
        "country": "UK",
    }
