"""
Pytest configuration and shared fixtures for Mixpanel driver tests.

Provides:
- Environment fixtures
- Mock HTTP backend
- Driver and config fixtures
- Test data
"""

import time
import pytest
from unittest.mock import MagicMock, patch
from typing import Dict, Any

from mixpanel_driver import (
    HTTPBackend,
    HTTPResponse,
    MixpanelConfig,
    MixpanelDriver,
    ServiceAccount,
)

ENV_VARS = [
    "MIXPANEL_PROJECT_TOKEN",
    "MIXPANEL_SERVICE_ACCOUNT_USERNAME",
    "MIXPANEL_SERVICE_ACCOUNT_PASSWORD",
    "MIXPANEL_PROJECT_ID",
    "MIXPANEL_BATCH_SIZE",
    "MIXPANEL_BATCH_TIMEOUT_MS",
    "MIXPANEL_BASE_URL",
    "MIXPANEL_TIMEOUT",
    "MIXPANEL_MAX_RETRIES",
    "MIXPANEL_DEBUG",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove MIXPANEL_* variables and keep .env files out of the picture."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("mixpanel_driver.config.load_dotenv") as mock_load_dotenv:
        yield mock_load_dotenv


@pytest.fixture
def mock_env_vars(clean_env, monkeypatch):
    """Set up mock environment variables."""
    monkeypatch.setenv("MIXPANEL_PROJECT_TOKEN", "test_token_123")
    monkeypatch.setenv("MIXPANEL_SERVICE_ACCOUNT_USERNAME", "test_user")
    monkeypatch.setenv("MIXPANEL_SERVICE_ACCOUNT_PASSWORD", "test_pass")
    monkeypatch.setenv("MIXPANEL_PROJECT_ID", "123456")
    monkeypatch.setenv("MIXPANEL_BATCH_SIZE", "50")
    monkeypatch.setenv("MIXPANEL_BATCH_TIMEOUT_MS", "2000")
    monkeypatch.setenv("MIXPANEL_DEBUG", "false")


@pytest.fixture
def service_account() -> ServiceAccount:
    return ServiceAccount(username="test_user", password="test_pass", project_id="123456")


@pytest.fixture
def mock_backend():
    """HTTP backend that answers every POST with {"status": 1}."""
    backend = MagicMock(spec=HTTPBackend)
    backend.post.return_value = HTTPResponse(status=200, body={"status": 1})
    return backend


@pytest.fixture
def config(service_account) -> MixpanelConfig:
    """Small batch and a long timer so only the threshold triggers sends."""
    return MixpanelConfig(
        project_token="test_token",
        service_account=service_account,
        batch_size=2,
        batch_timeout_ms=60000,
    )


@pytest.fixture
def mixpanel_client(config, mock_backend):
    """Create a test driver with a mocked backend."""
    client = MixpanelDriver(config, backend=mock_backend, register_atexit=False)
    yield client
    client.batcher.clear()
    client.close()


@pytest.fixture
def wait_until():
    """Poll ``condition`` until it is true or ``timeout`` seconds pass."""
    def _wait_until(condition, timeout: float = 2.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return _wait_until


@pytest.fixture
def sample_events() -> list:
    """Create sample import events."""
    return [
        {
            "event": "signup",
            "device_id": "device-uuid-123",
            "time": 1672531200,
            "source": "organic"
        },
        {
            "event": "first_purchase",
            "device_id": "device-uuid-123",
            "user_id": "user@example.com",
            "time": 1672617600,
            "amount": 49.99
        },
        {
            "event": "page_view",
            "device_id": "device-uuid-456",
            "ip": "192.168.1.1",
            "page": "/pricing"
        }
    ]


@pytest.fixture
def mock_import_response() -> Dict[str, Any]:
    """Mock response from the import API."""
    return {
        "code": 200,
        "num_records_imported": 3,
        "status": "OK"
    }


@pytest.fixture
def mock_rate_limit_response() -> HTTPResponse:
    return HTTPResponse(status=429, body="Rate limited", headers={"Retry-After": "60"})


@pytest.fixture
def mock_auth_error_response() -> HTTPResponse:
    return HTTPResponse(status=401, body="Unauthorized")
