"""Shared fixtures for coda_mcp tests."""

import pytest

from coda_mcp.client import CodaClient
from coda_mcp.config import Settings

BASE_URL = "https://coda.test/apis/v1"
TOKEN = "test-token-5f3a9c"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's real CODA_* variables out of the tests."""
    for name in (
        "CODA_API_TOKEN",
        "CODA_BASE_URL",
        "CODA_TIMEOUT_S",
        "CODA_CONNECT_TIMEOUT_S",
        "CODA_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        api_token=TOKEN,
        base_url=BASE_URL,
        timeout_seconds=5.0,
        connect_timeout_seconds=2.0,
        log_level="DEBUG",
    )


@pytest.fixture
def client(settings: Settings) -> CodaClient:
    """Create test client."""
    return CodaClient(settings)
