"""Tests for settings loading and logging setup."""

import io
import logging

import pytest

from coda_mcp.config import DEFAULT_BASE_URL, ConfigError, Settings, get_settings
from coda_mcp.logging_utils import TokenRedactingFilter, configure_logging


class TestGetSettings:
    """Tests for environment-driven settings."""

    def test_token_required(self) -> None:
        """Test missing token raises ConfigError."""
        with pytest.raises(ConfigError, match="CODA_API_TOKEN"):
            get_settings()

    def test_blank_token_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test whitespace-only token is rejected."""
        monkeypatch.setenv("CODA_API_TOKEN", "   ")
        with pytest.raises(ConfigError):
            get_settings()

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test default settings values."""
        monkeypatch.setenv("CODA_API_TOKEN", "abc")
        settings = get_settings()

        assert settings.api_token.get_secret_value() == "abc"
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.timeout_seconds == 60.0
        assert settings.connect_timeout_seconds == 30.0
        assert settings.log_level == "INFO"

    def test_overrides_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings read from environment variables."""
        monkeypatch.setenv("CODA_API_TOKEN", "abc")
        monkeypatch.setenv("CODA_BASE_URL", "https://example.coda.io/apis/v1")
        monkeypatch.setenv("CODA_TIMEOUT_S", "15")
        monkeypatch.setenv("CODA_CONNECT_TIMEOUT_S", "5")
        monkeypatch.setenv("CODA_LOG_LEVEL", "debug")

        settings = get_settings()

        assert settings.base_url == "https://example.coda.io/apis/v1"
        assert settings.timeout_seconds == 15.0
        assert settings.connect_timeout_seconds == 5.0
        assert settings.log_level == "DEBUG"

    def test_non_numeric_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test non-numeric timeout raises ConfigError."""
        monkeypatch.setenv("CODA_API_TOKEN", "abc")
        monkeypatch.setenv("CODA_TIMEOUT_S", "soon")
        with pytest.raises(ConfigError, match="CODA_TIMEOUT_S"):
            get_settings()

    def test_connect_timeout_must_not_exceed_request_timeout(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test connect timeout above request timeout is rejected."""
        monkeypatch.setenv("CODA_API_TOKEN", "abc")
        monkeypatch.setenv("CODA_TIMEOUT_S", "10")
        monkeypatch.setenv("CODA_CONNECT_TIMEOUT_S", "20")
        with pytest.raises(ConfigError, match="connect timeout"):
            get_settings()

    def test_unknown_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test unknown log level is rejected."""
        monkeypatch.setenv("CODA_API_TOKEN", "abc")
        monkeypatch.setenv("CODA_LOG_LEVEL", "chatty")
        with pytest.raises(ConfigError, match="log level"):
            get_settings()

    @pytest.mark.parametrize(
        ("timeout", "connect"),
        [("-5", "-10"), ("0", "0"), ("30", "-1")],
    )
    def test_non_positive_timeouts_rejected(
        self, monkeypatch: pytest.MonkeyPatch, timeout: str, connect: str
    ) -> None:
        """Test timeouts from the environment must be positive."""
        monkeypatch.setenv("CODA_API_TOKEN", "abc")
        monkeypatch.setenv("CODA_TIMEOUT_S", timeout)
        monkeypatch.setenv("CODA_CONNECT_TIMEOUT_S", connect)
        with pytest.raises(ConfigError, match="greater than 0"):
            get_settings()

    def test_token_hidden_in_repr(self, settings: Settings) -> None:
        """Test token does not appear in the settings repr."""
        assert settings.api_token.get_secret_value() not in repr(settings)


class TestTokenRedaction:
    """Tests for the logging filter that hides the API token."""

    def test_filter_scrubs_formatted_message(self) -> None:
        """Test filter scrubs the token from formatted messages."""
        record = logging.LogRecord(
            "coda_mcp", logging.INFO, __file__, 1, "Authorization: Bearer %s", ("s3cret",), None
        )
        assert TokenRedactingFilter("s3cret").filter(record)
        assert record.getMessage() == "Authorization: Bearer [REDACTED]"

    def test_filter_leaves_other_records(self) -> None:
        """Test filter leaves unrelated records alone."""
        record = logging.LogRecord(
            "coda_mcp", logging.INFO, __file__, 1, "listing %d docs", (3,), None
        )
        TokenRedactingFilter("s3cret").filter(record)
        assert record.getMessage() == "listing 3 docs"

    def test_configure_logging_redacts_token(self, settings: Settings) -> None:
        """Test configured handlers redact the token."""
        stream = io.StringIO()
        configure_logging(settings, stream=stream)
        try:
            token = settings.api_token.get_secret_value()
            logging.getLogger("coda_mcp.test").warning("token was %s", token)
        finally:
            logging.getLogger().handlers.clear()

        output = stream.getvalue()
        assert "token was [REDACTED]" in output
        assert token not in output
