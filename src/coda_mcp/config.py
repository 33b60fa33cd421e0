"""Configuration management for coda_mcp.

Loads settings from environment variables with sensible defaults.
"""

import os

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator

DEFAULT_BASE_URL = "https://coda.io/apis/v1"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


def _float_from_env(name: str, default: float) -> float:
    """Parse a float from environment, falling back to default on empty values."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be numeric") from exc


def _token_from_env() -> SecretStr:
    raw = os.getenv("CODA_API_TOKEN", "").strip()
    if not raw:
        raise ConfigError("CODA_API_TOKEN environment variable is required")
    return SecretStr(raw)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    api_token: SecretStr = Field(
        default_factory=_token_from_env,
        description="Coda API bearer token",
    )
    base_url: str = Field(
        default_factory=lambda: os.getenv("CODA_BASE_URL") or DEFAULT_BASE_URL,
        description="Base URL of the Coda REST API",
    )
    timeout_seconds: float = Field(
        default_factory=lambda: _float_from_env("CODA_TIMEOUT_S", 60.0),
        gt=0,
        description="Overall HTTP request timeout in seconds",
    )
    connect_timeout_seconds: float = Field(
        default_factory=lambda: _float_from_env("CODA_CONNECT_TIMEOUT_S", 30.0),
        gt=0,
        description="HTTP connect timeout in seconds",
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("CODA_LOG_LEVEL", "INFO").upper(),
        description="Logging verbosity (DEBUG, INFO, WARNING, ERROR)",
    )

    # Values from CODA_* variables arrive through default_factory; validate them too.
    model_config = {"frozen": True, "validate_default": True}

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @model_validator(mode="after")
    def _check_timeouts(self) -> "Settings":
        if self.connect_timeout_seconds > self.timeout_seconds:
            raise ValueError("connect timeout must not exceed the request timeout")
        return self


def get_settings() -> Settings:
    """Create settings instance from current environment.

    Returns:
        Settings instance with values from environment variables.

    Raises:
        ConfigError: If the API token is missing or a value is invalid.
    """
    try:
        return Settings()
    except (ValidationError, ValueError) as e:
        raise ConfigError(str(e)) from e
