"""Error taxonomy for the Coda API gateway.

Every failure surfaced to a tool caller is a ``CodaError`` subclass. The
``error_type`` tag lets callers branch without parsing messages, and
``retryable`` marks conditions that may succeed if the caller tries again
later. Nothing in this package retries on its own.
"""

from typing import Any


class CodaError(Exception):
    """Base exception for Coda gateway errors."""

    error_type = "api"
    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        request_id: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.request_id = request_id
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        """Structured view of the error for tool results."""
        data: dict[str, Any] = {
            "error_type": self.error_type,
            "retryable": self.retryable,
            "message": str(self),
        }
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.detail:
            data["detail"] = self.detail
        if self.request_id:
            data["request_id"] = self.request_id
        return data


class InvalidParameterError(CodaError):
    """Caller input rejected before any network call."""

    error_type = "validation"

    def __init__(self, parameter: str, message: str) -> None:
        super().__init__(f"Invalid parameter '{parameter}': {message}")
        self.parameter = parameter


class UntrustedHostError(CodaError):
    """Download URL points at a host outside the allow-list."""

    error_type = "security"

    def __init__(self, url: str, host: str | None) -> None:
        super().__init__(f"Refusing to fetch from untrusted host '{host or ''}'")
        self.url = url
        self.host = host


class TransportError(CodaError):
    """Connection-level failure; no HTTP response was received."""

    error_type = "transport"
    retryable = True


class TransportTimeoutError(TransportError):
    """Connect or request timeout elapsed."""

    error_type = "transport_timeout"


class AuthError(CodaError):
    """Backend rejected the credential or lacks permission (401/403)."""

    error_type = "auth"


class NotFoundError(CodaError):
    """Requested resource does not exist (404)."""

    error_type = "not_found"


class RateLimitedError(CodaError):
    """Backend is throttling requests (429)."""

    error_type = "rate_limited"
    retryable = True

    def __init__(
        self,
        message: str = "Rate limited by Coda API",
        status_code: int | None = 429,
        request_id: str | None = None,
        detail: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code, request_id, detail)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        return data


class ApiError(CodaError):
    """Any other terminal 4xx (or unexpected non-2xx) response."""

    error_type = "api"


class ServerError(CodaError):
    """Backend 5xx response."""

    error_type = "server"
    retryable = True


class MalformedResponseError(CodaError):
    """Backend answered but the body could not be understood."""

    error_type = "malformed_response"


class ExportFailedError(CodaError):
    """Backend reported the page export as failed."""

    error_type = "export_failed"


class ExportTimeoutError(CodaError):
    """Export did not finish within the polling budget."""

    error_type = "export_timeout"
    retryable = True

    def __init__(self, seconds: float, attempts: int, export_id: str | None = None) -> None:
        super().__init__(
            f"Export timed out after {seconds:g} seconds ({attempts} status checks)"
        )
        self.seconds = seconds
        self.attempts = attempts
        self.export_id = export_id
