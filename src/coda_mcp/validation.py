"""Bounds and trust checks applied to caller-supplied parameters.

These run before any request is built, so a rejected value never reaches
the network.
"""

import re
from urllib.parse import urlsplit

from coda_mcp.errors import InvalidParameterError, UntrustedHostError

MAX_LIMIT = 1000

# Primary API domain and content hosting; subdomains are trusted too.
ALLOWED_DOWNLOAD_HOSTS: tuple[str, ...] = (
    "coda.io",
    "codahosted.io",
)

# Only S3 endpoints on AWS: s3.amazonaws.com, s3.<region>.amazonaws.com,
# s3-<region>.amazonaws.com, and bucket subdomains of each.
S3_HOST_PATTERN = re.compile(
    r"(?:[a-z0-9][a-z0-9.-]*\.)?s3(?:[.-][a-z]{2}(?:-[a-z]+)+-\d+)?\.amazonaws\.com"
)


def clamp_limit(value: int | None, default: int, parameter: str = "limit") -> int:
    """Normalize a page-size style parameter.

    Args:
        value: Caller-requested limit, or None for the tool default.
        default: Per-tool default used when value is None.
        parameter: Parameter name used in error messages.

    Returns:
        A limit in the range 1..MAX_LIMIT.

    Raises:
        InvalidParameterError: If value is zero or negative.
    """
    if value is None:
        value = default
    if value <= 0:
        raise InvalidParameterError(parameter, f"must be a positive integer, got {value}")
    return min(value, MAX_LIMIT)


def require_identifier(value: str | None, parameter: str) -> str:
    """Ensure a required identifier is a non-empty string."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidParameterError(parameter, "is required and must be a non-empty string")
    return value.strip()


def is_trusted_host(host: str | None) -> bool:
    """Return True if host is an allow-listed domain, one of its subdomains, or an S3 endpoint."""
    if not host:
        return False
    host = host.lower().rstrip(".")
    if any(host == allowed or host.endswith("." + allowed) for allowed in ALLOWED_DOWNLOAD_HOSTS):
        return True
    return S3_HOST_PATTERN.fullmatch(host) is not None


def ensure_trusted_url(url: str) -> str:
    """Fail closed unless url is an https URL on an allow-listed host.

    Raises:
        UntrustedHostError: If the scheme is not https or the host is not trusted.
    """
    parts = urlsplit(url)
    host = parts.hostname
    if parts.scheme != "https" or not is_trusted_host(host):
        raise UntrustedHostError(url, host)
    return url
