"""HTTP client wrapper for the Coda REST API.

Provides an async HTTP client with explicit connection, timeout and redirect
policy, and maps responses onto the error taxonomy in ``coda_mcp.errors``.
"""

import gzip
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urljoin

import httpx

from coda_mcp.config import Settings
from coda_mcp.endpoints import OutboundRequest
from coda_mcp.errors import (
    ApiError,
    AuthError,
    MalformedResponseError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    TransportError,
    TransportTimeoutError,
)
from coda_mcp.validation import ensure_trusted_url

logger = logging.getLogger(__name__)

USER_AGENT = "coda_mcp/0.1.0"
GZIP_MAGIC = b"\x1f\x8b"
MAX_DOWNLOAD_REDIRECTS = 3


def _extract_request_id(response: httpx.Response) -> str | None:
    """Extract request ID from response headers.

    Args:
        response: HTTP response to inspect.

    Returns:
        Request ID if present, None otherwise.
    """
    for header in ("X-Request-ID", "X-Request-Id", "Request-Id", "X-Amzn-RequestId"):
        if header in response.headers:
            return response.headers[header]
    return None


def _error_detail(response: httpx.Response) -> str | None:
    """Pull the backend's human-readable message out of an error body."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:200] or None
    if isinstance(body, dict):
        for key in ("message", "statusMessage", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return str(body)[:200]


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def raise_for_status(response: httpx.Response) -> None:
    """Raise the typed error matching a non-2xx response.

    Args:
        response: HTTP response received.

    Raises:
        CodaError: A subclass chosen by status code.
    """
    status = response.status_code
    if response.is_success:
        return

    request_id = _extract_request_id(response)
    detail = _error_detail(response)
    message = f"HTTP {status}" + (f": {detail}" if detail else "")

    if status == 429:
        raise RateLimitedError(
            status_code=status,
            request_id=request_id,
            detail=detail,
            retry_after=_retry_after(response),
        )
    if status in (401, 403):
        raise AuthError(message, status, request_id, detail)
    if status == 404:
        raise NotFoundError(message, status, request_id, detail)
    if status >= 500:
        raise ServerError(message, status, request_id, detail)
    raise ApiError(message, status, request_id, detail)


def decode_response(response: httpx.Response, write: bool = False) -> Any:
    """Map a completed HTTP exchange to a JSON payload or a typed error.

    Writes are queued by Coda and acknowledged with 202; that is success.
    An empty body on a write is returned as an empty dict.

    Args:
        response: HTTP response received.
        write: Whether the request targeted a write endpoint.

    Returns:
        Parsed JSON payload.

    Raises:
        CodaError: If the status is not 2xx or the body is not valid JSON.
    """
    raise_for_status(response)

    if write and not response.content.strip():
        return {}

    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponseError(
            "Invalid JSON in response body",
            status_code=response.status_code,
            request_id=_extract_request_id(response),
            detail=response.text[:200] or None,
        ) from e


def decode_content(raw: bytes) -> str:
    """Decode downloaded export content.

    Export links sometimes serve gzip bytes without a Content-Encoding header,
    which httpx will not decompress on its own.
    """
    if raw[:2] == GZIP_MAGIC:
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError) as e:
            raise MalformedResponseError(f"Failed to decompress gzip content: {e}") from e
    return raw.decode("utf-8", errors="replace")


class CodaClient:
    """Async HTTP client for the Coda REST API.

    One instance is shared by every tool call in the process. Keep-alive is
    disabled so each request opens a fresh connection: Coda has returned
    spurious 404s for requests sent over reused connections.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize the client with settings.

        Args:
            settings: Application settings containing base URL, token, timeouts.
        """
        self._settings = settings
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._settings.base_url.rstrip("/")

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.api_token.get_secret_value()}"}

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized.

        Returns:
            The initialized async HTTP client.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "Accept": "application/json",
                    "User-Agent": USER_AGENT,
                    "Connection": "close",
                },
                timeout=httpx.Timeout(
                    self._settings.timeout_seconds,
                    connect=self._settings.connect_timeout_seconds,
                ),
                limits=httpx.Limits(max_keepalive_connections=0),
                http2=False,
                follow_redirects=False,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _log_response(self, method: str, path: str, response: httpx.Response) -> None:
        log_extra: dict[str, Any] = {
            "status": response.status_code,
            "method": method,
            "path": path,
        }
        request_id = _extract_request_id(response)
        if request_id:
            log_extra["request_id"] = request_id

        if response.is_success:
            logger.debug("HTTP %s %s -> %d", method, path, response.status_code, extra=log_extra)
        else:
            logger.warning("HTTP %s %s -> %d", method, path, response.status_code, extra=log_extra)

    async def _send(
        self,
        method: str,
        url: str,
        params: Any = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send exactly one HTTP request. Never retries.

        Raises:
            TransportTimeoutError: If the connect or request timeout elapses.
            TransportError: On any other connection-level failure.
        """
        client = await self._ensure_client()
        try:
            return await client.request(
                method, url, params=params, json=json_body, headers=headers
            )
        except httpx.TimeoutException as e:
            phase = "connect" if isinstance(e, httpx.ConnectTimeout) else "request"
            logger.error("HTTP %s timeout: %s %s", phase, method, httpx.URL(url).path)
            raise TransportTimeoutError(f"Request {phase} timed out") from e
        except httpx.RequestError as e:
            logger.error("HTTP request error: %s %s: %s", method, httpx.URL(url).path, type(e).__name__)
            raise TransportError(f"Request failed: {type(e).__name__}: {e}") from e

    async def send(self, request: OutboundRequest) -> Any:
        """Issue one Coda API request and decode the response.

        Args:
            request: The request built by the endpoint mapper.

        Returns:
            Parsed JSON response.

        Raises:
            CodaError: On transport failure, non-2xx status or undecodable body.
        """
        response = await self._send(
            request.method,
            f"{self.base_url}{request.path}",
            params=list(request.params) or None,
            json_body=request.json_body,
            headers=self._auth_headers(),
        )
        self._log_response(request.method, request.path, response)
        return decode_response(response, write=request.write)

    async def download(self, url: str) -> str:
        """Fetch export content from a backend-issued link.

        Every hop, including redirect targets, must be on the host allow-list.
        The bearer token is not sent to download hosts.

        Args:
            url: Download link returned by the export status endpoint.

        Returns:
            Downloaded content as text (gzip payloads are decompressed).

        Raises:
            UntrustedHostError: If the link or a redirect leaves the allow-list.
            CodaError: On transport failure or non-2xx status.
        """
        target = ensure_trusted_url(url)
        for _ in range(MAX_DOWNLOAD_REDIRECTS + 1):
            response = await self._send("GET", target)
            logger.debug("Download %s -> %d", httpx.URL(target).host, response.status_code)
            if not response.is_redirect:
                break
            location = response.headers.get("Location")
            if not location:
                raise MalformedResponseError("Redirect without Location header", response.status_code)
            target = ensure_trusted_url(urljoin(target, location))
        else:
            raise ApiError(f"Too many redirects (more than {MAX_DOWNLOAD_REDIRECTS})", response.status_code)

        raise_for_status(response)
        content = decode_content(response.content)
        logger.debug("Downloaded %d bytes", len(content))
        return content


@asynccontextmanager
async def create_client(settings: Settings) -> AsyncIterator[CodaClient]:
    """Create and manage Coda client lifecycle.

    Args:
        settings: Application settings.

    Yields:
        Initialized Coda client.
    """
    client = CodaClient(settings)
    try:
        yield client
    finally:
        await client.close()
