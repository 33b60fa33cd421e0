"""Tests for the Coda HTTP client: status mapping, transport policy, downloads."""

import gzip
import json

import httpx
import pytest
import respx

from coda_mcp.client import CodaClient, create_client, decode_content
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
    UntrustedHostError,
)

API = "/apis/v1"
DOWNLOAD_URL = "https://codahosted.io/exports/page.html"


def _get(path: str) -> OutboundRequest:
    return OutboundRequest(method="GET", path=path)


class TestSend:
    """Tests for API requests and response decoding."""

    @respx.mock
    async def test_success_sends_bearer_token(self, client: CodaClient, settings: Settings) -> None:
        """Test successful request carries the bearer token."""
        route = respx.get(path=f"{API}/whoami").mock(
            return_value=httpx.Response(200, json={"name": "Ada", "loginId": "ada@x.io"})
        )

        result = await client.send(_get("/whoami"))

        assert result["name"] == "Ada"
        request = route.calls.last.request
        assert request.headers["Authorization"] == f"Bearer {settings.api_token.get_secret_value()}"
        assert request.headers["Connection"] == "close"
        await client.close()

    @respx.mock
    async def test_query_params_forwarded(self, client: CodaClient) -> None:
        """Test query parameters are forwarded unchanged."""
        route = respx.get(path=f"{API}/docs").mock(
            return_value=httpx.Response(200, json={"items": []})
        )

        await client.send(
            OutboundRequest(method="GET", path="/docs", params=(("limit", "10"), ("query", "plan")))
        )

        params = route.calls.last.request.url.params
        assert params["limit"] == "10"
        assert params["query"] == "plan"
        await client.close()

    @respx.mock
    async def test_write_accepted_202(self, client: CodaClient) -> None:
        """Test 202 on a write endpoint is success."""
        route = respx.post(path=f"{API}/docs/d/tables/t/rows").mock(
            return_value=httpx.Response(202, json={"requestId": "req-1", "addedRowIds": ["i-9"]})
        )

        result = await client.send(
            OutboundRequest(
                method="POST",
                path="/docs/d/tables/t/rows",
                json_body={"rows": [{"cells": [{"column": "Name", "value": "John"}]}]},
                write=True,
            )
        )

        assert result == {"requestId": "req-1", "addedRowIds": ["i-9"]}
        assert json.loads(route.calls.last.request.content) == {
            "rows": [{"cells": [{"column": "Name", "value": "John"}]}]
        }
        await client.close()

    @respx.mock
    async def test_write_with_empty_body(self, client: CodaClient) -> None:
        """Test empty write acknowledgement decodes to an empty dict."""
        respx.delete(path=f"{API}/docs/d").mock(return_value=httpx.Response(202))

        result = await client.send(OutboundRequest(method="DELETE", path="/docs/d", write=True))

        assert result == {}
        await client.close()

    @respx.mock
    async def test_rate_limited_single_attempt(self, client: CodaClient) -> None:
        """Test 429 raises RateLimitedError after a single attempt."""
        route = respx.get(path=f"{API}/docs").mock(
            return_value=httpx.Response(
                429, json={"message": "Too many requests"}, headers={"Retry-After": "7"}
            )
        )

        with pytest.raises(RateLimitedError) as exc_info:
            await client.send(_get("/docs"))

        assert route.call_count == 1
        assert exc_info.value.retryable
        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.to_dict()["retry_after"] == 7.0
        await client.close()

    @pytest.mark.parametrize(
        ("status", "error_class"),
        [
            (401, AuthError),
            (403, AuthError),
            (404, NotFoundError),
            (400, ApiError),
            (500, ServerError),
            (503, ServerError),
        ],
    )
    @respx.mock
    async def test_status_mapping(
        self, client: CodaClient, status: int, error_class: type[Exception]
    ) -> None:
        """Test HTTP status codes map to typed errors."""
        respx.get(path=f"{API}/docs/missing").mock(
            return_value=httpx.Response(
                status,
                json={"statusMessage": "Nope"},
                headers={"X-Request-ID": "rid-1"},
            )
        )

        with pytest.raises(error_class) as exc_info:
            await client.send(_get("/docs/missing"))

        error = exc_info.value
        assert error.status_code == status  # type: ignore[attr-defined]
        assert error.detail == "Nope"  # type: ignore[attr-defined]
        assert error.request_id == "rid-1"  # type: ignore[attr-defined]
        await client.close()

    @respx.mock
    async def test_non_json_error_body(self, client: CodaClient) -> None:
        """Test non-JSON error body is kept as detail."""
        respx.get(path=f"{API}/docs").mock(
            return_value=httpx.Response(502, text="<html>Bad Gateway</html>")
        )

        with pytest.raises(ServerError) as exc_info:
            await client.send(_get("/docs"))

        assert exc_info.value.detail == "<html>Bad Gateway</html>"
        await client.close()

    @respx.mock
    async def test_malformed_json_success(self, client: CodaClient) -> None:
        """Test invalid JSON on a 2xx response."""
        respx.get(path=f"{API}/docs").mock(
            return_value=httpx.Response(200, text="{not json")
        )

        with pytest.raises(MalformedResponseError):
            await client.send(_get("/docs"))
        await client.close()

    @respx.mock
    async def test_connect_timeout(self, client: CodaClient) -> None:
        """Test connect timeout maps to TransportTimeoutError."""
        route = respx.get(path=f"{API}/docs").mock(side_effect=httpx.ConnectTimeout("slow"))

        with pytest.raises(TransportTimeoutError, match="connect"):
            await client.send(_get("/docs"))

        assert route.call_count == 1
        await client.close()

    @respx.mock
    async def test_read_timeout(self, client: CodaClient) -> None:
        """Test read timeout maps to TransportTimeoutError."""
        respx.get(path=f"{API}/docs").mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(TransportTimeoutError, match="request"):
            await client.send(_get("/docs"))
        await client.close()

    @respx.mock
    async def test_connection_error(self, client: CodaClient) -> None:
        """Test connection failure maps to a retryable TransportError."""
        respx.get(path=f"{API}/docs").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(TransportError) as exc_info:
            await client.send(_get("/docs"))

        assert not isinstance(exc_info.value, TransportTimeoutError)
        assert exc_info.value.retryable
        await client.close()


class TestClientLifecycle:
    """Tests for the lazily created HTTP client."""

    async def test_transport_settings(self, client: CodaClient, settings: Settings) -> None:
        """Test HTTP client uses configured timeouts and no redirects."""
        http = await client._ensure_client()

        assert http.timeout.connect == settings.connect_timeout_seconds
        assert http.timeout.read == settings.timeout_seconds
        assert not http.follow_redirects
        assert await client._ensure_client() is http
        await client.close()

    async def test_close_is_idempotent(self, client: CodaClient) -> None:
        """Test closing twice is safe."""
        await client._ensure_client()
        await client.close()
        await client.close()
        assert client._client is None

    async def test_create_client_closes_on_exit(self, settings: Settings) -> None:
        """Test context manager closes the client."""
        async with create_client(settings) as client:
            await client._ensure_client()
            assert client._client is not None
        assert client._client is None


class TestDownload:
    """Tests for export content downloads."""

    @respx.mock
    async def test_download_omits_authorization(self, client: CodaClient) -> None:
        """Test download requests never carry the token."""
        route = respx.get(DOWNLOAD_URL).mock(
            return_value=httpx.Response(200, content=b"<h1>Hello</h1>")
        )

        content = await client.download(DOWNLOAD_URL)

        assert content == "<h1>Hello</h1>"
        assert "Authorization" not in route.calls.last.request.headers
        await client.close()

    @respx.mock
    async def test_download_decompresses_gzip(self, client: CodaClient) -> None:
        """Test gzip export content is decompressed."""
        respx.get(DOWNLOAD_URL).mock(
            return_value=httpx.Response(200, content=gzip.compress("# Title\n\nnaïve".encode()))
        )

        assert await client.download(DOWNLOAD_URL) == "# Title\n\nnaïve"
        await client.close()

    @respx.mock
    async def test_untrusted_host_rejected_without_request(self, client: CodaClient) -> None:
        """Test untrusted download host is refused before any request."""
        route = respx.get("https://evil.example.com/steal").mock(
            return_value=httpx.Response(200, content=b"x")
        )

        with pytest.raises(UntrustedHostError):
            await client.download("https://evil.example.com/steal")

        assert not route.called
        await client.close()

    @pytest.mark.parametrize(
        "url",
        [
            "https://ec2-203-0-113-5.compute-1.amazonaws.com/x.html",
            "https://abc123.execute-api.us-east-1.amazonaws.com/x.html",
            "https://attacker-lb-1.us-east-1.elb.amazonaws.com/x.html",
        ],
    )
    @respx.mock
    async def test_non_s3_aws_host_rejected(self, client: CodaClient, url: str) -> None:
        """Test AWS hosts outside S3 are refused before any request."""
        route = respx.get(url).mock(return_value=httpx.Response(200, content=b"x"))

        with pytest.raises(UntrustedHostError):
            await client.download(url)

        assert not route.called
        await client.close()

    @respx.mock
    async def test_redirect_within_allow_list_followed(self, client: CodaClient) -> None:
        """Test redirect to a trusted host is followed."""
        target = "https://coda-exports.s3.amazonaws.com/page.html"
        respx.get(DOWNLOAD_URL).mock(
            return_value=httpx.Response(302, headers={"Location": target})
        )
        respx.get(target).mock(return_value=httpx.Response(200, content=b"ok"))

        assert await client.download(DOWNLOAD_URL) == "ok"
        await client.close()

    @respx.mock
    async def test_redirect_to_untrusted_host_rejected(self, client: CodaClient) -> None:
        """Test redirect to an untrusted host is refused."""
        respx.get(DOWNLOAD_URL).mock(
            return_value=httpx.Response(302, headers={"Location": "https://evil.example.com/x"})
        )
        evil = respx.get("https://evil.example.com/x").mock(
            return_value=httpx.Response(200, content=b"x")
        )

        with pytest.raises(UntrustedHostError):
            await client.download(DOWNLOAD_URL)

        assert not evil.called
        await client.close()

    @respx.mock
    async def test_too_many_redirects(self, client: CodaClient) -> None:
        """Test redirect loop stops after the hop limit."""
        route = respx.get(DOWNLOAD_URL).mock(
            return_value=httpx.Response(302, headers={"Location": DOWNLOAD_URL})
        )

        with pytest.raises(ApiError, match="Too many redirects"):
            await client.download(DOWNLOAD_URL)

        assert route.call_count == 4
        await client.close()

    @respx.mock
    async def test_download_error_status(self, client: CodaClient) -> None:
        """Test error status on a download raises."""
        respx.get(DOWNLOAD_URL).mock(return_value=httpx.Response(403, text="Expired"))

        with pytest.raises(AuthError):
            await client.download(DOWNLOAD_URL)
        await client.close()


class TestDecodeContent:
    """Tests for export content decoding."""

    def test_plain_utf8(self) -> None:
        """Test plain UTF-8 decoding."""
        assert decode_content("héllo".encode()) == "héllo"

    def test_invalid_utf8_replaced(self) -> None:
        """Test invalid UTF-8 bytes are replaced."""
        assert decode_content(b"ok\xff") == "ok�"

    def test_truncated_gzip(self) -> None:
        """Test truncated gzip content raises MalformedResponseError."""
        with pytest.raises(MalformedResponseError):
            decode_content(gzip.compress(b"hello world")[:12])
