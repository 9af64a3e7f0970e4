"""Tests for HTTP connection module."""

import json

import httpx
import pytest

from hrana_sdk.connection.http import HTTPConnection, normalize_http_url, pipeline_url
from hrana_sdk.exceptions import ConnectionError, MisuseError, ServerError, TimeoutError


def mock_connection(handler, token: str | None = None) -> HTTPConnection:  # type: ignore[no-untyped-def]
    """HTTPConnection whose requests are answered by ``handler``."""
    return HTTPConnection("http://localhost:8080", token, transport=httpx.MockTransport(handler))


class TestHTTPConnection:
    """Tests for HTTPConnection class."""

    def test_init_normalizes_url(self) -> None:
        """Test URL normalization."""
        # HTTP URL stays as is
        assert HTTPConnection("http://localhost:8080").url == "http://localhost:8080"

        # WS URL gets converted
        assert HTTPConnection("ws://localhost:8080").url == "http://localhost:8080"

        # WSS and libsql URLs get converted
        assert HTTPConnection("wss://db.example.com").url == "https://db.example.com"
        assert HTTPConnection("libsql://db.example.com").url == "https://db.example.com"

        # Trailing slash removed, missing scheme defaults to HTTPS
        assert HTTPConnection("http://localhost:8080/").url == "http://localhost:8080"
        assert HTTPConnection("db.example.com").url == "https://db.example.com"

    def test_rejects_unknown_scheme(self) -> None:
        with pytest.raises(MisuseError):
            normalize_http_url("ftp://localhost")

    def test_pipeline_url(self) -> None:
        assert pipeline_url("http://replica:9000/") == "http://replica:9000/v2/pipeline"
        assert HTTPConnection("http://localhost:8080").pipeline_url == "http://localhost:8080/v2/pipeline"

    def test_auth_header(self) -> None:
        assert HTTPConnection("http://localhost:8080").auth_header is None
        assert HTTPConnection("http://localhost:8080", "jwt").auth_header == "Bearer jwt"

    @pytest.mark.asyncio
    async def test_connect(self) -> None:
        """Test connection establishment."""
        conn = HTTPConnection("http://localhost:8080")

        assert not conn.is_connected
        await conn.connect()
        assert conn.is_connected

        await conn.close()
        assert not conn.is_connected

    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        """Test async context manager."""
        async with HTTPConnection("http://localhost:8080") as conn:
            assert conn.is_connected

        assert not conn.is_connected

    @pytest.mark.asyncio
    async def test_reconnect_replaces_client(self) -> None:
        conn = HTTPConnection("http://localhost:8080")
        await conn.connect()
        client = conn._client

        await conn.reconnect()

        assert conn.is_connected
        assert conn._client is not client
        await conn.close()

    @pytest.mark.asyncio
    async def test_send_not_connected(self) -> None:
        """Test request when not connected."""
        conn = HTTPConnection("http://localhost:8080")

        with pytest.raises(ConnectionError, match="Not connected"):
            await conn.send(conn.pipeline_url, None, "{}")


class TestHTTPConnectionSend:
    """Tests for HTTPConnection.send against a mock transport."""

    @pytest.mark.asyncio
    async def test_posts_json_with_auth(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"baton": "b", "results": []})

        async with mock_connection(handler, "jwt") as conn:
            data = await conn.send(conn.pipeline_url, conn.auth_header, json.dumps({"baton": None, "requests": []}))

        assert data == {"baton": "b", "results": []}
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "http://localhost:8080/v2/pipeline"
        assert request.headers["Authorization"] == "Bearer jwt"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"baton": None, "requests": []}

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"results": []})

        async with mock_connection(handler) as conn:
            await conn.send(conn.pipeline_url, conn.auth_header, "{}")

        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_status_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "Received an invalid baton"})

        async with mock_connection(handler) as conn:
            with pytest.raises(ServerError, match="invalid baton") as exc_info:
                await conn.send(conn.pipeline_url, None, "{}")

        assert exc_info.value.code == 400

    @pytest.mark.asyncio
    async def test_status_error_with_text_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        async with mock_connection(handler) as conn:
            with pytest.raises(ServerError, match="502 - Bad Gateway"):
                await conn.send(conn.pipeline_url, None, "{}")

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        async with mock_connection(handler) as conn:
            with pytest.raises(ConnectionError, match="Invalid JSON"):
                await conn.send(conn.pipeline_url, None, "{}")

    @pytest.mark.asyncio
    async def test_non_object_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[1, 2])

        async with mock_connection(handler) as conn:
            with pytest.raises(ConnectionError, match="Unexpected response body"):
                await conn.send(conn.pipeline_url, None, "{}")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_connection(handler) as conn:
            with pytest.raises(TimeoutError):
                await conn.send(conn.pipeline_url, None, "{}")

    @pytest.mark.asyncio
    async def test_request_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_connection(handler) as conn:
            with pytest.raises(ConnectionError, match="Request failed"):
                await conn.send(conn.pipeline_url, None, "{}")
