"""
HTTP Connection Implementation for Hrana SDK.

Provides the stateless HTTP transport used by cookie-backed sessions.
"""

import logging
from typing import Any, Self

import httpx

from ..exceptions import ConnectionError, MisuseError, ServerError, TimeoutError

logger = logging.getLogger(__name__)

PIPELINE_PATH = "/v2/pipeline"


def normalize_http_url(url: str) -> str:
    """Normalize a database URL to an HTTP(S) base URL without trailing slash."""
    if "://" not in url:
        url = f"https://{url}"
    if url.startswith("ws://"):
        url = url.replace("ws://", "http://", 1)
    elif url.startswith("wss://"):
        url = url.replace("wss://", "https://", 1)
    elif url.startswith("libsql://"):
        url = url.replace("libsql://", "https://", 1)
    if not url.startswith(("http://", "https://")):
        raise MisuseError(f"Unsupported URL for the HTTP transport: {url}")
    return url.rstrip("/")


def pipeline_url(base_url: str) -> str:
    """Build the pipeline endpoint for a base URL."""
    return base_url.rstrip("/") + PIPELINE_PATH


class HTTPConnection:
    """
    HTTP-based transport for the Hrana pipeline protocol.

    This transport is stateless - each request is independent. Session
    affinity is carried by the baton inside the request body, not by the
    connection, so requests for one transaction may go to any server process.

    Authentication is performed via the Authorization header on each request.
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize HTTP connection.

        Args:
            url: Database HTTP URL (e.g., "http://localhost:8080")
            auth_token: JWT for the Authorization header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (e.g. for testing)
        """
        self.url = normalize_http_url(url)
        self.timeout = timeout
        self._token = auth_token or None
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is open."""
        return self._client is not None

    @property
    def pipeline_url(self) -> str:
        """Default pipeline endpoint."""
        return pipeline_url(self.url)

    @property
    def auth_header(self) -> str | None:
        """Value of the Authorization header."""
        if self._token:
            return f"Bearer {self._token}"
        return None

    async def connect(self) -> Self:
        """Open the HTTP client. Returns self for fluent API."""
        if self._client is not None:
            return self

        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def reconnect(self) -> None:
        """Replace the HTTP client with a fresh one."""
        await self.close()
        await self.connect()

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def send(self, url: str, auth: str | None, body: str) -> dict[str, Any]:
        """
        POST a JSON body and return the decoded JSON response.

        Args:
            url: Endpoint URL
            auth: Authorization header value, None to send none
            body: JSON request body

        Returns:
            The decoded response object

        Raises:
            ConnectionError: If not connected, the request fails or the body is not JSON
            TimeoutError: If the request times out
            ServerError: If the server answers with an HTTP error status
        """
        if not self._client:
            raise ConnectionError("Not connected. Call connect() first.")

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if auth:
            headers["Authorization"] = auth

        try:
            response = await self._client.post(url, content=body, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request timed out after {self.timeout}s: {e}") from e
        except httpx.HTTPStatusError as e:
            raise ServerError(
                message=f"HTTP error: {e.response.status_code} - {_error_message(e.response)}",
                code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise ConnectionError(f"Request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise ConnectionError(f"Invalid JSON from server: {e}") from e
        if not isinstance(data, dict):
            raise ConnectionError(f"Unexpected response body from server: {data!r}")
        return data


def _error_message(response: httpx.Response) -> str:
    """Extract the server's error message from an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    return response.text
