"""
WebSocket Connection Implementation for Hrana SDK.

Provides the persistent multiplexed-stream transport used by stream-backed
sessions. One socket carries many streams; each stream is an ordered channel
with its own server-side SQL connection.
"""

from typing import Any, Self
import asyncio
import json
import logging

import aiohttp
from aiohttp import ClientWSTimeout

from ..exceptions import AuthenticationError, ConnectionError, MisuseError, TimeoutError
from ..protocol import messages
from ..protocol.codec import decode_error
from ..protocol.messages import MessageType, StreamResult

logger = logging.getLogger(__name__)

SUBPROTOCOL = "hrana2"


def normalize_ws_url(url: str) -> str:
    """Normalize a database URL to a WebSocket URL without trailing slash."""
    if "://" not in url:
        url = f"wss://{url}"
    if url.startswith("http://"):
        url = url.replace("http://", "ws://", 1)
    elif url.startswith("https://"):
        url = url.replace("https://", "wss://", 1)
    elif url.startswith("libsql://"):
        url = url.replace("libsql://", "wss://", 1)
    if not url.startswith(("ws://", "wss://")):
        raise MisuseError(f"Unsupported URL for the WebSocket transport: {url}")
    return url.rstrip("/")


class WebSocketStream:
    """
    A stream opened on a WebSocket connection.

    Requests on one stream are executed by the server in the order they are
    sent. A stream belongs to the socket it was opened on: once that socket
    is closed or replaced, every request raises ConnectionError.
    """

    def __init__(self, connection: "WebSocketConnection", stream_id: int, generation: int):
        self.connection = connection
        self.stream_id = stream_id
        self.generation = generation
        self._closed = False

    def __repr__(self) -> str:
        return f"WebSocketStream(stream_id={self.stream_id}, generation={self.generation})"

    @property
    def is_closed(self) -> bool:
        """Check if the stream can no longer be used."""
        return (
            self._closed
            or not self.connection.is_connected
            or self.connection.generation != self.generation
        )

    def _check_open(self) -> None:
        if self._closed:
            raise ConnectionError(f"Stream {self.stream_id} is closed")
        if self.is_closed:
            raise ConnectionError(f"Stream {self.stream_id} belongs to a closed connection")

    async def execute(self, stmt: dict[str, Any]) -> StreamResult:
        """Execute an encoded statement on this stream."""
        self._check_open()
        return await self.connection._send_request(messages.stream_execute_request(self.stream_id, stmt))

    async def batch(self, batch: dict[str, Any]) -> StreamResult:
        """Execute an encoded batch on this stream."""
        self._check_open()
        return await self.connection._send_request(messages.stream_batch_request(self.stream_id, batch))

    async def close(self) -> StreamResult | None:
        """
        Close the stream on the server.

        Returns None when there was nothing to close (already closed, or the
        connection it belonged to is gone).
        """
        if self.is_closed:
            self._closed = True
            return None
        self._closed = True
        return await self.connection._send_request(messages.close_stream_request(self.stream_id))


class WebSocketConnection:
    """
    WebSocket-based connection to the database.

    This connection is stateful - streams opened on it keep server-side SQL
    connections (and their open transactions) alive until closed.
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        timeout: float = 30.0,
    ):
        """
        Initialize WebSocket connection.

        Args:
            url: Database WebSocket URL (e.g., "ws://localhost:8080")
            auth_token: JWT sent in the hello message
            timeout: Request timeout in seconds
        """
        self.url = normalize_ws_url(url)
        self.timeout = timeout
        self._token = auth_token or None

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._connected = False
        self._closing = False
        self._request_id = 0
        self._stream_id = 0
        self._generation = 0
        self._pending: dict[int, asyncio.Future[StreamResult]] = {}
        self._hello: asyncio.Future[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()

    @property
    def is_connected(self) -> bool:
        """Check if connection is established."""
        return self._connected

    @property
    def generation(self) -> int:
        """Number of times the socket has been (re)established."""
        return self._generation

    def _next_request_id(self) -> int:
        """Generate next request ID."""
        self._request_id += 1
        return self._request_id

    def _next_stream_id(self) -> int:
        """Generate next stream ID."""
        self._stream_id += 1
        return self._stream_id

    async def connect(self) -> Self:
        """Establish WebSocket connection and perform the handshake. Returns self for fluent API."""
        if self._connected:
            return self

        # A socket the server closed still holds its session until cleaned up
        if self._session is not None or self._ws is not None:
            await self._cleanup()

        self._closing = False
        self._session = aiohttp.ClientSession()

        try:
            self._ws = await self._session.ws_connect(
                self.url,
                timeout=ClientWSTimeout(ws_close=self.timeout),
                protocols=[SUBPROTOCOL],
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self._cleanup()
            raise ConnectionError(f"WebSocket connection failed: {e}") from e

        self._generation += 1
        self._connected = True
        self._hello = asyncio.get_running_loop().create_future()

        # Start message reader loop
        self._reader_task = asyncio.create_task(self._read_loop())

        try:
            await self._ws.send_str(json.dumps(messages.hello_message(self._token)))
            await asyncio.wait_for(self._hello, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await self._cleanup()
            raise TimeoutError(f"Handshake timed out after {self.timeout}s") from e
        except BaseException:
            await self._cleanup()
            raise

        logger.debug(f"Connected to {self.url} (generation {self._generation})")
        return self

    async def close(self) -> None:
        """Close WebSocket connection."""
        self._closing = True
        await self._cleanup()

    async def reconnect(self) -> Self:
        """
        Drop the current socket and establish a new one.

        Streams opened on the previous socket are not carried over.
        """
        logger.debug(f"Reconnecting to {self.url}")
        self._closing = True
        await self._cleanup()
        return await self.connect()

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def _cleanup(self) -> None:
        """Clean up connection resources."""
        self._connected = False

        # Cancel reader task
        if self._reader_task and self._reader_task is not asyncio.current_task():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        self._reader_task = None

        self._fail_pending(ConnectionError("Connection closed"))

        # Close WebSocket
        if self._ws:
            await self._ws.close()
            self._ws = None

        # Close session
        if self._session:
            await self._session.close()
            self._session = None

    def _fail_pending(self, error: Exception) -> None:
        """Fail the handshake and every pending request."""
        if self._hello is not None and not self._hello.done():
            self._hello.set_exception(error)
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _read_loop(self) -> None:
        """Background task to read WebSocket messages."""
        if not self._ws:
            return

        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(msg.data)
                elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSE):
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"WebSocket reader stopped: {e}")
        finally:
            if not self._closing:
                logger.warning(f"Connection to {self.url} lost")
            self._connected = False
            self._fail_pending(ConnectionError("Connection lost"))

    def _handle_message(self, data: str) -> None:
        """Handle incoming JSON WebSocket message."""
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed message from server")
            return

        if isinstance(message, dict):
            self._process_message(message)

    def _process_message(self, message: dict[str, Any]) -> None:
        """Dispatch a decoded server message."""
        msg_type = message.get("type")

        if msg_type == MessageType.HELLO_OK:
            if self._hello is not None and not self._hello.done():
                self._hello.set_result(None)
            return

        if msg_type == MessageType.HELLO_ERROR:
            error = decode_error(message.get("error"))
            if self._hello is not None and not self._hello.done():
                self._hello.set_exception(AuthenticationError(f"Handshake rejected: {error.message}", error.code))
            else:
                # Rejected after a token refresh: nothing on this socket can succeed
                self._connected = False
                self._fail_pending(AuthenticationError(f"Session rejected: {error.message}", error.code))
            return

        if msg_type not in (MessageType.RESPONSE_OK, MessageType.RESPONSE_ERROR):
            logger.warning(f"Ignoring unexpected message type from server: {msg_type!r}")
            return

        try:
            request_id = int(message.get("request_id"))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.warning("Ignoring response without a request id")
            return

        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return

        if msg_type == MessageType.RESPONSE_ERROR:
            future.set_result(StreamResult.failed(message.get("error")))
            return

        response = message.get("response")
        if not isinstance(response, dict):
            future.set_exception(ConnectionError(f"Malformed response from server: {message!r}"))
            return
        future.set_result(StreamResult.ok(response))

    async def _send_request(self, request: dict[str, Any]) -> StreamResult:
        """
        Send a request and wait for its response.

        Args:
            request: The request body (open_stream, execute, batch, close_stream)

        Returns:
            The result of the request

        Raises:
            ConnectionError: If not connected or the connection drops
            TimeoutError: If request times out
        """
        if not self._ws or not self._connected:
            raise ConnectionError("Not connected. Call connect() first.")

        request_id = self._next_request_id()

        # Create future for response
        loop = asyncio.get_running_loop()
        future: asyncio.Future[StreamResult] = loop.create_future()
        self._pending[request_id] = future

        try:
            await self._ws.send_str(json.dumps(messages.ws_request(request_id, request)))
            return await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Request timed out after {self.timeout}s") from e
        except ConnectionError:
            raise
        except (aiohttp.ClientError, RuntimeError, OSError) as e:
            raise ConnectionError(f"Request failed: {e}") from e
        finally:
            self._pending.pop(request_id, None)

    async def open_stream(self) -> WebSocketStream:
        """
        Open a new stream.

        If the request times out or is cancelled after it went out, a
        close_stream for the same id is sent in the background so the server
        does not keep the stream around.

        Raises:
            ConnectionError: If the server refuses to open the stream
            TimeoutError: If the server did not answer in time
        """
        stream_id = self._next_stream_id()
        try:
            result = await self._send_request(messages.open_stream_request(stream_id))
        except (TimeoutError, asyncio.CancelledError):
            self._abandon_stream(stream_id)
            raise
        if result.error is not None:
            raise ConnectionError(f"Failed to open stream: {result.error.message}", result.error.code)
        logger.debug(f"Opened stream {stream_id}")
        return WebSocketStream(self, stream_id, self._generation)

    def _abandon_stream(self, stream_id: int) -> None:
        """Schedule a best-effort close of a stream whose open was not acknowledged."""
        if not self._connected:
            return
        task = asyncio.create_task(self._close_abandoned_stream(stream_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _close_abandoned_stream(self, stream_id: int) -> None:
        try:
            await self._send_request(messages.close_stream_request(stream_id))
        except ConnectionError as e:
            logger.debug(f"Could not close abandoned stream {stream_id}: {e}")
        else:
            logger.debug(f"Closed abandoned stream {stream_id}")
