"""
Hrana SDK - An async Python client for libSQL/sqld servers.

Runs SQL statements and transactions against a remote database using one of
two transports, with the same transaction contract on both:
- HTTP pipeline (stateless, sessions carried by server-issued batons)
- WebSocket (stateful, one stream per open transaction)

Supports:
- Caller-chosen transaction ids across independent calls
- Batches (one round trip) and atomic batches
- Transaction context managers
- Typed rows (Pydantic models or dataclasses)
"""

from typing import Any

from .batch import BatchExecutor
from .client import Client
from .config import ClientConfig
from .connection.http import HTTPConnection
from .connection.websocket import WebSocketConnection, WebSocketStream
from .exceptions import (
    AuthenticationError,
    ConnectionError,
    HranaError,
    MisuseError,
    ServerError,
    TimeoutError,
    TransactionError,
)
from .protocol.codec import StatementCodec
from .protocol.messages import PipelineRequest, PipelineResponse, StreamResult
from .registry import SessionRegistry, TransactionSession
from .session import (
    CookieSession,
    CookieSessionStrategy,
    ReleaseOutcome,
    SessionStrategy,
    StreamSession,
    StreamSessionStrategy,
)
from .transaction import Transaction
from .types import BatchResult, ResultSet, Row, Statement, StepError, StepOutcome

__version__ = "0.1.0"
__all__ = [
    # Client
    "Client",
    "ClientConfig",
    "Transaction",
    # Connections
    "HTTPConnection",
    "WebSocketConnection",
    "WebSocketStream",
    # Sessions
    "SessionRegistry",
    "TransactionSession",
    "SessionStrategy",
    "CookieSession",
    "CookieSessionStrategy",
    "StreamSession",
    "StreamSessionStrategy",
    "ReleaseOutcome",
    "BatchExecutor",
    # Protocol
    "StatementCodec",
    "PipelineRequest",
    "PipelineResponse",
    "StreamResult",
    # Types
    "Statement",
    "ResultSet",
    "Row",
    "BatchResult",
    "StepOutcome",
    "StepError",
    # Exceptions
    "HranaError",
    "ConnectionError",
    "AuthenticationError",
    "TimeoutError",
    "ServerError",
    "MisuseError",
    "TransactionError",
]


class Hrana:
    """
    Factory class for creating database clients.

    Usage:
        # HTTP client (stateless, cookie-backed transactions)
        async with Hrana.http("http://localhost:8080") as db:
            result = await db.execute("SELECT * FROM users")

        # WebSocket client (stateful, stream-backed transactions)
        async with Hrana.ws("ws://localhost:8080", auth_token=token) as db:
            async with db.transaction() as tx:
                await tx.execute("UPDATE users SET active = 1")

        # From a URL carrying the token, or from LIBSQL_CLIENT_* variables
        db = Hrana.from_url("libsql://my-db.example.com?authToken=...")
        db = Hrana.from_env()
    """

    @staticmethod
    def http(url: str, auth_token: str | None = None, **kwargs: Any) -> Client:
        """Create an HTTP client (stateless)."""
        return Client.from_config(ClientConfig(url=url, auth_token=auth_token, transport="http", **kwargs))

    @staticmethod
    def ws(url: str, auth_token: str | None = None, **kwargs: Any) -> Client:
        """Create a WebSocket client (stateful)."""
        return Client.from_config(ClientConfig(url=url, auth_token=auth_token, transport="ws", **kwargs))

    @staticmethod
    def from_url(url: str, **kwargs: Any) -> Client:
        """Create a client from a database URL."""
        return Client.from_config(ClientConfig.from_url(url, **kwargs))

    @staticmethod
    def from_env() -> Client:
        """Create a client from LIBSQL_CLIENT_URL / LIBSQL_CLIENT_TOKEN / LIBSQL_CLIENT_BACKEND."""
        return Client.from_config(ClientConfig.from_env())
