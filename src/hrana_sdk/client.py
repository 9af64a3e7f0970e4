"""
Database client.

The client is the application-facing surface: it owns one session strategy,
chosen once from the configured transport, and forwards every call to it.
"""

import itertools
import logging
from collections.abc import Sequence
from typing import Any, Self

from .config import ClientConfig
from .connection.http import HTTPConnection
from .connection.websocket import WebSocketConnection
from .exceptions import MisuseError
from .protocol.codec import StatementCodec
from .session.base import MAX_TRANSACTION_ID, ReleaseListener, SessionStrategy
from .session.cookie import CookieSessionStrategy
from .session.stream import StreamSessionStrategy
from .transaction import Transaction
from .types import BatchResult, ResultSet, StatementLike

logger = logging.getLogger(__name__)


class Client:
    """
    Client for a remote libSQL/sqld database.

    Transaction ids are chosen by the caller; 0 is reserved for statements
    outside a transaction. ``transaction()`` hands out unused ids for callers
    that do not want to manage them.

    Usage:
        async with Client.from_config(ClientConfig.from_url("http://localhost:8080")) as db:
            await db.batch(["CREATE TABLE t(x)", "INSERT INTO t VALUES (1)"])
            result = await db.execute("SELECT x FROM t")

            await db.execute_in_transaction(7, "INSERT INTO t VALUES (2)")
            await db.commit_transaction(7)
    """

    def __init__(self, strategy: SessionStrategy[Any]):
        self.strategy = strategy
        self._tx_ids = itertools.count(1)
        self._allocated: set[int] = set()
        self._closed = False

    def __repr__(self) -> str:
        return f"Client(transport={self.strategy.transport_name!r})"

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        codec: StatementCodec | None = None,
        on_release: ReleaseListener | None = None,
    ) -> "Client":
        """Create an unconnected client for a configuration."""
        strategy: SessionStrategy[Any]
        if config.transport == "ws":
            strategy = StreamSessionStrategy(
                WebSocketConnection(config.url, config.auth_token, timeout=config.timeout),
                codec=codec,
                on_release=on_release,
            )
        else:
            strategy = CookieSessionStrategy(
                HTTPConnection(config.url, config.auth_token, timeout=config.timeout),
                codec=codec,
                on_release=on_release,
            )
        logger.debug(f"Created {config.transport} client for {config.url}")
        return cls(strategy)

    # Lifecycle

    async def connect(self) -> Self:
        """Open the transport. Returns self for fluent API."""
        await self.strategy.connect()
        self._closed = False
        return self

    async def close(self) -> None:
        """Release every open session and close the transport."""
        self._closed = True
        self._allocated.clear()
        await self.strategy.close()

    async def reconnect(self) -> None:
        """
        Rebuild the transport connection.

        With the WebSocket transport, transactions open at this point are lost
        and their ids keep failing with ConnectionError until rolled back.
        """
        await self.strategy.reconnect()

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise MisuseError("Client is closed")

    # Statements

    async def execute(self, stmt: StatementLike, args: Any = None) -> ResultSet:
        """
        Execute a statement outside any transaction.

        Args:
            stmt: Statement, SQL string, or (sql, args) tuple
            args: Positional (sequence) or named (mapping) parameters for a SQL string
        """
        self._check_open()
        if args is not None:
            stmt = (stmt, args)  # type: ignore[assignment]
        return await self.strategy.execute(stmt)

    async def execute_in_transaction(self, tx_id: int, stmt: StatementLike) -> ResultSet:
        """Execute a statement inside transaction ``tx_id`` (created on first use)."""
        self._check_open()
        return await self.strategy.execute_in_transaction(tx_id, stmt)

    async def commit_transaction(self, tx_id: int) -> None:
        """Commit transaction ``tx_id``. A never-used id is a no-op."""
        self._check_open()
        await self.strategy.commit_transaction(tx_id)

    async def rollback_transaction(self, tx_id: int) -> None:
        """Roll back transaction ``tx_id``. A never-used id is a no-op."""
        self._check_open()
        await self.strategy.rollback_transaction(tx_id)

    async def batch(self, stmts: Sequence[StatementLike]) -> BatchResult:
        """Execute statements in order, as one request, outside any transaction."""
        self._check_open()
        return await self.strategy.batch(stmts)

    async def atomic_batch(self, stmts: Sequence[StatementLike]) -> BatchResult:
        """Execute statements as one request inside BEGIN/COMMIT; any failure rolls back."""
        self._check_open()
        return await self.strategy.atomic_batch(stmts)

    # Transactions

    def transaction(self) -> Transaction:
        """
        Start a transaction on an unused id.

        Usage:
            async with db.transaction() as tx:
                await tx.execute("INSERT INTO t VALUES (?)", [1])
                # Committed on successful exit, rolled back on exception
        """
        self._check_open()
        return Transaction(self, self._allocate_transaction_id())

    def _allocate_transaction_id(self) -> int:
        sessions = self.strategy.sessions
        for tx_id in self._tx_ids:
            if tx_id > MAX_TRANSACTION_ID:
                self._tx_ids = itertools.count(1)
                raise MisuseError("Transaction ids exhausted")
            if tx_id in self._allocated or tx_id in sessions or sessions.is_orphaned(tx_id):
                continue
            self._allocated.add(tx_id)
            return tx_id
        raise MisuseError("Transaction ids exhausted")  # pragma: no cover

    def _release_transaction_id(self, tx_id: int) -> None:
        self._allocated.discard(tx_id)
