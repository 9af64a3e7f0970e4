"""
Stream-backed session strategy.

Binds every transaction id to one stream opened on the persistent WebSocket
connection. All statements of the transaction travel, in order, on that
stream; the server keeps the transaction open on the stream's SQL connection.
"""

import logging
from dataclasses import dataclass
from typing import Any, Self

from ..connection.websocket import WebSocketConnection, WebSocketStream
from ..exceptions import ConnectionError
from ..protocol.codec import StatementCodec
from ..protocol.messages import StreamResult
from ..registry import TransactionSession
from ..types import ResultSet, Statement
from .base import NO_TRANSACTION, ReleaseListener, SessionStrategy

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class StreamSession(TransactionSession):
    """Session holding the stream a transaction runs on."""

    stream: WebSocketStream | None = None


class StreamSessionStrategy(SessionStrategy[StreamSession]):
    """
    Session strategy for the persistent-connection transport.

    Per transaction id: no session → stream open (first statement) → closed
    (commit or rollback). Reconnecting does not resurrect streams: every
    transaction open at that moment is orphaned and keeps failing with
    ConnectionError until the caller rolls it back.
    """

    transport_name = "ws"

    def __init__(
        self,
        connection: WebSocketConnection,
        codec: StatementCodec | None = None,
        on_release: ReleaseListener | None = None,
    ):
        super().__init__(codec=codec, on_release=on_release)
        self.connection = connection

    async def connect(self) -> Self:
        """Establish the WebSocket connection."""
        await self.connection.connect()
        return self

    async def reconnect(self) -> None:
        """Rebuild the connection; open transactions become orphaned."""
        self.sessions.orphan_all()
        await self.connection.reconnect()

    async def _close_transport(self) -> None:
        await self.connection.close()

    async def _open_session(self, tx_id: int) -> StreamSession:
        stream = await self.connection.open_stream()
        logger.debug(f"Opened stream {stream.stream_id} for transaction {tx_id}")
        return StreamSession(tx_id=tx_id, stream=stream)

    async def _run(self, session: StreamSession, stmt: Statement) -> ResultSet:
        if session.stream is None:
            raise ConnectionError(f"Transaction {session.tx_id} has no stream")
        result = await session.stream.execute(self.codec.encode(stmt))
        session.statements += 1
        return self._decode_execute(result, stmt)

    async def _run_once(self, stmt: Statement) -> ResultSet:
        stream = await self.connection.open_stream()
        try:
            result = await stream.execute(self.codec.encode(stmt))
        finally:
            await self.release(StreamSession(tx_id=NO_TRANSACTION, stream=stream))
        return self._decode_execute(result, stmt)

    async def _release_session(self, session: StreamSession) -> None:
        if session.stream is None:
            return
        result = await session.stream.close()
        if result is not None and result.error is not None:
            raise ConnectionError(f"Server failed to close stream: {result.error.message}", result.error.code)

    async def _send_batch(self, batch: dict[str, Any]) -> list[StreamResult]:
        stream = await self.connection.open_stream()
        try:
            result = await stream.batch(batch)
        finally:
            await self.release(StreamSession(tx_id=NO_TRANSACTION, stream=stream))
        return [result]
