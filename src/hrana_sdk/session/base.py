"""
Session strategy interface.

A session strategy decides how the state of an open transaction is carried
between independent calls: on a persistent stream, or in a baton threaded
through stateless requests. Both variants expose the same contract.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Self

from ..batch import BatchExecutor
from ..exceptions import ConnectionError, MisuseError
from ..protocol.codec import StatementCodec
from ..protocol.messages import StreamResult
from ..registry import S, SessionRegistry
from ..types import BatchResult, ResultSet, Statement, StatementLike

logger = logging.getLogger(__name__)

NO_TRANSACTION = 0
MAX_TRANSACTION_ID = 2**64 - 1


@dataclass(frozen=True)
class ReleaseOutcome:
    """
    Outcome of a best-effort release of server-side session resources.

    Attributes:
        tx_id: Transaction id the released session belonged to (0 for none)
        ok: Whether the release succeeded
        error: The failure, if any
    """

    tx_id: int
    ok: bool
    error: Exception | None = None


ReleaseListener = Callable[[ReleaseOutcome], None]


def check_transaction_id(tx_id: int) -> int:
    """Validate a caller-supplied transaction id."""
    if not isinstance(tx_id, int) or isinstance(tx_id, bool):
        raise MisuseError(f"Transaction id must be an integer, got {type(tx_id).__name__}")
    if tx_id == NO_TRANSACTION:
        raise MisuseError("Transaction id 0 is reserved for statements outside a transaction")
    if not 0 < tx_id <= MAX_TRANSACTION_ID:
        raise MisuseError(f"Transaction id {tx_id} is not an unsigned 64-bit integer")
    return tx_id


class SessionStrategy(ABC, Generic[S]):
    """
    Abstract base class for session strategies.

    Holds the session registry and implements the transaction lifecycle on
    top of a handful of transport-specific hooks. Calls on the same
    transaction id are serialized through the session lock; distinct ids run
    concurrently.
    """

    transport_name: str = ""

    def __init__(
        self,
        codec: StatementCodec | None = None,
        on_release: ReleaseListener | None = None,
    ):
        """
        Initialize the strategy.

        Args:
            codec: Statement codec (a default one is created if omitted)
            on_release: Called with the outcome of every best-effort release
        """
        self.codec = codec or StatementCodec()
        self.sessions: SessionRegistry[S] = SessionRegistry()
        self.on_release = on_release
        self.batches = BatchExecutor(self.codec, self._send_batch)

    # Abstract methods that must be implemented

    @abstractmethod
    async def connect(self) -> Self:
        """Open the underlying transport."""
        ...

    @abstractmethod
    async def reconnect(self) -> None:
        """Rebuild the underlying transport connection."""
        ...

    @abstractmethod
    async def _close_transport(self) -> None:
        """Close the underlying transport."""
        ...

    @abstractmethod
    async def _open_session(self, tx_id: int) -> S:
        """Build the session for a new transaction."""
        ...

    @abstractmethod
    async def _run(self, session: S, stmt: Statement) -> ResultSet:
        """Execute a statement in a session. Called with the session lock held."""
        ...

    @abstractmethod
    async def _run_once(self, stmt: Statement) -> ResultSet:
        """Execute a statement outside any transaction."""
        ...

    @abstractmethod
    async def _release_session(self, session: S) -> None:
        """Release the server-side resources of a session."""
        ...

    @abstractmethod
    async def _send_batch(self, batch: dict[str, Any]) -> list[StreamResult]:
        """Send an encoded batch plus a close step, return the result entries."""
        ...

    # Public API

    async def close(self) -> None:
        """Release every open session and close the transport."""
        for session in self.sessions.drain():
            await self.release(session)
        await self._close_transport()

    async def execute(self, stmt: StatementLike) -> ResultSet:
        """Execute a statement outside any transaction."""
        return await self._run_once(Statement.coerce(stmt))

    async def execute_in_transaction(self, tx_id: int, stmt: StatementLike) -> ResultSet:
        """
        Execute a statement inside transaction ``tx_id``.

        The session is created on first use of the id.

        Raises:
            MisuseError: If the id is invalid or the transaction ended while waiting
            ConnectionError: If the session was lost or the transport failed
            ServerError: If the server rejected the statement
        """
        check_transaction_id(tx_id)
        statement = Statement.coerce(stmt)
        while True:
            session = await self.sessions.get_or_create(
                tx_id,
                lambda: self._open_session(tx_id),
                discard=self.release,
            )
            async with session.lock:
                if self._never_started(session):
                    # Dropped by a failed first statement while we waited: start over
                    logger.debug(f"Transaction {tx_id} session was dropped unused, opening a new one")
                    continue
                self._check_usable(session)
                logger.debug(f"Transaction {tx_id} executing {statement.sql}")
                return await self._run(session, statement)

    async def commit_transaction(self, tx_id: int) -> None:
        """Commit transaction ``tx_id`` and release its session."""
        await self._end_transaction(tx_id, "COMMIT")

    async def rollback_transaction(self, tx_id: int) -> None:
        """Roll back transaction ``tx_id`` and release its session."""
        await self._end_transaction(tx_id, "ROLLBACK")

    async def batch(self, stmts: Sequence[StatementLike]) -> BatchResult:
        """Execute statements as one batch outside any transaction."""
        return await self.batches.run([Statement.coerce(s) for s in stmts])

    async def atomic_batch(self, stmts: Sequence[StatementLike]) -> BatchResult:
        """Execute statements as one batch wrapped in BEGIN/COMMIT."""
        return await self.batches.run_atomic([Statement.coerce(s) for s in stmts])

    async def release(self, session: S) -> ReleaseOutcome:
        """
        Best-effort release of a session's server-side resources.

        Failures are logged and reported to ``on_release``; they never propagate.
        """
        try:
            await self._release_session(session)
            outcome = ReleaseOutcome(tx_id=session.tx_id, ok=True)
        except Exception as e:
            logger.warning(f"Failed to release session of transaction {session.tx_id}: {e}")
            outcome = ReleaseOutcome(tx_id=session.tx_id, ok=False, error=e)

        if self.on_release is not None:
            try:
                self.on_release(outcome)
            except Exception:
                logger.exception("Release listener failed")
        return outcome

    # Helpers

    async def _end_transaction(self, tx_id: int, sql: str) -> None:
        """Send COMMIT/ROLLBACK, then drop and release the session whatever happened."""
        check_transaction_id(tx_id)
        logger.debug(f"Transaction {tx_id} {sql.lower()}")

        session = self.sessions.get(tx_id)
        if session is None:
            self._end_lost_transaction(tx_id, sql)
            return

        async with session.lock:
            if session.closed:
                self._end_lost_transaction(tx_id, sql)
                return
            try:
                await self._run(session, Statement(sql))
            finally:
                self.sessions.remove(tx_id, session)
                await self.release(session)

    def _end_lost_transaction(self, tx_id: int, sql: str) -> None:
        """End a transaction that has no live session."""
        if not self.sessions.is_orphaned(tx_id):
            # Never used, or already ended by a concurrent call
            return
        self.sessions.remove(tx_id)
        if sql == "COMMIT":
            raise ConnectionError(f"Transaction {tx_id} lost its session and cannot be committed")
        logger.warning(f"Transaction {tx_id} lost its session; nothing left to roll back")

    def _never_started(self, session: S) -> bool:
        """True for a session removed before any of its statements reached the server."""
        return session.closed and session.statements == 0 and not self.sessions.is_orphaned(session.tx_id)

    def _check_usable(self, session: S) -> None:
        """Reject a session that was ended or dropped while waiting for its lock."""
        if not session.closed:
            return
        if self.sessions.is_orphaned(session.tx_id):
            raise ConnectionError(f"Transaction {session.tx_id} lost its session")
        raise MisuseError(f"Transaction {session.tx_id} already ended")

    def _decode_execute(self, result: StreamResult, stmt: Statement) -> ResultSet:
        """Turn the result of an execute request into a ResultSet."""
        if result.error is not None:
            raise result.error.to_exception(stmt.sql)
        if result.response_type != "execute":
            raise ConnectionError(f"Unexpected response from server: {result.response_type!r}")
        return self.codec.decode(result.response.get("result"))
