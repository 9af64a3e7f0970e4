"""
Transaction session registry.

Maps caller-chosen transaction ids to the session state needed to continue
them. The registry lock only guards dict operations: session construction that
needs a round trip runs outside of it, and the lock is re-acquired to publish
or discard the result.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .exceptions import ConnectionError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TransactionSession:
    """
    State shared by every session kind.

    Attributes:
        tx_id: Transaction id this session belongs to
        lock: Serializes calls on this transaction id
        closed: Set once the transaction was committed, rolled back or dropped
        statements: Number of statements sent so far
    """

    tx_id: int
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    closed: bool = False
    statements: int = 0


S = TypeVar("S", bound=TransactionSession)


class SessionRegistry(Generic[S]):
    """
    Concurrent mapping from transaction id to session.

    Guarantees at most one published session per id. An id whose session was
    invalidated (dead stream, lost baton) is remembered as orphaned until the
    caller ends the transaction, so it is never silently replaced by a fresh,
    empty session.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, S] = {}
        self._orphaned: set[int] = set()
        self._lock = threading.Lock()

    def __contains__(self, tx_id: object) -> bool:
        with self._lock:
            return tx_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def ids(self) -> list[int]:
        """Ids with a live session."""
        with self._lock:
            return list(self._sessions)

    def get(self, tx_id: int) -> S | None:
        """Get the live session for ``tx_id``, if any."""
        with self._lock:
            return self._sessions.get(tx_id)

    def is_orphaned(self, tx_id: int) -> bool:
        """Check if ``tx_id`` lost its session without being committed or rolled back."""
        with self._lock:
            return tx_id in self._orphaned

    async def get_or_create(
        self,
        tx_id: int,
        factory: Callable[[], Awaitable[S]],
        discard: Callable[[S], Awaitable[Any]] | None = None,
    ) -> S:
        """
        Return the session for ``tx_id``, creating it on first use.

        Args:
            tx_id: Transaction id
            factory: Builds a new session; may perform network I/O
            discard: Disposes of a session built by a caller that lost the
                     race to publish

        Returns:
            The published session

        Raises:
            ConnectionError: If ``tx_id`` is orphaned
        """
        with self._lock:
            self._check_orphaned(tx_id)
            existing = self._sessions.get(tx_id)
        if existing is not None:
            logger.debug(f"Found session for transaction {tx_id}")
            return existing

        created = await factory()

        with self._lock:
            orphaned = tx_id in self._orphaned
            winner = self._sessions.get(tx_id)
            if winner is None and not orphaned:
                self._sessions[tx_id] = created
                logger.debug(f"Created session for transaction {tx_id}")
                return created

        # Lost the race, or the id was orphaned while the session was being built
        created.closed = True
        if discard is not None:
            await discard(created)
        if winner is None:
            raise ConnectionError(f"Transaction {tx_id} lost its session while it was being opened")
        logger.debug(f"Discarded duplicate session for transaction {tx_id}")
        return winner

    def remove(self, tx_id: int, session: S | None = None) -> S | None:
        """
        Remove the session for ``tx_id`` and clear its orphan mark.

        Idempotent: removing an unknown id is a no-op. When ``session`` is
        given, a different session published under the same id is left alone.

        Returns:
            The removed session, or None
        """
        with self._lock:
            self._orphaned.discard(tx_id)
            current = self._sessions.get(tx_id)
            if current is None or (session is not None and current is not session):
                return None
            del self._sessions[tx_id]
        current.closed = True
        logger.debug(f"Dropped session for transaction {tx_id}")
        return current

    def orphan(self, tx_id: int, session: S | None = None) -> S | None:
        """
        Drop the session for ``tx_id`` and mark the id as orphaned.

        Returns:
            The dropped session, or None
        """
        with self._lock:
            current = self._sessions.get(tx_id)
            if session is not None and current is not session:
                return None
            self._sessions.pop(tx_id, None)
            self._orphaned.add(tx_id)
        if current is not None:
            current.closed = True
        logger.warning(f"Transaction {tx_id} lost its session; commit or roll it back to reuse the id")
        return current

    def orphan_all(self) -> list[S]:
        """Orphan every live session. Returns the dropped sessions."""
        with self._lock:
            dropped = list(self._sessions.values())
            self._orphaned.update(self._sessions)
            self._sessions.clear()
        for session in dropped:
            session.closed = True
        if dropped:
            logger.warning(f"Orphaned {len(dropped)} open transaction(s)")
        return dropped

    def drain(self) -> list[S]:
        """Remove every live session and orphan mark. Returns the removed sessions."""
        with self._lock:
            drained = list(self._sessions.values())
            self._sessions.clear()
            self._orphaned.clear()
        for session in drained:
            session.closed = True
        return drained

    def _check_orphaned(self, tx_id: int) -> None:
        if tx_id in self._orphaned:
            raise ConnectionError(
                f"Transaction {tx_id} lost its session (connection or stream closed); "
                "it must be rolled back before the id can be reused"
            )


__all__ = ["SessionRegistry", "TransactionSession"]
