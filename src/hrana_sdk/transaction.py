"""
Transaction support for Hrana SDK.

Provides an async context manager around a client transaction id that works
with both session strategies.
"""

import logging
from typing import TYPE_CHECKING, Any, Self

from .exceptions import HranaError, TransactionError

if TYPE_CHECKING:
    from .client import Client
    from .types import ResultSet, StatementLike

logger = logging.getLogger(__name__)


class Transaction:
    """
    Handle for one transaction on a client.

    Usage:
        async with client.transaction() as tx:
            await tx.execute("UPDATE players SET ready = 1 WHERE id = ?", [1])
            await tx.execute(Statement("UPDATE tables SET ready_count = 1"))
            # Auto-commit on success, auto-rollback on exception
    """

    def __init__(self, client: "Client", tx_id: int):
        self._client = client
        self.tx_id = tx_id
        self._committed = False
        self._rolled_back = False
        self._ended = False

    def __repr__(self) -> str:
        return f"Transaction(tx_id={self.tx_id}, active={self.is_active})"

    @property
    def is_active(self) -> bool:
        """Check if transaction is active."""
        return not self._ended

    @property
    def is_committed(self) -> bool:
        """Check if transaction was committed."""
        return self._committed

    @property
    def is_rolled_back(self) -> bool:
        """Check if transaction was rolled back."""
        return self._rolled_back

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        """Commit on success, rollback on exception."""
        if not self.is_active:
            return False
        if exc_type is not None:
            try:
                await self.rollback()
            except HranaError as e:
                logger.warning(f"Rollback of transaction {self.tx_id} failed: {e}")
            return False  # Re-raise exception
        await self.commit()
        return False

    async def execute(self, stmt: "StatementLike", args: Any = None) -> "ResultSet":
        """Execute a statement within the transaction."""
        if not self.is_active:
            raise TransactionError(f"Transaction {self.tx_id} not active")
        if args is not None:
            stmt = (stmt, args)  # type: ignore[assignment]
        return await self._client.execute_in_transaction(self.tx_id, stmt)

    async def commit(self) -> None:
        """Commit the transaction."""
        if not self.is_active:
            raise TransactionError(f"Transaction {self.tx_id} not active")
        try:
            await self._client.commit_transaction(self.tx_id)
            self._committed = True
        finally:
            # The session is gone either way
            self._ended = True
            self._client._release_transaction_id(self.tx_id)

    async def rollback(self) -> None:
        """Rollback the transaction."""
        if not self.is_active:
            return
        try:
            await self._client.rollback_transaction(self.tx_id)
            self._rolled_back = True
        finally:
            self._ended = True
            self._client._release_transaction_id(self.tx_id)
