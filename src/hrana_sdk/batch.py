"""
Batch execution shared by both session strategies.

A batch is an ordered list of statements sent as one request, followed by an
implicit close step, outside of any open transaction.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from .exceptions import ConnectionError
from .protocol.codec import StatementCodec, not_condition, ok_condition
from .protocol.messages import StreamResult
from .types import BatchResult, Statement

logger = logging.getLogger(__name__)

# Sends an encoded batch plus a close step in one round trip and returns the
# result entries in request order.
SendBatch = Callable[[dict[str, Any]], Awaitable[list[StreamResult]]]


class BatchExecutor:
    """
    Runs batches and reduces the multi-step server response to a BatchResult.

    Only ordering and a single round trip are guaranteed. Whether a plain
    batch is atomic is up to the server; use ``run_atomic`` to wrap the
    statements in an explicit transaction.
    """

    def __init__(self, codec: StatementCodec, send_batch: SendBatch):
        self.codec = codec
        self._send_batch = send_batch

    async def run(self, stmts: Sequence[Statement]) -> BatchResult:
        """
        Execute statements as one batch.

        Returns:
            One outcome per statement, in submission order

        Raises:
            ConnectionError: If the response shape is unexpected
            ServerError: If the server rejected the batch as a whole
        """
        batch = self.codec.encode_batch(stmts)
        results = await self._send_batch(batch)
        return self._reduce(results, len(stmts))

    async def run_atomic(self, stmts: Sequence[Statement]) -> BatchResult:
        """
        Execute statements as one batch inside a transaction.

        Each statement runs only if the previous step succeeded; the
        transaction is committed after the last statement, and rolled back if
        anything (including the commit) failed.

        Returns:
            One outcome per caller statement; statements after a failure are skipped

        Raises:
            ServerError: If BEGIN or COMMIT failed
        """
        count = len(stmts)
        wrapped = [Statement("BEGIN"), *stmts, Statement("COMMIT"), Statement("ROLLBACK")]
        conditions: list[dict[str, Any] | None] = [None]
        conditions.extend(ok_condition(i) for i in range(count))
        conditions.append(ok_condition(count))
        conditions.append(not_condition(ok_condition(count + 1)))

        batch = self.codec.encode_batch(wrapped, conditions)
        results = await self._send_batch(batch)
        full = self._reduce(results, len(wrapped))

        begin, commit = full[0], full[count + 1]
        if begin.error is not None:
            raise begin.error.to_exception("BEGIN")
        if commit.error is not None:
            raise commit.error.to_exception("COMMIT")
        return type(full)(outcomes=full.outcomes[1 : count + 1])

    def _reduce(self, results: list[StreamResult], expected_steps: int) -> BatchResult:
        """Check the response shape and decode the batch entry."""
        if not results:
            raise ConnectionError("Unexpected empty response from server")
        if len(results) > 2:
            # One with the batch result, one acknowledging the close
            raise ConnectionError(f"Unexpected {len(results)} responses from server for one batch")

        first = results[0]
        if first.error is not None:
            raise first.error.to_exception()
        if first.response_type != "batch":
            raise ConnectionError(f"Unexpected response from server: {first.response_type!r}")

        if len(results) == 2 and results[1].error is not None:
            logger.debug(f"Server failed to close the batch stream: {results[1].error.message}")

        result = self.codec.decode_batch(first.response.get("result"))
        if len(result) != expected_steps:
            raise ConnectionError(
                f"Server returned {len(result)} step outcomes for {expected_steps} statements"
            )
        return result
