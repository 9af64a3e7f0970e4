"""
Cookie-backed session strategy.

Emulates stream affinity over stateless HTTP. Every response carries a baton
(an opaque continuation token) and optionally a base URL the next request for
the same stream must go to; the pair is the transaction's cookie and is
threaded through every request of that transaction.
"""

import logging
from dataclasses import dataclass
from typing import Any, Self

from ..connection.http import HTTPConnection
from ..exceptions import ConnectionError
from ..protocol.codec import StatementCodec
from ..protocol.messages import (
    PipelineRequest,
    PipelineResponse,
    StreamResult,
    batch_request,
    close_request,
    execute_request,
)
from ..registry import TransactionSession
from ..types import ResultSet, Statement
from .base import ReleaseListener, SessionStrategy

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class CookieSession(TransactionSession):
    """
    Session holding the cookie of a transaction.

    Both fields are None until the first statement's response arrives.
    """

    baton: str | None = None
    base_url: str | None = None


class CookieSessionStrategy(SessionStrategy[CookieSession]):
    """
    Session strategy for the HTTP pipeline transport.

    Usage:
        strategy = CookieSessionStrategy(HTTPConnection("http://localhost:8080"))
        await strategy.connect()
        await strategy.execute_in_transaction(7, "INSERT INTO t VALUES (1)")
        await strategy.commit_transaction(7)
    """

    transport_name = "http"

    def __init__(
        self,
        connection: HTTPConnection,
        codec: StatementCodec | None = None,
        on_release: ReleaseListener | None = None,
    ):
        super().__init__(codec=codec, on_release=on_release)
        self.connection = connection

    async def connect(self) -> Self:
        """Open the HTTP client."""
        await self.connection.connect()
        return self

    async def reconnect(self) -> None:
        """Replace the HTTP client. Cookies are kept: batons are not tied to a connection."""
        await self.connection.reconnect()

    async def _close_transport(self) -> None:
        await self.connection.close()

    def _url_for(self, base_url: str | None) -> str:
        """Server-issued redirect URL if the cookie has one, else the default endpoint."""
        if base_url:
            return base_url
        return self.connection.pipeline_url

    async def _pipeline(
        self,
        requests: list[dict[str, Any]],
        baton: str | None = None,
        base_url: str | None = None,
    ) -> PipelineResponse:
        """Send one pipeline request and parse the response."""
        body = PipelineRequest(requests=requests, baton=baton).to_json()
        data = await self.connection.send(self._url_for(base_url), self.connection.auth_header, body)
        return PipelineResponse.from_dict(data)

    async def _open_session(self, tx_id: int) -> CookieSession:
        return CookieSession(tx_id=tx_id)

    async def _run(self, session: CookieSession, stmt: Statement) -> ResultSet:
        tx_id = session.tx_id
        first = session.statements == 0

        try:
            response = await self._pipeline(
                [execute_request(self.codec.encode(stmt))],
                baton=session.baton,
                base_url=session.base_url,
            )
        except BaseException:
            if first:
                # Never leave a half-created session behind
                self.sessions.remove(tx_id, session)
            raise

        if response.baton is None:
            if first:
                self.sessions.remove(tx_id, session)
            else:
                self.sessions.orphan(tx_id, session)
            raise ConnectionError("Stream closed: server returned empty baton")

        session.baton = response.baton
        session.base_url = response.base_url
        session.statements += 1
        logger.debug(f"Transaction {tx_id} continues with baton {response.baton!r}")
        return self._single_result(response, stmt)

    async def _run_once(self, stmt: Statement) -> ResultSet:
        response = await self._pipeline([execute_request(self.codec.encode(stmt))])
        return self._single_result(response, stmt)

    async def _release_session(self, session: CookieSession) -> None:
        if session.baton is None:
            return
        response = await self._pipeline([close_request()], baton=session.baton, base_url=session.base_url)
        if response.results and response.results[0].error is not None:
            error = response.results[0].error
            raise ConnectionError(f"Server failed to close stream: {error.message}", error.code)

    async def _send_batch(self, batch: dict[str, Any]) -> list[StreamResult]:
        response = await self._pipeline([batch_request(batch), close_request()])
        return response.results

    def _single_result(self, response: PipelineResponse, stmt: Statement) -> ResultSet:
        """Decode the only result of a single-statement request."""
        if not response.results:
            raise ConnectionError("Unexpected empty response from server")
        if len(response.results) > 1:
            raise ConnectionError(f"Unexpected {len(response.results)} responses from server for one statement")
        return self._decode_execute(response.results[0], stmt)
