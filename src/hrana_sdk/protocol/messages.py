"""
Hrana message formats.

Handles the JSON request/response envelopes used by both transports:
- HTTP pipeline messages (``POST /v2/pipeline``), which carry a baton
- WebSocket request/response messages, which address a stream by id
"""

import json
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import ConnectionError
from ..types import StepError
from .codec import decode_error


# Stream request builders


def execute_request(stmt: dict[str, Any]) -> dict[str, Any]:
    """Create an execute step."""
    return {"type": "execute", "stmt": stmt}


def batch_request(batch: dict[str, Any]) -> dict[str, Any]:
    """Create a batch step."""
    return {"type": "batch", "batch": batch}


def close_request() -> dict[str, Any]:
    """Create a close step."""
    return {"type": "close"}


@dataclass
class StreamResult:
    """
    Result of one stream request.

    Attributes:
        response_type: Type of the ok response ("execute", "batch", "close", ...)
        response: The ok response payload
        error: Error information (if failed)
    """

    response_type: str | None = None
    response: dict[str, Any] = field(default_factory=dict)
    error: StepError | None = None

    @property
    def is_error(self) -> bool:
        """Check if the request failed."""
        return self.error is not None

    @property
    def is_ok(self) -> bool:
        """Check if the request succeeded."""
        return self.error is None

    @classmethod
    def ok(cls, response: dict[str, Any]) -> "StreamResult":
        """Create from an ok response payload."""
        response_type = response.get("type")
        # WebSocket acknowledges "close_stream", HTTP acknowledges "close"
        if response_type == "close_stream":
            response_type = "close"
        return cls(response_type=response_type, response=response)

    @classmethod
    def failed(cls, error: Any) -> "StreamResult":
        """Create from an error payload."""
        return cls(error=decode_error(error))

    @classmethod
    def from_dict(cls, data: Any) -> "StreamResult":
        """Parse a pipeline result entry."""
        if not isinstance(data, dict):
            raise ConnectionError(f"Malformed result entry from server: {data!r}")

        kind = data.get("type")
        if kind == "ok":
            response = data.get("response")
            if not isinstance(response, dict):
                raise ConnectionError(f"Malformed ok result from server: {data!r}")
            return cls.ok(response)
        if kind == "error":
            return cls.failed(data.get("error"))
        raise ConnectionError(f"Unknown result type from server: {kind!r}")


@dataclass
class PipelineRequest:
    """
    HTTP pipeline request body.

    Attributes:
        requests: Ordered stream requests (execute, batch, close)
        baton: Continuation token of the stream, None to open a new one
    """

    requests: list[dict[str, Any]] = field(default_factory=list)
    baton: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"baton": self.baton, "requests": self.requests}

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())


@dataclass
class PipelineResponse:
    """
    HTTP pipeline response body.

    Attributes:
        baton: Continuation token for the next request, None if the stream closed
        base_url: Base URL the next request for this stream should go to
        results: One result per request, in request order
    """

    baton: str | None = None
    base_url: str | None = None
    results: list[StreamResult] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "PipelineResponse":
        """Parse from dictionary."""
        if not isinstance(data, dict):
            raise ConnectionError(f"Malformed pipeline response from server: {data!r}")

        results = data.get("results")
        if not isinstance(results, list):
            raise ConnectionError(f"Pipeline response without results: {data!r}")

        baton = data.get("baton")
        base_url = data.get("base_url")
        return cls(
            baton=str(baton) if baton is not None else None,
            base_url=str(base_url) if base_url else None,
            results=[StreamResult.from_dict(r) for r in results],
        )

    @classmethod
    def from_json(cls, json_str: str) -> "PipelineResponse":
        """Parse from JSON string."""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConnectionError(f"Invalid JSON from server: {e}") from e
        return cls.from_dict(data)


# WebSocket messages


def hello_message(jwt: str | None) -> dict[str, Any]:
    """Create the handshake message."""
    return {"type": "hello", "jwt": jwt}


def ws_request(request_id: int, request: dict[str, Any]) -> dict[str, Any]:
    """Wrap a request in the WebSocket request envelope."""
    return {"type": "request", "request_id": request_id, "request": request}


def open_stream_request(stream_id: int) -> dict[str, Any]:
    """Create an open_stream request."""
    return {"type": "open_stream", "stream_id": stream_id}


def close_stream_request(stream_id: int) -> dict[str, Any]:
    """Create a close_stream request."""
    return {"type": "close_stream", "stream_id": stream_id}


def stream_execute_request(stream_id: int, stmt: dict[str, Any]) -> dict[str, Any]:
    """Create an execute request addressed to a stream."""
    return {"type": "execute", "stream_id": stream_id, "stmt": stmt}


def stream_batch_request(stream_id: int, batch: dict[str, Any]) -> dict[str, Any]:
    """Create a batch request addressed to a stream."""
    return {"type": "batch", "stream_id": stream_id, "batch": batch}


class MessageType:
    """WebSocket server message type constants."""

    HELLO_OK = "hello_ok"
    HELLO_ERROR = "hello_error"
    RESPONSE_OK = "response_ok"
    RESPONSE_ERROR = "response_error"
