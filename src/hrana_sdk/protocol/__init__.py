"""
Hrana SDK Protocol Module.

Implements the statement codec and the message envelopes of the Hrana protocol.
"""

from .codec import StatementCodec, decode_value, encode_value
from .messages import PipelineRequest, PipelineResponse, StreamResult

__all__ = [
    # Codec
    "StatementCodec",
    "encode_value",
    "decode_value",
    # Messages
    "PipelineRequest",
    "PipelineResponse",
    "StreamResult",
]
