"""
Hrana SDK Connection Module.

Provides HTTP and WebSocket transport implementations.
"""

from .http import HTTPConnection
from .websocket import WebSocketConnection, WebSocketStream

__all__ = [
    "HTTPConnection",
    "WebSocketConnection",
    "WebSocketStream",
]
