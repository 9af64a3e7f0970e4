"""
Hrana SDK Session Module.

Provides the stream-backed and cookie-backed session strategies.
"""

from .base import ReleaseOutcome, SessionStrategy
from .cookie import CookieSession, CookieSessionStrategy
from .stream import StreamSession, StreamSessionStrategy

__all__ = [
    "ReleaseOutcome",
    "SessionStrategy",
    "CookieSession",
    "CookieSessionStrategy",
    "StreamSession",
    "StreamSessionStrategy",
]
