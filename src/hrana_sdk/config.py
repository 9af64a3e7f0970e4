"""
Client configuration.

Provides an immutable configuration container and the helpers that build it
from a database URL or from environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .exceptions import MisuseError

Transport = Literal["http", "ws"]

URL_ENV = "LIBSQL_CLIENT_URL"
TOKEN_ENV = "LIBSQL_CLIENT_TOKEN"
BACKEND_ENV = "LIBSQL_CLIENT_BACKEND"

_SCHEME_TRANSPORTS: dict[str, Transport] = {
    "http": "http",
    "https": "http",
    "ws": "ws",
    "wss": "ws",
    "libsql": "ws",
}


@dataclass(frozen=True)
class ClientConfig:
    """
    Immutable configuration for a database client.

    Attributes:
        url: Database endpoint URL (without the auth token)
        auth_token: JWT sent with every request, None for anonymous access
        transport: "http" (cookie-backed sessions) or "ws" (stream-backed sessions)
        timeout: Request timeout in seconds
    """

    url: str
    auth_token: str | None = None
    transport: Transport = "http"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.url:
            raise MisuseError("Database URL must not be empty")
        if self.transport not in ("http", "ws"):
            raise MisuseError(f"Invalid transport '{self.transport}'. Must be 'http' or 'ws'.")
        if self.timeout <= 0:
            raise MisuseError(f"Timeout must be > 0, got {self.timeout}")

    def __repr__(self) -> str:
        token = "***" if self.auth_token else None
        return (
            f"ClientConfig(url={self.url!r}, auth_token={token!r}, "
            f"transport={self.transport!r}, timeout={self.timeout!r})"
        )

    @classmethod
    def from_url(
        cls,
        url: str,
        transport: Transport | None = None,
        timeout: float = 30.0,
    ) -> ClientConfig:
        """
        Build a configuration from a database URL.

        The ``authToken`` query parameter is removed from the URL so that it
        never ends up in logs. ``libsql://`` URLs map to ``wss://`` (or
        ``https://`` for the HTTP transport); a URL without a scheme gets
        ``https://``.

        Args:
            url: e.g. "libsql://db.example.com?authToken=..." or "http://localhost:8080"
            transport: Force a transport instead of inferring it from the scheme
            timeout: Request timeout in seconds

        Raises:
            MisuseError: If the scheme is not supported
        """
        if "://" not in url:
            url = f"https://{url}"

        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme not in _SCHEME_TRANSPORTS:
            raise MisuseError(f"Unsupported URL scheme '{scheme}' in database URL")

        query = parse_qsl(parts.query, keep_blank_values=True)
        token = None
        remaining = []
        for key, value in query:
            if key == "authToken":
                token = value or None
            else:
                remaining.append((key, value))

        resolved: Transport = transport or _SCHEME_TRANSPORTS[scheme]
        if scheme == "libsql":
            scheme = "wss" if resolved == "ws" else "https"

        clean = urlunsplit((scheme, parts.netloc, parts.path, urlencode(remaining), parts.fragment))
        return cls(url=clean, auth_token=token, transport=resolved, timeout=timeout)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ClientConfig:
        """
        Build a configuration from environment variables.

        Reads ``LIBSQL_CLIENT_URL`` (required), ``LIBSQL_CLIENT_TOKEN`` and
        ``LIBSQL_CLIENT_BACKEND`` ("http" or "ws").

        Raises:
            MisuseError: If the URL variable is missing or the backend is unknown
        """
        env = os.environ if environ is None else environ

        url = env.get(URL_ENV)
        if not url:
            raise MisuseError(f"{URL_ENV} variable should point to your sqld database")

        backend = env.get(BACKEND_ENV) or None
        if backend is not None and backend not in ("http", "ws"):
            raise MisuseError(f"Invalid {BACKEND_ENV} '{backend}'. Must be 'http' or 'ws'.")

        config = cls.from_url(url, transport=backend)  # type: ignore[arg-type]
        token = env.get(TOKEN_ENV)
        if token:
            config = cls(url=config.url, auth_token=token, transport=config.transport, timeout=config.timeout)
        return config


__all__ = ["ClientConfig", "Transport"]
