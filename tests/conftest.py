"""
Pytest configuration for Hrana SDK tests.

Integration tests need a running sqld server. Point ``LIBSQL_TEST_URL`` at it
(e.g. ``http://localhost:8080``); without a healthy server they are skipped.

Shared connection constants are defined here so every test file can import them
instead of hardcoding URLs and tokens.
"""

import os
from collections.abc import Generator
from urllib.parse import urlsplit

import pytest

# ---------------------------------------------------------------------------
# Shared connection constants (import these in test files)
# ---------------------------------------------------------------------------
LIBSQL_TEST_URL = os.getenv("LIBSQL_TEST_URL", "")
LIBSQL_TEST_TOKEN = os.getenv("LIBSQL_TEST_TOKEN") or None


def is_sqld_healthy(url: str = LIBSQL_TEST_URL) -> bool:
    """Check if sqld is healthy via its /health endpoint."""
    import urllib.error
    import urllib.request

    if not url:
        return False

    parts = urlsplit(url)
    scheme = "https" if parts.scheme in ("https", "wss", "libsql") else "http"
    try:
        req = urllib.request.Request(f"{scheme}://{parts.netloc}/health", method="GET")
        with urllib.request.urlopen(req, timeout=2) as response:
            return response.status == 200
    except (urllib.error.URLError, TimeoutError, OSError):
        return False


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests when no sqld server is reachable."""
    if is_sqld_healthy():
        return

    skip = pytest.mark.skip(reason="sqld not available (set LIBSQL_TEST_URL)")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def sqld_available() -> Generator[bool, None, None]:
    """Session-scoped fixture that indicates if sqld is available."""
    yield is_sqld_healthy()
