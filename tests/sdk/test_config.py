"""Tests for client configuration."""

import pytest

from hrana_sdk.config import ClientConfig
from hrana_sdk.exceptions import MisuseError


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig(url="http://localhost:8080")
        assert config.auth_token is None
        assert config.transport == "http"
        assert config.timeout == 30.0

    def test_validation(self) -> None:
        with pytest.raises(MisuseError):
            ClientConfig(url="")
        with pytest.raises(MisuseError, match="Invalid transport"):
            ClientConfig(url="http://localhost:8080", transport="grpc")  # type: ignore[arg-type]
        with pytest.raises(MisuseError, match="Timeout"):
            ClientConfig(url="http://localhost:8080", timeout=0)

    def test_repr_masks_token(self) -> None:
        config = ClientConfig(url="http://localhost:8080", auth_token="secret-jwt")
        assert "secret-jwt" not in repr(config)
        assert "***" in repr(config)

    def test_is_immutable(self) -> None:
        config = ClientConfig(url="http://localhost:8080")
        with pytest.raises(AttributeError):
            config.url = "http://other"  # type: ignore[misc]


class TestFromUrl:
    def test_transport_from_scheme(self) -> None:
        assert ClientConfig.from_url("http://localhost:8080").transport == "http"
        assert ClientConfig.from_url("https://db.example.com").transport == "http"
        assert ClientConfig.from_url("ws://localhost:8080").transport == "ws"
        assert ClientConfig.from_url("wss://db.example.com").transport == "ws"

    def test_libsql_scheme(self) -> None:
        config = ClientConfig.from_url("libsql://db.example.com")
        assert config.url == "wss://db.example.com"
        assert config.transport == "ws"

        config = ClientConfig.from_url("libsql://db.example.com", transport="http")
        assert config.url == "https://db.example.com"
        assert config.transport == "http"

    def test_token_is_removed_from_url(self) -> None:
        config = ClientConfig.from_url("libsql://db.example.com?authToken=abc&tls=1")
        assert config.auth_token == "abc"
        assert config.url == "wss://db.example.com?tls=1"

    def test_missing_scheme_defaults_to_https(self) -> None:
        config = ClientConfig.from_url("db.example.com")
        assert config.url == "https://db.example.com"
        assert config.transport == "http"

    def test_unsupported_scheme(self) -> None:
        with pytest.raises(MisuseError, match="Unsupported URL scheme"):
            ClientConfig.from_url("file:///tmp/local.db")


class TestFromEnv:
    def test_reads_variables(self) -> None:
        config = ClientConfig.from_env(
            {
                "LIBSQL_CLIENT_URL": "http://localhost:8080",
                "LIBSQL_CLIENT_TOKEN": "jwt",
                "LIBSQL_CLIENT_BACKEND": "ws",
            }
        )
        assert config.url == "http://localhost:8080"
        assert config.auth_token == "jwt"
        assert config.transport == "ws"

    def test_token_in_url(self) -> None:
        config = ClientConfig.from_env({"LIBSQL_CLIENT_URL": "https://db.example.com?authToken=t"})
        assert config.auth_token == "t"
        assert config.transport == "http"

    def test_url_is_required(self) -> None:
        with pytest.raises(MisuseError, match="LIBSQL_CLIENT_URL"):
            ClientConfig.from_env({})

    def test_invalid_backend(self) -> None:
        with pytest.raises(MisuseError, match="LIBSQL_CLIENT_BACKEND"):
            ClientConfig.from_env({"LIBSQL_CLIENT_URL": "http://localhost:8080", "LIBSQL_CLIENT_BACKEND": "grpc"})

    def test_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIBSQL_CLIENT_URL", "ws://localhost:8080")
        monkeypatch.delenv("LIBSQL_CLIENT_TOKEN", raising=False)
        monkeypatch.delenv("LIBSQL_CLIENT_BACKEND", raising=False)

        config = ClientConfig.from_env()

        assert config.transport == "ws"
        assert config.auth_token is None
