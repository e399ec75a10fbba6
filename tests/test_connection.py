from __future__ import annotations

import pytest

from parley import AuthScheme, Connection, ErrorKind, ParleyError


class TestConnection:
    def test_url_joins_with_single_slash(self) -> None:
        connection = Connection(base_url="http://host:1234/")
        assert connection.url("v1/chat/completions") == "http://host:1234/v1/chat/completions"
        assert connection.url("/v1/models") == "http://host:1234/v1/models"

    def test_headers(self) -> None:
        assert Connection(base_url="http://h").headers() == {"Content-Type": "application/json"}
        assert Connection(base_url="http://h", api_key="k").headers()["Authorization"] == "Bearer k"
        token = Connection(base_url="http://h", api_key="k", auth_scheme=AuthScheme.TOKEN)
        assert token.headers()["Authorization"] == "Token k"

    def test_models_endpoint_is_recognised(self) -> None:
        connection = Connection(base_url="http://h")
        assert connection.is_models_endpoint("/v1/models/")
        assert not connection.is_models_endpoint(connection.chat_endpoint)

    def test_timeout_defaults_to_thirty_seconds(self) -> None:
        assert Connection(base_url="http://h").timeout_seconds == 30.0

    @pytest.mark.parametrize("kwargs", [{"base_url": ""}, {"base_url": "  "}, {"base_url": "http://h", "timeout_ms": 0}])
    def test_invalid_settings_are_config_errors(self, kwargs) -> None:
        with pytest.raises(ParleyError) as exc_info:
            Connection(**kwargs)
        assert exc_info.value.kind == ErrorKind.CONFIG

    def test_from_env(self) -> None:
        connection = Connection.from_env(
            environ={
                "PARLEY_BASE_URL": "http://local:8080",
                "PARLEY_API_KEY": "secret",
                "PARLEY_AUTH_SCHEME": "token",
                "PARLEY_TIMEOUT_MS": "5000",
            }
        )

        assert connection.base_url == "http://local:8080"
        assert connection.api_key == "secret"
        assert connection.auth_scheme is AuthScheme.TOKEN
        assert connection.timeout_seconds == 5.0

    def test_from_env_custom_prefix_and_defaults(self, monkeypatch) -> None:
        monkeypatch.setenv("LLM_BASE_URL", "http://other")
        connection = Connection.from_env(prefix="LLM_")

        assert connection.api_key is None
        assert connection.auth_scheme is AuthScheme.BEARER
        assert connection.timeout_ms == 30_000

    @pytest.mark.parametrize(
        "environ",
        [
            {},
            {"PARLEY_BASE_URL": "http://h", "PARLEY_TIMEOUT_MS": "soon"},
            {"PARLEY_BASE_URL": "http://h", "PARLEY_AUTH_SCHEME": "basic"},
        ],
    )
    def test_from_env_errors(self, environ) -> None:
        with pytest.raises(ParleyError) as exc_info:
            Connection.from_env(environ=environ)
        assert exc_info.value.kind == ErrorKind.CONFIG
