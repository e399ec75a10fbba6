"""Connection settings for an OpenAI-compatible backend."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from parley.core.errors import ErrorKind, ParleyError

DEFAULT_TIMEOUT_MS = 30_000
CHAT_ENDPOINT = "v1/chat/completions"
MODELS_ENDPOINT = "v1/models"


class AuthScheme(str, Enum):
    """How the API key is presented in the ``Authorization`` header."""

    BEARER = "Bearer"
    TOKEN = "Token"

    @classmethod
    def parse(cls, value: str | AuthScheme) -> AuthScheme:
        if isinstance(value, AuthScheme):
            return value
        normalized = value.strip().lower()
        for scheme in cls:
            if scheme.value.lower() == normalized or scheme.name.lower() == normalized:
                return scheme
        raise ParleyError(ErrorKind.CONFIG, f"Unknown auth scheme: {value!r}.")


@dataclass(frozen=True)
class Connection:
    """The active backend: where to send requests and how to authenticate."""

    base_url: str
    api_key: str | None = None
    auth_scheme: AuthScheme = AuthScheme.BEARER
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    chat_endpoint: str = CHAT_ENDPOINT
    models_endpoint: str = MODELS_ENDPOINT
    name: str = ""

    def __post_init__(self) -> None:
        if not self.base_url or not self.base_url.strip():
            raise ParleyError(ErrorKind.CONFIG, "Connection base_url must not be empty.")
        if self.timeout_ms <= 0:
            raise ParleyError(ErrorKind.CONFIG, "Connection timeout_ms must be > 0.")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def url(self, endpoint: str) -> str:
        return f"{self.base_url.strip().rstrip('/')}/{endpoint.lstrip('/')}"

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"{self.auth_scheme.value} {self.api_key}"
        return headers

    def is_models_endpoint(self, endpoint: str) -> bool:
        return endpoint.strip("/") == self.models_endpoint.strip("/")

    @classmethod
    def from_env(cls, prefix: str = "PARLEY_", environ: Mapping[str, str] | None = None) -> Connection:
        """Build a connection from ``<prefix>BASE_URL``, ``API_KEY``, ``AUTH_SCHEME`` and ``TIMEOUT_MS``."""
        env = os.environ if environ is None else environ
        base_url = env.get(f"{prefix}BASE_URL")
        if not base_url:
            raise ParleyError(ErrorKind.CONFIG, f"{prefix}BASE_URL is not set.")

        timeout_raw = env.get(f"{prefix}TIMEOUT_MS")
        try:
            timeout_ms = int(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT_MS
        except ValueError as exc:
            raise ParleyError(ErrorKind.CONFIG, f"{prefix}TIMEOUT_MS must be an integer.") from exc

        scheme_raw = env.get(f"{prefix}AUTH_SCHEME")
        return cls(
            base_url=base_url,
            api_key=env.get(f"{prefix}API_KEY") or None,
            auth_scheme=AuthScheme.parse(scheme_raw) if scheme_raw else AuthScheme.BEARER,
            timeout_ms=timeout_ms,
        )
