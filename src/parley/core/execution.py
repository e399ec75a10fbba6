"""HTTP transport core for Parley."""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Iterator
from typing import Any, NoReturn

import httpx

from parley.core.connection import Connection
from parley.core.errors import ErrorKind, ParleyError
from parley.core.telemetry import span

logger = logging.getLogger(__name__)

VALID_VERBOSE_LEVELS = (0, 1, 2)


class HttpCore:
    """Owns the httpx clients for one connection and maps transport failures to ``ParleyError``."""

    def __init__(
        self,
        *,
        connection: Connection,
        client_args: dict[str, Any] | None = None,
        verbose: int = 0,
    ) -> None:
        if verbose not in VALID_VERBOSE_LEVELS:
            raise ParleyError(ErrorKind.INVALID_INPUT, "verbose must be 0, 1, or 2")
        self._connection = connection
        self._client_args = dict(client_args or {})
        self._verbose = verbose
        self._client: httpx.Client | None = None
        self._async_client: httpx.AsyncClient | None = None

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def verbose(self) -> int:
        return self._verbose

    def _httpx_args(self) -> dict[str, Any]:
        return {"timeout": self._connection.timeout_seconds, **self._client_args}

    def get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(**self._httpx_args())
        return self._client

    def get_async_client(self) -> httpx.AsyncClient:
        if self._async_client is None:
            self._async_client = httpx.AsyncClient(**self._httpx_args())
        return self._async_client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def aclose(self) -> None:
        self.close()
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    def log_error(self, error: ParleyError, method: str, endpoint: str) -> None:
        if self._verbose == 0:
            return

        prefix = f"[{self._connection.name or self._connection.base_url}] {method} {endpoint}"
        if error.cause and self._verbose > 1:
            logger.warning("%s failed: %s (cause=%r)", prefix, error, error.cause)
        else:
            logger.warning("%s failed: %s", prefix, error)

    @staticmethod
    def _extract_status_code(exc: Exception) -> int | None:
        status_code = getattr(exc, "status_code", None)
        if isinstance(status_code, int):
            return status_code

        response = getattr(exc, "response", None)
        response_status = getattr(response, "status_code", None)
        if isinstance(response_status, int):
            return response_status
        return None

    @staticmethod
    def _text_matches(text: str, patterns: tuple[str, ...]) -> bool:
        return any(re.search(pattern, text) for pattern in patterns)

    def _classify_by_text_signature(self, exc: Exception) -> ErrorKind | None:
        name = type(exc).__name__.lower()
        text = f"{name} {exc!s}".lower()
        if self._text_matches(
            text,
            (
                r"timeout|timed out|connection (error|refused|reset)|network error",
                r"ssl|tls|certificate|name resolution|unreachable",
            ),
        ):
            return ErrorKind.TRANSPORT
        return None

    def classify_exception(self, exc: Exception) -> ErrorKind:
        if isinstance(exc, ParleyError):
            return exc.kind
        if isinstance(exc, httpx.HTTPError):
            return ErrorKind.TRANSPORT
        mapped = self._classify_by_text_signature(exc)
        if mapped is not None:
            return mapped
        return ErrorKind.UNKNOWN

    def wrap_error(self, exc: Exception, kind: ErrorKind, method: str, endpoint: str) -> ParleyError:
        if isinstance(exc, ParleyError):
            return exc
        details: dict[str, Any] = {"method": method, "endpoint": endpoint}
        status = self._extract_status_code(exc)
        if status is not None:
            details["status_code"] = status
        return ParleyError(kind, f"{method} {endpoint}: {exc}", cause=exc, details=details)

    def raise_wrapped(self, exc: Exception, method: str, endpoint: str) -> NoReturn:
        wrapped = self.wrap_error(exc, self.classify_exception(exc), method, endpoint)
        self.log_error(wrapped, method, endpoint)
        raise wrapped from exc

    def _request_kwargs(self, body: dict[str, Any] | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"headers": self._connection.headers()}
        if body is not None:
            kwargs["json"] = body
        return kwargs

    def stream_bytes(self, method: str, endpoint: str, body: dict[str, Any] | None = None) -> Iterator[bytes]:
        """Yield the raw response body as it arrives.

        Closing the generator early closes the underlying response.
        """
        url = self._connection.url(endpoint)
        with span("http.request", method=method, endpoint=endpoint):
            try:
                with self.get_client().stream(method, url, **self._request_kwargs(body)) as response:
                    if response.is_error:
                        response.read()
                        response.raise_for_status()
                    yield from response.iter_bytes()
            except httpx.HTTPError as exc:
                self.raise_wrapped(exc, method, endpoint)

    async def astream_bytes(
        self, method: str, endpoint: str, body: dict[str, Any] | None = None
    ) -> AsyncIterator[bytes]:
        url = self._connection.url(endpoint)
        with span("http.request", method=method, endpoint=endpoint):
            try:
                async with self.get_async_client().stream(method, url, **self._request_kwargs(body)) as response:
                    if response.is_error:
                        await response.aread()
                        response.raise_for_status()
                    async for chunk in response.aiter_bytes():
                        yield chunk
            except httpx.HTTPError as exc:
                self.raise_wrapped(exc, method, endpoint)
