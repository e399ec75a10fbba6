"""Outbound chat-completion request bodies."""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

from parley.core.errors import ErrorKind, ParleyError

DEFAULT_MAX_TOKENS = 65536
DEFAULT_TEMPERATURE = 0.7


def wrap_tool_schema(schema: Mapping[str, Any]) -> dict[str, Any]:
    """Wrap a function schema as ``{"type": "function", "function": ...}`` exactly once."""
    if schema.get("type") == "function" and isinstance(schema.get("function"), Mapping):
        schema = schema["function"]
    return {"type": "function", "function": copy.deepcopy(dict(schema))}


class RequestBuilder:
    def __init__(
        self,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self._defaults: dict[str, Any] = {"max_tokens": max_tokens, "temperature": temperature}

    @property
    def defaults(self) -> dict[str, Any]:
        return dict(self._defaults)

    def build(
        self,
        *,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        parameters: Mapping[str, Any] | None = None,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        stream: bool = True,
    ) -> dict[str, Any]:
        """Build the JSON body for one completion request.

        ``parameters`` override the builder defaults; unknown keys pass through
        unchanged. Neither the parameters nor the messages are mutated.
        """
        if not isinstance(model, str) or not model.strip():
            raise ParleyError(ErrorKind.INVALID_INPUT, "model must be a non-empty string.")

        body: dict[str, Any] = {
            "model": model,
            "messages": [self._message_payload(message) for message in messages],
        }
        body.update(self._defaults)
        if parameters:
            reserved = {"model", "messages", "tools", "stream"} & set(parameters)
            if reserved:
                raise ParleyError(
                    ErrorKind.INVALID_INPUT,
                    f"Parameters must not override request fields: {', '.join(sorted(reserved))}.",
                )
            body.update(copy.deepcopy(dict(parameters)))
        body["tools"] = [wrap_tool_schema(schema) for schema in tool_schemas]
        body["stream"] = bool(stream)
        return body

    @staticmethod
    def _message_payload(message: Mapping[str, Any]) -> dict[str, Any]:
        if "role" not in message or "content" not in message:
            raise ParleyError(ErrorKind.INVALID_INPUT, "Each message must carry 'role' and 'content'.")
        return {"role": message["role"], "content": message["content"]}
