"""Typed chat-completion envelopes for chunks and full responses."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from parley.clients.parsing.common import compact_json
from parley.core.errors import ErrorKind, ParleyError

logger = logging.getLogger(__name__)


class FunctionFragment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    arguments: str | None = None

    @field_validator("arguments", mode="before")
    @classmethod
    def _serialize_arguments(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return compact_json(value)


class ToolCallFragment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    type: str | None = None
    index: int | None = None
    function: FunctionFragment = Field(default_factory=FunctionFragment)

    @field_validator("function", mode="before")
    @classmethod
    def _default_function(cls, value: Any) -> Any:
        return {} if value is None else value


class _FragmentBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None
    tool_calls: list[ToolCallFragment] = Field(default_factory=list)

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _drop_non_objects(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            logger.warning("tool_calls is not an array; ignoring %r", value)
            return []
        kept = [item for item in value if isinstance(item, dict)]
        if len(kept) != len(value):
            logger.warning("Dropped %d non-object tool_calls entries", len(value) - len(kept))
        return kept


class DeltaFragment(_FragmentBase):
    """Incremental piece of a streamed message."""

    kind: Literal["delta"] = "delta"


class MessageFragment(_FragmentBase):
    """Complete message from a single-document response."""

    kind: Literal["message"] = "message"


Fragment = Annotated[DeltaFragment | MessageFragment, Field(discriminator="kind")]


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    finish_reason: str | None = None
    fragment: Fragment

    @model_validator(mode="before")
    @classmethod
    def _tag_fragment(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        delta = data.get("delta")
        message = data.get("message")
        if isinstance(delta, dict):
            fragment = {**delta, "kind": "delta"}
        elif isinstance(message, dict):
            fragment = {**message, "kind": "message"}
        else:
            raise ValueError("choice carries neither a delta nor a message object")
        return {"index": data.get("index") or 0, "finish_reason": data.get("finish_reason"), "fragment": fragment}


class CompletionEnvelope(BaseModel):
    """One chunk or full response as sent by the backend."""

    model_config = ConfigDict(extra="ignore")

    id: str
    object: str
    created: int = Field(strict=True)
    model: str
    system_fingerprint: str
    choices: list[Choice] = Field(min_length=1)
    usage: dict[str, Any] | None = None
    stats: dict[str, Any] | None = None


def parse_envelope(payload: Any) -> CompletionEnvelope:
    try:
        return CompletionEnvelope.model_validate(payload)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        raise ParleyError(
            ErrorKind.SCHEMA,
            f"Invalid completion envelope: {', '.join(fields) or 'root'}",
            cause=exc,
            details={"fields": fields},
        ) from exc
