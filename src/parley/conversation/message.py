"""Conversation turns and the tool calls they carry."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TOOL_CALLS_FINISH_REASON = "tool_calls"
STOP_FINISH_REASON = "stop"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    LOCAL_ECHO = "local-echo"

    @classmethod
    def from_wire(cls, value: str | None) -> Role:
        """Map a backend role string; anything unrecognised is treated as assistant."""
        normalized = (value or "").strip().lower()
        if normalized == cls.USER.value:
            return cls.USER
        if normalized == cls.SYSTEM.value:
            return cls.SYSTEM
        return cls.ASSISTANT


class ToolType(str, Enum):
    FUNCTION = "function"
    RESOURCE = "resource"
    PROMPT = "prompt"
    NONE = "none"

    @classmethod
    def from_wire(cls, value: str | None) -> ToolType:
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.NONE


def new_message_id() -> str:
    return uuid.uuid4().hex


def normalize_finish_reason(value: str | None) -> str:
    return (value or "").strip().lower()


@dataclass
class ToolCall:
    tool_call_id: str = ""
    tool_type: str = ""
    function_name: str = ""
    arguments_text: str = ""
    index: int = 0

    @property
    def kind(self) -> ToolType:
        return ToolType.from_wire(self.tool_type)

    @property
    def is_valid(self) -> bool:
        return bool(self.tool_type and self.tool_call_id and self.function_name)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.tool_call_id,
            "type": self.tool_type,
            "index": self.index,
            "function": {"name": self.function_name, "arguments": self.arguments_text},
        }


@dataclass
class Message:
    """One conversational turn, mutated in place while a response streams in."""

    id: str
    role: Role = Role.ASSISTANT
    content: str = ""
    created_at: int = field(default_factory=lambda: int(time.time()))
    model: str = ""
    object: str = ""
    system_fingerprint: str = ""
    finish_reason: str = ""
    choice_index: int = 0
    stats: dict[str, Any] | None = None
    usage: dict[str, Any] | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)

    @classmethod
    def local(cls, content: str, role: Role = Role.USER) -> Message:
        return cls(id=new_message_id(), role=role, content=content)

    @property
    def is_user(self) -> bool:
        return self.role is Role.USER

    @property
    def is_complete(self) -> bool:
        return bool(self.finish_reason)

    @property
    def requests_tools(self) -> bool:
        return normalize_finish_reason(self.finish_reason) == TOOL_CALLS_FINISH_REASON

    @property
    def in_history(self) -> bool:
        return self.role is not Role.LOCAL_ECHO and bool(self.content)

    def to_request(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at,
            "model": self.model,
            "object": self.object,
            "system_fingerprint": self.system_fingerprint,
            "finish_reason": self.finish_reason,
            "choice_index": self.choice_index,
            "tool_calls": [call.as_dict() for call in self.tool_calls],
        }
        if self.stats is not None:
            payload["stats"] = self.stats
        if self.usage is not None:
            payload["usage"] = self.usage
        return payload
