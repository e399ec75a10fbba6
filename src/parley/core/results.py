"""Structured results and events for Parley."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from parley.core.errors import ErrorKind, ParleyError

if TYPE_CHECKING:
    from parley.conversation.message import Message


@dataclass(frozen=True)
class ErrorPayload:
    kind: ErrorKind
    message: str
    details: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    @classmethod
    def from_error(cls, error: ParleyError) -> ErrorPayload:
        return cls(error.kind, error.message, details=error.details)


EventKind = Literal[
    "message_added",
    "message_updated",
    "done",
    "tool_call",
    "tool_result",
    "models",
    "error",
]


@dataclass(frozen=True)
class StreamEvent:
    kind: EventKind
    data: dict[str, Any]


@dataclass
class ExchangeResult:
    """Outcome of one ``send_chat`` call, including any tool rounds it triggered."""

    messages: list[Message] = field(default_factory=list)
    done: bool = False
    cancelled: bool = False
    error: ErrorPayload | None = None
    schema_errors: list[ErrorPayload] = field(default_factory=list)
    skipped_lines: int = 0
    tool_rounds: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    @property
    def last_message(self) -> Message | None:
        if not self.messages:
            return None
        return self.messages[-1]

    @property
    def finish_reason(self) -> str:
        message = self.last_message
        if message is None:
            return ""
        return message.finish_reason

    def touch(self, message: Message) -> None:
        if all(existing is not message for existing in self.messages):
            self.messages.append(message)
