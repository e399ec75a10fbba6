"""Conversation storage for Parley."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol

from parley.conversation.message import Message
from parley.core.errors import ErrorKind, ParleyError


class ConversationStore(Protocol):
    """Ordered message storage with lookup by message id."""

    def find_by_id(self, message_id: str) -> Message | None: ...

    def append(self, message: Message) -> Message: ...

    def all(self) -> list[Message]: ...


class InMemoryConversationStore:
    """In-memory conversation storage (not thread-safe)."""

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._index: dict[str, Message] = {}

    def find_by_id(self, message_id: str) -> Message | None:
        return self._index.get(message_id)

    def append(self, message: Message) -> Message:
        if message.id in self._index:
            raise ParleyError(ErrorKind.INVALID_INPUT, f"Message id already stored: {message.id}")
        self._messages.append(message)
        self._index[message.id] = message
        return message

    def all(self) -> list[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
