"""Merge chunk and response envelopes into stored messages."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from parley.clients.parsing.common import non_empty
from parley.clients.parsing.completion import (
    Choice,
    CompletionEnvelope,
    MessageFragment,
    ToolCallFragment,
    parse_envelope,
)
from parley.conversation.message import Message, Role, ToolCall
from parley.conversation.store import ConversationStore
from parley.core.errors import ParleyError
from parley.core.results import ErrorPayload

logger = logging.getLogger(__name__)


class ContentMerge(str, Enum):
    """How delta content combines with what is already stored.

    ``APPEND`` treats every delta as an increment. ``REPLACE`` treats every
    delta as the full current value. Full messages always replace, and an empty
    incoming value never erases anything in either mode.
    """

    APPEND = "append"
    REPLACE = "replace"


class MergeStatus(str, Enum):
    OK = "ok"
    SCHEMA_INVALID = "schema_invalid"


@dataclass(frozen=True)
class MergeOutcome:
    status: MergeStatus
    message: Message | None = None
    created: bool = False
    error: ErrorPayload | None = None

    @property
    def ok(self) -> bool:
        return self.status is MergeStatus.OK


class ToolCallMerger:
    """Accumulate tool-call fragments into a message's tool-call list."""

    def __init__(self, content_merge: ContentMerge = ContentMerge.APPEND) -> None:
        self._content_merge = content_merge

    def merge(self, calls: list[ToolCall], fragment: ToolCallFragment, *, full: bool = False) -> ToolCall:
        if not calls:
            return self._append(calls, fragment, full=full)

        call_id = non_empty(fragment.id)
        if call_id is None:
            target = self._continuation_target(calls, fragment.index)
        else:
            target = next((call for call in calls if call.tool_call_id == call_id), None)
            if target is None:
                return self._append(calls, fragment, full=full)
        self._apply(target, fragment, full=full)
        return target

    @staticmethod
    def _continuation_target(calls: list[ToolCall], index: int | None) -> ToolCall:
        if index is not None:
            for call in calls:
                if call.index == index:
                    return call
        return calls[0]

    def _append(self, calls: list[ToolCall], fragment: ToolCallFragment, *, full: bool) -> ToolCall:
        call = ToolCall()
        self._apply(call, fragment, full=full)
        calls.append(call)
        return call

    def _apply(self, call: ToolCall, fragment: ToolCallFragment, *, full: bool) -> None:
        call.tool_call_id = non_empty(fragment.id) or call.tool_call_id
        call.tool_type = non_empty(fragment.type) or call.tool_type
        call.function_name = non_empty(fragment.function.name) or call.function_name
        if fragment.index:
            call.index = fragment.index

        arguments = fragment.function.arguments
        if full or self._content_merge is ContentMerge.REPLACE:
            call.arguments_text = non_empty(arguments) or call.arguments_text
        elif arguments:
            call.arguments_text += arguments


class MessageAggregator:
    """Apply chunks to the conversation store with the non-empty merge rule."""

    def __init__(
        self,
        store: ConversationStore,
        *,
        content_merge: ContentMerge = ContentMerge.APPEND,
        on_message: Callable[[Message], Any] | None = None,
    ) -> None:
        self._store = store
        self._content_merge = content_merge
        self._tool_calls = ToolCallMerger(content_merge)
        self._on_message = on_message

    @property
    def content_merge(self) -> ContentMerge:
        return self._content_merge

    def merge(self, payload: Any) -> MergeOutcome:
        try:
            envelope = parse_envelope(payload)
        except ParleyError as exc:
            logger.warning("Dropping chunk: %s", exc)
            return MergeOutcome(MergeStatus.SCHEMA_INVALID, error=ErrorPayload.from_error(exc))

        message = self._store.find_by_id(envelope.id)
        created = message is None
        if message is None:
            message = Message(id=envelope.id, created_at=envelope.created)

        self._merge_envelope(message, envelope)
        if created:
            self._store.append(message)
        if self._on_message is not None:
            self._on_message(message)
        return MergeOutcome(MergeStatus.OK, message=message, created=created)

    def _merge_envelope(self, message: Message, envelope: CompletionEnvelope) -> None:
        message.object = non_empty(envelope.object) or message.object
        message.model = non_empty(envelope.model) or message.model
        message.system_fingerprint = non_empty(envelope.system_fingerprint) or message.system_fingerprint
        if envelope.created:
            message.created_at = envelope.created
        if envelope.stats is not None:
            message.stats = envelope.stats
        if envelope.usage is not None:
            message.usage = envelope.usage
        for choice in envelope.choices:
            self._merge_choice(message, choice)

    def _merge_choice(self, message: Message, choice: Choice) -> None:
        fragment = choice.fragment
        full = isinstance(fragment, MessageFragment)

        message.finish_reason = non_empty(choice.finish_reason) or message.finish_reason
        message.choice_index = choice.index
        if non_empty(fragment.role) is not None:
            message.role = Role.from_wire(fragment.role)

        content = fragment.content
        if content:
            if full or self._content_merge is ContentMerge.REPLACE:
                message.content = content
            else:
                message.content += content

        for tool_call in fragment.tool_calls:
            self._tool_calls.merge(message.tool_calls, tool_call, full=full)
