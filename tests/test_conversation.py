from __future__ import annotations

import pytest

from parley import ErrorKind, InMemoryConversationStore, Message, ParleyError, Role, ToolCall
from parley.conversation.message import ToolType


class TestInMemoryConversationStore:
    def test_keeps_insertion_order_and_index(self, store: InMemoryConversationStore) -> None:
        first = store.append(Message.local("one"))
        second = store.append(Message.local("two", Role.SYSTEM))

        assert store.all() == [first, second]
        assert store.find_by_id(second.id) is second
        assert store.find_by_id("missing") is None

    def test_ids_are_unique(self, store: InMemoryConversationStore) -> None:
        store.append(Message(id="x"))
        with pytest.raises(ParleyError) as exc_info:
            store.append(Message(id="x"))
        assert exc_info.value.kind == ErrorKind.INVALID_INPUT

    def test_all_returns_a_copy(self, store: InMemoryConversationStore) -> None:
        store.append(Message(id="x"))
        store.all().clear()
        assert len(store) == 1

    def test_clear(self, store: InMemoryConversationStore) -> None:
        store.append(Message(id="x"))
        store.clear()
        assert len(store) == 0
        assert store.find_by_id("x") is None


class TestMessage:
    def test_history_excludes_local_echo_and_empty_turns(self) -> None:
        assert Message.local("hi").in_history
        assert not Message.local("note", Role.LOCAL_ECHO).in_history
        assert not Message(id="tool-request", role=Role.ASSISTANT).in_history

    def test_to_request(self) -> None:
        assert Message(id="x", role=Role.ASSISTANT, content="hi").to_request() == {
            "role": "assistant",
            "content": "hi",
        }

    def test_completion_flags(self) -> None:
        message = Message(id="x")
        assert not message.is_complete
        message.finish_reason = "TOOL_CALLS"
        assert message.is_complete
        assert message.requests_tools

    @pytest.mark.parametrize(
        ("wire", "expected"),
        [("function", ToolType.FUNCTION), ("Resource", ToolType.RESOURCE), ("prompt", ToolType.PROMPT), ("", ToolType.NONE)],
    )
    def test_tool_type_view(self, wire: str, expected: ToolType) -> None:
        assert ToolCall(tool_type=wire).kind is expected

    def test_tool_call_validity(self) -> None:
        assert ToolCall("c1", "function", "lookup").is_valid
        assert not ToolCall("", "function", "lookup").is_valid

    def test_as_dict(self) -> None:
        message = Message(id="x", content="hi", usage={"total_tokens": 1}, tool_calls=[ToolCall("c1", "function", "f")])
        payload = message.as_dict()

        assert payload["role"] == "assistant"
        assert payload["usage"] == {"total_tokens": 1}
        assert "stats" not in payload
        assert payload["tool_calls"][0]["function"] == {"name": "f", "arguments": ""}
