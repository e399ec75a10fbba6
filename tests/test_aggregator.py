from __future__ import annotations

import pytest

from parley import ContentMerge, ErrorKind, InMemoryConversationStore, MessageAggregator, Role
from parley.clients.parsing.completion import ToolCallFragment
from parley.conversation.aggregator import MergeStatus, ToolCallMerger
from parley.conversation.message import ToolCall
from tests.fakes import make_chunk, make_response, make_tool_call, tool_call_stream

DOCUMENTED_RESPONSE = {
    "id": "x",
    "object": "chat.completion",
    "created": 1,
    "model": "m",
    "system_fingerprint": "fp",
    "choices": [{"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": "hi"}}],
}


def _fragment(**data) -> ToolCallFragment:
    return ToolCallFragment.model_validate(data)


class TestMessageAggregator:
    def test_single_response_creates_message(self, store: InMemoryConversationStore) -> None:
        outcome = MessageAggregator(store).merge(DOCUMENTED_RESPONSE)

        assert outcome.ok
        assert outcome.created is True
        message = store.find_by_id("x")
        assert message is outcome.message
        assert message.role is Role.ASSISTANT
        assert message.content == "hi"
        assert message.finish_reason == "stop"
        assert message.model == "m"
        assert message.created_at == 1

    def test_deltas_append_by_default(self, store: InMemoryConversationStore) -> None:
        aggregator = MessageAggregator(store)
        aggregator.merge(make_chunk(role="assistant", content="He"))
        outcome = aggregator.merge(make_chunk(content="llo"))

        assert outcome.created is False
        assert len(store) == 1
        assert store.find_by_id("chatcmpl-1").content == "Hello"

    def test_replace_mode_overwrites_deltas(self, store: InMemoryConversationStore) -> None:
        aggregator = MessageAggregator(store, content_merge=ContentMerge.REPLACE)
        aggregator.merge(make_chunk(content="He"))
        aggregator.merge(make_chunk(content="llo"))

        assert store.find_by_id("chatcmpl-1").content == "llo"

    @pytest.mark.parametrize("content_merge", list(ContentMerge))
    def test_empty_values_never_erase(self, store: InMemoryConversationStore, content_merge: ContentMerge) -> None:
        aggregator = MessageAggregator(store, content_merge=content_merge)
        aggregator.merge(make_chunk(content="Hello", usage={"total_tokens": 1}))
        aggregator.merge(make_chunk(content="", model=""))
        aggregator.merge(make_chunk(content=None))

        message = store.find_by_id("chatcmpl-1")
        assert message.content == "Hello"
        assert message.model == "test-model"
        assert message.usage == {"total_tokens": 1}

    def test_full_message_replaces_content(self, store: InMemoryConversationStore) -> None:
        aggregator = MessageAggregator(store)
        aggregator.merge(make_chunk(content="partial"))
        aggregator.merge(make_response(content="final answer"))

        message = store.find_by_id("chatcmpl-1")
        assert message.content == "final answer"
        assert message.finish_reason == "stop"

    def test_usage_and_stats_are_replaced_wholesale(self, store: InMemoryConversationStore) -> None:
        aggregator = MessageAggregator(store)
        aggregator.merge({**make_chunk(content="a"), "stats": {"tokens_per_second": 10}})
        aggregator.merge(make_chunk(content="b", usage={"total_tokens": 7}))

        message = store.find_by_id("chatcmpl-1")
        assert message.stats == {"tokens_per_second": 10}
        assert message.usage == {"total_tokens": 7}

    @pytest.mark.parametrize(
        ("role", "expected"),
        [("assistant", Role.ASSISTANT), ("user", Role.USER), ("system", Role.SYSTEM), ("tool", Role.ASSISTANT)],
    )
    def test_roles_are_mapped(self, store: InMemoryConversationStore, role: str, expected: Role) -> None:
        outcome = MessageAggregator(store).merge(make_chunk(role=role, content="x"))
        assert outcome.message.role is expected

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda payload: payload.pop("system_fingerprint"),
            lambda payload: payload.pop("id"),
            lambda payload: payload.update(created="1700000000"),
            lambda payload: payload.update(model=None),
            lambda payload: payload.update(choices=[]),
            lambda payload: payload.update(choices=[{"index": 0, "finish_reason": None}]),
        ],
    )
    def test_invalid_envelope_is_dropped(self, store: InMemoryConversationStore, mutate) -> None:
        payload = make_chunk(content="hello")
        mutate(payload)

        outcome = MessageAggregator(store).merge(payload)

        assert outcome.status is MergeStatus.SCHEMA_INVALID
        assert outcome.error.kind == ErrorKind.SCHEMA
        assert len(store) == 0

    def test_on_message_sees_every_merge(self, store: InMemoryConversationStore) -> None:
        seen = []
        aggregator = MessageAggregator(store, on_message=lambda message: seen.append(message.content))
        aggregator.merge(make_chunk(content="a"))
        aggregator.merge(make_chunk(content="b"))

        assert seen == ["a", "ab"]

    def test_streamed_tool_call_is_assembled(self, store: InMemoryConversationStore) -> None:
        aggregator = MessageAggregator(store)
        for chunk in tool_call_stream("get_weather", '{"city": "Paris"}'):
            aggregator.merge(chunk)

        message = store.find_by_id("chatcmpl-tool")
        assert message.requests_tools
        assert len(message.tool_calls) == 1
        call = message.tool_calls[0]
        assert call.tool_call_id == "call_1"
        assert call.function_name == "get_weather"
        assert call.arguments_text == '{"city": "Paris"}'

    def test_non_object_tool_calls_are_dropped(self, store: InMemoryConversationStore) -> None:
        payload = make_response(tool_calls=[1, "x", make_tool_call("lookup", {"q": "x"})], finish_reason="tool_calls")

        outcome = MessageAggregator(store).merge(payload)

        assert outcome.ok
        assert [call.function_name for call in outcome.message.tool_calls] == ["lookup"]
        assert outcome.message.tool_calls[0].arguments_text == '{"q":"x"}'


class TestToolCallMerger:
    def test_first_fragment_is_appended(self) -> None:
        calls: list[ToolCall] = []
        ToolCallMerger().merge(calls, _fragment(**make_tool_call("lookup", '{"q"')))

        assert calls == [ToolCall("call_1", "function", "lookup", '{"q"', 0)]

    def test_empty_id_updates_only_the_first_call(self) -> None:
        calls = [ToolCall("a", "function", "first", "", 0), ToolCall("b", "function", "second", "", 0)]

        ToolCallMerger().merge(calls, _fragment(function={"arguments": '{"x": 1}'}))

        assert len(calls) == 2
        assert calls[0].arguments_text == '{"x": 1}'
        assert calls[1].arguments_text == ""

    def test_empty_id_prefers_matching_index(self) -> None:
        calls = [ToolCall("a", "function", "first", "", 0), ToolCall("b", "function", "second", "", 1)]

        ToolCallMerger().merge(calls, _fragment(index=1, function={"arguments": "{}"}))

        assert calls[0].arguments_text == ""
        assert calls[1].arguments_text == "{}"

    def test_matching_id_updates_in_place(self) -> None:
        calls: list[ToolCall] = []
        merger = ToolCallMerger()
        merger.merge(calls, _fragment(id="a", type="function", function={"arguments": '{"q":'}))
        merger.merge(calls, _fragment(id=" a ", function={"name": "lookup", "arguments": ' "x"}'}))

        assert len(calls) == 1
        assert calls[0].function_name == "lookup"
        assert calls[0].arguments_text == '{"q": "x"}'

    def test_unknown_id_is_appended(self) -> None:
        calls = [ToolCall("a", "function", "first", "{}", 0)]

        ToolCallMerger().merge(calls, _fragment(id="b", type="function", function={"name": "second"}))

        assert [call.tool_call_id for call in calls] == ["a", "b"]

    def test_blank_strings_never_overwrite(self) -> None:
        calls = [ToolCall("a", "function", "lookup", "{}", 0)]

        ToolCallMerger(ContentMerge.REPLACE).merge(
            calls, _fragment(id="a", type="  ", function={"name": " ", "arguments": "   "})
        )

        assert calls == [ToolCall("a", "function", "lookup", "{}", 0)]

    def test_whitespace_argument_deltas_are_kept(self) -> None:
        calls: list[ToolCall] = []
        merger = ToolCallMerger()
        merger.merge(calls, _fragment(**make_tool_call("search", '{"q": "New')))
        merger.merge(calls, _fragment(function={"arguments": " "}))
        merger.merge(calls, _fragment(function={"arguments": 'York"}'}))

        assert calls[0].arguments_text == '{"q": "New York"}'

    def test_replace_mode_overwrites_arguments(self) -> None:
        calls = [ToolCall("a", "function", "lookup", '{"q": "old"}', 0)]

        ToolCallMerger(ContentMerge.REPLACE).merge(calls, _fragment(id="a", function={"arguments": ' {"q": "new"} '}))

        assert calls[0].arguments_text == '{"q": "new"}'

    def test_full_message_overwrites_arguments(self) -> None:
        calls = [ToolCall("a", "function", "lookup", '{"q": "old"}', 0)]

        ToolCallMerger().merge(calls, _fragment(id="a", function={"arguments": '{"q": "new"}'}), full=True)

        assert calls[0].arguments_text == '{"q": "new"}'
