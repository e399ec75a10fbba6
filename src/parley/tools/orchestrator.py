"""Finish-reason driven tool dispatch for one conversation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from parley.clients.parsing.common import compact_json
from parley.conversation.message import Message, ToolCall
from parley.core.errors import ErrorKind, ParleyError
from parley.core.results import ErrorPayload, StreamEvent
from parley.core.telemetry import span
from parley.tools.executor import ToolExecutor
from parley.tools.schema import Tool, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 8


class ExchangeState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    ACCUMULATING = "accumulating"
    COMPLETED = "completed"
    TOOL_REQUESTED = "tool_requested"
    TOOL_EXECUTING = "tool_executing"
    TOOL_RESULT_SUBMITTED = "tool_result_submitted"
    ERRORED = "errored"


_TRANSITIONS: dict[ExchangeState, frozenset[ExchangeState]] = {
    ExchangeState.IDLE: frozenset({ExchangeState.AWAITING_RESPONSE}),
    ExchangeState.AWAITING_RESPONSE: frozenset({ExchangeState.ACCUMULATING, ExchangeState.COMPLETED}),
    ExchangeState.ACCUMULATING: frozenset({ExchangeState.COMPLETED, ExchangeState.TOOL_REQUESTED}),
    ExchangeState.COMPLETED: frozenset({ExchangeState.AWAITING_RESPONSE}),
    ExchangeState.TOOL_REQUESTED: frozenset({ExchangeState.TOOL_EXECUTING, ExchangeState.COMPLETED}),
    ExchangeState.TOOL_EXECUTING: frozenset({ExchangeState.TOOL_RESULT_SUBMITTED}),
    ExchangeState.TOOL_RESULT_SUBMITTED: frozenset({ExchangeState.AWAITING_RESPONSE}),
    ExchangeState.ERRORED: frozenset({ExchangeState.AWAITING_RESPONSE}),
}


@dataclass(frozen=True)
class PendingCall:
    message_id: str
    position: int
    call: ToolCall

    @property
    def key(self) -> tuple[str, str]:
        return (self.message_id, self.call.tool_call_id or f"#{self.position}")


@dataclass(frozen=True)
class ToolResult:
    """What a tool produced, already rendered as the content of the next user turn."""

    name: str
    tool_call_id: str
    content: str
    error: ErrorPayload | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "tool_call_id": self.tool_call_id, "content": self.content}
        if self.error is not None:
            payload["error"] = self.error.as_dict()
        return payload


class ToolOrchestrator:
    """State machine that queues requested tool calls and runs them between exchanges.

    Calls are queued while chunks are merged and executed one at a time once
    the exchange has finished, so results come back in request order.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        executor: ToolExecutor,
        *,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        emit: Callable[[StreamEvent], Any] | None = None,
    ) -> None:
        if max_tool_rounds < 0:
            raise ParleyError(ErrorKind.INVALID_INPUT, "max_tool_rounds must be >= 0.")
        self._registry = registry
        self._executor = executor
        self._max_tool_rounds = max_tool_rounds
        self._emit = emit
        self._state = ExchangeState.IDLE
        self._pending: list[PendingCall] = []
        self._dispatched: set[tuple[str, str]] = set()
        self._rounds = 0

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def pending(self) -> list[PendingCall]:
        return list(self._pending)

    @property
    def rounds(self) -> int:
        return self._rounds

    @property
    def max_tool_rounds(self) -> int:
        return self._max_tool_rounds

    @property
    def round_limit_reached(self) -> bool:
        return self._rounds >= self._max_tool_rounds

    def transition(self, target: ExchangeState) -> None:
        if target is not ExchangeState.ERRORED and target not in _TRANSITIONS[self._state]:
            raise ParleyError(
                ErrorKind.INVALID_INPUT,
                f"Illegal exchange transition: {self._state.value} -> {target.value}",
            )
        logger.debug("exchange state %s -> %s", self._state.value, target.value)
        self._state = target

    def reset(self) -> None:
        """Drop queued calls and return to idle, e.g. after a cancelled exchange."""
        logger.debug("exchange state %s -> %s (reset)", self._state.value, ExchangeState.IDLE.value)
        self._pending.clear()
        self._state = ExchangeState.IDLE

    def start_turn(self) -> None:
        self._rounds = 0
        self._dispatched.clear()
        self.begin_exchange()

    def begin_exchange(self) -> None:
        self.transition(ExchangeState.AWAITING_RESPONSE)

    def on_chunk(self) -> None:
        if self._state is ExchangeState.AWAITING_RESPONSE:
            self.transition(ExchangeState.ACCUMULATING)

    def fail(self) -> None:
        self._pending.clear()
        self.transition(ExchangeState.ERRORED)

    def check(self, message: Message) -> None:
        """Queue every not yet dispatched tool call of a message that finished with ``tool_calls``."""
        if not message.requests_tools:
            return
        for position, call in enumerate(message.tool_calls):
            pending = PendingCall(message.id, position, call)
            if pending.key in self._dispatched:
                continue
            if not call.function_name:
                logger.warning("Skipping tool call without a function name on message %s", message.id)
                continue
            self._dispatched.add(pending.key)
            self._pending.append(pending)
            logger.debug("queued tool call %s (%s)", call.function_name, call.tool_call_id or position)
            self._notify("tool_call", {"message_id": message.id, **call.as_dict()})

    def finish_exchange(self) -> ExchangeState:
        if self._state is ExchangeState.AWAITING_RESPONSE and not self._pending:
            self.transition(ExchangeState.COMPLETED)
            return self._state
        if self._state is ExchangeState.AWAITING_RESPONSE:
            self.transition(ExchangeState.ACCUMULATING)
        self.transition(ExchangeState.TOOL_REQUESTED if self._pending else ExchangeState.COMPLETED)
        return self._state

    def abandon_pending(self) -> ErrorPayload:
        """Give up on queued calls because the round limit was reached."""
        dropped = [pending.call.function_name for pending in self._pending]
        self._pending.clear()
        self.transition(ExchangeState.COMPLETED)
        error = ErrorPayload(
            ErrorKind.TOOL,
            f"Tool round limit of {self._max_tool_rounds} reached.",
            details={"dropped": dropped},
        )
        logger.warning("%s Dropped calls: %s", error.message, dropped)
        return error

    def run_pending(self) -> list[ToolResult]:
        queue = self._take_queue()
        results = []
        for pending in queue:
            tool_obj = self._registry.find(pending.call.function_name)
            if tool_obj is None:
                results.append(self._unknown_tool(pending))
                continue
            with span("tools.execute", tool=tool_obj.name, kind=tool_obj.kind.value):
                try:
                    payload = self._executor.execute(tool_obj, pending.call.arguments_text)
                except Exception as exc:
                    results.append(self._execution_failed(pending, tool_obj, exc))
                    continue
            results.append(self._render(pending, tool_obj, payload))
        return self._submit(results)

    async def run_pending_async(self) -> list[ToolResult]:
        queue = self._take_queue()
        results = []
        for pending in queue:
            tool_obj = self._registry.find(pending.call.function_name)
            if tool_obj is None:
                results.append(self._unknown_tool(pending))
                continue
            with span("tools.execute", tool=tool_obj.name, kind=tool_obj.kind.value):
                try:
                    payload = await self._executor.execute_async(tool_obj, pending.call.arguments_text)
                except Exception as exc:
                    results.append(self._execution_failed(pending, tool_obj, exc))
                    continue
            results.append(self._render(pending, tool_obj, payload))
        return self._submit(results)

    def _take_queue(self) -> list[PendingCall]:
        self.transition(ExchangeState.TOOL_EXECUTING)
        queue, self._pending = self._pending, []
        return queue

    def _submit(self, results: list[ToolResult]) -> list[ToolResult]:
        self._rounds += 1
        self.transition(ExchangeState.TOOL_RESULT_SUBMITTED)
        for result in results:
            self._notify("tool_result", result.as_dict())
        return results

    def _render(self, pending: PendingCall, tool_obj: Tool, payload: dict[str, Any]) -> ToolResult:
        if not payload:
            return self._failure(pending, f"Tool '{tool_obj.name}' does not produce any results.")
        return ToolResult(
            name=tool_obj.name,
            tool_call_id=pending.call.tool_call_id,
            content=compact_json(payload),
        )

    def _unknown_tool(self, pending: PendingCall) -> ToolResult:
        logger.warning("No enabled tool matches %r", pending.call.function_name)
        return self._failure(pending, f"Unable to find function: {pending.call.function_name}")

    def _execution_failed(self, pending: PendingCall, tool_obj: Tool, exc: Exception) -> ToolResult:
        detail = exc.message if isinstance(exc, ParleyError) else str(exc)
        logger.warning("Tool %s failed: %r", tool_obj.name, exc)
        return self._failure(pending, f"Tool '{tool_obj.name}' execution failed: {detail}")

    def _failure(self, pending: PendingCall, message: str) -> ToolResult:
        return ToolResult(
            name=pending.call.function_name,
            tool_call_id=pending.call.tool_call_id,
            content=compact_json({"success": False, "error": message}),
            error=ErrorPayload(ErrorKind.TOOL, message),
        )

    def _notify(self, kind: Any, data: dict[str, Any]) -> None:
        if self._emit is not None:
            self._emit(StreamEvent(kind, data))
