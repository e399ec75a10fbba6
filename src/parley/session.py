"""Parley chat session facade."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from contextlib import aclosing, closing
from typing import Any

from parley.clients.chat import ChatClient
from parley.clients.demux import ChunkEvent, DemuxEvent, DoneEvent, ModelListEvent, ResponseDemultiplexer
from parley.clients.request import RequestBuilder
from parley.conversation.aggregator import ContentMerge, MessageAggregator
from parley.conversation.message import Message, Role
from parley.conversation.store import ConversationStore, InMemoryConversationStore
from parley.core.connection import Connection
from parley.core.errors import ErrorKind, ParleyError
from parley.core.execution import HttpCore
from parley.core.results import ErrorPayload, ExchangeResult, StreamEvent
from parley.core.telemetry import span
from parley.models import ModelEntry, ModelRegistry
from parley.tools.executor import RegistryToolExecutor, ToolExecutor
from parley.tools.orchestrator import DEFAULT_MAX_TOOL_ROUNDS, ExchangeState, ToolOrchestrator, ToolResult
from parley.tools.schema import Tool, ToolRegistry

logger = logging.getLogger(__name__)

Listener = Callable[[StreamEvent], Any]

_SETTLED_STATES = frozenset({ExchangeState.IDLE, ExchangeState.COMPLETED, ExchangeState.ERRORED})


class ChatSession:
    """One conversation against one OpenAI-compatible backend.

    A session owns its store, tool orchestrator and HTTP clients, and runs at
    most one exchange at a time. Tool calls requested by the model are executed
    after the response finishes and their results are sent back as user turns
    until the model stops asking or ``max_tool_rounds`` is reached.
    """

    def __init__(
        self,
        connection: Connection | str,
        *,
        model: str | None = None,
        api_key: str | None = None,
        store: ConversationStore | None = None,
        tools: ToolRegistry | Iterable[Tool | Callable[..., Any]] | None = None,
        executor: ToolExecutor | None = None,
        parameters: Mapping[str, Any] | None = None,
        content_merge: ContentMerge = ContentMerge.APPEND,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        listener: Listener | None = None,
        builder: RequestBuilder | None = None,
        client_args: dict[str, Any] | None = None,
        verbose: int = 0,
    ) -> None:
        if isinstance(connection, str):
            connection = Connection(base_url=connection, api_key=api_key)
        elif api_key is not None:
            raise ParleyError(ErrorKind.INVALID_INPUT, "Pass api_key on the Connection, not both.")

        self._core = HttpCore(connection=connection, client_args=client_args, verbose=verbose)
        self._client = ChatClient(self._core, builder)
        self._model = model or ""
        self._parameters = dict(parameters or {})
        self._store: ConversationStore = store if store is not None else InMemoryConversationStore()
        self._tools = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools or ())
        self._models = ModelRegistry()
        self._listener = listener
        self._orchestrator = ToolOrchestrator(
            self._tools,
            executor or RegistryToolExecutor(),
            max_tool_rounds=max_tool_rounds,
            emit=self._emit,
        )
        self._aggregator = MessageAggregator(
            self._store,
            content_merge=content_merge,
            on_message=self._orchestrator.check,
        )
        self._lock = threading.Lock()
        self._cancel_requested = False

    @property
    def model(self) -> str:
        return self._model

    @property
    def connection(self) -> Connection:
        return self._core.connection

    @property
    def state(self) -> ExchangeState:
        return self._orchestrator.state

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def models(self) -> ModelRegistry:
        return self._models

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def set_active_model(self, model: str) -> None:
        if not isinstance(model, str) or not model.strip():
            raise ParleyError(ErrorKind.INVALID_INPUT, "model must be a non-empty string.")
        if len(self._models) and self._models.find(model) is None:
            logger.warning("Model %r is not in the backend's model list", model)
        self._model = model

    def echo(self, content: str) -> Message:
        """Record a local-only turn that is shown in the conversation but never sent."""
        return self._append_turn(content, Role.LOCAL_ECHO)

    def cancel(self) -> bool:
        """Stop reading the current response at the next chunk boundary."""
        if not self.in_flight:
            return False
        self._cancel_requested = True
        return True

    def send_chat(
        self,
        content: str,
        *,
        role: Role = Role.USER,
        stream: bool = True,
        **parameters: Any,
    ) -> ExchangeResult:
        self._acquire(role)
        try:
            with span("chat.exchange", model=self._model, stream=stream):
                result = ExchangeResult()
                self._append_turn(content, role)
                self._orchestrator.start_turn()
                request_stream = stream
                while True:
                    self._run_exchange(result, request_stream, parameters)
                    if not self._continue_with_tools(result):
                        break
                    tool_results = self._orchestrator.run_pending()
                    result.tool_rounds = self._orchestrator.rounds
                    if self._cancel_requested:
                        self._mark_cancelled(result)
                        break
                    self._submit_tool_results(tool_results)
                    self._orchestrator.begin_exchange()
                    request_stream = True
                return result
        finally:
            self._release()

    async def send_chat_async(
        self,
        content: str,
        *,
        role: Role = Role.USER,
        stream: bool = True,
        **parameters: Any,
    ) -> ExchangeResult:
        self._acquire(role)
        try:
            with span("chat.exchange", model=self._model, stream=stream):
                result = ExchangeResult()
                self._append_turn(content, role)
                self._orchestrator.start_turn()
                request_stream = stream
                while True:
                    await self._run_exchange_async(result, request_stream, parameters)
                    if not self._continue_with_tools(result):
                        break
                    tool_results = await self._orchestrator.run_pending_async()
                    result.tool_rounds = self._orchestrator.rounds
                    if self._cancel_requested:
                        self._mark_cancelled(result)
                        break
                    self._submit_tool_results(tool_results)
                    self._orchestrator.begin_exchange()
                    request_stream = True
                return result
        finally:
            self._release()

    def list_models(self) -> list[ModelEntry]:
        try:
            models = self._client.fetch_models()
        except ParleyError as exc:
            self._emit_error(ErrorPayload.from_error(exc))
            raise
        return self._load_models(models)

    async def list_models_async(self) -> list[ModelEntry]:
        try:
            models = await self._client.fetch_models_async()
        except ParleyError as exc:
            self._emit_error(ErrorPayload.from_error(exc))
            raise
        return self._load_models(models)

    def close(self) -> None:
        self._core.close()

    async def aclose(self) -> None:
        await self._core.aclose()

    def __enter__(self) -> ChatSession:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    async def __aenter__(self) -> ChatSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"<ChatSession base_url={self._core.connection.base_url} model={self._model} state={self.state.value}>"

    def _acquire(self, role: Role) -> None:
        if Role(role) is Role.LOCAL_ECHO:
            raise ParleyError(ErrorKind.INVALID_INPUT, "Local echo turns are never sent; use echo().")
        if not self._model:
            raise ParleyError(ErrorKind.INVALID_INPUT, "No active model; call set_active_model() first.")
        if not self._lock.acquire(blocking=False):
            raise ParleyError(ErrorKind.BUSY, "An exchange is already in flight for this session.")
        self._cancel_requested = False

    def _release(self) -> None:
        if self._orchestrator.state not in _SETTLED_STATES:
            self._orchestrator.reset()
        self._cancel_requested = False
        self._lock.release()

    def _append_turn(self, content: str, role: Role) -> Message:
        message = self._store.append(Message.local(content, Role(role)))
        self._emit(StreamEvent("message_added", message.as_dict()))
        return message

    def _history(self) -> list[dict[str, str]]:
        return [message.to_request() for message in self._store.all() if message.in_history]

    def _build_body(self, stream: bool, parameters: Mapping[str, Any]) -> dict[str, Any]:
        return self._client.build_request(
            model=self._model,
            messages=self._history(),
            parameters={**self._parameters, **parameters},
            tool_schemas=self._tools.schemas(),
            stream=stream,
        )

    def _run_exchange(self, result: ExchangeResult, stream: bool, parameters: Mapping[str, Any]) -> None:
        if self._cancel_requested:
            self._mark_cancelled(result)
            return
        body = self._build_body(stream, parameters)
        demux = ResponseDemultiplexer()
        done_seen = False
        try:
            events = self._client.iter_events(body, demux)
            with closing(events):
                for event in events:
                    if self._cancel_requested:
                        self._mark_cancelled(result)
                        return
                    done_seen = self._handle_event(event, result) or done_seen
                if self._cancel_requested:
                    self._mark_cancelled(result)
                    return
        except ParleyError as exc:
            if not exc.fatal:
                raise
            self._fail(result, exc)
            return
        finally:
            result.skipped_lines += demux.skipped_lines
        self._finish_exchange(result, done_seen)

    async def _run_exchange_async(self, result: ExchangeResult, stream: bool, parameters: Mapping[str, Any]) -> None:
        if self._cancel_requested:
            self._mark_cancelled(result)
            return
        body = self._build_body(stream, parameters)
        demux = ResponseDemultiplexer()
        done_seen = False
        try:
            events = self._client.aiter_events(body, demux)
            async with aclosing(events):
                async for event in events:
                    if self._cancel_requested:
                        self._mark_cancelled(result)
                        return
                    done_seen = self._handle_event(event, result) or done_seen
                if self._cancel_requested:
                    self._mark_cancelled(result)
                    return
        except ParleyError as exc:
            if not exc.fatal:
                raise
            self._fail(result, exc)
            return
        finally:
            result.skipped_lines += demux.skipped_lines
        self._finish_exchange(result, done_seen)

    def _handle_event(self, event: DemuxEvent, result: ExchangeResult) -> bool:
        if isinstance(event, DoneEvent):
            result.done = True
            self._emit(StreamEvent("done", {"finish_reason": result.finish_reason}))
            return True
        if isinstance(event, ModelListEvent):
            self._load_models(event.models)
            return False
        if isinstance(event, ChunkEvent):
            self._orchestrator.on_chunk()
            outcome = self._aggregator.merge(event.payload)
            if not outcome.ok or outcome.message is None:
                if outcome.error is not None:
                    result.schema_errors.append(outcome.error)
                    self._emit_error(outcome.error)
                return False
            result.touch(outcome.message)
            kind = "message_added" if outcome.created else "message_updated"
            self._emit(StreamEvent(kind, outcome.message.as_dict()))
        return False

    def _finish_exchange(self, result: ExchangeResult, done_seen: bool) -> None:
        self._orchestrator.finish_exchange()
        if not done_seen:
            result.done = True
            self._emit(StreamEvent("done", {"finish_reason": result.finish_reason}))

    def _continue_with_tools(self, result: ExchangeResult) -> bool:
        if result.cancelled or result.error is not None:
            return False
        if self._orchestrator.state is not ExchangeState.TOOL_REQUESTED:
            return False
        if self._orchestrator.round_limit_reached:
            result.error = self._orchestrator.abandon_pending()
            self._emit_error(result.error)
            return False
        return True

    def _submit_tool_results(self, results: list[ToolResult]) -> None:
        for tool_result in results:
            self._append_turn(tool_result.content, Role.USER)

    def _mark_cancelled(self, result: ExchangeResult) -> None:
        logger.info("Exchange cancelled; keeping %d partially merged messages", len(result.messages))
        result.cancelled = True
        self._orchestrator.reset()

    def _fail(self, result: ExchangeResult, error: ParleyError) -> None:
        self._orchestrator.fail()
        result.error = ErrorPayload.from_error(error)
        self._emit_error(result.error)

    def _load_models(self, models: list[Any]) -> list[ModelEntry]:
        entries = self._models.load(models)
        self._emit(StreamEvent("models", {"models": [entry.id for entry in entries]}))
        return entries

    def _emit_error(self, error: ErrorPayload) -> None:
        self._emit(StreamEvent("error", error.as_dict()))

    def _emit(self, event: StreamEvent) -> None:
        if self._listener is not None:
            self._listener(event)
