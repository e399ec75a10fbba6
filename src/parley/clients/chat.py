"""Chat-completion and model-list exchanges over the transport core."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from contextlib import aclosing, closing
from typing import Any

from parley.clients.demux import DemuxEvent, ModelListEvent, ResponseDemultiplexer
from parley.clients.request import RequestBuilder
from parley.core.errors import ErrorKind, ParleyError
from parley.core.execution import HttpCore
from parley.core.telemetry import span


class ChatClient:
    """Send requests and yield demultiplexed response events in arrival order."""

    def __init__(self, core: HttpCore, builder: RequestBuilder | None = None) -> None:
        self._core = core
        self._builder = builder or RequestBuilder()

    @property
    def core(self) -> HttpCore:
        return self._core

    @property
    def builder(self) -> RequestBuilder:
        return self._builder

    def build_request(
        self,
        *,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        parameters: Mapping[str, Any] | None = None,
        tool_schemas: Sequence[Mapping[str, Any]] = (),
        stream: bool = True,
    ) -> dict[str, Any]:
        return self._builder.build(
            model=model,
            messages=messages,
            parameters=parameters,
            tool_schemas=tool_schemas,
            stream=stream,
        )

    def iter_events(
        self,
        body: dict[str, Any],
        demux: ResponseDemultiplexer | None = None,
    ) -> Iterator[DemuxEvent]:
        endpoint = self._core.connection.chat_endpoint
        demux = demux or self._demux_for(endpoint)
        chunks = self._core.stream_bytes("POST", endpoint, body)
        with closing(chunks):
            for raw in chunks:
                yield from demux.feed(raw)
        yield from demux.finish()

    async def aiter_events(
        self,
        body: dict[str, Any],
        demux: ResponseDemultiplexer | None = None,
    ) -> AsyncIterator[DemuxEvent]:
        endpoint = self._core.connection.chat_endpoint
        demux = demux or self._demux_for(endpoint)
        chunks = self._core.astream_bytes("POST", endpoint, body)
        async with aclosing(chunks):
            async for raw in chunks:
                for event in demux.feed(raw):
                    yield event
        for event in demux.finish():
            yield event

    def fetch_models(self) -> list[Any]:
        endpoint = self._core.connection.models_endpoint
        demux = self._demux_for(endpoint)
        with span("models.list", endpoint=endpoint):
            events: list[DemuxEvent] = []
            for raw in self._core.stream_bytes("GET", endpoint):
                events.extend(demux.feed(raw))
            events.extend(demux.finish())
        return self._model_list(events)

    async def fetch_models_async(self) -> list[Any]:
        endpoint = self._core.connection.models_endpoint
        demux = self._demux_for(endpoint)
        with span("models.list", endpoint=endpoint):
            events: list[DemuxEvent] = []
            async for raw in self._core.astream_bytes("GET", endpoint):
                events.extend(demux.feed(raw))
            events.extend(demux.finish())
        return self._model_list(events)

    def _demux_for(self, endpoint: str) -> ResponseDemultiplexer:
        return ResponseDemultiplexer(models_endpoint=self._core.connection.is_models_endpoint(endpoint))

    @staticmethod
    def _model_list(events: list[DemuxEvent]) -> list[Any]:
        for event in events:
            if isinstance(event, ModelListEvent):
                return event.models
        raise ParleyError(ErrorKind.PROTOCOL, "Model list response carried no model data.")
