"""Split a raw response body into chunk objects, single JSON or server-sent events."""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from parley.core.errors import ErrorKind, ParleyError
from parley.core.results import ErrorPayload

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
# SSE fields other than data carry nothing a chat client needs.
IGNORED_FIELDS = ("event:", "id:", "retry:")


@dataclass(frozen=True)
class ChunkEvent:
    payload: dict[str, Any]


@dataclass(frozen=True)
class DoneEvent:
    pass


@dataclass(frozen=True)
class ModelListEvent:
    models: list[Any] = field(default_factory=list)


DemuxEvent = ChunkEvent | DoneEvent | ModelListEvent


class BodyMode(Enum):
    UNKNOWN = auto()
    STREAM = auto()
    DOCUMENT = auto()


class ResponseDemultiplexer:
    """Incremental body splitter.

    Feed bytes with :meth:`feed` as they arrive and call :meth:`finish` once the
    body ends, or hand over the whole body with :meth:`process`. The first
    non-whitespace characters decide the mode: a body starting with ``data:``
    (or an SSE comment) is an event stream, anything else is one JSON document.
    """

    def __init__(self, *, models_endpoint: bool = False) -> None:
        self._models_endpoint = models_endpoint
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.mode = BodyMode.UNKNOWN
        self.done = False
        self.skipped_lines = 0
        self.errors: list[ErrorPayload] = []

    @property
    def streaming(self) -> bool:
        return self.mode is BodyMode.STREAM

    def feed(self, data: bytes | str) -> list[DemuxEvent]:
        text = data if isinstance(data, str) else self._decoder.decode(data)
        if not text:
            return []
        self._buffer += text
        if self.mode is BodyMode.UNKNOWN:
            self._classify()
        if self.mode is BodyMode.STREAM:
            return self._drain_lines()
        return []

    def finish(self) -> list[DemuxEvent]:
        self._buffer += self._decoder.decode(b"", final=True)
        if self.mode is BodyMode.UNKNOWN:
            self._classify(final=True)
        if self.mode is BodyMode.STREAM:
            events = self._drain_lines()
            tail, self._buffer = self._buffer, ""
            events.extend(self._process_line(tail))
            return events
        if self.mode is BodyMode.DOCUMENT:
            body, self._buffer = self._buffer, ""
            return self._process_document(body)
        return []

    def process(self, body: bytes | str, error: Exception | None = None) -> list[DemuxEvent]:
        """Demultiplex a complete body; a transport ``error`` is raised instead of parsing."""
        if error is not None:
            if isinstance(error, ParleyError):
                raise error
            raise ParleyError(ErrorKind.TRANSPORT, str(error), cause=error) from error
        events = self.feed(body)
        events.extend(self.finish())
        return events

    def _classify(self, *, final: bool = False) -> None:
        head = self._buffer.lstrip()
        if not head:
            return
        if head.startswith((DATA_PREFIX, ":")):
            self.mode = BodyMode.STREAM
        elif DATA_PREFIX.startswith(head) and not final:
            # Not enough bytes yet to tell "dat" from a document.
            return
        else:
            self.mode = BodyMode.DOCUMENT

    def _drain_lines(self) -> list[DemuxEvent]:
        events: list[DemuxEvent] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            events.extend(self._process_line(line))
        return events

    def _process_line(self, line: str) -> list[DemuxEvent]:
        if self.done:
            return []
        stripped = line.strip()
        if not stripped or stripped.startswith(":") or stripped.startswith(IGNORED_FIELDS):
            return []
        if stripped.startswith(DATA_PREFIX):
            stripped = stripped[len(DATA_PREFIX) :].strip()
            if not stripped:
                return []
        if stripped == DONE_SENTINEL:
            self.done = True
            return [DoneEvent()]

        try:
            payload = json.loads(stripped)
        except ValueError as exc:
            return self._skip(stripped, f"invalid JSON: {exc}")
        if not isinstance(payload, dict):
            return self._skip(stripped, "chunk is not a JSON object")
        return [ChunkEvent(payload)]

    def _skip(self, line: str, reason: str) -> list[DemuxEvent]:
        self.skipped_lines += 1
        self.errors.append(ErrorPayload(ErrorKind.CHUNK_PARSE, reason, details={"line": line}))
        logger.warning("Skipping stream line (%s): %.200s", reason, line)
        return []

    def _process_document(self, body: str) -> list[DemuxEvent]:
        if not body.strip():
            return []
        try:
            document = json.loads(body)
        except ValueError as exc:
            raise ParleyError(ErrorKind.PROTOCOL, f"Response body is not valid JSON: {exc}", cause=exc) from exc
        if not isinstance(document, dict):
            raise ParleyError(ErrorKind.PROTOCOL, "Response body is not a JSON object.")

        if self._models_endpoint:
            models = document.get("data")
            if not isinstance(models, list):
                raise ParleyError(ErrorKind.PROTOCOL, "Model list response has no 'data' array.")
            return [ModelListEvent(models)]
        return [ChunkEvent(document)]
