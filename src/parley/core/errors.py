"""Error definitions for Parley."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable error kinds for caller decisions."""

    INVALID_INPUT = "invalid_input"
    CONFIG = "config"
    BUSY = "busy"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    SCHEMA = "schema"
    CHUNK_PARSE = "chunk_parse"
    TOOL = "tool"
    UNKNOWN = "unknown"


# Kinds that end the current turn outright. Everything else degrades per object.
FATAL_KINDS = frozenset({ErrorKind.TRANSPORT, ErrorKind.PROTOCOL})


@dataclass
class ParleyError(Exception):
    """Public error type for Parley.

    Attributes:
        kind: Stable, actionable error kind.
        message: Human-readable description.
        cause: Original exception for debugging.
        details: Extra structured context (status code, offending field, ...).
    """

    kind: ErrorKind
    message: str
    cause: Exception | None = None
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    @property
    def fatal(self) -> bool:
        return self.kind in FATAL_KINDS
