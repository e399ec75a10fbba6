"""Core primitives for Parley."""

from parley.core.connection import AuthScheme, Connection
from parley.core.errors import ErrorKind, ParleyError
from parley.core.execution import HttpCore
from parley.core.results import ErrorPayload, ExchangeResult, StreamEvent
from parley.core.telemetry import instrument_parley, span

__all__ = [
    "AuthScheme",
    "Connection",
    "ErrorKind",
    "ErrorPayload",
    "ExchangeResult",
    "HttpCore",
    "ParleyError",
    "StreamEvent",
    "instrument_parley",
    "span",
]
