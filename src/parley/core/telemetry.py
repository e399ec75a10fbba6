"""Optional Logfire tracing for chat exchanges and tool runs."""

from __future__ import annotations

from contextlib import nullcontext
from typing import Any

try:  # pragma: no cover - optional dependency
    import logfire  # type: ignore[import-not-found]
except ImportError:  # pragma: no cover - optional dependency
    logfire = None

from parley.core.errors import ErrorKind, ParleyError

SPAN_PREFIX = "parley."

_state = {"instrumented": False}


def is_instrumented() -> bool:
    return _state["instrumented"] and logfire is not None


def span(name: str, **attributes: Any):
    """Open a Logfire span, or a no-op context when tracing is off.

    Attributes whose value is ``None`` are dropped so optional fields such as a
    missing API key never show up as noise in traces.
    """
    if not is_instrumented():
        return nullcontext()
    if not name.startswith(SPAN_PREFIX):
        name = f"{SPAN_PREFIX}{name}"
    return logfire.span(name, **{key: value for key, value in attributes.items() if value is not None})


def instrument_parley(enabled: bool = True) -> None:
    """Turn Parley's spans on (or back off) once Logfire has been configured."""
    if enabled and logfire is None:
        raise ParleyError(
            ErrorKind.CONFIG,
            "Logfire is not installed. Install with 'parley[observability]' to enable tracing.",
        )
    _state["instrumented"] = enabled
