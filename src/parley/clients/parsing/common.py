"""Common parsing helpers shared by the envelope models and merge code."""

from __future__ import annotations

import json
from typing import Any


def compact_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def non_empty(value: str | None) -> str | None:
    """Return ``value`` trimmed, or ``None`` when nothing is left."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None
