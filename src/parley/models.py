"""Models advertised by the backend's model list endpoint."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelEntry:
    id: str
    object: str = ""
    owned_by: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ModelEntry:
        return cls(
            id=str(payload.get("id") or ""),
            object=str(payload.get("object") or ""),
            owned_by=str(payload.get("owned_by") or ""),
        )


class ModelRegistry:
    """Entries from the last successful model list, in backend order."""

    def __init__(self) -> None:
        self._entries: list[ModelEntry] = []

    def load(self, data: Iterable[Any]) -> list[ModelEntry]:
        entries = []
        for item in data:
            if not isinstance(item, dict):
                logger.warning("Skipping model entry that is not an object: %r", item)
                continue
            entries.append(ModelEntry.from_payload(item))
        self._entries = entries
        return list(entries)

    def ids(self) -> list[str]:
        return [entry.id for entry in self._entries]

    def find(self, model_id: str) -> ModelEntry | None:
        return next((entry for entry in self._entries if entry.id == model_id), None)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ModelEntry]:
        return iter(list(self._entries))
