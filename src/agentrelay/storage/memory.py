"""In-memory conversation store."""

from __future__ import annotations

import copy
from typing import Any, TypeVar

T = TypeVar("T")


class InMemoryConversationStore:
    """Process-local store with value semantics.

    Values are deep-copied on the way in and out, mimicking a serializing
    backend so callers cannot alias stored state.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: T) -> Any | T:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def update(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        return list(self._data)
