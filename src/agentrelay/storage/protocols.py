"""Contract for the key/value surface conversations are persisted to."""

from __future__ import annotations

from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class ConversationStore(Protocol):
    """Opaque key/value persistence.

    Reads are synchronous and return ``default`` for unknown keys. Writes are
    asynchronous and may fail transiently; callers own any retry policy.
    """

    def get(self, key: str, default: T) -> Any | T:
        """Return the stored value for key, or default."""
        ...

    async def update(self, key: str, value: Any) -> None:
        """Persist value under key, replacing any previous value."""
        ...
