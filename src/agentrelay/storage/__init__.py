"""Conversation store contract and bundled backends."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agentrelay.storage.memory import InMemoryConversationStore
from agentrelay.storage.protocols import ConversationStore
from agentrelay.storage.yaml_store import YamlConversationStore

if TYPE_CHECKING:
    from agentrelay.config.schema import StorageConfig

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "YamlConversationStore",
    "create_store",
]


def create_store(config: StorageConfig) -> ConversationStore:
    """Build the store selected by config.

    Raises:
        ValueError: Unknown backend, or yaml backend without a path.
    """
    if config.backend == "memory":
        return InMemoryConversationStore()
    if config.backend == "yaml":
        if not config.path:
            raise ValueError("storage.path is required for the yaml backend")
        return YamlConversationStore(config.path)
    raise ValueError(f"Unknown storage backend: {config.backend}")
