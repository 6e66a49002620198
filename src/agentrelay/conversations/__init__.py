"""Conversation records and their persistence.

- ConversationManager: in-memory conversations mirrored to a store with
  retrying saves, migration, pagination and title generation
- Schema classes: Conversation, Message, MessageMetadata, Role, SenderType
"""

from agentrelay.conversations.manager import ConversationManager
from agentrelay.conversations.schema import (
    Conversation,
    LoadAllResult,
    LoadFailure,
    Message,
    MessageMetadata,
    PaginatedMessages,
    Role,
    SenderType,
)

__all__ = [
    "ConversationManager",
    "Conversation",
    "LoadAllResult",
    "LoadFailure",
    "Message",
    "MessageMetadata",
    "PaginatedMessages",
    "Role",
    "SenderType",
]
