"""Data schemas for conversations and their messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

SCHEMA_VERSION = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(Enum):
    """Author of a message."""

    USER = "user"
    MODEL = "model"
    ERROR = "error"


class SenderType(Enum):
    """Who produced a message delivered into a conversation."""

    AGENT = "agent"
    USER = "user"


@dataclass(frozen=True)
class MessageMetadata:
    """Provenance of a message routed between conversations."""

    sender_id: str  # Conversation ID of the sending agent or user
    sender_type: SenderType
    timestamp: datetime
    session_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender_id": self.sender_id,
            "sender_type": self.sender_type.value,
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageMetadata:
        return cls(
            sender_id=data["sender_id"],
            sender_type=SenderType(data["sender_type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            session_id=data["session_id"],
        )


@dataclass(frozen=True)
class Message:
    """A single entry in a conversation history.

    Messages are immutable; a conversation changes only by replacing its
    message list.
    """

    role: Role
    text: str
    images: tuple[str, ...] | None = None  # Base64 blobs
    metadata: MessageMetadata | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if self.images is not None and not isinstance(self.images, tuple):
            object.__setattr__(self, "images", tuple(self.images))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "text": self.text}
        if self.images is not None:
            data["images"] = list(self.images)
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        metadata = data.get("metadata")
        images = data.get("images")
        return cls(
            role=Role(data["role"]),
            text=data["text"],
            images=tuple(images) if images is not None else None,
            metadata=MessageMetadata.from_dict(metadata) if metadata else None,
        )


@dataclass
class Conversation:
    """A persisted, ordered message history."""

    id: str
    title: str
    timestamp: datetime  # Creation time, preserved across saves
    messages: list[Message] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utcnow)

    def copy(self) -> Conversation:
        """Copy whose message list can be mutated independently."""
        return Conversation(
            id=self.id,
            title=self.title,
            timestamp=self.timestamp,
            messages=list(self.messages),
            last_updated=self.last_updated,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SCHEMA_VERSION,
            "id": self.id,
            "title": self.title,
            "timestamp": self.timestamp.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conversation:
        return cls(
            id=data["id"],
            title=data["title"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            messages=[Message.from_dict(m) for m in data["messages"]],
            last_updated=datetime.fromisoformat(data["last_updated"]),
        )


@dataclass
class PaginatedMessages:
    """One page of a conversation's messages."""

    messages: list[Message]
    page: int
    page_size: int
    total_messages: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


@dataclass
class LoadFailure:
    """A stored record that could not be loaded."""

    id: str
    error: str


@dataclass
class LoadAllResult:
    """Outcome of bulk hydration from the store."""

    successful: list[Conversation] = field(default_factory=list)
    failed: list[LoadFailure] = field(default_factory=list)
