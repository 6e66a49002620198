"""Data schemas for agent lifecycle management."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from agentrelay.conversations.schema import utcnow

if TYPE_CHECKING:
    from agentrelay.agents.agent import Agent


class AgentMode(Enum):
    """Context an agent runs in."""

    CHAT = "chat"
    BUILD = "build"
    FEEDBACK = "feedback"


class AgentState(Enum):
    """Lifecycle state of an agent handle.

    A conversation without a handle is "absent"; handles only move from
    ACTIVE to DISPOSED.
    """

    ACTIVE = "active"
    DISPOSED = "disposed"


@dataclass
class AgentCapability:
    """A capability an agent advertises for discovery."""

    name: str
    description: str
    tools: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "tools": list(self.tools)}


@dataclass
class AgentRegistryEntry:
    """Bookkeeping for one live agent in the AgentManager."""

    agent: Agent
    mode: AgentMode
    unsubscribe: Callable[[], None]
    created_at: datetime = field(default_factory=utcnow)
    last_access: datetime = field(default_factory=utcnow)
