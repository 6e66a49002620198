"""Agent lifecycle management.

- Agent: a live session bound to one conversation
- AgentManager: at most one active agent per conversation, routing agent
  message updates into persistence
"""

from agentrelay.agents.agent import Agent
from agentrelay.agents.manager import AgentManager, AgentManagerConfig
from agentrelay.agents.schema import (
    AgentCapability,
    AgentMode,
    AgentRegistryEntry,
    AgentState,
)

__all__ = [
    "Agent",
    "AgentCapability",
    "AgentManager",
    "AgentManagerConfig",
    "AgentMode",
    "AgentRegistryEntry",
    "AgentState",
]
