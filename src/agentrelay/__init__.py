"""agentrelay: agent lifecycle and conversation persistence engine."""

__version__ = "0.1.0"

# Public API
from agentrelay.agents import (
    Agent,
    AgentCapability,
    AgentManager,
    AgentManagerConfig,
    AgentMode,
    AgentState,
)
from agentrelay.chat import ChatService, InputSanitizer
from agentrelay.config import Config, get_config, load_config
from agentrelay.conversations import (
    Conversation,
    ConversationManager,
    LoadAllResult,
    Message,
    MessageMetadata,
    Role,
    SenderType,
)
from agentrelay.credentials import ApiKeys, CredentialProvider, EnvCredentialService
from agentrelay.errors import AgentError, AgentErrorType
from agentrelay.retry import RetryPolicy
from agentrelay.runtime import AgentRelay
from agentrelay.storage import (
    ConversationStore,
    InMemoryConversationStore,
    YamlConversationStore,
)
from agentrelay.webview import NullWebview, WebviewChannel

__all__ = [
    # Main entry point
    "AgentRelay",
    # Agents
    "Agent",
    "AgentCapability",
    "AgentManager",
    "AgentManagerConfig",
    "AgentMode",
    "AgentState",
    # Chat
    "ChatService",
    "InputSanitizer",
    # Config
    "Config",
    "load_config",
    "get_config",
    # Conversations
    "Conversation",
    "ConversationManager",
    "LoadAllResult",
    "Message",
    "MessageMetadata",
    "Role",
    "SenderType",
    # Credentials
    "ApiKeys",
    "CredentialProvider",
    "EnvCredentialService",
    # Errors
    "AgentError",
    "AgentErrorType",
    "RetryPolicy",
    # Storage
    "ConversationStore",
    "InMemoryConversationStore",
    "YamlConversationStore",
    # Webview
    "NullWebview",
    "WebviewChannel",
]
