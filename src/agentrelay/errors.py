"""Error taxonomy for agent and conversation operations.

Every failure that crosses a component boundary is expressed as an
AgentError tagged with an AgentErrorType. Each type carries a fixed
user-facing explanation and an ordered list of troubleshooting steps so the
UI layer can render consistent guidance without knowing where the error
came from.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class AgentErrorType(Enum):
    """Kinds of agent failures."""

    CREATION_FAILED = "CREATION_FAILED"
    INITIALIZATION_FAILED = "INITIALIZATION_FAILED"
    MESSAGE_PROCESSING_FAILED = "MESSAGE_PROCESSING_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    LOAD_FAILED = "LOAD_FAILED"
    COMMUNICATION_FAILED = "COMMUNICATION_FAILED"
    CAPABILITY_NOT_FOUND = "CAPABILITY_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    STORAGE_QUOTA_EXCEEDED = "STORAGE_QUOTA_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"
    WEBVIEW_DISCONNECTED = "WEBVIEW_DISCONNECTED"
    AGENT_UNRESPONSIVE = "AGENT_UNRESPONSIVE"


USER_MESSAGES: dict[AgentErrorType, str] = {
    AgentErrorType.CREATION_FAILED: (
        "Failed to create agent. Please try creating a new conversation "
        "or restart the application."
    ),
    AgentErrorType.INITIALIZATION_FAILED: (
        "Failed to initialize agent. Please check your settings and ensure "
        "your API keys are configured correctly."
    ),
    AgentErrorType.MESSAGE_PROCESSING_FAILED: (
        "Failed to process message. The agent encountered an error while "
        "processing your request."
    ),
    AgentErrorType.PERSISTENCE_FAILED: (
        "Failed to save conversation. Your messages may not be persisted. "
        "Please try again."
    ),
    AgentErrorType.LOAD_FAILED: (
        "Failed to load conversation. The conversation data may be corrupted. "
        "Would you like to create a new conversation?"
    ),
    AgentErrorType.COMMUNICATION_FAILED: (
        "Failed to communicate between agents. Please check that both agents "
        "are active and try again."
    ),
    AgentErrorType.CAPABILITY_NOT_FOUND: (
        "The requested capability is not available. The target agent does not "
        "support this operation."
    ),
    AgentErrorType.UNAUTHORIZED: (
        "Unauthorized operation. This action is not permitted for security reasons."
    ),
    AgentErrorType.STORAGE_QUOTA_EXCEEDED: (
        "Storage quota exceeded. Please consider clearing old conversations "
        "to free up space."
    ),
    AgentErrorType.NETWORK_ERROR: (
        "Network error occurred while communicating with the AI provider. "
        "Please check your internet connection and try again."
    ),
    AgentErrorType.WEBVIEW_DISCONNECTED: (
        "The webview has been disconnected. Your conversation state has been "
        "preserved and will be restored when the webview reconnects."
    ),
    AgentErrorType.AGENT_UNRESPONSIVE: (
        "The agent has become unresponsive. You can abort the current operation "
        "and restart the agent."
    ),
}

TROUBLESHOOTING: dict[AgentErrorType, list[str]] = {
    AgentErrorType.CREATION_FAILED: [
        "Check that your API keys are configured in settings",
        "Verify that the selected AI provider is available",
        "Try restarting the application",
        "Check the logs for more details",
    ],
    AgentErrorType.INITIALIZATION_FAILED: [
        "Verify your API keys in settings",
        "Check that you have selected a valid AI provider",
        "Ensure your provider credentials have the necessary permissions",
        "Try switching to a different AI provider",
    ],
    AgentErrorType.MESSAGE_PROCESSING_FAILED: [
        "Try sending the message again",
        "Check if the message contains any invalid characters",
        "Verify that your API quota has not been exceeded",
        "Check the logs for more details",
    ],
    AgentErrorType.PERSISTENCE_FAILED: [
        "Check available disk space",
        "Verify the storage location is writable",
        "Try closing and reopening the conversation",
        "Export your conversation data as a backup",
    ],
    AgentErrorType.LOAD_FAILED: [
        "The conversation data may be corrupted",
        "Try creating a new conversation",
        "Check the logs for migration errors",
        "Contact support if the issue persists",
    ],
    AgentErrorType.STORAGE_QUOTA_EXCEEDED: [
        "Delete old conversations you no longer need",
        "Export important conversations before deleting",
        "Check storage settings",
        "Consider archiving conversations externally",
    ],
    AgentErrorType.NETWORK_ERROR: [
        "Check your internet connection",
        "Verify that the AI provider service is available",
        "Check if you are behind a proxy or firewall",
        "Try again in a few moments",
    ],
    AgentErrorType.UNAUTHORIZED: [
        "Verify that you have permission to perform this action",
        "Check that both agents belong to the same session",
        "Review security settings",
    ],
}


class AgentError(Exception):
    """Error raised by agent, conversation, and messaging operations.

    Attributes:
        error_type: Taxonomy kind.
        message: Technical description of what failed.
        conversation_id: Conversation the failure relates to, if any.
        cause: Underlying exception, if this wraps one.
        user_message: Fixed user-facing explanation for error_type.
        troubleshooting: Ordered troubleshooting steps (may be empty).
    """

    def __init__(
        self,
        error_type: AgentErrorType,
        message: str,
        conversation_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.conversation_id = conversation_id
        self.cause = cause
        self.user_message = USER_MESSAGES[error_type]
        self.troubleshooting = list(TROUBLESHOOTING.get(error_type, []))
        if cause is not None:
            self.__cause__ = cause

    def formatted_message(self) -> str:
        """Technical message with type, conversation and cause."""
        formatted = f"[{self.error_type.value}] {self.message}"
        if self.conversation_id:
            formatted += f" (Conversation: {self.conversation_id})"
        if self.cause is not None:
            formatted += f"\nCaused by: {self.cause}"
        return formatted

    def user_friendly_message(self) -> str:
        """User-facing message followed by numbered troubleshooting steps."""
        message = self.user_message
        if self.troubleshooting:
            steps = "\n".join(f"{i}. {step}" for i, step in enumerate(self.troubleshooting, 1))
            message += f"\n\nTroubleshooting steps:\n{steps}"
        return message

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.error_type.value,
            "message": self.message,
            "conversation_id": self.conversation_id,
            "user_message": self.user_message,
            "troubleshooting": list(self.troubleshooting),
            "cause": (
                {"name": type(self.cause).__name__, "message": str(self.cause)}
                if self.cause is not None
                else None
            ),
        }

    def __repr__(self) -> str:
        return (
            f"AgentError({self.error_type.value}, {self.message!r}, "
            f"conversation_id={self.conversation_id!r})"
        )


def is_agent_error(error: object) -> bool:
    """Check whether error is an AgentError."""
    return isinstance(error, AgentError)


def wrap_as_agent_error(
    error: BaseException,
    error_type: AgentErrorType,
    conversation_id: str | None = None,
) -> AgentError:
    """Wrap an arbitrary exception into the taxonomy.

    AgentErrors are returned unchanged so the most specific classification
    wins when errors bubble through several layers.
    """
    if isinstance(error, AgentError):
        return error
    return AgentError(error_type, str(error) or type(error).__name__, conversation_id, error)
