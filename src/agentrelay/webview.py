"""UI-facing events pushed through the webview channel.

The webview is an opaque sink: the core never depends on it for
correctness. Events are pydantic models serialized with camelCase aliases,
matching what the UI layer consumes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from agentrelay.errors import AgentError, AgentErrorType
from agentrelay.logging import get_logger

log = get_logger("webview")


@runtime_checkable
class WebviewChannel(Protocol):
    """Anything with a ``post_message(payload)`` method."""

    def post_message(self, payload: dict[str, Any]) -> Any:
        ...


class NullWebview:
    """Webview that discards every payload (headless use)."""

    def post_message(self, payload: dict[str, Any]) -> None:
        return None


class WebviewEvent(BaseModel):
    """Base model for webview events with populate_by_name enabled."""

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AgentCreatedEvent(WebviewEvent):
    type: Literal["agent-created"] = "agent-created"
    conversation_id: str = Field(alias="conversationId")
    mode: str


class AgentDisposedEvent(WebviewEvent):
    type: Literal["agent-disposed"] = "agent-disposed"
    conversation_id: str = Field(alias="conversationId")


class ConversationSwitchedEvent(WebviewEvent):
    type: Literal["conversation-switched"] = "conversation-switched"
    from_id: str | None = Field(default=None, alias="fromId")
    to_id: str = Field(alias="toId")
    duration_ms: float = Field(alias="durationMs")


class AgentMessageEvent(WebviewEvent):
    """A message delivered from one conversation's agent into another."""

    type: Literal["agent-message"] = "agent-message"
    from_conversation_id: str = Field(alias="fromConversationId")
    to_conversation_id: str = Field(alias="toConversationId")
    role: str
    text: str
    timestamp: datetime


class ErrorEvent(WebviewEvent):
    type: Literal["error"] = "error"
    error_type: str = Field(alias="errorType")
    message: str
    troubleshooting: list[str] = Field(default_factory=list)
    conversation_id: str | None = Field(default=None, alias="conversationId")

    @classmethod
    def from_error(cls, error: AgentError) -> ErrorEvent:
        return cls(
            error_type=error.error_type.value,
            message=error.user_message,
            troubleshooting=error.troubleshooting,
            conversation_id=error.conversation_id,
        )


def post_event(webview: WebviewChannel | None, event: WebviewEvent) -> bool:
    """Post an event, logging (never raising) if the webview is gone.

    Returns:
        True if the payload was handed to the webview.
    """
    if webview is None:
        return False
    try:
        webview.post_message(event.to_payload())
    except Exception as e:
        error = AgentError(
            AgentErrorType.WEBVIEW_DISCONNECTED,
            f"Failed to post {event.type} event: {e}",
            cause=e,
        )
        log.warning("%s", error.formatted_message())
        return False
    return True
