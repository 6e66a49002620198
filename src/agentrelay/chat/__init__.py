"""User-facing chat operations and agent-to-agent messaging."""

from agentrelay.chat.sanitizer import InputSanitizer, ValidationResult
from agentrelay.chat.service import ChatService

__all__ = ["ChatService", "InputSanitizer", "ValidationResult"]
