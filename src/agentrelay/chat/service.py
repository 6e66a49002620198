"""Chat service: conversation operations and agent-to-agent messaging."""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
import uuid
from collections.abc import Iterable
from typing import Any

from agentrelay.agents.manager import AgentManager
from agentrelay.agents.schema import AgentMode
from agentrelay.chat.sanitizer import InputSanitizer
from agentrelay.conversations.manager import ConversationManager
from agentrelay.conversations.schema import (
    Conversation,
    Message,
    MessageMetadata,
    Role,
    SenderType,
    utcnow,
)
from agentrelay.errors import AgentError, AgentErrorType, wrap_as_agent_error
from agentrelay.logging import get_logger, log_event
from agentrelay.webview import AgentMessageEvent

log = get_logger("chat")

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ChatService:
    """Facade the UI layer talks to.

    Coordinates the AgentManager and ConversationManager for user-facing
    operations, and delivers messages from one conversation's agent into
    another conversation.

    Agent-to-agent delivery appends exactly one message to the target and
    never touches the source or any other conversation. Deliveries are
    serialized, so messages sent in sequence arrive in that order.
    """

    def __init__(
        self,
        agent_manager: AgentManager,
        conversation_manager: ConversationManager,
        *,
        sanitizer: InputSanitizer | None = None,
        session_id: str | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            agent_manager: Owner of agent lifecycles
            conversation_manager: Owner of conversation records
            sanitizer: Input validation; defaults to a 100 000 character limit
            session_id: Stamped on agent-to-agent messages; generated if omitted
        """
        self._agents = agent_manager
        self._conversations = conversation_manager
        self._sanitizer = sanitizer or InputSanitizer()
        self._session_id = session_id or uuid.uuid4().hex
        self._current_conversation_id: str | None = None
        self._delivery_lock = asyncio.Lock()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def current_conversation_id(self) -> str | None:
        return self._current_conversation_id

    # -------------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------------

    async def load_conversation(self, conversation_id: str) -> Conversation | None:
        """Restore a conversation and attach an agent loaded with its history.

        Returns:
            The conversation, or None if it exists neither in storage nor in memory.

        Raises:
            AgentError: LOAD_FAILED if the stored record is corrupt.
        """
        conversation = await self._conversations.restore_conversation(conversation_id)
        if conversation is None:
            conversation = self._conversations.get_conversation(conversation_id)
        if conversation is None:
            log.info("Conversation %s not found", conversation_id)
            return None

        agent = await self._agents.get_or_create_agent(conversation_id, AgentMode.CHAT)
        agent.load_history(conversation.messages)
        self._current_conversation_id = conversation_id
        return conversation

    def get_conversations(self) -> list[Conversation]:
        return self._conversations.get_conversations()

    async def save_conversation(
        self,
        conversation_id: str,
        messages: Iterable[Message | dict[str, Any]],
    ) -> Conversation:
        return await self._conversations.save_conversation(conversation_id, messages)

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Dispose the conversation's agent, then delete the record."""
        if self._agents.has_agent(conversation_id):
            await self._agents.dispose_agent(conversation_id)
        deleted = await self._conversations.delete_conversation(conversation_id)
        if self._current_conversation_id == conversation_id:
            self._current_conversation_id = None
        return deleted

    async def clear_all_conversations(self) -> None:
        """Dispose every agent and delete every conversation."""
        await self._agents.dispose_all_agents()
        await self._conversations.clear_all_conversations()
        self._current_conversation_id = None

    def create_new_conversation(self) -> str:
        """Generate a fresh conversation id (``conv_<epoch ms>_<7 chars>``)."""
        suffix = "".join(random.choices(_ID_ALPHABET, k=7))
        return f"conv_{int(time.time() * 1000)}_{suffix}"

    async def switch_conversation(self, from_id: str | None, to_id: str) -> Conversation:
        """Make ``to_id`` the current conversation.

        Raises:
            AgentError: LOAD_FAILED if ``to_id`` does not exist or is corrupt,
                or the agent error if the target agent cannot be created.
        """
        log.info("Switching conversation from %s to %s", from_id, to_id)
        conversation = await self._conversations.restore_conversation(to_id)
        if conversation is None:
            conversation = self._conversations.get_conversation(to_id)
        if conversation is None:
            raise AgentError(
                AgentErrorType.LOAD_FAILED,
                f"Conversation {to_id} not found",
                to_id,
            )

        agent = await self._agents.switch_conversation(from_id, to_id)
        agent.load_history(conversation.messages)
        self._current_conversation_id = to_id

        log.info(
            "Conversation switched to %s (%d messages)", to_id, len(conversation.messages)
        )
        return conversation

    async def abort(self, conversation_id: str | None = None) -> bool:
        """Abort the running operation of a conversation's agent.

        Returns:
            True if an agent was signalled.
        """
        target = conversation_id or self._current_conversation_id
        if target is None:
            log.warning("No conversation to abort")
            return False
        agent = self._agents.get_agent(target)
        if agent is None:
            return False
        agent.abort()
        return True

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    def _validated_text(self, text: str, conversation_id: str) -> str:
        result = self._sanitizer.validate(text)
        if not result.valid:
            raise AgentError(
                AgentErrorType.MESSAGE_PROCESSING_FAILED,
                f"Invalid message: {result.reason}",
                conversation_id,
            )
        return result.sanitized_value or ""

    async def send_message(self, conversation_id: str, text: str) -> Message:
        """Append a user message to a conversation's chat agent.

        The agent's buffer change is persisted through the AgentManager.

        Raises:
            AgentError: MESSAGE_PROCESSING_FAILED for empty or oversized text,
                or the agent creation error.
        """
        sanitized = self._validated_text(text, conversation_id)
        agent = await self._agents.get_or_create_agent(conversation_id, AgentMode.CHAT)
        self._current_conversation_id = conversation_id

        message = Message(role=Role.USER, text=sanitized)
        await agent.append_message(message)
        return message

    async def send_agent_message(self, from_id: str, to_id: str, text: str) -> Message:
        """Deliver a message from one conversation's agent into another.

        The message is stored in ``to_id`` as a user message carrying
        metadata naming ``from_id`` as the sending agent.

        Args:
            from_id: Sending conversation
            to_id: Receiving conversation
            text: Message body

        Returns:
            The message appended to ``to_id``.

        Raises:
            AgentError: UNAUTHORIZED when from_id equals to_id,
                COMMUNICATION_FAILED when either conversation is unknown,
                MESSAGE_PROCESSING_FAILED for invalid text,
                PERSISTENCE_FAILED when the target cannot be saved.
        """
        started = time.perf_counter()
        async with self._delivery_lock:
            try:
                message = await self._deliver(from_id, to_id, text)
            except Exception as e:
                error = wrap_as_agent_error(e, AgentErrorType.COMMUNICATION_FAILED, to_id)
                log_event(
                    log,
                    logging.ERROR,
                    "Agent message failed",
                    fromId=from_id,
                    toId=to_id,
                    errorType=error.error_type,
                    error=error.message,
                )
                raise error

        log_event(
            log,
            logging.INFO,
            "Agent message delivered",
            fromId=from_id,
            toId=to_id,
            messageLength=len(message.text),
            durationMs=round((time.perf_counter() - started) * 1000, 2),
        )
        self._agents.notify_webview(
            AgentMessageEvent(
                from_conversation_id=from_id,
                to_conversation_id=to_id,
                role=message.role.value,
                text=message.text,
                timestamp=message.metadata.timestamp if message.metadata else utcnow(),
            )
        )
        return message

    async def _deliver(self, from_id: str, to_id: str, text: str) -> Message:
        if from_id == to_id:
            raise AgentError(
                AgentErrorType.UNAUTHORIZED,
                "An agent cannot send a message to its own conversation",
                from_id,
            )
        if not self._conversations.has_conversation(from_id):
            raise AgentError(
                AgentErrorType.COMMUNICATION_FAILED,
                f"Source conversation {from_id} not found",
                from_id,
            )
        if not self._conversations.has_conversation(to_id):
            raise AgentError(
                AgentErrorType.COMMUNICATION_FAILED,
                f"Target conversation {to_id} not found",
                to_id,
            )

        message = Message(
            role=Role.USER,
            text=self._validated_text(text, to_id),
            metadata=MessageMetadata(
                sender_id=from_id,
                sender_type=SenderType.AGENT,
                timestamp=utcnow(),
                session_id=self._session_id,
            ),
        )

        # Buffer first so the agent's own later saves carry the message
        agent = self._agents.get_agent(to_id)
        if agent is not None and agent.is_disposed:
            agent = None
        if agent is not None:
            agent.receive_message(message)
        try:
            await self._conversations.append_message(to_id, message)
        except Exception:
            if agent is not None:
                agent.retract_message(message)
            raise
        return message
