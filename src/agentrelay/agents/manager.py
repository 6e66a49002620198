"""Agent manager: one live agent per conversation."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from agentrelay.agents.agent import Agent
from agentrelay.agents.schema import AgentCapability, AgentMode, AgentRegistryEntry
from agentrelay.config.schema import DEFAULT_CRITICAL_SETTINGS
from agentrelay.conversations.manager import ConversationManager
from agentrelay.conversations.schema import Message, utcnow
from agentrelay.credentials import ApiKeys, CredentialProvider
from agentrelay.errors import AgentError, AgentErrorType, wrap_as_agent_error
from agentrelay.logging import VERBOSE, get_logger, log_event
from agentrelay.webview import (
    AgentCreatedEvent,
    AgentDisposedEvent,
    ConversationSwitchedEvent,
    ErrorEvent,
    WebviewChannel,
    WebviewEvent,
    post_event,
)

log = get_logger("agents")

AgentFactory = Callable[..., Agent]


@dataclass
class AgentManagerConfig:
    """Dependencies injected into the AgentManager."""

    webview: WebviewChannel | None
    credentials: CredentialProvider | None
    conversation_manager: ConversationManager
    critical_settings: Iterable[str] = DEFAULT_CRITICAL_SETTINGS
    default_mode: AgentMode = AgentMode.CHAT
    # Builds agent handles; replaced in tests to simulate provider failures
    agent_factory: AgentFactory = field(default=Agent)


class AgentManager:
    """Owns the lifecycle of every agent handle.

    Each conversation id moves through ``absent -> active -> disposed``.
    At most one active handle exists per id; a disposed handle is dropped
    from the registry and never reused, though a fresh one may be created
    for the same id later. Every lifecycle mutation runs under one lock, so
    concurrent requests for the same id share a single handle.

    Agent buffer changes flow back through on_did_update_messages(), which
    is the only path by which agent activity reaches persistence.

    Example:
        ```python
        manager = AgentManager(AgentManagerConfig(webview, credentials, conversations))
        agent = await manager.get_or_create_agent("conv-1")
        await agent.append_message(Message(Role.USER, "hi"))  # persisted
        await manager.switch_conversation("conv-1", "conv-2")
        await manager.dispose()
        ```
    """

    def __init__(self, config: AgentManagerConfig) -> None:
        self._webview = config.webview
        self._credentials = config.credentials
        self._conversations = config.conversation_manager
        self._critical_settings = frozenset(config.critical_settings)
        self._default_mode = AgentMode(config.default_mode)
        self._agent_factory = config.agent_factory

        self._agents: dict[str, AgentRegistryEntry] = {}
        self._capabilities: dict[str, dict[str, AgentCapability]] = {}
        self._settings: dict[str, Any] = {}
        self._api_keys: ApiKeys | None = None
        self._closed = False

        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def active_agent_count(self) -> int:
        return len(self._agents)

    @property
    def conversation_ids(self) -> list[str]:
        """Conversation ids that currently have an active agent."""
        return list(self._agents)

    @property
    def settings(self) -> dict[str, Any]:
        return dict(self._settings)

    @property
    def api_keys(self) -> ApiKeys | None:
        """Keys resolved by the last critical settings change."""
        return self._api_keys

    @property
    def is_closed(self) -> bool:
        return self._closed

    def has_agent(self, conversation_id: str) -> bool:
        return conversation_id in self._agents

    def get_agent(self, conversation_id: str) -> Agent | None:
        entry = self._agents.get(conversation_id)
        if entry is None:
            return None
        entry.last_access = utcnow()
        return entry.agent

    def get_agent_mode(self, conversation_id: str) -> AgentMode | None:
        entry = self._agents.get(conversation_id)
        return entry.mode if entry else None

    def notify_webview(self, event: WebviewEvent) -> bool:
        """Post a UI event; a missing or broken webview is only logged."""
        return post_event(self._webview, event)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def get_or_create_agent(
        self,
        conversation_id: str,
        mode: AgentMode | str | None = None,
    ) -> Agent:
        """Return the active agent for a conversation, creating it if needed.

        An existing agent is returned unchanged even if a different mode is
        requested.

        Args:
            conversation_id: Conversation the agent serves
            mode: Mode for a newly created agent; defaults to chat

        Returns:
            The active Agent handle.

        Raises:
            AgentError: CREATION_FAILED or INITIALIZATION_FAILED. Nothing is
                registered when creation fails.
        """
        async with self._lock:
            return await self._get_or_create_locked(conversation_id, mode)

    async def _get_or_create_locked(
        self,
        conversation_id: str,
        mode: AgentMode | str | None,
    ) -> Agent:
        if self._closed:
            raise AgentError(
                AgentErrorType.CREATION_FAILED,
                "Agent manager has been disposed",
                conversation_id,
            )

        entry = self._agents.get(conversation_id)
        if entry is not None and not entry.agent.is_disposed:
            entry.last_access = utcnow()
            log_event(
                log,
                VERBOSE,
                "Reusing existing agent",
                conversationId=conversation_id,
                mode=entry.mode,
            )
            return entry.agent

        agent_mode = AgentMode(mode) if mode is not None else self._default_mode
        log_event(
            log,
            logging.INFO,
            "Creating new agent",
            conversationId=conversation_id,
            mode=agent_mode,
            timestamp=utcnow(),
        )

        try:
            agent = self._agent_factory(conversation_id, agent_mode, self._credentials)
        except Exception as e:
            raise wrap_as_agent_error(e, AgentErrorType.CREATION_FAILED, conversation_id)

        try:
            await agent.initialize()
        except Exception as e:
            agent.dispose()
            log.error("Failed to initialize agent for %s: %s", conversation_id, e)
            raise wrap_as_agent_error(e, AgentErrorType.INITIALIZATION_FAILED, conversation_id)

        stored = self._conversations.get_conversation(conversation_id)
        if stored is not None:
            agent.load_history(stored.messages)

        unsubscribe = agent.subscribe(
            functools.partial(self.on_did_update_messages, conversation_id)
        )
        self._agents[conversation_id] = AgentRegistryEntry(
            agent=agent,
            mode=agent_mode,
            unsubscribe=unsubscribe,
        )

        log_event(
            log,
            logging.INFO,
            "Agent created successfully",
            conversationId=conversation_id,
            activeAgents=len(self._agents),
        )
        self.notify_webview(AgentCreatedEvent(conversation_id=conversation_id, mode=agent_mode.value))
        return agent

    # -------------------------------------------------------------------------
    # Persistence path
    # -------------------------------------------------------------------------

    async def on_did_update_messages(
        self,
        conversation_id: str,
        messages: list[Message],
    ) -> None:
        """Persist an agent's message buffer.

        Failures are logged and reported to the webview; they never
        propagate back into the agent.
        """
        log_event(
            log,
            logging.INFO,
            "Saving conversation",
            conversationId=conversation_id,
            messageCount=len(messages),
            timestamp=utcnow(),
        )
        try:
            await self._conversations.save_conversation(conversation_id, messages)
        except Exception as e:
            error = wrap_as_agent_error(e, AgentErrorType.PERSISTENCE_FAILED, conversation_id)
            log_event(
                log,
                logging.ERROR,
                "Failed to save conversation",
                conversationId=conversation_id,
                errorType=error.error_type,
                error=error.message,
            )
            self.notify_webview(ErrorEvent.from_error(error))
            return

        log_event(
            log,
            logging.INFO,
            "Conversation saved successfully",
            conversationId=conversation_id,
            messageCount=len(messages),
        )

    # -------------------------------------------------------------------------
    # Disposal
    # -------------------------------------------------------------------------

    async def dispose_agent(self, conversation_id: str) -> bool:
        """Dispose and unregister the agent for a conversation.

        Returns:
            True if an agent was disposed, False if none existed.
        """
        async with self._lock:
            return self._dispose_locked(conversation_id)

    def _dispose_locked(self, conversation_id: str) -> bool:
        entry = self._agents.get(conversation_id)
        if entry is None:
            log.debug("No agent to dispose for conversation %s", conversation_id)
            return False

        log_event(
            log,
            logging.INFO,
            "Disposing agent",
            conversationId=conversation_id,
            timestamp=utcnow(),
        )
        try:
            entry.unsubscribe()
            entry.agent.dispose()
        finally:
            del self._agents[conversation_id]
            self._capabilities.pop(conversation_id, None)

        log_event(
            log,
            logging.INFO,
            "Agent disposed successfully",
            conversationId=conversation_id,
            status="disposed",
            remainingAgents=len(self._agents),
        )
        self.notify_webview(AgentDisposedEvent(conversation_id=conversation_id))
        return True

    async def dispose_all_agents(self) -> int:
        """Dispose every agent; one failing handle does not stop the rest.

        Returns:
            Number of agents removed from the registry.
        """
        async with self._lock:
            return self._dispose_all_locked()

    def _dispose_all_locked(self) -> int:
        conversation_ids = list(self._agents)
        for conversation_id in conversation_ids:
            try:
                self._dispose_locked(conversation_id)
            except Exception as e:
                log.error("Error disposing agent for %s: %s", conversation_id, e)
        if conversation_ids:
            log.info("Disposed %d agents", len(conversation_ids))
        return len(conversation_ids)

    # -------------------------------------------------------------------------
    # Switching
    # -------------------------------------------------------------------------

    async def switch_conversation(
        self,
        from_id: str | None,
        to_id: str,
        mode: AgentMode | str | None = None,
    ) -> Agent:
        """Move the active agent from one conversation to another.

        The agent for ``from_id`` is disposed before the one for ``to_id`` is
        obtained, so afterwards only the target has an agent. If the target
        cannot be created the source is not restored.

        Args:
            from_id: Conversation being left (None when nothing is open)
            to_id: Conversation being entered
            mode: Mode for the new agent; defaults to the disposed agent's mode

        Returns:
            The active agent for ``to_id``.

        Raises:
            AgentError: Creating the target agent failed.
        """
        started = time.perf_counter()
        async with self._lock:
            previous_mode: AgentMode | None = None
            if from_id is not None and from_id != to_id:
                entry = self._agents.get(from_id)
                if entry is not None:
                    previous_mode = entry.mode
                self._dispose_locked(from_id)

            try:
                agent = await self._get_or_create_locked(to_id, mode or previous_mode)
            except Exception as e:
                log_event(
                    log,
                    logging.ERROR,
                    "Conversation switch failed",
                    fromId=from_id,
                    toId=to_id,
                    durationMs=round((time.perf_counter() - started) * 1000, 2),
                    error=e,
                )
                raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        log_event(
            log,
            logging.INFO,
            "Switched conversation",
            fromId=from_id,
            toId=to_id,
            durationMs=duration_ms,
        )
        self.notify_webview(
            ConversationSwitchedEvent(from_id=from_id, to_id=to_id, duration_ms=duration_ms)
        )
        return agent

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def update_settings(self, settings: Mapping[str, Any]) -> bool:
        """Merge new settings, reinitializing agents on critical changes.

        Only setting names are logged; values may be secrets.

        Returns:
            True if a critical setting changed and agents were reinitialized.

        Raises:
            AgentError: INITIALIZATION_FAILED if credentials cannot be
                re-resolved after a critical change.
        """
        log_event(
            log,
            logging.INFO,
            "Updating settings",
            changedSettings=list(settings),
            timestamp=utcnow(),
        )

        changed_critical = [
            key
            for key, value in settings.items()
            if key in self._critical_settings and self._settings.get(key) != value
        ]
        self._settings.update(settings)

        if not changed_critical:
            return False

        log.info("Critical settings changed (%s), reinitializing agents", ", ".join(changed_critical))
        await self.reinitialize_agents()

        if self._credentials is not None:
            try:
                self._api_keys = ApiKeys.coerce(await self._credentials.get_all_api_keys())
            except Exception as e:
                raise AgentError(
                    AgentErrorType.INITIALIZATION_FAILED,
                    f"Failed to refresh API keys: {e}",
                    cause=e,
                ) from e
        return True

    async def reinitialize_agents(self) -> int:
        """Dispose all agents so the next access builds them with fresh settings."""
        async with self._lock:
            log.info("Reinitializing %d agents", len(self._agents))
            return self._dispose_all_locked()

    def update_webview(self, webview: WebviewChannel | None) -> None:
        """Point UI events at a new webview (e.g. after the panel reopened)."""
        self._webview = webview
        log.debug("Webview updated")

    # -------------------------------------------------------------------------
    # Capabilities
    # -------------------------------------------------------------------------

    def register_capability(self, conversation_id: str, capability: AgentCapability) -> None:
        self._capabilities.setdefault(conversation_id, {})[capability.name] = capability
        log.debug("Registered capability %s for %s", capability.name, conversation_id)

    def get_capabilities(self, conversation_id: str) -> list[AgentCapability]:
        return list(self._capabilities.get(conversation_id, {}).values())

    def query_capability(self, conversation_id: str, name: str) -> AgentCapability | None:
        return self._capabilities.get(conversation_id, {}).get(name)

    def require_capability(self, conversation_id: str, name: str) -> AgentCapability:
        """Look up a capability, raising CAPABILITY_NOT_FOUND if absent."""
        capability = self.query_capability(conversation_id, name)
        if capability is None:
            raise AgentError(
                AgentErrorType.CAPABILITY_NOT_FOUND,
                f"Capability '{name}' not registered",
                conversation_id,
            )
        return capability

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def dispose(self) -> None:
        """Dispose every agent and close the manager. Idempotent."""
        async with self._lock:
            if self._closed:
                return
            self._dispose_all_locked()
            self._capabilities.clear()
            self._settings.clear()
            self._closed = True
        log.info("Agent manager disposed")
