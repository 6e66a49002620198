"""Agent handle bound to one conversation."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from agentrelay.agents.schema import AgentMode, AgentState
from agentrelay.conversations.schema import Message
from agentrelay.credentials import ApiKeys, CredentialProvider
from agentrelay.errors import AgentError, AgentErrorType
from agentrelay.logging import get_logger

log = get_logger("agents.agent")

MessagesHandler = Callable[[list[Message]], Awaitable[None]]


class Agent:
    """A live AI session for a single conversation.

    The agent owns a local message buffer. Whenever the buffer changes it
    notifies its subscribers with a snapshot of the full history; the
    AgentManager subscribes on creation to route those snapshots into
    persistence and unsubscribes on disposal.

    ```python
    agent = Agent("conv-1", AgentMode.CHAT, credentials)
    await agent.initialize()
    unsubscribe = agent.subscribe(on_messages)
    await agent.append_message(Message(Role.USER, "hello"))
    agent.dispose()
    ```
    """

    def __init__(
        self,
        conversation_id: str,
        mode: AgentMode | str = AgentMode.CHAT,
        credentials: CredentialProvider | None = None,
    ) -> None:
        """Initialize the handle.

        Args:
            conversation_id: Conversation this agent is bound to
            mode: Agent mode (chat, build, feedback)
            credentials: Credential service consulted by initialize()
        """
        self._conversation_id = conversation_id
        self._mode = AgentMode(mode)
        self._credentials = credentials
        self._api_keys: ApiKeys | None = None
        self._messages: list[Message] = []
        self._handlers: list[MessagesHandler] = []
        self._state = AgentState.ACTIVE
        self._abort_event = asyncio.Event()

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def mode(self) -> AgentMode:
        return self._mode

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_disposed(self) -> bool:
        return self._state is AgentState.DISPOSED

    @property
    def messages(self) -> list[Message]:
        """Snapshot of the message buffer."""
        return list(self._messages)

    @property
    def api_keys(self) -> ApiKeys | None:
        return self._api_keys

    @property
    def aborted(self) -> bool:
        return self._abort_event.is_set()

    def _check_active(self) -> None:
        if self.is_disposed:
            raise AgentError(
                AgentErrorType.MESSAGE_PROCESSING_FAILED,
                "Agent has been disposed",
                self._conversation_id,
            )

    async def initialize(self) -> None:
        """Resolve provider credentials.

        Raises:
            AgentError: INITIALIZATION_FAILED if the credential lookup fails.
        """
        self._check_active()
        if self._credentials is None:
            self._api_keys = ApiKeys()
            return
        try:
            self._api_keys = ApiKeys.coerce(await self._credentials.get_all_api_keys())
        except Exception as e:
            raise AgentError(
                AgentErrorType.INITIALIZATION_FAILED,
                f"Failed to resolve API keys: {e}",
                self._conversation_id,
                cause=e,
            ) from e
        log.debug(
            "Agent %s initialized with keys %s",
            self._conversation_id,
            self._api_keys.configured(),
        )

    def subscribe(self, handler: MessagesHandler) -> Callable[[], None]:
        """Register an observer of buffer changes.

        Returns:
            Function that removes the observer again.
        """
        self._check_active()
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def _notify(self) -> None:
        snapshot = list(self._messages)
        for handler in list(self._handlers):
            await handler(snapshot)

    async def append_message(self, message: Message) -> None:
        """Append a message to the buffer and notify subscribers.

        Raises:
            AgentError: MESSAGE_PROCESSING_FAILED if the agent was disposed.
        """
        self._check_active()
        self._abort_event.clear()
        self._messages.append(message)
        await self._notify()

    async def extend_messages(self, messages: Iterable[Message]) -> None:
        """Append several messages with a single notification."""
        self._check_active()
        self._messages.extend(messages)
        await self._notify()

    def load_history(self, messages: Iterable[Message]) -> None:
        """Replace the buffer with stored history without notifying."""
        self._check_active()
        self._messages = list(messages)

    def receive_message(self, message: Message) -> None:
        """Append a message persisted by someone else, without notifying."""
        self._check_active()
        self._messages.append(message)

    def retract_message(self, message: Message) -> bool:
        """Remove a received message (matched by identity) without notifying."""
        for index, existing in enumerate(self._messages):
            if existing is message:
                del self._messages[index]
                return True
        return False

    def abort(self) -> None:
        """Signal the current operation to stop."""
        self._abort_event.set()

    def dispose(self) -> None:
        """Release the agent. Idempotent."""
        if self.is_disposed:
            return
        self._abort_event.set()
        self._handlers.clear()
        self._state = AgentState.DISPOSED

    def __repr__(self) -> str:
        return (
            f"Agent({self._conversation_id!r}, mode={self._mode.value}, "
            f"state={self._state.value}, messages={len(self._messages)})"
        )
