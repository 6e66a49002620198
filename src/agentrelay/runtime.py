"""AgentRelay: main entry point wiring the engine together.

Usage:
    from agentrelay import AgentRelay

    async with AgentRelay(webview=panel) as relay:
        conv_id = relay.chat.create_new_conversation()
        await relay.chat.send_message(conv_id, "Hello")
        await relay.chat.send_agent_message(conv_id, other_id, "Please review")
"""

from __future__ import annotations

from agentrelay.agents.manager import AgentManager, AgentManagerConfig
from agentrelay.agents.schema import AgentMode
from agentrelay.chat.sanitizer import InputSanitizer
from agentrelay.chat.service import ChatService
from agentrelay.config.loader import get_config
from agentrelay.config.schema import Config
from agentrelay.conversations.manager import ConversationManager
from agentrelay.conversations.schema import LoadAllResult
from agentrelay.credentials import CredentialProvider, EnvCredentialService
from agentrelay.logging import get_logger, setup_logging
from agentrelay.retry import RetryPolicy
from agentrelay.storage import ConversationStore, create_store
from agentrelay.webview import NullWebview, WebviewChannel

log = get_logger("runtime")


class AgentRelay:
    """Process-wide container for the conversation and agent services.

    Collaborators are built once on entry and injected into each manager.
    Anything not supplied is built from configuration: the store from
    ``storage``, credentials from the environment and ``.env.secrets``, and
    a webview that discards events.

    Args:
        config: Configuration; defaults to get_config()
        webview: UI event sink
        credentials: API key provider
        store: Conversation store; overrides ``config.storage``
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        webview: WebviewChannel | None = None,
        credentials: CredentialProvider | None = None,
        store: ConversationStore | None = None,
    ) -> None:
        self._config = config
        self._webview = webview
        self._credentials = credentials
        self._store = store

        self._conversations: ConversationManager | None = None
        self._agents: AgentManager | None = None
        self._chat: ChatService | None = None
        self._load_result: LoadAllResult | None = None

    async def __aenter__(self) -> AgentRelay:
        """Configure logging, build the services and hydrate stored conversations."""
        config = self._config or get_config()
        setup_logging(config.logging)

        store = self._store or create_store(config.storage)
        credentials = self._credentials or EnvCredentialService(config.credentials.secrets_file)
        webview = self._webview or NullWebview()

        self._conversations = ConversationManager(
            store,
            RetryPolicy.from_config(config.retry),
            storage_key=config.storage.storage_key,
            page_size=config.conversations.page_size,
            max_title_length=config.conversations.max_title_length,
        )
        self._agents = AgentManager(
            AgentManagerConfig(
                webview=webview,
                credentials=credentials,
                conversation_manager=self._conversations,
                critical_settings=config.agents.critical_settings,
                default_mode=AgentMode(config.agents.default_mode),
            )
        )
        self._chat = ChatService(
            self._agents,
            self._conversations,
            sanitizer=InputSanitizer(config.messaging.max_message_length),
        )

        self._load_result = await self._conversations.load_all_conversations()
        if self._load_result.failed:
            log.warning(
                "%d stored conversations could not be loaded", len(self._load_result.failed)
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Dispose every agent and drop the services."""
        if self._agents:
            await self._agents.dispose()
        self._agents = None
        self._chat = None
        self._conversations = None

    def _require(self, service: object, name: str) -> object:
        if service is None:
            raise RuntimeError(
                f"AgentRelay.{name} is only available inside the context manager. "
                "Use: async with AgentRelay() as relay: ..."
            )
        return service

    @property
    def conversations(self) -> ConversationManager:
        return self._require(self._conversations, "conversations")  # type: ignore[return-value]

    @property
    def agents(self) -> AgentManager:
        return self._require(self._agents, "agents")  # type: ignore[return-value]

    @property
    def chat(self) -> ChatService:
        return self._require(self._chat, "chat")  # type: ignore[return-value]

    @property
    def load_result(self) -> LoadAllResult | None:
        """Outcome of the hydration performed on entry."""
        return self._load_result
