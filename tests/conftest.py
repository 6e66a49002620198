"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from agentrelay.agents.manager import AgentManager, AgentManagerConfig
from agentrelay.chat.service import ChatService
from agentrelay.config import reset_config
from agentrelay.config.secrets import clear_secret_cache
from agentrelay.conversations.manager import ConversationManager
from agentrelay.logging import reset_logging
from agentrelay.retry import RetryPolicy
from tests.utils import FlakyStore, RecordingSleep, RecordingWebview, StaticCredentials


@pytest.fixture(autouse=True)
def _isolate_global_state():
    """Drop cached config, secrets and logging handlers between tests."""
    reset_config()
    clear_secret_cache()
    yield
    reset_config()
    clear_secret_cache()
    reset_logging()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def conversation_manager(store, fake_sleep) -> ConversationManager:
    return ConversationManager(store, RetryPolicy(sleep=fake_sleep))


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials()


@pytest.fixture
def webview() -> RecordingWebview:
    return RecordingWebview()


@pytest.fixture
def agent_manager(conversation_manager, credentials, webview) -> AgentManager:
    return AgentManager(
        AgentManagerConfig(
            webview=webview,
            credentials=credentials,
            conversation_manager=conversation_manager,
        )
    )


@pytest.fixture
def chat_service(agent_manager, conversation_manager) -> ChatService:
    return ChatService(agent_manager, conversation_manager, session_id="session-test")


@pytest.fixture
def agentrelay_logs(caplog):
    """caplog capturing every agentrelay record down to TRACE."""
    caplog.set_level(1, logger="agentrelay")
    return caplog
