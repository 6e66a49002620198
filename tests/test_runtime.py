"""Tests for the AgentRelay entry point."""

from __future__ import annotations

import logging

import pytest

from agentrelay.config.schema import Config, RetryConfig, StorageConfig
from agentrelay.conversations.manager import DEFAULT_STORAGE_KEY
from agentrelay.logging import get_logger
from agentrelay.runtime import AgentRelay
from agentrelay.storage import InMemoryConversationStore
from tests.utils import RecordingWebview, StaticCredentials, create_legacy_record


class TestAgentRelay:
    """Tests for AgentRelay wiring and lifecycle."""

    @pytest.mark.asyncio
    async def test_services_require_context(self) -> None:
        relay = AgentRelay(Config())
        with pytest.raises(RuntimeError, match="context manager"):
            relay.chat

    @pytest.mark.asyncio
    async def test_hydrates_on_enter(self) -> None:
        store = InMemoryConversationStore(
            {DEFAULT_STORAGE_KEY: [create_legacy_record("old", [{"role": "user", "text": "hi"}])]}
        )

        async with AgentRelay(Config(), store=store, credentials=StaticCredentials()) as relay:
            assert relay.conversations.has_conversation("old")
            assert [c.id for c in relay.load_result.successful] == ["old"]

    @pytest.mark.asyncio
    async def test_end_to_end_messaging(self) -> None:
        webview = RecordingWebview()

        async with AgentRelay(
            Config(), webview=webview, credentials=StaticCredentials()
        ) as relay:
            a = relay.chat.create_new_conversation()
            b = relay.chat.create_new_conversation()
            await relay.chat.send_message(a, "Start")
            await relay.chat.send_message(b, "Waiting")
            await relay.chat.send_agent_message(a, b, "Handing over")

            messages = relay.conversations.get_conversation(b).messages
            agents = relay.agents

        assert [m.text for m in messages] == ["Waiting", "Handing over"]
        assert agents.is_closed
        assert agents.active_agent_count == 0
        assert webview.of_type("agent-message")

    @pytest.mark.asyncio
    async def test_yaml_store_from_config(self, tmp_path) -> None:
        path = tmp_path / "history.yaml"
        config = Config(
            storage=StorageConfig(backend="yaml", path=str(path)),
            retry=RetryConfig(max_attempts=1),
        )

        async with AgentRelay(config, credentials=StaticCredentials()) as relay:
            await relay.chat.send_message("c1", "persist to disk")

        async with AgentRelay(config, credentials=StaticCredentials()) as relay:
            conversation = relay.conversations.get_conversation("c1")

        assert [m.text for m in conversation.messages] == ["persist to disk"]

    @pytest.mark.asyncio
    async def test_default_credentials_from_environment(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        config = Config()
        config.credentials.secrets_file = str(tmp_path / "none.env")

        async with AgentRelay(config) as relay:
            agent = await relay.agents.get_or_create_agent("c1")

        assert agent.api_keys.gemini_api_key == "env-key"

    @pytest.mark.asyncio
    async def test_logging_configured_on_enter(self, monkeypatch, tmp_path) -> None:
        path = tmp_path / "relay.log"
        monkeypatch.setenv("AR_LOG", str(path))

        async with AgentRelay(Config(), credentials=StaticCredentials()) as relay:
            await relay.chat.send_message("c1", "hello")

        handlers = [h for h in get_logger().handlers if isinstance(h, logging.FileHandler)]
        assert [h.baseFilename for h in handlers] == [str(path)]
        handlers[0].flush()
        assert "Creating new agent" in path.read_text(encoding="utf-8")
