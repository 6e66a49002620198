"""Tests for the Agent handle."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from agentrelay.agents.agent import Agent
from agentrelay.agents.schema import AgentCapability, AgentMode, AgentState
from agentrelay.credentials import ApiKeys
from agentrelay.errors import AgentError, AgentErrorType
from tests.utils import StaticCredentials, create_message


class TestAgentInit:
    """Tests for construction and initialize()."""

    def test_defaults(self) -> None:
        agent = Agent("c1")
        assert agent.conversation_id == "c1"
        assert agent.mode is AgentMode.CHAT
        assert agent.state is AgentState.ACTIVE
        assert agent.messages == []

    def test_string_mode(self) -> None:
        assert Agent("c1", "build").mode is AgentMode.BUILD

    @pytest.mark.asyncio
    async def test_initialize_resolves_keys(self) -> None:
        credentials = StaticCredentials(ApiKeys(gemini_api_key="g"))
        agent = Agent("c1", credentials=credentials)

        await agent.initialize()

        assert agent.api_keys.configured() == ["gemini_api_key"]
        assert credentials.calls == 1

    @pytest.mark.asyncio
    async def test_initialize_accepts_mapping(self) -> None:
        credentials = AsyncMock()
        credentials.get_all_api_keys = AsyncMock(return_value={"aws_access_key": "a"})
        agent = Agent("c1", credentials=credentials)

        await agent.initialize()

        assert agent.api_keys == ApiKeys(aws_access_key="a")

    @pytest.mark.asyncio
    async def test_initialize_failure(self) -> None:
        credentials = AsyncMock()
        credentials.get_all_api_keys = AsyncMock(side_effect=RuntimeError("vault locked"))
        agent = Agent("c1", credentials=credentials)

        with pytest.raises(AgentError) as exc_info:
            await agent.initialize()

        assert exc_info.value.error_type is AgentErrorType.INITIALIZATION_FAILED
        assert exc_info.value.conversation_id == "c1"


class TestAgentMessages:
    """Tests for the message buffer and its observers."""

    @pytest.mark.asyncio
    async def test_append_notifies_with_full_snapshot(self) -> None:
        agent = Agent("c1")
        handler = AsyncMock()
        agent.subscribe(handler)

        await agent.append_message(create_message("user", "one"))
        await agent.append_message(create_message("model", "two"))

        snapshot = handler.await_args_list[-1].args[0]
        assert [m.text for m in snapshot] == ["one", "two"]
        assert handler.await_count == 2

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self) -> None:
        agent = Agent("c1")
        handler = AsyncMock()
        agent.subscribe(handler)

        await agent.append_message(create_message("user", "one"))
        handler.await_args.args[0].clear()

        assert len(agent.messages) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        agent = Agent("c1")
        handler = AsyncMock()
        unsubscribe = agent.subscribe(handler)

        unsubscribe()
        unsubscribe()
        await agent.append_message(create_message("user", "one"))

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_load_history_does_not_notify(self) -> None:
        agent = Agent("c1")
        handler = AsyncMock()
        agent.subscribe(handler)

        agent.load_history([create_message("user", "old")])

        assert [m.text for m in agent.messages] == ["old"]
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_receive_and_retract_do_not_notify(self) -> None:
        agent = Agent("c1")
        agent.load_history([create_message("user", "old")])
        handler = AsyncMock()
        agent.subscribe(handler)
        delivered = create_message("user", "same text")
        lookalike = create_message("user", "same text")

        agent.receive_message(delivered)
        assert [m.text for m in agent.messages] == ["old", "same text"]

        assert not agent.retract_message(lookalike)
        assert agent.retract_message(delivered)
        assert [m.text for m in agent.messages] == ["old"]
        handler.assert_not_awaited()

    def test_receive_after_dispose_raises(self) -> None:
        agent = Agent("c1")
        agent.dispose()

        with pytest.raises(AgentError) as exc_info:
            agent.receive_message(create_message("user", "late"))
        assert exc_info.value.error_type is AgentErrorType.MESSAGE_PROCESSING_FAILED

    @pytest.mark.asyncio
    async def test_extend_notifies_once(self) -> None:
        agent = Agent("c1")
        handler = AsyncMock()
        agent.subscribe(handler)

        await agent.extend_messages([create_message("user", "a"), create_message("model", "b")])

        handler.assert_awaited_once()


class TestAgentDispose:
    """Tests for abort() and dispose()."""

    def test_abort(self) -> None:
        agent = Agent("c1")
        assert not agent.aborted
        agent.abort()
        assert agent.aborted

    @pytest.mark.asyncio
    async def test_append_clears_abort(self) -> None:
        agent = Agent("c1")
        agent.abort()
        await agent.append_message(create_message("user", "again"))
        assert not agent.aborted

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent_and_final(self) -> None:
        agent = Agent("c1")
        handler = AsyncMock()
        agent.subscribe(handler)

        agent.dispose()
        agent.dispose()

        assert agent.is_disposed
        assert agent.aborted
        with pytest.raises(AgentError) as exc_info:
            await agent.append_message(create_message("user", "late"))
        assert exc_info.value.error_type is AgentErrorType.MESSAGE_PROCESSING_FAILED
        handler.assert_not_awaited()


class TestAgentCapability:
    """Tests for AgentCapability."""

    def test_to_dict(self) -> None:
        capability = AgentCapability("review", "Reviews code", ["diff"])
        assert capability.to_dict() == {
            "name": "review",
            "description": "Reviews code",
            "tools": ["diff"],
        }
