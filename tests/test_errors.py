"""Tests for the agent error taxonomy."""

from __future__ import annotations

import pytest

from agentrelay.errors import (
    TROUBLESHOOTING,
    USER_MESSAGES,
    AgentError,
    AgentErrorType,
    is_agent_error,
    wrap_as_agent_error,
)


class TestAgentError:
    """Tests for AgentError construction and formatting."""

    @pytest.mark.parametrize("error_type", list(AgentErrorType))
    def test_every_type_has_user_message(self, error_type) -> None:
        error = AgentError(error_type, "boom")
        assert error.user_message == USER_MESSAGES[error_type]
        assert isinstance(error.troubleshooting, list)

    def test_troubleshooting_is_a_copy(self) -> None:
        error = AgentError(AgentErrorType.PERSISTENCE_FAILED, "boom")
        error.troubleshooting.append("extra")
        assert "extra" not in TROUBLESHOOTING[AgentErrorType.PERSISTENCE_FAILED]

    def test_types_without_steps_have_empty_list(self) -> None:
        error = AgentError(AgentErrorType.AGENT_UNRESPONSIVE, "stuck")
        assert error.troubleshooting == []
        assert "Troubleshooting" not in error.user_friendly_message()

    def test_formatted_message_includes_context(self) -> None:
        cause = OSError("disk full")
        error = AgentError(AgentErrorType.PERSISTENCE_FAILED, "save failed", "conv-1", cause)

        formatted = error.formatted_message()

        assert formatted.startswith("[PERSISTENCE_FAILED] save failed")
        assert "(Conversation: conv-1)" in formatted
        assert "Caused by: disk full" in formatted

    def test_cause_is_chained(self) -> None:
        cause = ValueError("bad")
        error = AgentError(AgentErrorType.LOAD_FAILED, "load", cause=cause)
        assert error.__cause__ is cause

    def test_user_friendly_message_numbers_steps(self) -> None:
        error = AgentError(AgentErrorType.NETWORK_ERROR, "timeout")
        message = error.user_friendly_message()
        assert message.startswith(USER_MESSAGES[AgentErrorType.NETWORK_ERROR])
        assert "1. Check your internet connection" in message

    def test_to_dict(self) -> None:
        error = AgentError(
            AgentErrorType.UNAUTHORIZED, "nope", "conv-2", RuntimeError("denied")
        )
        data = error.to_dict()
        assert data["type"] == "UNAUTHORIZED"
        assert data["conversation_id"] == "conv-2"
        assert data["cause"] == {"name": "RuntimeError", "message": "denied"}


class TestWrapAsAgentError:
    """Tests for wrap_as_agent_error()."""

    def test_agent_error_is_unchanged(self) -> None:
        original = AgentError(AgentErrorType.UNAUTHORIZED, "nope")
        assert wrap_as_agent_error(original, AgentErrorType.COMMUNICATION_FAILED) is original

    def test_other_errors_are_wrapped(self) -> None:
        cause = KeyError("missing")
        wrapped = wrap_as_agent_error(cause, AgentErrorType.COMMUNICATION_FAILED, "conv-3")
        assert wrapped.error_type is AgentErrorType.COMMUNICATION_FAILED
        assert wrapped.conversation_id == "conv-3"
        assert wrapped.cause is cause

    def test_is_agent_error(self) -> None:
        assert is_agent_error(AgentError(AgentErrorType.NETWORK_ERROR, "x"))
        assert not is_agent_error(RuntimeError("x"))
