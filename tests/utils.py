"""Shared test utilities for agentrelay tests."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from agentrelay.conversations.schema import Message, Role
from agentrelay.credentials import ApiKeys
from agentrelay.storage.memory import InMemoryConversationStore


def create_message(role: str, text: str) -> Message:
    """Create a Message from plain strings.

    Args:
        role: Message role ("user", "model", "error")
        text: Message text

    Returns:
        Message instance
    """
    return Message(role=Role(role), text=text)


def create_legacy_record(
    conversation_id: str,
    messages: list[dict[str, Any]],
    timestamp_ms: int = 1_700_000_000_000,
    title: str = "Legacy",
) -> dict[str, Any]:
    """Create a version 1 stored record (epoch milliseconds, no version key)."""
    return {
        "id": conversation_id,
        "title": title,
        "timestamp": timestamp_ms,
        "lastUpdated": timestamp_ms + 1000,
        "messages": messages,
    }


def epoch_ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyStore(InMemoryConversationStore):
    """In-memory store whose first ``failures`` writes raise OSError.

    ``failures=-1`` makes every write fail.
    """

    def __init__(self, failures: int = 0, initial: dict[str, Any] | None = None) -> None:
        super().__init__(initial)
        self.failures = failures
        self.attempts = 0

    async def update(self, key: str, value: Any) -> None:
        self.attempts += 1
        if self.failures != 0:
            if self.failures > 0:
                self.failures -= 1
            raise OSError("storage unavailable")
        await super().update(key, value)


class StaticCredentials:
    """Credential provider returning fixed keys."""

    def __init__(self, keys: ApiKeys | None = None) -> None:
        self.keys = keys or ApiKeys(gemini_api_key="test-key")
        self.calls = 0

    async def get_all_api_keys(self) -> ApiKeys:
        self.calls += 1
        return self.keys


class RecordingWebview:
    """Webview that keeps every posted payload."""

    def __init__(self) -> None:
        self.payloads: list[dict[str, Any]] = []

    def post_message(self, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [p for p in self.payloads if p.get("type") == event_type]


def log_events(caplog: Any, name: str | None = None) -> list[logging.LogRecord]:
    """Structured log_event records, optionally filtered by event name."""
    return [
        r for r in caplog.records
        if hasattr(r, "event") and (name is None or r.event == name)
    ]


class GatedSleep:
    """Retry sleep that parks the caller until ``release`` is set."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.entered.set()
        await self.release.wait()
