"""Conversation state persistence, migration, pagination, and titles.

The manager keeps every conversation in memory (the read path) and mirrors
the whole collection to a ConversationStore under a single key (the write
path). Writes are retried with exponential backoff and committed to memory
only after the store accepted them, so a failed save never leaves partial
state behind.

Storage layout (list under ``storage_key``, newest-created first):

    [
      {"version": 2, "id": "...", "title": "...", "timestamp": "<iso>",
       "last_updated": "<iso>", "messages": [{"role": "user", "text": "..."}]},
      ...
    ]

Version 1 records (no ``version`` key, epoch-millisecond ``timestamp``,
optional ``lastUpdated``) are migrated when read.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from agentrelay.conversations.schema import (
    SCHEMA_VERSION,
    Conversation,
    LoadAllResult,
    LoadFailure,
    Message,
    PaginatedMessages,
    Role,
    utcnow,
)
from agentrelay.errors import AgentError, AgentErrorType
from agentrelay.logging import get_logger, log_event
from agentrelay.retry import RetryPolicy
from agentrelay.storage.protocols import ConversationStore

log = get_logger("conversations")

DEFAULT_STORAGE_KEY = "conversationHistory"
DEFAULT_PAGE_SIZE = 50
MAX_TITLE_LENGTH = 50
DEFAULT_TITLE = "New Conversation"


class ConversationManager:
    """Owns all Conversation records and their persistence.

    Example:
        ```python
        manager = ConversationManager(InMemoryConversationStore())
        await manager.save_conversation("c1", [Message(Role.USER, "hello")])
        manager.get_conversation("c1").title  # "hello"
        ```
    """

    def __init__(
        self,
        store: ConversationStore,
        retry_policy: RetryPolicy | None = None,
        *,
        storage_key: str = DEFAULT_STORAGE_KEY,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_title_length: int = MAX_TITLE_LENGTH,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Key/value store conversations are mirrored to
            retry_policy: Policy for store writes; defaults to 3 attempts, 1s/2s
            storage_key: Store key holding the conversation list
            page_size: Default page size for pagination
            max_title_length: Generated titles are truncated past this length
        """
        self._store = store
        self._retry = retry_policy or RetryPolicy()
        self._storage_key = storage_key
        self._page_size = page_size
        self._max_title_length = max_title_length

        # Newest-created first, mirrors the stored list order
        self._conversations: dict[str, Conversation] = {}
        # Stored records that failed validation; written back untouched
        self._unreadable: list[Any] = []
        self._loaded = False

        # Store writes snapshot the whole collection; serialize them so a
        # slow earlier write can never land after a later one
        self._write_lock = asyncio.Lock()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    # -------------------------------------------------------------------------
    # Loading and migration
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_schema(data: Any) -> str | None:
        """Return why data is not a conversation record, or None if it is."""
        if not isinstance(data, dict):
            return "Record is not a mapping"
        if not isinstance(data.get("id"), str) or not data["id"]:
            return "Missing conversation id"
        if not isinstance(data.get("title"), str):
            return "Missing title"
        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float, str)):
            return "Missing timestamp"
        messages = data.get("messages")
        if not isinstance(messages, list):
            return "Messages is not a list"
        for message in messages:
            if not isinstance(message, dict):
                return "Message is not a mapping"
            if not isinstance(message.get("role"), str) or not message["role"]:
                return "Message role missing"
            if not isinstance(message.get("text"), str):
                return "Message text missing"
        return None

    @staticmethod
    def _parse_time(value: Any) -> datetime:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _parse_record(self, data: Any) -> tuple[Conversation, bool]:
        """Validate and migrate one stored record.

        Returns:
            (conversation, migrated) where migrated is True for legacy records.

        Raises:
            ValueError: The record is invalid or cannot be migrated.
        """
        reason = self._validate_schema(data)
        if reason:
            raise ValueError(f"Invalid conversation schema: {reason}")

        version = data.get("version", 1)
        if version not in (1, SCHEMA_VERSION):
            raise ValueError(f"Unsupported schema version: {version}")

        try:
            timestamp = self._parse_time(data["timestamp"])
            last_updated_raw = data.get("last_updated", data.get("lastUpdated"))
            last_updated = (
                self._parse_time(last_updated_raw) if last_updated_raw is not None else timestamp
            )
            messages = [Message.from_dict(m) for m in data["messages"]]
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Migration failed: {e}") from e

        conversation = Conversation(
            id=data["id"],
            title=data["title"],
            timestamp=timestamp,
            messages=messages,
            last_updated=last_updated,
        )
        return conversation, version != SCHEMA_VERSION

    def _read_store(self) -> tuple[dict[str, Conversation], list[Any], LoadAllResult, bool]:
        raw_records = self._store.get(self._storage_key, [])
        if not isinstance(raw_records, list):
            log.error("Stored conversation history is not a list, ignoring it")
            raw_records = []

        conversations: dict[str, Conversation] = {}
        unreadable: list[Any] = []
        result = LoadAllResult()
        migrated_any = False

        for raw in raw_records:
            record_id = raw.get("id") if isinstance(raw, dict) else None
            try:
                conversation, migrated = self._parse_record(raw)
            except ValueError as e:
                failed_id = record_id if isinstance(record_id, str) and record_id else "unknown"
                result.failed.append(LoadFailure(id=failed_id, error=str(e)))
                unreadable.append(raw)
                log.error("Failed to load conversation %s: %s", failed_id, e)
                continue
            if conversation.id in conversations:
                log.warning("Duplicate stored conversation %s, keeping first", conversation.id)
                continue
            migrated_any = migrated_any or migrated
            conversations[conversation.id] = conversation
            result.successful.append(conversation.copy())

        return conversations, unreadable, result, migrated_any

    def _ensure_loaded(self) -> None:
        # Lazily hydrate so the first write can never clobber stored records
        if self._loaded:
            return
        conversations, unreadable, _, _ = self._read_store()
        self._conversations = conversations
        self._unreadable = unreadable
        self._loaded = True

    async def load_all_conversations(self) -> LoadAllResult:
        """Hydrate every stored conversation, migrating legacy records.

        A corrupt record is reported in ``failed`` and never stops the
        others from loading. When legacy records were migrated the store is
        rewritten in the current schema; a failure of that write-back is
        logged and does not fail the load.

        Returns:
            LoadAllResult with loaded conversations and per-record failures.

        Raises:
            AgentError: LOAD_FAILED if the store itself cannot be read.
        """
        async with self._write_lock:
            conversations, unreadable, result, migrated_any = self._read_store()
            self._conversations = conversations
            self._unreadable = unreadable
            self._loaded = True

            if migrated_any:
                try:
                    await self._store.update(self._storage_key, self._payload(conversations))
                except Exception as e:
                    log.warning("Failed to save migrated conversations: %s", e)

        log_event(
            log,
            logging.INFO,
            "Loaded conversations",
            successful=len(result.successful),
            failed=len(result.failed),
            migrated=migrated_any,
        )
        return result

    async def restore_conversation(self, conversation_id: str) -> Conversation | None:
        """Re-hydrate one conversation from the store.

        Args:
            conversation_id: Conversation to restore

        Returns:
            The restored conversation, or None if the store has no such record.

        Raises:
            AgentError: LOAD_FAILED if the stored record is corrupt.
        """
        async with self._write_lock:
            self._ensure_loaded()
            raw_records = self._store.get(self._storage_key, [])
            if not isinstance(raw_records, list):
                raw_records = []
            raw = next(
                (r for r in raw_records if isinstance(r, dict) and r.get("id") == conversation_id),
                None,
            )
            if raw is None:
                return None
            try:
                conversation, _ = self._parse_record(raw)
            except ValueError as e:
                raise AgentError(
                    AgentErrorType.LOAD_FAILED, str(e), conversation_id, cause=e
                ) from e

            if conversation_id in self._conversations:
                self._conversations[conversation_id] = conversation
            else:
                self._conversations = {conversation_id: conversation, **self._conversations}
            self._unreadable = [
                r for r in self._unreadable
                if not (isinstance(r, dict) and r.get("id") == conversation_id)
            ]

        log.debug("Restored conversation %s from storage", conversation_id)
        return conversation.copy()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Return a copy of the in-memory conversation, or None."""
        self._ensure_loaded()
        conversation = self._conversations.get(conversation_id)
        return conversation.copy() if conversation else None

    def get_conversations(self) -> list[Conversation]:
        """All conversations, newest-created first."""
        self._ensure_loaded()
        return [c.copy() for c in self._conversations.values()]

    def has_conversation(self, conversation_id: str) -> bool:
        self._ensure_loaded()
        return conversation_id in self._conversations

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _payload(self, conversations: dict[str, Conversation]) -> list[Any]:
        payload: list[Any] = [c.to_dict() for c in conversations.values()]
        payload.extend(
            r for r in self._unreadable
            if not (isinstance(r, dict) and r.get("id") in conversations)
        )
        return payload

    async def _persist(self, conversations: dict[str, Conversation], conversation_id: str | None) -> None:
        """Write conversations to the store under the retry policy.

        Raises:
            AgentError: PERSISTENCE_FAILED once every attempt failed.
        """
        payload = self._payload(conversations)

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            log.warning(
                "Save retry attempt %d for conversation %s in %.0fms: %s",
                attempt,
                conversation_id,
                delay * 1000,
                error,
            )

        try:
            await self._retry.run(
                lambda: self._store.update(self._storage_key, payload), on_retry
            )
        except Exception as e:
            log_event(
                log,
                logging.ERROR,
                "Persisting conversation failed",
                conversationId=conversation_id,
                attempts=self._retry.max_attempts,
                error=e,
            )
            raise AgentError(
                AgentErrorType.PERSISTENCE_FAILED,
                f"Failed to persist conversation after {self._retry.max_attempts} attempts: {e}",
                conversation_id,
                cause=e,
            ) from e

    @staticmethod
    def _coerce_messages(messages: Iterable[Message | dict[str, Any]]) -> list[Message]:
        return [m if isinstance(m, Message) else Message.from_dict(m) for m in messages]

    async def _commit_locked(
        self, conversation_id: str, message_list: list[Message]
    ) -> Conversation:
        # Caller holds _write_lock
        self._ensure_loaded()
        existing = self._conversations.get(conversation_id)
        now = utcnow()
        conversation = Conversation(
            id=conversation_id,
            title=self.generate_title(message_list),
            timestamp=existing.timestamp if existing else now,
            messages=message_list,
            last_updated=now,
        )

        if existing:
            candidate = dict(self._conversations)
            candidate[conversation_id] = conversation
        else:
            candidate = {conversation_id: conversation, **self._conversations}

        await self._persist(candidate, conversation_id)
        self._conversations = candidate

        log_event(
            log,
            logging.DEBUG,
            "Conversation persisted",
            conversationId=conversation_id,
            messageCount=len(message_list),
        )
        return conversation

    async def save_conversation(
        self,
        conversation_id: str,
        messages: Iterable[Message | dict[str, Any]],
    ) -> Conversation:
        """Create or replace a conversation and persist it.

        The title is regenerated from the messages, the creation timestamp
        survives re-saves, and the message list is replaced (never appended).

        Args:
            conversation_id: Externally supplied conversation ID
            messages: Full ordered message history

        Returns:
            Copy of the committed conversation.

        Raises:
            AgentError: PERSISTENCE_FAILED if every store attempt failed; the
                in-memory state is then unchanged.
        """
        message_list = self._coerce_messages(messages)

        async with self._write_lock:
            conversation = await self._commit_locked(conversation_id, message_list)
        return conversation.copy()

    async def append_message(
        self, conversation_id: str, message: Message | dict[str, Any]
    ) -> Conversation:
        """Append one message to the committed history of a conversation.

        The current history is read under the write lock, so a save that
        is still retrying for the same conversation is never overwritten
        with an older copy.

        Raises:
            AgentError: LOAD_FAILED if the conversation does not exist,
                PERSISTENCE_FAILED if every store attempt failed.
        """
        (appended,) = self._coerce_messages([message])

        async with self._write_lock:
            self._ensure_loaded()
            existing = self._conversations.get(conversation_id)
            if existing is None:
                raise AgentError(
                    AgentErrorType.LOAD_FAILED,
                    f"Conversation {conversation_id} not found",
                    conversation_id,
                )
            conversation = await self._commit_locked(
                conversation_id, [*existing.messages, appended]
            )
        return conversation.copy()

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation from memory and storage.

        Returns:
            True if a record existed.
        """
        async with self._write_lock:
            self._ensure_loaded()
            in_unreadable = any(
                isinstance(r, dict) and r.get("id") == conversation_id for r in self._unreadable
            )
            if conversation_id not in self._conversations and not in_unreadable:
                return False

            candidate = {k: v for k, v in self._conversations.items() if k != conversation_id}
            previous_unreadable = self._unreadable
            self._unreadable = [
                r for r in self._unreadable
                if not (isinstance(r, dict) and r.get("id") == conversation_id)
            ]
            try:
                await self._persist(candidate, conversation_id)
            except AgentError:
                self._unreadable = previous_unreadable
                raise
            self._conversations = candidate

        log.info("Deleted conversation %s", conversation_id)
        return True

    async def update_title(
        self,
        conversation_id: str,
        title: str | None = None,
    ) -> Conversation | None:
        """Set a conversation's title, or regenerate it from its messages.

        Returns:
            The updated conversation, or None if it does not exist.
        """
        async with self._write_lock:
            self._ensure_loaded()
            existing = self._conversations.get(conversation_id)
            if existing is None:
                return None

            updated = existing.copy()
            updated.title = title or self.generate_title(existing.messages)
            updated.last_updated = utcnow()

            candidate = dict(self._conversations)
            candidate[conversation_id] = updated
            await self._persist(candidate, conversation_id)
            self._conversations = candidate

        return updated.copy()

    async def clear_all_conversations(self) -> None:
        """Delete every conversation, including unreadable stored records."""
        async with self._write_lock:
            previous_unreadable = self._unreadable
            self._unreadable = []
            try:
                await self._persist({}, None)
            except AgentError:
                self._unreadable = previous_unreadable
                raise
            self._conversations = {}
            self._loaded = True
        log.info("Cleared all conversations")

    # -------------------------------------------------------------------------
    # Titles and pagination
    # -------------------------------------------------------------------------

    def generate_title(self, messages: Iterable[Message]) -> str:
        """Title from the first line of the first user message."""
        first_user = next((m for m in messages if m.role is Role.USER), None)
        if first_user is None:
            return DEFAULT_TITLE

        lines = first_user.text.split("\n")
        first_line = lines[0].strip() if lines else ""
        if not first_line:
            return DEFAULT_TITLE
        if len(first_line) <= self._max_title_length:
            return first_line
        return first_line[: self._max_title_length] + "..."

    def paginate_messages(
        self,
        messages: list[Message],
        page: int = 1,
        page_size: int | None = None,
    ) -> PaginatedMessages:
        """Slice messages into a 1-based page, clamping page into range."""
        size = page_size or self._page_size
        if size < 1:
            raise ValueError("page_size must be at least 1")

        total = len(messages)
        total_pages = math.ceil(total / size)
        valid_page = max(1, min(page, total_pages or 1))
        start = (valid_page - 1) * size
        end = min(start + size, total)

        return PaginatedMessages(
            messages=list(messages[start:end]),
            page=valid_page,
            page_size=size,
            total_messages=total,
            total_pages=total_pages or 1,
            has_next_page=valid_page < total_pages,
            has_previous_page=valid_page > 1,
        )

    def get_paginated_messages(
        self,
        conversation_id: str,
        page: int = 1,
        page_size: int | None = None,
    ) -> PaginatedMessages | None:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return None
        return self.paginate_messages(conversation.messages, page, page_size)

    def needs_pagination(self, conversation_id: str, page_size: int | None = None) -> bool:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return False
        return len(conversation.messages) > (page_size or self._page_size)

    def get_total_pages(self, conversation_id: str, page_size: int | None = None) -> int:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return 0
        return math.ceil(len(conversation.messages) / (page_size or self._page_size))

    # -------------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------------

    @staticmethod
    def verify_state_integrity(original: Conversation, restored: Conversation) -> bool:
        """Compare two conversations by id, message count and (role, text).

        Volatile fields such as last_updated are ignored.
        """
        if original.id != restored.id:
            return False
        if len(original.messages) != len(restored.messages):
            return False
        return all(
            a.role == b.role and a.text == b.text
            for a, b in zip(original.messages, restored.messages)
        )
