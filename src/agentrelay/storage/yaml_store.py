"""YAML-file conversation store.

All keys live in a single YAML mapping on disk:

    conversationHistory:
      - version: 2
        id: conv_1718000000000_ab12cd3
        title: Plan the release
        ...

Writes are atomic (temp file + rename) and guarded by a sibling ``.lock``
file so several processes can share one store.

Strings holding carriage returns, NEL or Unicode line and paragraph
separators are written double-quoted so they reload unchanged. A file that
cannot be parsed raises ``LOAD_FAILED`` and is never overwritten.
"""

from __future__ import annotations

import asyncio
import copy
import errno
import os
from pathlib import Path
from typing import Any, TypeVar

import yaml
from filelock import FileLock

from agentrelay.errors import AgentError, AgentErrorType
from agentrelay.logging import get_logger

log = get_logger("storage")

T = TypeVar("T")

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}

# Break characters that plain and single-quoted scalars fold or normalize
_FOLDED_BREAKS = frozenset("\r\x85\u2028\u2029")


class _VerbatimDumper(yaml.SafeDumper):
    """SafeDumper that double-quotes strings the other styles would alter."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if not _FOLDED_BREAKS.isdisjoint(data):
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style='"')
    return dumper.represent_str(data)


_VerbatimDumper.add_representer(str, _represent_str)


class YamlConversationStore:
    """Conversation store persisted to one YAML file."""

    def __init__(self, path: str | Path, lock_timeout: float = 10.0) -> None:
        """Initialize the store.

        Args:
            path: YAML file path; parent directories are created on first write.
            lock_timeout: Seconds to wait for the inter-process file lock.
        """
        self._path = Path(path).expanduser()
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._lock_timeout = lock_timeout

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            log.error("Unreadable conversation store %s: %s", self._path, e)
            raise AgentError(
                AgentErrorType.LOAD_FAILED,
                f"Conversation store {self._path} cannot be parsed",
                cause=e,
            ) from e
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: T) -> Any | T:
        if not self._path.exists():
            return default
        with FileLock(self._lock_path, timeout=self._lock_timeout):
            data = self._load()
        if key not in data:
            return default
        return data[key]

    def _write(self, key: str, value: Any) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_name(self._path.name + ".tmp")
        with FileLock(self._lock_path, timeout=self._lock_timeout):
            data = self._load()
            data[key] = value
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    yaml.dump(
                        data,
                        f,
                        Dumper=_VerbatimDumper,
                        default_flow_style=False,
                        allow_unicode=True,
                        sort_keys=False,
                    )
                os.replace(temp_path, self._path)
            except OSError as e:
                if temp_path.exists():
                    temp_path.unlink()
                if e.errno in _QUOTA_ERRNOS:
                    raise AgentError(
                        AgentErrorType.STORAGE_QUOTA_EXCEEDED,
                        f"No space left writing {self._path}",
                        cause=e,
                    ) from e
                raise
        log.debug("Wrote key %s to %s", key, self._path)

    async def update(self, key: str, value: Any) -> None:
        # Snapshot before leaving the event loop thread
        snapshot = copy.deepcopy(value)
        await asyncio.to_thread(self._write, key, snapshot)
