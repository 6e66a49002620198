"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reload support
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from agentrelay.config.merge import merge_configs
from agentrelay.config.paths import get_config_paths
from agentrelay.config.schema import (
    AgentsConfig,
    Config,
    ConversationsConfig,
    CredentialsConfig,
    LoggingConfig,
    MessagingConfig,
    RetryConfig,
    StorageConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("agentrelay.config")

_cached_config: Config | None = None

_reload_callbacks: list[Callable[[Config], None]] = []

_KNOWN_SECTIONS = {
    "logging",
    "storage",
    "retry",
    "conversations",
    "agents",
    "messaging",
    "credentials",
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def env_overrides() -> dict[str, Any]:
    """Build a config layer from environment variables.

    API keys are NOT read here; they go through fetch_secret().
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("AR_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    storage_path = os.environ.get("AR_STORAGE_PATH")
    if storage_path:
        overrides["storage"] = {"backend": "yaml", "path": storage_path}

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict into the typed Config dataclass."""
    log_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    storage_data = _section(data, "storage")
    storage = StorageConfig(
        backend=storage_data.get("backend", "memory"),
        path=storage_data.get("path"),
        storage_key=storage_data.get("storage_key", "conversationHistory"),
    )

    retry_data = _section(data, "retry")
    retry = RetryConfig(
        max_attempts=int(retry_data.get("max_attempts", 3)),
        base_delay=float(retry_data.get("base_delay", 1.0)),
        multiplier=float(retry_data.get("multiplier", 2.0)),
        jitter=float(retry_data.get("jitter", 0.0)),
    )

    conv_data = _section(data, "conversations")
    conversations = ConversationsConfig(
        page_size=int(conv_data.get("page_size", 50)),
        max_title_length=int(conv_data.get("max_title_length", 50)),
    )

    agents_data = _section(data, "agents")
    agents = AgentsConfig(default_mode=agents_data.get("default_mode", "chat"))
    critical = agents_data.get("critical_settings")
    if isinstance(critical, list):
        agents.critical_settings = [s for s in critical if isinstance(s, str)]

    messaging_data = _section(data, "messaging")
    messaging = MessagingConfig(
        max_message_length=int(messaging_data.get("max_message_length", 100_000)),
    )

    credentials_data = _section(data, "credentials")
    credentials = CredentialsConfig(secrets_file=credentials_data.get("secrets_file"))

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        logging=logging_config,
        storage=storage,
        retry=retry,
        conversations=conversations,
        agents=agents,
        messaging=messaging,
        credentials=credentials,
        extra=extra,
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($project_root/.agentrelay/config.yaml)
    3. User config
    4. System config

    Args:
        project_root: Project directory for project-level config.
        reload: Force reload even if cached.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    layers: list[dict[str, Any]] = []
    for path in get_config_paths(project_root):
        layer = load_yaml_file(path)
        if layer:
            _log.debug("Loaded config from %s", path)
            layers.append(layer)

    layers.append(env_overrides())

    config = dict_to_config(merge_configs(*layers))

    # Only the global (project-less) config is cached
    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config (tests, forced reloads)."""
    global _cached_config
    _cached_config = None


def reload_config(project_root: str | None = None) -> Config:
    """Reload config from files and notify registered callbacks."""
    config = load_config(project_root=project_root, reload=True)

    for callback in list(_reload_callbacks):
        try:
            callback(config)
        except Exception as e:
            _log.warning("Config reload callback error: %s", e)

    return config


def on_config_reload(callback: Callable[[Config], None]) -> Callable[[], None]:
    """Register a reload callback; returns a function that unregisters it."""
    _reload_callbacks.append(callback)

    def unregister() -> None:
        if callback in _reload_callbacks:
            _reload_callbacks.remove(callback)

    return unregister
