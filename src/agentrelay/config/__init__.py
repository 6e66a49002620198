"""Configuration management for agentrelay.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/agentrelay/ or %PROGRAMDATA%)
- User-level config (~/.config/agentrelay/, ~/.agentrelay/ or %APPDATA%)
- Project-level config ($project_root/.agentrelay/)
- Environment variable overrides (highest priority)

Example usage:
    from agentrelay.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.retry.max_attempts)
"""

from agentrelay.config.loader import (
    get_config,
    load_config,
    on_config_reload,
    reload_config,
    reset_config,
)
from agentrelay.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
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
from agentrelay.config.secrets import clear_secret_cache, fetch_secret

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    "on_config_reload",
    # Schema types
    "AgentsConfig",
    "ConversationsConfig",
    "CredentialsConfig",
    "LoggingConfig",
    "MessagingConfig",
    "RetryConfig",
    "StorageConfig",
    # Secret management
    "fetch_secret",
    "clear_secret_cache",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
