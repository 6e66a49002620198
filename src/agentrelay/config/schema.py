"""Configuration schema dataclasses for agentrelay.

All fields carry defaults so partial YAML layers merge into a complete,
typed configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Settings keys whose change invalidates every live agent (provider
# selection, credentials, model choice, cloud region/profile).
DEFAULT_CRITICAL_SETTINGS: tuple[str, ...] = (
    "provider",
    "gemini_api_key",
    "aws_access_key",
    "aws_secret_key",
    "gemini_model",
    "bedrock_model",
    "aws_region",
    "aws_profile",
    "aws_use_profile",
)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class StorageConfig:
    """Conversation store configuration.

    Example config.yaml:
        storage:
          backend: yaml
          path: ~/.agentrelay/conversations.yaml
    """

    backend: str = "memory"  # "memory" or "yaml"
    path: str | None = None  # Required for the yaml backend
    storage_key: str = "conversationHistory"


@dataclass
class RetryConfig:
    """Save retry policy configuration."""

    max_attempts: int = 3
    base_delay: float = 1.0  # Seconds
    multiplier: float = 2.0
    jitter: float = 0.0  # Fraction, 0.2 = +-20%


@dataclass
class ConversationsConfig:
    """Conversation presentation defaults."""

    page_size: int = 50
    max_title_length: int = 50


@dataclass
class AgentsConfig:
    """Agent lifecycle configuration."""

    default_mode: str = "chat"
    critical_settings: list[str] = field(
        default_factory=lambda: list(DEFAULT_CRITICAL_SETTINGS)
    )


@dataclass
class MessagingConfig:
    """Agent-to-agent messaging limits."""

    max_message_length: int = 100_000


@dataclass
class CredentialsConfig:
    """Where API keys are looked up besides the environment."""

    secrets_file: str | None = None  # Default: .env.secrets in cwd


@dataclass
class Config:
    """Root configuration object."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    conversations: ConversationsConfig = field(default_factory=ConversationsConfig)
    agents: AgentsConfig = field(default_factory=AgentsConfig)
    messaging: MessagingConfig = field(default_factory=MessagingConfig)
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)

    # Unknown top-level sections are kept for extensions
    extra: dict[str, Any] = field(default_factory=dict)
