"""API key lookup for AI provider credentials."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from agentrelay.config.secrets import fetch_secret

# ApiKeys field -> environment / .env.secrets variable
ENV_KEYS: dict[str, str] = {
    "gemini_api_key": "GEMINI_API_KEY",
    "aws_access_key": "AWS_ACCESS_KEY_ID",
    "aws_secret_key": "AWS_SECRET_ACCESS_KEY",
}


@dataclass(frozen=True)
class ApiKeys:
    """Provider credentials. Empty strings mean "not configured"."""

    gemini_api_key: str = ""
    aws_access_key: str = ""
    aws_secret_key: str = ""

    @classmethod
    def coerce(cls, value: ApiKeys | Mapping[str, Any] | None) -> ApiKeys:
        """Accept ApiKeys or a plain mapping (unknown keys ignored)."""
        if isinstance(value, ApiKeys):
            return value
        if value is None:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v or "") for k, v in value.items() if k in known})

    def configured(self) -> list[str]:
        """Names of keys that have a value; never the values themselves."""
        return [f.name for f in fields(self) if getattr(self, f.name)]

    def __repr__(self) -> str:
        return f"ApiKeys(configured={self.configured()})"


@runtime_checkable
class CredentialProvider(Protocol):
    """Source of provider API keys."""

    async def get_all_api_keys(self) -> ApiKeys | Mapping[str, Any]:
        ...


class EnvCredentialService:
    """Resolves API keys from the environment, then ``.env.secrets``."""

    def __init__(self, secrets_path: str | Path | None = None) -> None:
        self._secrets_path = Path(secrets_path) if secrets_path else None

    async def get_all_api_keys(self) -> ApiKeys:
        return ApiKeys(
            **{
                name: (fetch_secret(var, "", self._secrets_path) or "").strip()
                for name, var in ENV_KEYS.items()
            }
        )
