"""Secret lookup with dotenv support.

API keys are resolved from the process environment first and then from a
project-local ``.env.secrets`` file, which is parsed once and cached.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import dotenv_values

SECRETS_FILE = ".env.secrets"


@lru_cache(maxsize=4)
def _load_secrets(secrets_path: Path | None = None) -> dict[str, str | None]:
    path = secrets_path or Path(SECRETS_FILE)
    if path.exists():
        return dotenv_values(path)
    return {}


def fetch_secret(
    key: str,
    default: str | None = None,
    secrets_path: Path | None = None,
) -> str | None:
    """Fetch a secret from the environment or the secrets file.

    Environment variables win so tests can monkeypatch them.

    Args:
        key: Variable name (e.g., "GEMINI_API_KEY")
        default: Value returned when the key is found nowhere
        secrets_path: Optional explicit secrets file

    Returns:
        Secret value or default.
    """
    value = os.environ.get(key)
    if value is not None:
        return value

    secrets = _load_secrets(secrets_path)
    found = secrets.get(key)
    return found if found is not None else default


def clear_secret_cache() -> None:
    """Forget parsed secrets files (after edits, between tests)."""
    _load_secrets.cache_clear()
