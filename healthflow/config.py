"""Environment-driven configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from platformdirs import user_data_dir

from healthflow.key_manager import APP_NAME, get_api_key


DEFAULT_MODEL = "gpt-4"
DEFAULT_REQUESTS_PER_MINUTE = 60
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_DB_FILENAME = "healthflow.db"


@dataclass(frozen=True)
class AISettings:
    """Resolved configuration for the AI integration layer."""

    api_key: Optional[str] = field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    base_url: Optional[str] = None

    def missing(self) -> List[str]:
        """Return the names of required settings that are not configured."""

        problems: List[str] = []
        if not (self.api_key or "").strip():
            problems.append("OPENAI_API_KEY")
        if not (self.model or "").strip():
            problems.append("OPENAI_MODEL")
        return problems

    @property
    def is_complete(self) -> bool:
        return not self.missing()


@dataclass(frozen=True)
class StorageSettings:
    """Location of the local key-value store backing the snapshot."""

    url: str
    echo: bool = False

    def engine_options(self) -> Dict[str, object]:
        options: Dict[str, object] = {"echo": self.echo}
        if self.is_sqlite:
            options["connect_args"] = {"check_same_thread": False}
        return options

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


def _get_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


def _get_float_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number; got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_ai_settings() -> AISettings:
    """Return the AI settings derived from the environment and keyring."""

    limit = _get_int_env("RATE_LIMIT_REQUESTS_PER_MINUTE")
    if limit is None or limit <= 0:
        limit = DEFAULT_REQUESTS_PER_MINUTE
    timeout = _get_float_env("OPENAI_TIMEOUT_SECONDS")
    if timeout is None or timeout <= 0:
        timeout = DEFAULT_TIMEOUT_SECONDS
    return AISettings(
        api_key=get_api_key(),
        model=os.getenv("OPENAI_MODEL", "").strip() or DEFAULT_MODEL,
        requests_per_minute=limit,
        timeout_seconds=timeout,
        base_url=os.getenv("OPENAI_BASE_URL") or None,
    )


def _default_sqlite_path() -> Path:
    data_dir = Path(user_data_dir(APP_NAME, APP_NAME))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / DEFAULT_DB_FILENAME


def _normalise_sqlite_path(path: str | os.PathLike[str]) -> Path:
    resolved = Path(path).expanduser()
    if resolved.is_dir():
        resolved = resolved / DEFAULT_DB_FILENAME
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """Return the key-value store location derived from the environment."""

    url = os.getenv("HEALTHFLOW_DATABASE_URL")
    if url:
        return StorageSettings(url=url)

    path_override = os.getenv("HEALTHFLOW_DB_PATH")
    if path_override:
        db_path = _normalise_sqlite_path(path_override)
    else:
        db_path = _default_sqlite_path()
    return StorageSettings(url=f"sqlite:///{db_path}")


__all__ = [
    "AISettings",
    "StorageSettings",
    "get_ai_settings",
    "get_storage_settings",
    "DEFAULT_MODEL",
    "DEFAULT_REQUESTS_PER_MINUTE",
]
