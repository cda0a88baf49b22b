import os
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

# Ensure the repository root is on sys.path so tests can import the healthflow package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from healthflow import config, key_manager, openai_client
from healthflow.config import AISettings
from healthflow.notifications import ScheduledCall, Scheduler
from healthflow.persistence import SnapshotPersistence
from healthflow.storage import MemoryKeyValueStore
from healthflow.store import Store


FIXED_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "OPENAI_TIMEOUT_SECONDS",
    "RATE_LIMIT_REQUESTS_PER_MINUTE",
    "HEALTHFLOW_DATABASE_URL",
    "HEALTHFLOW_DB_PATH",
    "USE_OFFLINE_MODEL",
)


class _ManualCall(ScheduledCall):
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler driven by a virtual clock advanced explicitly by tests."""

    def __init__(self) -> None:
        self.now = 0.0
        self._pending: List[Tuple[float, Callable[[], None], _ManualCall]] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        handle = _ManualCall()
        self._pending.append((self.now + delay, callback, handle))
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [entry for entry in self._pending if entry[0] <= self.now]
        self._pending = [entry for entry in self._pending if entry[0] > self.now]
        for _, callback, handle in sorted(due, key=lambda entry: entry[0]):
            if not handle.cancelled:
                callback()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._pending if not handle.cancelled)


class FakeTransport:
    """Stands in for ``openai_client.call_openai`` and records every call."""

    def __init__(self, replies: Optional[List[str]] = None, error: Optional[BaseException] = None) -> None:
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, messages, **kwargs):
        self.calls.append({"messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return "stub reply"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(key_manager.keyring, "get_password", lambda *a, **k: None)
    config.get_ai_settings.cache_clear()
    config.get_storage_settings.cache_clear()
    openai_client.reset_clients()
    yield
    config.get_ai_settings.cache_clear()
    config.get_storage_settings.cache_clear()
    openai_client.reset_clients()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def persistence(kv) -> SnapshotPersistence:
    return SnapshotPersistence(kv)


@pytest.fixture
def store(persistence, scheduler) -> Store:
    return Store(persistence=persistence, scheduler=scheduler, clock=lambda: FIXED_NOW)


@pytest.fixture
def ai_settings() -> AISettings:
    return AISettings(api_key="test-key", model="gpt-4", requests_per_minute=60)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW
