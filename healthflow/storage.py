"""Local durable key-value stores backing the persisted snapshot.

The SQLite store keeps one row per key in a ``kv_store`` table.  Backend
errors propagate as :class:`sqlalchemy.exc.SQLAlchemyError`; the persistence
adapter decides how to degrade.
"""

from __future__ import annotations

import time
from threading import Lock
from typing import Dict, Optional

from sqlalchemy import Column, Float, MetaData, String, Table, Text, create_engine, delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from healthflow.config import StorageSettings, get_storage_settings


metadata = MetaData()

kv_store = Table(
    "kv_store",
    metadata,
    Column("key", String, primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", Float, nullable=False),
)


class KeyValueStore:
    """Minimal interface shared by the snapshot backends."""

    name = "abstract"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store; contents are lost when the process exits."""

    name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SQLiteKeyValueStore(KeyValueStore):
    """SQLAlchemy-backed store, SQLite by default."""

    name = "sqlite"

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        metadata.create_all(engine)

    @classmethod
    def from_settings(cls, settings: Optional[StorageSettings] = None) -> "SQLiteKeyValueStore":
        settings = settings or get_storage_settings()
        return cls(create_engine(settings.url, **settings.engine_options()))

    @classmethod
    def in_memory(cls) -> "SQLiteKeyValueStore":
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        return cls(engine)

    def get(self, key: str) -> Optional[str]:
        with self._engine.connect() as conn:
            row = conn.execute(select(kv_store.c.value).where(kv_store.c.key == key)).first()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        now = time.time()
        with self._engine.begin() as conn:
            result = conn.execute(
                update(kv_store).where(kv_store.c.key == key).values(value=value, updated_at=now)
            )
            if result.rowcount == 0:
                conn.execute(kv_store.insert().values(key=key, value=value, updated_at=now))

    def delete(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(kv_store).where(kv_store.c.key == key))

    def dispose(self) -> None:
        self._engine.dispose()


__all__ = ["KeyValueStore", "MemoryKeyValueStore", "SQLiteKeyValueStore", "kv_store"]
