"""Load and save the store snapshot as a single JSON blob.

The adapter is best effort: read, parse and write failures are logged and
counted, never raised, so a broken or missing backend only costs durability.
Individual malformed records are dropped on load while the rest of the blob
is kept.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Type

import structlog
from sqlalchemy.exc import SQLAlchemyError

from healthflow.models import (
    COLLECTION_TYPES,
    Appointment,
    Bot,
    Entity,
    MessageLog,
    Note,
    Patient,
    Provider,
)
from healthflow.observability import PERSISTENCE_FAILURES_TOTAL
from healthflow.storage import KeyValueStore

if TYPE_CHECKING:  # pragma: no cover
    from healthflow.store import Snapshot


logger = structlog.get_logger(__name__)

DEFAULT_STORAGE_KEY = "healthflow-data"
_BACKEND_ERRORS = (SQLAlchemyError, OSError)


@dataclass(frozen=True)
class PersistedState:
    """Typed contents of a persisted snapshot blob."""

    patients: Tuple[Patient, ...] = ()
    bots: Tuple[Bot, ...] = ()
    messages: Tuple[MessageLog, ...] = ()
    notes: Tuple[Note, ...] = ()
    appointments: Tuple[Appointment, ...] = ()
    settings: Dict[str, Any] = field(default_factory=dict)
    current_provider: Optional[Provider] = None


def serialize_snapshot(snapshot: "Snapshot") -> Dict[str, Any]:
    """Return the JSON-ready record for the persisted slices of ``snapshot``."""

    provider = snapshot.current_provider
    return {
        "patients": [p.to_dict() for p in snapshot.patients.values()],
        "bots": [b.to_dict() for b in snapshot.bots.values()],
        "messages": [m.to_dict() for m in snapshot.messages.values()],
        "notes": [n.to_dict() for n in snapshot.notes.values()],
        "appointments": [a.to_dict() for a in snapshot.appointments.values()],
        "settings": dict(snapshot.settings),
        "currentProvider": provider.to_dict() if provider else None,
    }


def _load_collection(name: str, cls: Type[Entity], value: Any) -> Tuple[Entity, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        logger.warning("snapshot_collection_invalid", collection=name, kind=type(value).__name__)
        return ()
    items: List[Entity] = []
    for index, record in enumerate(value):
        if not isinstance(record, Mapping):
            logger.warning("snapshot_record_skipped", collection=name, index=index)
            continue
        items.append(cls.from_dict(record))
    return tuple(items)


def deserialize_snapshot(data: Mapping[str, Any]) -> PersistedState:
    collections = {
        name: _load_collection(name, cls, data.get(name)) for name, cls in COLLECTION_TYPES.items()
    }
    settings = data.get("settings")
    if not isinstance(settings, Mapping):
        if settings is not None:
            logger.warning("snapshot_settings_invalid", kind=type(settings).__name__)
        settings = {}
    provider_data = data.get("currentProvider")
    provider = Provider.from_dict(provider_data) if isinstance(provider_data, Mapping) else None
    return PersistedState(
        patients=collections["patients"],  # type: ignore[arg-type]
        bots=collections["bots"],  # type: ignore[arg-type]
        messages=collections["messages"],  # type: ignore[arg-type]
        notes=collections["notes"],  # type: ignore[arg-type]
        appointments=collections["appointments"],  # type: ignore[arg-type]
        settings=dict(settings),
        current_provider=provider,
    )


class SnapshotPersistence:
    """Persist store snapshots into a :class:`KeyValueStore`.

    ``backend=None`` keeps the store in-memory only; every method becomes a
    no-op.  Only the most recent snapshot is ever written.
    """

    def __init__(self, backend: Optional[KeyValueStore], key: str = DEFAULT_STORAGE_KEY) -> None:
        self._backend = backend
        self.key = key

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def load(self) -> Optional[PersistedState]:
        if self._backend is None:
            return None
        try:
            raw = self._backend.get(self.key)
        except _BACKEND_ERRORS:
            PERSISTENCE_FAILURES_TOTAL.labels(stage="read").inc()
            logger.exception("snapshot_read_failed", key=self.key)
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            PERSISTENCE_FAILURES_TOTAL.labels(stage="parse").inc()
            logger.error("snapshot_load_failed", key=self.key, error=str(exc))
            return None
        if not isinstance(data, Mapping):
            PERSISTENCE_FAILURES_TOTAL.labels(stage="parse").inc()
            logger.error("snapshot_load_failed", key=self.key, error=f"expected object, got {type(data).__name__}")
            return None
        return deserialize_snapshot(data)

    def save(self, snapshot: "Snapshot") -> bool:
        if self._backend is None:
            return False
        try:
            payload = json.dumps(serialize_snapshot(snapshot))
        except (TypeError, ValueError) as exc:
            PERSISTENCE_FAILURES_TOTAL.labels(stage="serialize").inc()
            logger.error("snapshot_serialize_failed", key=self.key, error=str(exc))
            return False
        try:
            self._backend.set(self.key, payload)
        except _BACKEND_ERRORS:
            PERSISTENCE_FAILURES_TOTAL.labels(stage="write").inc()
            logger.exception("snapshot_write_failed", key=self.key)
            return False
        return True

    def clear(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.delete(self.key)
        except _BACKEND_ERRORS:
            PERSISTENCE_FAILURES_TOTAL.labels(stage="clear").inc()
            logger.exception("snapshot_clear_failed", key=self.key)


__all__ = [
    "DEFAULT_STORAGE_KEY",
    "PersistedState",
    "SnapshotPersistence",
    "serialize_snapshot",
    "deserialize_snapshot",
]
