"""Reducer-driven application state with persistence and derived analytics.

The canonical state is an immutable :class:`Snapshot`.  Every change goes
through :meth:`Store.dispatch` with one of the actions from
:mod:`healthflow.actions`; :func:`reduce` is a pure function of the previous
snapshot and the action.  After each committed change the store

1. recomputes analytics when an entity collection changed,
2. saves the persisted slices through :class:`SnapshotPersistence`,
3. notifies subscribers with the new snapshot.

Actions dispatched while another one is being applied (from a subscriber or
a notification timer) are queued and run afterwards, so no two actions ever
interleave.
"""

from __future__ import annotations

import copy
import dataclasses
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union

import structlog

from healthflow.actions import (
    Action,
    AddAppointment,
    AddBot,
    AddMessage,
    AddNote,
    AddNotification,
    AddPatient,
    ClearError,
    DeleteAppointment,
    DeleteBot,
    DeleteNote,
    DeletePatient,
    RemoveNotification,
    ResetState,
    SetAppointments,
    SetBots,
    SetCurrentProvider,
    SetError,
    SetLoading,
    SetMessages,
    SetNotes,
    SetPatients,
    UpdateAnalytics,
    UpdateAppointment,
    UpdateBot,
    UpdateMessage,
    UpdateNote,
    UpdatePatient,
    UpdateSettings,
)
from healthflow.analytics import Analytics, compute_analytics, time_saved_seconds
from healthflow.models import Appointment, Bot, Entity, MessageLog, Note, Patient, Provider
from healthflow.notifications import (
    AUTO_DISMISS_SECONDS,
    NOTIFICATION_TYPES,
    Notification,
    ScheduledCall,
    Scheduler,
    TimerScheduler,
)
from healthflow.persistence import SnapshotPersistence
from healthflow.time_utils import utc_now


logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=Entity)
Listener = Callable[["Snapshot"], None]

ENTITY_SLICES = ("patients", "bots", "messages", "notes", "appointments")
ANALYTICS_SLICES = ("patients", "messages", "notes", "appointments")
PERSISTED_SLICES = ENTITY_SLICES + ("settings", "current_provider")


def default_settings() -> Dict[str, Any]:
    return {
        "theme": "light",
        "language": "en",
        "notifications": {"email": True, "sms": False, "push": True},
    }


@dataclass(frozen=True)
class Snapshot:
    """One immutable version of the application state.

    Collections map entity id to entity and keep insertion order.  Reducers
    never mutate them; a changed collection is always a new dict.
    """

    current_provider: Optional[Provider] = None
    patients: Dict[str, Patient] = field(default_factory=dict)
    bots: Dict[str, Bot] = field(default_factory=dict)
    messages: Dict[str, MessageLog] = field(default_factory=dict)
    notes: Dict[str, Note] = field(default_factory=dict)
    appointments: Dict[str, Appointment] = field(default_factory=dict)
    loading: bool = False
    error: Optional[str] = None
    notifications: Tuple[Notification, ...] = ()
    settings: Dict[str, Any] = field(default_factory=default_settings)
    analytics: Analytics = field(default_factory=Analytics)
    version: int = 0


# ---------------------------------------------------------------------------
# Collection helpers
# ---------------------------------------------------------------------------


def _keyed(items: Tuple[E, ...]) -> Dict[str, E]:
    collection: Dict[str, E] = {}
    for item in items:
        if item.id in collection:  # type: ignore[attr-defined]
            logger.warning("duplicate_entity_id", entity=type(item).__name__, id=item.id)  # type: ignore[attr-defined]
        collection[item.id] = item  # type: ignore[attr-defined]
    return collection


def _upsert(collection: Dict[str, E], entity: E) -> Dict[str, E]:
    updated = dict(collection)
    updated[entity.id] = entity  # type: ignore[attr-defined]
    return updated


def _without(collection: Dict[str, E], entity_id: str) -> Optional[Dict[str, E]]:
    if entity_id not in collection:
        return None
    updated = dict(collection)
    del updated[entity_id]
    return updated


def _keep_reminder_sent(existing: Optional[Appointment], incoming: Appointment) -> Appointment:
    if existing is not None and existing.reminder_sent and not incoming.reminder_sent:
        logger.warning("reminder_sent_reset_ignored", appointment_id=incoming.id)
        return dataclasses.replace(incoming, reminder_sent=True)
    return incoming


# ---------------------------------------------------------------------------
# Reducers
# ---------------------------------------------------------------------------

Reducer = Callable[[Snapshot, Any], Snapshot]
_REDUCERS: Dict[Type[Action], Reducer] = {}


def _reduces(*action_types: Type[Action]) -> Callable[[Reducer], Reducer]:
    def register(func: Reducer) -> Reducer:
        for action_type in action_types:
            _REDUCERS[action_type] = func
        return func

    return register


@_reduces(SetCurrentProvider)
def _set_current_provider(snapshot: Snapshot, action: SetCurrentProvider) -> Snapshot:
    if action.provider == snapshot.current_provider:
        return snapshot
    return dataclasses.replace(snapshot, current_provider=action.provider)


@_reduces(ResetState)
def _reset_state(snapshot: Snapshot, action: ResetState) -> Snapshot:
    return Snapshot()


@_reduces(SetPatients)
def _set_patients(snapshot: Snapshot, action: SetPatients) -> Snapshot:
    return dataclasses.replace(snapshot, patients=_keyed(action.patients))


@_reduces(AddPatient)
def _add_patient(snapshot: Snapshot, action: AddPatient) -> Snapshot:
    return dataclasses.replace(snapshot, patients=_upsert(snapshot.patients, action.patient))


@_reduces(UpdatePatient)
def _update_patient(snapshot: Snapshot, action: UpdatePatient) -> Snapshot:
    if action.patient.id not in snapshot.patients:
        return snapshot
    return dataclasses.replace(snapshot, patients=_upsert(snapshot.patients, action.patient))


@_reduces(DeletePatient)
def _delete_patient(snapshot: Snapshot, action: DeletePatient) -> Snapshot:
    patients = _without(snapshot.patients, action.patient_id)
    return snapshot if patients is None else dataclasses.replace(snapshot, patients=patients)


@_reduces(SetBots)
def _set_bots(snapshot: Snapshot, action: SetBots) -> Snapshot:
    return dataclasses.replace(snapshot, bots=_keyed(action.bots))


@_reduces(AddBot)
def _add_bot(snapshot: Snapshot, action: AddBot) -> Snapshot:
    return dataclasses.replace(snapshot, bots=_upsert(snapshot.bots, action.bot))


@_reduces(UpdateBot)
def _update_bot(snapshot: Snapshot, action: UpdateBot) -> Snapshot:
    if action.bot.id not in snapshot.bots:
        return snapshot
    return dataclasses.replace(snapshot, bots=_upsert(snapshot.bots, action.bot))


@_reduces(DeleteBot)
def _delete_bot(snapshot: Snapshot, action: DeleteBot) -> Snapshot:
    bots = _without(snapshot.bots, action.bot_id)
    return snapshot if bots is None else dataclasses.replace(snapshot, bots=bots)


@_reduces(SetMessages)
def _set_messages(snapshot: Snapshot, action: SetMessages) -> Snapshot:
    return dataclasses.replace(snapshot, messages=_keyed(action.messages))


@_reduces(AddMessage)
def _add_message(snapshot: Snapshot, action: AddMessage) -> Snapshot:
    return dataclasses.replace(snapshot, messages=_upsert(snapshot.messages, action.message))


@_reduces(UpdateMessage)
def _update_message(snapshot: Snapshot, action: UpdateMessage) -> Snapshot:
    if action.message.id not in snapshot.messages:
        return snapshot
    return dataclasses.replace(snapshot, messages=_upsert(snapshot.messages, action.message))


@_reduces(SetNotes)
def _set_notes(snapshot: Snapshot, action: SetNotes) -> Snapshot:
    return dataclasses.replace(snapshot, notes=_keyed(action.notes))


@_reduces(AddNote)
def _add_note(snapshot: Snapshot, action: AddNote) -> Snapshot:
    return dataclasses.replace(snapshot, notes=_upsert(snapshot.notes, action.note))


@_reduces(UpdateNote)
def _update_note(snapshot: Snapshot, action: UpdateNote) -> Snapshot:
    if action.note.id not in snapshot.notes:
        return snapshot
    return dataclasses.replace(snapshot, notes=_upsert(snapshot.notes, action.note))


@_reduces(DeleteNote)
def _delete_note(snapshot: Snapshot, action: DeleteNote) -> Snapshot:
    notes = _without(snapshot.notes, action.note_id)
    return snapshot if notes is None else dataclasses.replace(snapshot, notes=notes)


@_reduces(SetAppointments)
def _set_appointments(snapshot: Snapshot, action: SetAppointments) -> Snapshot:
    return dataclasses.replace(snapshot, appointments=_keyed(action.appointments))


@_reduces(AddAppointment)
def _add_appointment(snapshot: Snapshot, action: AddAppointment) -> Snapshot:
    existing = snapshot.appointments.get(action.appointment.id)
    appointment = _keep_reminder_sent(existing, action.appointment)
    return dataclasses.replace(snapshot, appointments=_upsert(snapshot.appointments, appointment))


@_reduces(UpdateAppointment)
def _update_appointment(snapshot: Snapshot, action: UpdateAppointment) -> Snapshot:
    existing = snapshot.appointments.get(action.appointment.id)
    if existing is None:
        return snapshot
    appointment = _keep_reminder_sent(existing, action.appointment)
    return dataclasses.replace(snapshot, appointments=_upsert(snapshot.appointments, appointment))


@_reduces(DeleteAppointment)
def _delete_appointment(snapshot: Snapshot, action: DeleteAppointment) -> Snapshot:
    appointments = _without(snapshot.appointments, action.appointment_id)
    return snapshot if appointments is None else dataclasses.replace(snapshot, appointments=appointments)


@_reduces(SetLoading)
def _set_loading(snapshot: Snapshot, action: SetLoading) -> Snapshot:
    if snapshot.loading == bool(action.loading):
        return snapshot
    return dataclasses.replace(snapshot, loading=bool(action.loading))


@_reduces(SetError)
def _set_error(snapshot: Snapshot, action: SetError) -> Snapshot:
    return dataclasses.replace(snapshot, error=action.error, loading=False)


@_reduces(ClearError)
def _clear_error(snapshot: Snapshot, action: ClearError) -> Snapshot:
    if snapshot.error is None:
        return snapshot
    return dataclasses.replace(snapshot, error=None)


@_reduces(AddNotification)
def _add_notification(snapshot: Snapshot, action: AddNotification) -> Snapshot:
    kept = tuple(n for n in snapshot.notifications if n.id != action.notification.id)
    return dataclasses.replace(snapshot, notifications=kept + (action.notification,))


@_reduces(RemoveNotification)
def _remove_notification(snapshot: Snapshot, action: RemoveNotification) -> Snapshot:
    kept = tuple(n for n in snapshot.notifications if n.id != action.notification_id)
    if len(kept) == len(snapshot.notifications):
        return snapshot
    return dataclasses.replace(snapshot, notifications=kept)


@_reduces(UpdateSettings)
def _update_settings(snapshot: Snapshot, action: UpdateSettings) -> Snapshot:
    merged = dict(snapshot.settings)
    merged.update(copy.deepcopy(dict(action.changes)))
    if merged == snapshot.settings:
        return snapshot
    return dataclasses.replace(snapshot, settings=merged)


@_reduces(UpdateAnalytics)
def _update_analytics(snapshot: Snapshot, action: UpdateAnalytics) -> Snapshot:
    if action.analytics == snapshot.analytics:
        return snapshot
    return dataclasses.replace(snapshot, analytics=action.analytics)


def _check_reducers() -> None:
    missing = sorted(cls.__name__ for cls in Action.__subclasses__() if cls not in _REDUCERS)
    if missing:
        raise RuntimeError(f"No reducer registered for actions: {', '.join(missing)}")


_check_reducers()


def reduce(snapshot: Snapshot, action: Action) -> Snapshot:
    """Apply ``action`` to ``snapshot`` and return the resulting snapshot.

    The input is never modified.  When the action changes nothing the same
    snapshot object is returned; otherwise ``version`` is incremented.
    """

    reducer = _REDUCERS.get(type(action))
    if reducer is None:
        raise TypeError(f"Unhandled store action: {type(action).__name__}")
    result = reducer(snapshot, action)
    if result is snapshot:
        return snapshot
    return dataclasses.replace(result, version=snapshot.version + 1)


def _changed(previous: Snapshot, current: Snapshot, names: Tuple[str, ...]) -> bool:
    return any(getattr(previous, name) is not getattr(current, name) for name in names)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


EntityInput = Union[Entity, Mapping[str, Any]]


class Store:
    """Owns the current :class:`Snapshot` and serializes all changes to it."""

    def __init__(
        self,
        persistence: Optional[SnapshotPersistence] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._persistence = persistence or SnapshotPersistence(None)
        self._scheduler = scheduler or TimerScheduler()
        self._clock = clock or utc_now
        self._snapshot = Snapshot()
        self._listeners: List[Listener] = []
        self._queue: Deque[Action] = deque()
        self._lock = threading.RLock()
        self._dispatching = False
        self._hydrating = False
        self._dismiss_handles: Dict[str, ScheduledCall] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def init(self) -> "Store":
        """Populate the store from persistence.  Never raises on bad data."""

        state = self._persistence.load()
        if state is None:
            logger.info("store_initialized", restored=False)
            return self
        self._hydrating = True
        try:
            self.dispatch(SetPatients(state.patients))
            self.dispatch(SetBots(state.bots))
            self.dispatch(SetMessages(state.messages))
            self.dispatch(SetNotes(state.notes))
            self.dispatch(SetAppointments(state.appointments))
            if state.settings:
                self.dispatch(UpdateSettings(state.settings))
            if state.current_provider is not None:
                self.dispatch(SetCurrentProvider(state.current_provider))
        finally:
            self._hydrating = False
        logger.info(
            "store_initialized",
            restored=True,
            patients=len(state.patients),
            notes=len(state.notes),
            appointments=len(state.appointments),
        )
        return self

    def teardown(self) -> None:
        """Cancel pending timers, reset to defaults and clear persistence."""

        with self._lock:
            handles = list(self._dismiss_handles.values())
            self._dismiss_handles.clear()
        for handle in handles:
            handle.cancel()
        self.dispatch(ResetState())
        self._persistence.clear()
        logger.info("store_torn_down")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> Snapshot:
        """Apply ``action`` and every action it causes, then return the snapshot."""

        with self._lock:
            self._queue.append(action)
            if self._dispatching:
                return self._snapshot
            self._dispatching = True
            try:
                while self._queue:
                    self._commit(self._queue.popleft())
            except BaseException:
                self._queue.clear()
                raise
            finally:
                self._dispatching = False
            return self._snapshot

    def _commit(self, action: Action) -> None:
        previous = self._snapshot
        current = reduce(previous, action)
        if current is previous:
            return
        follow_up = None
        if _changed(previous, current, ANALYTICS_SLICES):
            follow_up = UpdateAnalytics(self._compute_analytics(current))
        self._snapshot = current
        if follow_up is not None:
            self._queue.append(follow_up)
        if not self._hydrating and _changed(previous, current, PERSISTED_SLICES):
            self._persistence.save(current)
        for listener in list(self._listeners):
            try:
                listener(current)
            except Exception:
                logger.exception("store_listener_failed", action=type(action).__name__)

    def _compute_analytics(self, snapshot: Snapshot) -> Analytics:
        return compute_analytics(
            snapshot.patients.values(),
            snapshot.messages.values(),
            snapshot.notes.values(),
            snapshot.appointments.values(),
            now=self._clock(),
        )

    def refresh_analytics(self) -> Analytics:
        """Recompute analytics against the current clock.

        Upcoming-appointment counts drift as time passes without any entity
        changing; callers showing a dashboard refresh them explicitly.
        """

        self.dispatch(UpdateAnalytics(self._compute_analytics(self._snapshot)))
        return self._snapshot.analytics

    # ------------------------------------------------------------------
    # Provider, loading and error state
    # ------------------------------------------------------------------
    def set_current_provider(self, provider: Optional[EntityInput]) -> Optional[Provider]:
        if provider is not None and not isinstance(provider, Provider):
            provider = Provider.from_dict(provider)
        self.dispatch(SetCurrentProvider(provider))
        return provider

    def set_loading(self, loading: bool) -> None:
        self.dispatch(SetLoading(loading))

    def set_error(self, error: Optional[str]) -> None:
        self.dispatch(SetError(error))

    def clear_error(self) -> None:
        self.dispatch(ClearError())

    def update_settings(self, **changes: Any) -> Dict[str, Any]:
        self.dispatch(UpdateSettings(changes))
        return dict(self._snapshot.settings)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------
    @staticmethod
    def _build(cls: Type[E], value: EntityInput) -> E:
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise TypeError(f"Expected {cls.__name__} or mapping, got {type(value).__name__}")

    def add_patient(self, data: EntityInput) -> Patient:
        patient = self._build(Patient, data)
        self.dispatch(AddPatient(patient))
        return patient

    def update_patient(self, data: EntityInput) -> Patient:
        patient = self._build(Patient, data).replace()
        self.dispatch(UpdatePatient(patient))
        return patient

    def delete_patient(self, patient_id: str) -> None:
        self.dispatch(DeletePatient(patient_id))

    def add_bot(self, data: EntityInput) -> Bot:
        bot = self._build(Bot, data)
        self.dispatch(AddBot(bot))
        return bot

    def update_bot(self, data: EntityInput) -> Bot:
        bot = self._build(Bot, data).replace()
        self.dispatch(UpdateBot(bot))
        return bot

    def delete_bot(self, bot_id: str) -> None:
        self.dispatch(DeleteBot(bot_id))

    def add_message(self, data: EntityInput) -> MessageLog:
        message = self._build(MessageLog, data)
        self.dispatch(AddMessage(message))
        return message

    def update_message(self, data: EntityInput) -> MessageLog:
        message = self._build(MessageLog, data)
        self.dispatch(UpdateMessage(message))
        return message

    def add_note(self, data: EntityInput) -> Note:
        note = self._build(Note, data)
        self.dispatch(AddNote(note))
        return note

    def update_note(self, data: EntityInput) -> Note:
        note = self._build(Note, data).replace()
        self.dispatch(UpdateNote(note))
        return note

    def delete_note(self, note_id: str) -> None:
        self.dispatch(DeleteNote(note_id))

    def add_appointment(self, data: EntityInput) -> Appointment:
        appointment = self._build(Appointment, data)
        self.dispatch(AddAppointment(appointment))
        return appointment

    def update_appointment(self, data: EntityInput) -> Appointment:
        appointment = self._build(Appointment, data).replace()
        self.dispatch(UpdateAppointment(appointment))
        return appointment

    def delete_appointment(self, appointment_id: str) -> None:
        self.dispatch(DeleteAppointment(appointment_id))

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def add_notification(self, type: str = "info", title: str = "", message: str = "") -> Notification:
        """Show a notification and schedule its removal after five seconds."""

        if type not in NOTIFICATION_TYPES:
            logger.warning("notification_type_defaulted", value=type)
            type = "info"
        notification = Notification(type=type, title=title, message=message)
        self.dispatch(AddNotification(notification))
        handle = self._scheduler.call_later(
            AUTO_DISMISS_SECONDS, lambda: self._expire_notification(notification.id)
        )
        with self._lock:
            self._dismiss_handles[notification.id] = handle
        return notification

    def remove_notification(self, notification_id: str) -> None:
        """Remove a notification now; unknown ids are ignored."""

        with self._lock:
            handle = self._dismiss_handles.pop(notification_id, None)
        if handle is not None:
            handle.cancel()
        self.dispatch(RemoveNotification(notification_id))

    def _expire_notification(self, notification_id: str) -> None:
        with self._lock:
            self._dismiss_handles.pop(notification_id, None)
        self.dispatch(RemoveNotification(notification_id))

    @property
    def pending_dismissals(self) -> int:
        return len(self._dismiss_handles)

    # ------------------------------------------------------------------
    # Selectors
    # ------------------------------------------------------------------
    def patients(self) -> List[Patient]:
        return list(self._snapshot.patients.values())

    def bots(self) -> List[Bot]:
        return list(self._snapshot.bots.values())

    def messages(self) -> List[MessageLog]:
        return list(self._snapshot.messages.values())

    def notes(self) -> List[Note]:
        return list(self._snapshot.notes.values())

    def appointments(self) -> List[Appointment]:
        return list(self._snapshot.appointments.values())

    def notifications(self) -> List[Notification]:
        return list(self._snapshot.notifications)

    def settings(self) -> Dict[str, Any]:
        return copy.deepcopy(self._snapshot.settings)

    def analytics(self) -> Analytics:
        return self._snapshot.analytics

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self._snapshot.patients.get(patient_id)

    def get_note(self, note_id: str) -> Optional[Note]:
        return self._snapshot.notes.get(note_id)

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        return self._snapshot.appointments.get(appointment_id)

    def messages_for_patient(self, patient_id: str) -> List[MessageLog]:
        return [m for m in self._snapshot.messages.values() if m.patient_id == patient_id]

    def upcoming_appointments(self) -> List[Appointment]:
        now = self._clock()
        upcoming = [a for a in self._snapshot.appointments.values() if a.is_upcoming(now)]
        return sorted(upcoming, key=lambda a: a.scheduled_at())  # type: ignore[arg-type,return-value]

    def time_saved_seconds(self) -> int:
        return time_saved_seconds(self._snapshot.notes.values())


__all__ = [
    "Snapshot",
    "Store",
    "reduce",
    "default_settings",
    "ENTITY_SLICES",
    "PERSISTED_SLICES",
]
