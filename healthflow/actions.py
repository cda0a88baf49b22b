"""The closed set of actions accepted by :class:`healthflow.store.Store`.

Actions are plain immutable values; all behaviour lives in the reducers of
:mod:`healthflow.store`, which must handle every subclass of :class:`Action`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from healthflow.analytics import Analytics
from healthflow.models import Appointment, Bot, MessageLog, Note, Patient, Provider
from healthflow.notifications import Notification


@dataclass(frozen=True)
class Action:
    """Base class for store actions."""


# Provider / session -------------------------------------------------------


@dataclass(frozen=True)
class SetCurrentProvider(Action):
    provider: Optional[Provider] = None


@dataclass(frozen=True)
class ResetState(Action):
    """Return to the default snapshot."""


# Patients -----------------------------------------------------------------


@dataclass(frozen=True)
class SetPatients(Action):
    patients: Tuple[Patient, ...] = ()


@dataclass(frozen=True)
class AddPatient(Action):
    patient: Patient


@dataclass(frozen=True)
class UpdatePatient(Action):
    patient: Patient


@dataclass(frozen=True)
class DeletePatient(Action):
    patient_id: str


# Bots ---------------------------------------------------------------------


@dataclass(frozen=True)
class SetBots(Action):
    bots: Tuple[Bot, ...] = ()


@dataclass(frozen=True)
class AddBot(Action):
    bot: Bot


@dataclass(frozen=True)
class UpdateBot(Action):
    bot: Bot


@dataclass(frozen=True)
class DeleteBot(Action):
    bot_id: str


# Messages -----------------------------------------------------------------


@dataclass(frozen=True)
class SetMessages(Action):
    messages: Tuple[MessageLog, ...] = ()


@dataclass(frozen=True)
class AddMessage(Action):
    message: MessageLog


@dataclass(frozen=True)
class UpdateMessage(Action):
    message: MessageLog


# Notes --------------------------------------------------------------------


@dataclass(frozen=True)
class SetNotes(Action):
    notes: Tuple[Note, ...] = ()


@dataclass(frozen=True)
class AddNote(Action):
    note: Note


@dataclass(frozen=True)
class UpdateNote(Action):
    note: Note


@dataclass(frozen=True)
class DeleteNote(Action):
    note_id: str


# Appointments -------------------------------------------------------------


@dataclass(frozen=True)
class SetAppointments(Action):
    appointments: Tuple[Appointment, ...] = ()


@dataclass(frozen=True)
class AddAppointment(Action):
    appointment: Appointment


@dataclass(frozen=True)
class UpdateAppointment(Action):
    appointment: Appointment


@dataclass(frozen=True)
class DeleteAppointment(Action):
    appointment_id: str


# UI state -----------------------------------------------------------------


@dataclass(frozen=True)
class SetLoading(Action):
    loading: bool


@dataclass(frozen=True)
class SetError(Action):
    error: Optional[str]


@dataclass(frozen=True)
class ClearError(Action):
    pass


@dataclass(frozen=True)
class AddNotification(Action):
    notification: Notification


@dataclass(frozen=True)
class RemoveNotification(Action):
    notification_id: str


# Settings / analytics -----------------------------------------------------


@dataclass(frozen=True)
class UpdateSettings(Action):
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateAnalytics(Action):
    analytics: Analytics


__all__ = [
    "Action",
    "SetCurrentProvider",
    "ResetState",
    "SetPatients",
    "AddPatient",
    "UpdatePatient",
    "DeletePatient",
    "SetBots",
    "AddBot",
    "UpdateBot",
    "DeleteBot",
    "SetMessages",
    "AddMessage",
    "UpdateMessage",
    "SetNotes",
    "AddNote",
    "UpdateNote",
    "DeleteNote",
    "SetAppointments",
    "AddAppointment",
    "UpdateAppointment",
    "DeleteAppointment",
    "SetLoading",
    "SetError",
    "ClearError",
    "AddNotification",
    "RemoveNotification",
    "UpdateSettings",
    "UpdateAnalytics",
]
