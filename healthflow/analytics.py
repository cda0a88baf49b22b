"""Derived dashboard counts computed from the store's entity collections."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional

from healthflow.models import Appointment, MessageLog, Note, Patient
from healthflow.time_utils import utc_now


@dataclass(frozen=True)
class Analytics:
    total_patients: int = 0
    total_interactions: int = 0
    notes_processed: int = 0
    upcoming_appointments: int = 0

    def asdict(self) -> Dict[str, int]:
        return {
            "totalPatients": self.total_patients,
            "totalInteractions": self.total_interactions,
            "notesProcessed": self.notes_processed,
            "upcomingAppointments": self.upcoming_appointments,
        }


def compute_analytics(
    patients: Iterable[Patient],
    messages: Iterable[MessageLog],
    notes: Iterable[Note],
    appointments: Iterable[Appointment],
    *,
    now: Optional[datetime] = None,
) -> Analytics:
    now = now or utc_now()
    return Analytics(
        total_patients=sum(1 for _ in patients),
        total_interactions=sum(1 for _ in messages),
        notes_processed=sum(1 for note in notes if note.is_summarized),
        upcoming_appointments=sum(1 for appt in appointments if appt.is_upcoming(now)),
    )


def time_saved_seconds(notes: Iterable[Note]) -> int:
    """Total reading time saved by the summaries of ``notes``."""

    return sum(note.summary_stats().time_saved_seconds for note in notes if note.is_summarized)


__all__ = ["Analytics", "compute_analytics", "time_saved_seconds"]
