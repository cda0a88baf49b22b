from datetime import date, timedelta

import pytest

from healthflow.models import (
    Appointment,
    Bot,
    MessageLog,
    Note,
    Patient,
    Provider,
    count_words,
    default_knowledge_base,
)
from healthflow.time_utils import parse_iso, to_iso


SAMPLES = [
    Provider.from_dict(
        {
            "providerId": "prov_1",
            "name": "Dr. Rivera",
            "email": "rivera@example.com",
            "practiceName": "Rivera Family Medicine",
            "subscriptionTier": "professional",
            "address": {"city": "Springfield"},
        }
    ),
    Patient.from_dict(
        {
            "id": "pat_1",
            "providerId": "prov_1",
            "name": "Jane Doe",
            "dob": "1985-03-02",
            "intakeStatus": "completed",
            "appointmentHistory": ["appt_0"],
            "insurance": {"carrier": "Aetna", "memberId": "A123"},
            "preferences": {"communicationMethod": "both", "language": "es", "reminderTiming": 48},
        }
    ),
    Bot.from_dict({"botId": "bot_1", "name": "Front Desk", "customPrompts": {"greeting": "Hi"}}),
    MessageLog.from_dict(
        {
            "messageId": "msg_1",
            "patientId": "pat_1",
            "direction": "outgoing",
            "content": "See you soon",
            "status": "read",
            "responseTime": 0,
            "sentiment": "positive",
        }
    ),
    Note.from_dict(
        {
            "noteId": "note_1",
            "rawContent": "Patient reports mild headache. No fever.",
            "summary": "Mild headache.",
            "status": "final",
            "tags": ["neuro"],
            "processingTime": 1234.5,
        }
    ),
    Appointment.from_dict(
        {
            "appointmentId": "appt_1",
            "patientId": "pat_1",
            "dateTime": "2024-01-16T09:30:00.000Z",
            "status": "confirmed",
            "reminderSent": True,
            "duration": 45,
            "reminderHistory": [{"channel": "sms", "sentAt": "2024-01-15T09:30:00.000Z"}],
        }
    ),
]


@pytest.mark.parametrize("entity", SAMPLES, ids=lambda e: type(e).__name__)
def test_serialized_record_round_trips(entity):
    assert type(entity).from_dict(entity.to_dict()) == entity


@pytest.mark.parametrize("cls", [Provider, Patient, Bot, MessageLog, Note, Appointment])
def test_default_entity_round_trips(cls):
    entity = cls()
    assert cls.from_dict(entity.to_dict()) == entity


def test_legacy_id_keys_are_honoured():
    assert Patient.from_dict({"patientId": "p-legacy"}).id == "p-legacy"
    assert Note.from_dict({"id": "n-new", "noteId": "n-old"}).id == "n-new"


def test_ids_are_unique_under_rapid_construction():
    ids = {Patient().id for _ in range(10_000)}
    assert len(ids) == 10_000


def test_from_dict_never_raises_on_missing_data():
    patient = Patient.from_dict(None)
    assert patient.id.startswith("patient_")
    assert patient.intake_status == "pending"
    assert patient.preferences["communicationMethod"] == "email"
    assert Bot.from_dict({}).knowledge_base == default_knowledge_base()


def test_invalid_values_fall_back_to_defaults():
    appointment = Appointment.from_dict({"status": "maybe", "type": "surgery", "duration": -15})
    assert appointment.status == "scheduled"
    assert appointment.type == "consultation"
    assert appointment.duration == 30

    patient = Patient.from_dict({"preferences": "sms please", "insurance": ["not", "a", "mapping"]})
    assert patient.preferences == {"communicationMethod": "email", "language": "en", "reminderTiming": 24}
    assert patient.insurance == {}

    patient = Patient.from_dict({"preferences": {"communicationMethod": "pigeon"}})
    assert patient.preferences["communicationMethod"] == "email"


def test_updated_at_is_never_before_created_at():
    note = Note.from_dict(
        {"createdAt": "2024-01-02T00:00:00.000Z", "updatedAt": "2024-01-01T00:00:00.000Z"}
    )
    assert note.updated_at == note.created_at


def test_replace_refreshes_updated_at_and_keeps_id():
    note = Note.from_dict(
        {"id": "n1", "createdAt": "2020-01-01T00:00:00.000Z", "updatedAt": "2020-01-01T00:00:00.000Z"}
    )
    changed = note.replace(summary="Short")
    assert changed.id == "n1"
    assert changed.summary == "Short"
    assert changed.updated_at > note.updated_at
    assert note.summary == ""
    with pytest.raises(ValueError):
        note.replace(id="other")


def test_patient_age():
    today = date(2024, 1, 15)
    assert Patient.from_dict({"dob": "1990-06-15"}).age(today) == 33
    assert Patient.from_dict({"dob": "1990-01-15"}).age(today) == 34
    assert Patient.from_dict({}).age(today) is None
    assert Patient.from_dict({"dob": "not a date"}).age(today) is None
    assert Patient.from_dict({"dob": "2030-01-01"}).age(today) == 0


def test_word_count_and_summary_stats():
    raw = " ".join(["word"] * 1000)
    summary = " ".join(["short"] * 100)
    note = Note.from_dict({"rawContent": raw, "summary": summary})

    stats = note.summary_stats()
    assert note.word_count == 1000
    assert stats.compression_ratio == "10.0%"
    assert stats.summary_words == 100
    assert stats.time_saved_seconds == 270
    assert note.to_dict()["wordCount"] == 1000


def test_empty_note_has_zero_words():
    note = Note.from_dict({})
    assert note.word_count == 0
    assert note.summary_stats().compression_ratio == "0%"
    assert not note.is_summarized
    assert count_words("  spaced   out\ttext\n") == 3


def _appointment_at(now, hours, **extra):
    data = {"dateTime": to_iso(now + timedelta(hours=hours))}
    data.update(extra)
    return Appointment.from_dict(data)


def test_upcoming_and_past(fixed_now):
    assert _appointment_at(fixed_now, 1).is_upcoming(fixed_now)
    assert not _appointment_at(fixed_now, 1).is_past(fixed_now)
    assert _appointment_at(fixed_now, -1).is_past(fixed_now)
    exactly_now = _appointment_at(fixed_now, 0)
    assert not exactly_now.is_upcoming(fixed_now)
    assert not exactly_now.is_past(fixed_now)
    undated = Appointment.from_dict({})
    assert not undated.is_upcoming(fixed_now)
    assert not undated.is_past(fixed_now)


def test_should_send_reminder_window(fixed_now):
    assert _appointment_at(fixed_now, 2).should_send_reminder(fixed_now)
    assert _appointment_at(fixed_now, 24).should_send_reminder(fixed_now)
    assert not _appointment_at(fixed_now, 25).should_send_reminder(fixed_now)
    assert not _appointment_at(fixed_now, -1).should_send_reminder(fixed_now)
    assert not _appointment_at(fixed_now, 2, reminderSent=True).should_send_reminder(fixed_now)
    assert not _appointment_at(fixed_now, 2, status="confirmed").should_send_reminder(fixed_now)


def test_mark_reminder_sent(fixed_now):
    appointment = _appointment_at(fixed_now, 3)
    reminded = appointment.mark_reminder_sent("sms", fixed_now)
    assert reminded.reminder_sent is True
    assert reminded.reminder_history == [{"channel": "sms", "sentAt": "2024-01-15T12:00:00.000Z"}]
    assert appointment.reminder_history == []


def test_formatted_date_time():
    appointment = Appointment.from_dict({"dateTime": "2024-01-15T14:30:00Z"})
    assert appointment.formatted_date_time() == {
        "date": "01/15/2024",
        "time": "02:30 PM",
        "dayOfWeek": "Monday",
    }


EDGE_VALUED = [
    Bot().replace(name="", language="", response_format="", personality=""),
    Appointment().replace(duration=0),
    Appointment().replace(duration=45.0, status="tentative"),
    MessageLog().replace(timestamp="", sentiment="", response_time=float("nan")),
    Note().replace(processing_time=float("inf"), status=""),
    Patient().replace(intake_status="unknown", preferences={"communicationMethod": "fax"}),
]


@pytest.mark.parametrize("entity", EDGE_VALUED, ids=lambda e: type(e).__name__)
def test_edge_valued_entities_round_trip(entity):
    assert type(entity).from_dict(entity.to_dict()) == entity


def test_constructor_normalises_like_from_dict():
    assert Appointment().replace(duration=0).duration == 30
    assert Appointment().replace(duration=float("inf")).duration == 30
    assert Appointment().replace(duration=45.0).duration == 45
    assert Note().replace(processing_time=float("inf")).processing_time is None
    assert Patient().replace(preferences={"communicationMethod": "fax"}).preferences["communicationMethod"] == "email"
    assert Bot().replace(name="").name == ""


@pytest.mark.parametrize("value", ["9999-12-31T23:59:59-01:00", "0001-01-01T00:00:00+05:00"])
def test_timestamps_off_the_utc_calendar_are_unparseable(value):
    assert parse_iso(value) is None

    note = Note.from_dict({"createdAt": value, "updatedAt": value, "timestamp": value})
    assert note.created_at == value

    appointment = Appointment.from_dict({"dateTime": value})
    assert not appointment.is_upcoming()
    assert not appointment.is_past()
    assert not appointment.should_send_reminder()
    assert appointment.formatted_date_time() == {"date": "", "time": "", "dayOfWeek": ""}


@pytest.mark.parametrize("duration", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_duration_defaults(duration):
    assert Appointment.from_dict({"duration": duration}).duration == 30
    assert MessageLog.from_dict({"responseTime": duration}).response_time is None
