"""Domain entities for the HealthFlow clinic assistant.

Every entity is a frozen dataclass built through ``from_dict`` which fills any
missing field with a documented default and never raises, so a partially
populated or legacy record can always be turned into a typed value.  Updates
never patch an entity in place: :meth:`replace` returns a new value with a
refreshed ``updatedAt`` timestamp.

Serialized records use the camelCase keys of the persisted snapshot; the
attribute-to-key mapping lives in each field's ``metadata``.
"""

from __future__ import annotations

import copy
import dataclasses
import math
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

import structlog

from healthflow.time_utils import ensure_utc, now_iso, parse_iso, to_iso, utc_now


logger = structlog.get_logger(__name__)

E = TypeVar("E", bound="Entity")

INTAKE_STATUSES = ("pending", "completed", "expired")
SUBSCRIPTION_TIERS = ("basic", "professional", "enterprise")
MESSAGE_DIRECTIONS = ("incoming", "outgoing")
MESSAGE_TYPES = ("text", "image", "file")
MESSAGE_STATUSES = ("sent", "delivered", "read", "failed")
NOTE_TYPES = ("clinical", "consultation", "follow-up")
NOTE_STATUSES = ("draft", "final", "archived")
APPOINTMENT_STATUSES = ("scheduled", "confirmed", "completed", "cancelled", "no-show")
APPOINTMENT_TYPES = ("consultation", "follow-up", "screening")
COMMUNICATION_METHODS = ("email", "sms", "both")

DEFAULT_APPOINTMENT_MINUTES = 30
REMINDER_WINDOW_HOURS = 24
READING_WORDS_PER_MINUTE = 200

_WORD_SPLIT_RE = re.compile(r"\s+")


def generate_id(prefix: str) -> str:
    """Return an opaque ``<prefix>_<epoch-ms>_<random>`` identifier."""

    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


def count_words(text: str) -> int:
    if not text:
        return 0
    return len([word for word in _WORD_SPLIT_RE.split(text) if word])


def _key(name: str) -> Dict[str, str]:
    return {"key": name}


# ---------------------------------------------------------------------------
# Coercion helpers used by ``from_dict``
# ---------------------------------------------------------------------------


def _text(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if isinstance(value, str) and value:
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _setting(data: Mapping[str, Any], key: str, default: str) -> str:
    """Like :func:`_text`, but an explicit empty string is kept as is."""

    value = data.get(key)
    if isinstance(value, str):
        return value
    return _text(data, key, default)


def _optional_text(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, str):
        return value
    return None


def _choice(
    entity: str,
    data: Mapping[str, Any],
    key: str,
    allowed: Tuple[str, ...],
    default: str,
) -> str:
    value = data.get(key)
    if value in (None, ""):
        return default
    if value in allowed:
        return value  # type: ignore[return-value]
    logger.warning("entity_field_defaulted", entity=entity, field=key, value=str(value), default=default)
    return default


def _mapping(
    entity: str,
    data: Mapping[str, Any],
    key: str,
    default_factory: Callable[[], Dict[str, Any]] = dict,
) -> Dict[str, Any]:
    value = data.get(key)
    if isinstance(value, Mapping):
        return copy.deepcopy(dict(value))
    if value not in (None, ""):
        logger.warning("entity_field_defaulted", entity=entity, field=key, value=type(value).__name__)
    return default_factory()


def _list(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if isinstance(value, (list, tuple)):
        return copy.deepcopy(list(value))
    return []


def _flag(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    if value is None:
        return default
    return bool(value)


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _number(data: Mapping[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if not _is_finite_number(value):
        return None
    return value


def _identity(data: Mapping[str, Any], prefix: str, legacy_key: str) -> str:
    for key in ("id", legacy_key):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return generate_id(prefix)


def _timestamps(data: Mapping[str, Any]) -> Tuple[str, str]:
    """Return ``(createdAt, updatedAt)`` with ``createdAt <= updatedAt``."""

    now = now_iso()
    created = _setting(data, "createdAt", now)
    updated = _setting(data, "updatedAt", now)
    created_dt = parse_iso(created)
    updated_dt = parse_iso(updated)
    if created_dt is not None and updated_dt is not None and updated_dt < created_dt:
        updated = created
    return created, updated


# ---------------------------------------------------------------------------
# Base entity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Entity:
    """Shared behaviour for all persisted entities."""

    ID_PREFIX: ClassVar[str] = "entity"
    LEGACY_ID_KEY: ClassVar[str] = "entityId"
    # attribute -> (allowed values, default)
    CHOICES: ClassVar[Dict[str, Tuple[Tuple[str, ...], str]]] = {}
    OPTIONAL_NUMBERS: ClassVar[Tuple[str, ...]] = ()

    def __post_init__(self) -> None:
        # Constructed and replaced values must survive a to_dict/from_dict trip.
        entity = type(self).__name__
        for name, (allowed, default) in self.CHOICES.items():
            value = getattr(self, name)
            if value not in allowed:
                logger.warning("entity_field_defaulted", entity=entity, field=name, value=str(value), default=default)
                object.__setattr__(self, name, default)
        for name in self.OPTIONAL_NUMBERS:
            value = getattr(self, name)
            if value is not None and not _is_finite_number(value):
                logger.warning("entity_field_defaulted", entity=entity, field=name, value=str(value))
                object.__setattr__(self, name, None)
        created = parse_iso(getattr(self, "created_at", None))
        updated = parse_iso(getattr(self, "updated_at", None))
        if created is not None and updated is not None and updated < created:
            object.__setattr__(self, "updated_at", getattr(self, "created_at"))

    def to_dict(self) -> Dict[str, Any]:
        """Return the plain JSON-serialisable record for this entity."""

        record: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            record[f.metadata.get("key", f.name)] = copy.deepcopy(getattr(self, f.name))
        return record

    @classmethod
    def from_dict(cls: Type[E], data: Optional[Mapping[str, Any]] = None) -> E:
        raise NotImplementedError

    def replace(self: E, **changes: Any) -> E:
        """Return a copy with ``changes`` applied and ``updatedAt`` refreshed."""

        if "id" in changes and changes["id"] != getattr(self, "id"):
            raise ValueError("Entity ids are immutable")
        created = getattr(self, "created_at")
        created_dt = parse_iso(created)
        updated = created if created_dt is not None and created_dt > utc_now() else now_iso()
        changes.setdefault("updated_at", updated)
        return dataclasses.replace(self, **changes)


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


def default_provider_settings() -> Dict[str, Any]:
    weekday = {"open": "08:00", "close": "18:00", "closed": False}
    return {
        "notifications": {"email": True, "sms": False, "push": True},
        "aiSettings": {"model": "gpt-4", "temperature": 0.7, "maxTokens": 300},
        "businessHours": {
            "monday": dict(weekday),
            "tuesday": dict(weekday),
            "wednesday": dict(weekday),
            "thursday": dict(weekday),
            "friday": dict(weekday),
            "saturday": {"open": "09:00", "close": "14:00", "closed": False},
            "sunday": {"open": "00:00", "close": "00:00", "closed": True},
        },
    }


@dataclass(frozen=True)
class Provider(Entity):
    """A clinical practice account owning patients, bots, notes and visits."""

    ID_PREFIX: ClassVar[str] = "provider"
    LEGACY_ID_KEY: ClassVar[str] = "providerId"
    CHOICES: ClassVar[Dict[str, Tuple[Tuple[str, ...], str]]] = {"subscription_tier": (SUBSCRIPTION_TIERS, "basic")}

    id: str = field(default_factory=lambda: generate_id("provider"))
    name: str = ""
    email: str = ""
    practice_name: str = field(default="", metadata=_key("practiceName"))
    subscription_tier: str = field(default="basic", metadata=_key("subscriptionTier"))
    phone: str = ""
    address: Dict[str, Any] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=default_provider_settings)
    is_active: bool = field(default=True, metadata=_key("isActive"))
    created_at: str = field(default_factory=now_iso, metadata=_key("createdAt"))
    updated_at: str = field(default_factory=now_iso, metadata=_key("updatedAt"))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "Provider":
        data = data or {}
        created, updated = _timestamps(data)
        return cls(
            id=_identity(data, cls.ID_PREFIX, cls.LEGACY_ID_KEY),
            name=_text(data, "name"),
            email=_text(data, "email"),
            practice_name=_text(data, "practiceName"),
            subscription_tier=_choice("Provider", data, "subscriptionTier", SUBSCRIPTION_TIERS, "basic"),
            phone=_text(data, "phone"),
            address=_mapping("Provider", data, "address"),
            settings=_mapping("Provider", data, "settings", default_provider_settings),
            is_active=_flag(data, "isActive", True),
            created_at=created,
            updated_at=updated,
        )


# ---------------------------------------------------------------------------
# Patient
# ---------------------------------------------------------------------------


def default_patient_preferences() -> Dict[str, Any]:
    return {"communicationMethod": "email", "language": "en", "reminderTiming": 24}


@dataclass(frozen=True)
class Patient(Entity):
    ID_PREFIX: ClassVar[str] = "patient"
    LEGACY_ID_KEY: ClassVar[str] = "patientId"
    CHOICES: ClassVar[Dict[str, Tuple[Tuple[str, ...], str]]] = {"intake_status": (INTAKE_STATUSES, "pending")}

    id: str = field(default_factory=lambda: generate_id("patient"))
    provider_id: str = field(default="", metadata=_key("providerId"))
    name: str = ""
    email: str = ""
    phone: str = ""
    dob: str = ""
    intake_status: str = field(default="pending", metadata=_key("intakeStatus"))
    appointment_history: List[Any] = field(default_factory=list, metadata=_key("appointmentHistory"))
    address: Dict[str, Any] = field(default_factory=dict)
    insurance: Dict[str, Any] = field(default_factory=dict)
    emergency_contact: Dict[str, Any] = field(default_factory=dict, metadata=_key("emergencyContact"))
    medical_history: Dict[str, Any] = field(default_factory=dict, metadata=_key("medicalHistory"))
    preferences: Dict[str, Any] = field(default_factory=default_patient_preferences)
    is_active: bool = field(default=True, metadata=_key("isActive"))
    created_at: str = field(default_factory=now_iso, metadata=_key("createdAt"))
    updated_at: str = field(default_factory=now_iso, metadata=_key("updatedAt"))

    def __post_init__(self) -> None:
        super().__post_init__()
        method = self.preferences.get("communicationMethod")
        if method is not None and method not in COMMUNICATION_METHODS:
            logger.warning(
                "entity_field_defaulted",
                entity="Patient",
                field="preferences.communicationMethod",
                value=str(method),
                default="email",
            )
            object.__setattr__(self, "preferences", {**self.preferences, "communicationMethod": "email"})

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "Patient":
        data = data or {}
        created, updated = _timestamps(data)
        return cls(
            id=_identity(data, cls.ID_PREFIX, cls.LEGACY_ID_KEY),
            provider_id=_text(data, "providerId"),
            name=_text(data, "name"),
            email=_text(data, "email"),
            phone=_text(data, "phone"),
            dob=_text(data, "dob"),
            intake_status=_choice("Patient", data, "intakeStatus", INTAKE_STATUSES, "pending"),
            appointment_history=_list(data, "appointmentHistory"),
            address=_mapping("Patient", data, "address"),
            insurance=_mapping("Patient", data, "insurance"),
            emergency_contact=_mapping("Patient", data, "emergencyContact"),
            medical_history=_mapping("Patient", data, "medicalHistory"),
            preferences=_mapping("Patient", data, "preferences", default_patient_preferences),
            is_active=_flag(data, "isActive", True),
            created_at=created,
            updated_at=updated,
        )

    def age(self, today: Optional[date] = None) -> Optional[int]:
        """Return the age in whole years, or ``None`` when ``dob`` is unknown."""

        born = parse_iso(self.dob)
        if born is None:
            return None
        dob = born.date()
        today = today or date.today()
        years = today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))
        return max(years, 0)


# ---------------------------------------------------------------------------
# Bot
# ---------------------------------------------------------------------------


CLINIC_NAME = "HealthFlow Medical Center"
CLINIC_ADDRESS = "123 Medical Center Drive, Suite 200"
CLINIC_PHONE = "(555) 123-4567"
CLINIC_HOURS = "Monday-Friday 8:00 AM - 6:00 PM, Saturday 9:00 AM - 2:00 PM"


def default_knowledge_base() -> Dict[str, Any]:
    return {
        "clinicInfo": {
            "name": CLINIC_NAME,
            "address": CLINIC_ADDRESS,
            "phone": CLINIC_PHONE,
            "hours": CLINIC_HOURS,
        },
        "services": [
            "General Medicine",
            "Preventive Care",
            "Chronic Disease Management",
            "Health Screenings",
        ],
        "insurance": ["Blue Cross Blue Shield", "Aetna", "Cigna", "UnitedHealthcare"],
        "faqs": [
            {
                "question": "What should I bring to my appointment?",
                "answer": "Please bring a valid ID, your insurance card, and a list of current medications.",
            },
            {
                "question": "How do I schedule an appointment?",
                "answer": f"You can call us at {CLINIC_PHONE} or use our online booking system.",
            },
        ],
    }


def default_bot_analytics() -> Dict[str, Any]:
    return {
        "totalInteractions": 0,
        "averageResponseTime": 0,
        "satisfactionRating": 0,
        "commonQuestions": [],
        "lastUpdated": now_iso(),
    }


@dataclass(frozen=True)
class Bot(Entity):
    """A configured assistant persona used for patient chat."""

    ID_PREFIX: ClassVar[str] = "bot"
    LEGACY_ID_KEY: ClassVar[str] = "botId"

    id: str = field(default_factory=lambda: generate_id("bot"))
    provider_id: str = field(default="", metadata=_key("providerId"))
    name: str = "HealthFlow Assistant"
    knowledge_base: Dict[str, Any] = field(default_factory=default_knowledge_base, metadata=_key("knowledgeBase"))
    language: str = "en"
    response_format: str = field(default="conversational", metadata=_key("responseFormat"))
    personality: str = "professional"
    custom_prompts: Dict[str, Any] = field(default_factory=dict, metadata=_key("customPrompts"))
    analytics: Dict[str, Any] = field(default_factory=default_bot_analytics)
    is_active: bool = field(default=True, metadata=_key("isActive"))
    created_at: str = field(default_factory=now_iso, metadata=_key("createdAt"))
    updated_at: str = field(default_factory=now_iso, metadata=_key("updatedAt"))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "Bot":
        data = data or {}
        created, updated = _timestamps(data)
        return cls(
            id=_identity(data, cls.ID_PREFIX, cls.LEGACY_ID_KEY),
            provider_id=_text(data, "providerId"),
            name=_setting(data, "name", "HealthFlow Assistant"),
            knowledge_base=_mapping("Bot", data, "knowledgeBase", default_knowledge_base),
            language=_setting(data, "language", "en"),
            response_format=_setting(data, "responseFormat", "conversational"),
            personality=_setting(data, "personality", "professional"),
            custom_prompts=_mapping("Bot", data, "customPrompts"),
            analytics=_mapping("Bot", data, "analytics", default_bot_analytics),
            is_active=_flag(data, "isActive", True),
            created_at=created,
            updated_at=updated,
        )


# ---------------------------------------------------------------------------
# MessageLog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MessageLog(Entity):
    """One recorded chat turn.

    Message logs have no ``createdAt``/``updatedAt`` pair; ``timestamp`` marks
    when the turn happened.
    """

    ID_PREFIX: ClassVar[str] = "msg"
    LEGACY_ID_KEY: ClassVar[str] = "messageId"
    CHOICES: ClassVar[Dict[str, Tuple[Tuple[str, ...], str]]] = {
        "direction": (MESSAGE_DIRECTIONS, "incoming"),
        "type": (MESSAGE_TYPES, "text"),
        "status": (MESSAGE_STATUSES, "delivered"),
    }
    OPTIONAL_NUMBERS: ClassVar[Tuple[str, ...]] = ("response_time",)

    id: str = field(default_factory=lambda: generate_id("msg"))
    provider_id: str = field(default="", metadata=_key("providerId"))
    patient_id: str = field(default="", metadata=_key("patientId"))
    bot_id: str = field(default="", metadata=_key("botId"))
    timestamp: str = field(default_factory=now_iso)
    direction: str = "incoming"
    content: str = ""
    type: str = "text"
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: str = "delivered"
    response_time: Optional[float] = field(default=None, metadata=_key("responseTime"))
    sentiment: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "MessageLog":
        data = data or {}
        return cls(
            id=_identity(data, cls.ID_PREFIX, cls.LEGACY_ID_KEY),
            provider_id=_text(data, "providerId"),
            patient_id=_text(data, "patientId"),
            bot_id=_text(data, "botId"),
            timestamp=_setting(data, "timestamp", now_iso()),
            direction=_choice("MessageLog", data, "direction", MESSAGE_DIRECTIONS, "incoming"),
            content=_text(data, "content"),
            type=_choice("MessageLog", data, "type", MESSAGE_TYPES, "text"),
            metadata=_mapping("MessageLog", data, "metadata"),
            status=_choice("MessageLog", data, "status", MESSAGE_STATUSES, "delivered"),
            response_time=_number(data, "responseTime"),
            sentiment=_optional_text(data, "sentiment"),
        )

    def replace(self, **changes: Any) -> "MessageLog":
        if "id" in changes and changes["id"] != self.id:
            raise ValueError("Entity ids are immutable")
        return dataclasses.replace(self, **changes)


# ---------------------------------------------------------------------------
# Note
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SummaryStats:
    original_words: int
    summary_words: int
    compression_ratio: str
    time_saved_seconds: int

    def asdict(self) -> Dict[str, object]:
        return {
            "originalWords": self.original_words,
            "summaryWords": self.summary_words,
            "compressionRatio": self.compression_ratio,
            "timeSaved": self.time_saved_seconds,
        }


@dataclass(frozen=True)
class Note(Entity):
    """A raw clinical note paired with its summary.

    ``wordCount`` is derived from ``rawContent`` and is written to the
    serialized record but never read back from it.
    """

    ID_PREFIX: ClassVar[str] = "note"
    LEGACY_ID_KEY: ClassVar[str] = "noteId"
    CHOICES: ClassVar[Dict[str, Tuple[Tuple[str, ...], str]]] = {
        "type": (NOTE_TYPES, "clinical"),
        "status": (NOTE_STATUSES, "draft"),
    }
    OPTIONAL_NUMBERS: ClassVar[Tuple[str, ...]] = ("processing_time",)

    id: str = field(default_factory=lambda: generate_id("note"))
    provider_id: str = field(default="", metadata=_key("providerId"))
    patient_id: str = field(default="", metadata=_key("patientId"))
    raw_content: str = field(default="", metadata=_key("rawContent"))
    summary: str = ""
    timestamp: str = field(default_factory=now_iso)
    type: str = "clinical"
    status: str = "draft"
    tags: List[Any] = field(default_factory=list)
    attachments: List[Any] = field(default_factory=list)
    processing_time: Optional[float] = field(default=None, metadata=_key("processingTime"))
    created_at: str = field(default_factory=now_iso, metadata=_key("createdAt"))
    updated_at: str = field(default_factory=now_iso, metadata=_key("updatedAt"))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "Note":
        data = data or {}
        created, updated = _timestamps(data)
        return cls(
            id=_identity(data, cls.ID_PREFIX, cls.LEGACY_ID_KEY),
            provider_id=_text(data, "providerId"),
            patient_id=_text(data, "patientId"),
            raw_content=_text(data, "rawContent"),
            summary=_text(data, "summary"),
            timestamp=_setting(data, "timestamp", now_iso()),
            type=_choice("Note", data, "type", NOTE_TYPES, "clinical"),
            status=_choice("Note", data, "status", NOTE_STATUSES, "draft"),
            tags=_list(data, "tags"),
            attachments=_list(data, "attachments"),
            processing_time=_number(data, "processingTime"),
            created_at=created,
            updated_at=updated,
        )

    @property
    def word_count(self) -> int:
        return count_words(self.raw_content)

    @property
    def is_summarized(self) -> bool:
        return bool(self.summary)

    def to_dict(self) -> Dict[str, Any]:
        record = super().to_dict()
        record["wordCount"] = self.word_count
        return record

    def summary_stats(self) -> SummaryStats:
        original = self.word_count
        summary = count_words(self.summary)
        if original > 0:
            ratio = f"{summary / original * 100:.1f}%"
        else:
            ratio = "0%"
        saved = max(0, math.floor((original - summary) / READING_WORDS_PER_MINUTE * 60))
        return SummaryStats(
            original_words=original,
            summary_words=summary,
            compression_ratio=ratio,
            time_saved_seconds=saved,
        )


# ---------------------------------------------------------------------------
# Appointment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Appointment(Entity):
    ID_PREFIX: ClassVar[str] = "appt"
    LEGACY_ID_KEY: ClassVar[str] = "appointmentId"
    CHOICES: ClassVar[Dict[str, Tuple[Tuple[str, ...], str]]] = {
        "status": (APPOINTMENT_STATUSES, "scheduled"),
        "type": (APPOINTMENT_TYPES, "consultation"),
    }

    id: str = field(default_factory=lambda: generate_id("appt"))
    provider_id: str = field(default="", metadata=_key("providerId"))
    patient_id: str = field(default="", metadata=_key("patientId"))
    date_time: str = field(default="", metadata=_key("dateTime"))
    status: str = "scheduled"
    reminder_sent: bool = field(default=False, metadata=_key("reminderSent"))
    type: str = "consultation"
    duration: int = DEFAULT_APPOINTMENT_MINUTES
    provider: str = ""
    location: str = ""
    notes: str = ""
    reminder_history: List[Any] = field(default_factory=list, metadata=_key("reminderHistory"))
    cancellation_reason: str = field(default="", metadata=_key("cancellationReason"))
    created_at: str = field(default_factory=now_iso, metadata=_key("createdAt"))
    updated_at: str = field(default_factory=now_iso, metadata=_key("updatedAt"))

    def __post_init__(self) -> None:
        super().__post_init__()
        duration = self.duration
        if not _is_finite_number(duration) or duration <= 0:
            logger.warning("entity_field_defaulted", entity="Appointment", field="duration", value=str(duration))
            object.__setattr__(self, "duration", DEFAULT_APPOINTMENT_MINUTES)
        elif not isinstance(duration, int):
            object.__setattr__(self, "duration", int(duration))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "Appointment":
        data = data or {}
        created, updated = _timestamps(data)
        return cls(
            id=_identity(data, cls.ID_PREFIX, cls.LEGACY_ID_KEY),
            provider_id=_text(data, "providerId"),
            patient_id=_text(data, "patientId"),
            date_time=_text(data, "dateTime"),
            status=_choice("Appointment", data, "status", APPOINTMENT_STATUSES, "scheduled"),
            reminder_sent=_flag(data, "reminderSent", False),
            type=_choice("Appointment", data, "type", APPOINTMENT_TYPES, "consultation"),
            duration=_duration(data),
            provider=_text(data, "provider"),
            location=_text(data, "location"),
            notes=_text(data, "notes"),
            reminder_history=_list(data, "reminderHistory"),
            cancellation_reason=_text(data, "cancellationReason"),
            created_at=created,
            updated_at=updated,
        )

    def scheduled_at(self) -> Optional[datetime]:
        return parse_iso(self.date_time)

    def hours_until(self, now: Optional[datetime] = None) -> Optional[float]:
        scheduled = self.scheduled_at()
        if scheduled is None:
            return None
        now = ensure_utc(now) if now else utc_now()
        return (scheduled - now).total_seconds() / 3600

    def is_upcoming(self, now: Optional[datetime] = None) -> bool:
        hours = self.hours_until(now)
        return hours is not None and hours > 0

    def is_past(self, now: Optional[datetime] = None) -> bool:
        hours = self.hours_until(now)
        return hours is not None and hours < 0

    def should_send_reminder(self, now: Optional[datetime] = None) -> bool:
        if self.reminder_sent or self.status != "scheduled":
            return False
        hours = self.hours_until(now)
        return hours is not None and 0 < hours <= REMINDER_WINDOW_HOURS

    def formatted_date_time(self) -> Dict[str, str]:
        scheduled = self.scheduled_at()
        if scheduled is None:
            return {"date": "", "time": "", "dayOfWeek": ""}
        return {
            "date": scheduled.strftime("%m/%d/%Y"),
            "time": scheduled.strftime("%I:%M %p"),
            "dayOfWeek": scheduled.strftime("%A"),
        }

    def mark_reminder_sent(self, channel: str, now: Optional[datetime] = None) -> "Appointment":
        sent_at = to_iso(now) if now else now_iso()
        history = copy.deepcopy(self.reminder_history)
        history.append({"channel": channel, "sentAt": sent_at})
        return self.replace(reminder_sent=True, reminder_history=history)


def _duration(data: Mapping[str, Any]) -> int:
    value = _number(data, "duration")
    if value is None:
        if data.get("duration") not in (None, ""):
            logger.warning("entity_field_defaulted", entity="Appointment", field="duration", value=str(data.get("duration")))
        return DEFAULT_APPOINTMENT_MINUTES
    if value <= 0:
        logger.warning("entity_field_defaulted", entity="Appointment", field="duration", value=str(value))
        return DEFAULT_APPOINTMENT_MINUTES
    return int(value)


# Snapshot collection name -> entity class.
COLLECTION_TYPES: Dict[str, Type[Entity]] = {
    "patients": Patient,
    "bots": Bot,
    "messages": MessageLog,
    "notes": Note,
    "appointments": Appointment,
}


__all__ = [
    "Entity",
    "Provider",
    "Patient",
    "Bot",
    "MessageLog",
    "Note",
    "Appointment",
    "SummaryStats",
    "COLLECTION_TYPES",
    "generate_id",
    "count_words",
    "default_knowledge_base",
    "default_provider_settings",
]
