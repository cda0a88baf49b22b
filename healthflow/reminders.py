"""Appointment reminder, follow-up and intake-link messages.

Real SMS and email delivery belongs to a server; this module renders the
message texts and hands them to a :class:`ReminderTransport`.  The bundled
:class:`MockReminderTransport` only logs what would have been sent.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

import structlog

from healthflow.models import CLINIC_ADDRESS, CLINIC_PHONE, Appointment, Patient
from healthflow.observability import REMINDERS_SENT_TOTAL
from healthflow.store import Store
from healthflow.time_utils import utc_now


logger = structlog.get_logger(__name__)

SIGNATURE = "Best regards,\nHealthFlow AI Team"


class ReminderDeliveryError(Exception):
    """Raised by a transport when a message could not be handed off."""


@dataclass(frozen=True)
class DeliveryReceipt:
    channel: str
    recipient: str
    message_id: str
    message: str = ""


def reminder_sms_text(appointment: Appointment) -> str:
    when = appointment.formatted_date_time()
    return (
        f"HealthFlow AI Reminder: You have an appointment scheduled for {when['date']} at "
        f"{when['time']}. Please call {CLINIC_PHONE} if you need to reschedule."
    )


def follow_up_sms_text(patient_name: str) -> str:
    return (
        f"Hi {patient_name}, we noticed you missed your appointment today. Please call us at "
        f"{CLINIC_PHONE} to reschedule. Your health is important to us!"
    )


def reminder_email(appointment: Appointment, patient_name: str) -> Tuple[str, str]:
    """Return ``(subject, body)`` for an appointment reminder email."""

    when = appointment.formatted_date_time()
    body = "\n".join(
        [
            "Appointment Reminder",
            "",
            f"Dear {patient_name},",
            "This is a reminder that you have an appointment scheduled:",
            f"  Date: {when['date']}",
            f"  Time: {when['time']}",
            f"  Provider: {appointment.provider or 'your provider'}",
            f"  Location: {appointment.location or CLINIC_ADDRESS}",
            "Please arrive 15 minutes early and bring your insurance card and ID.",
            f"If you need to reschedule, please call us at {CLINIC_PHONE}.",
            "",
            SIGNATURE,
        ]
    )
    return "Appointment Reminder - HealthFlow AI", body


def intake_form_email(patient_name: str, form_link: str) -> Tuple[str, str]:
    body = "\n".join(
        [
            "Patient Intake Form",
            "",
            f"Dear {patient_name},",
            "Please complete your patient intake form before your upcoming appointment:",
            f"Complete Intake Form: {form_link}",
            "This will help us provide you with the best possible care during your visit.",
            f"If you have any questions, please call us at {CLINIC_PHONE}.",
            "",
            SIGNATURE,
        ]
    )
    return "Complete Your Patient Intake Form - HealthFlow AI", body


class ReminderTransport:
    """Delivers rendered SMS and email messages."""

    async def send_sms(self, phone: str, body: str) -> DeliveryReceipt:
        raise NotImplementedError

    async def send_email(self, to: str, subject: str, body: str) -> DeliveryReceipt:
        raise NotImplementedError


class MockReminderTransport(ReminderTransport):
    """Log messages instead of sending them and keep a record for inspection."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.sent: List[Tuple[str, str, str]] = []

    async def _pause(self) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)

    async def send_sms(self, phone: str, body: str) -> DeliveryReceipt:
        if not phone:
            raise ReminderDeliveryError("missing phone number")
        await self._pause()
        self.sent.append(("sms", phone, body))
        logger.info("sms_mock_sent", to=phone, body=body)
        return DeliveryReceipt("sms", phone, f"mock_{int(time.time() * 1000)}", "Reminder sent successfully")

    async def send_email(self, to: str, subject: str, body: str) -> DeliveryReceipt:
        if not to:
            raise ReminderDeliveryError("missing email address")
        await self._pause()
        self.sent.append(("email", to, subject))
        logger.info("email_mock_sent", to=to, subject=subject)
        return DeliveryReceipt("email", to, f"email_{int(time.time() * 1000)}", "Email sent successfully")


def _channels(patient: Patient) -> Tuple[str, ...]:
    method = patient.preferences.get("communicationMethod", "email")
    if method == "both":
        return ("sms", "email")
    if method == "sms":
        return ("sms",)
    return ("email",)


async def send_appointment_reminder(
    transport: ReminderTransport,
    appointment: Appointment,
    patient: Patient,
) -> List[DeliveryReceipt]:
    """Send the reminder on every channel the patient prefers.

    Channels that fail are logged and skipped; the receipts of the channels
    that succeeded are returned.
    """

    receipts: List[DeliveryReceipt] = []
    for channel in _channels(patient):
        try:
            if channel == "sms":
                receipt = await transport.send_sms(patient.phone, reminder_sms_text(appointment))
            else:
                subject, body = reminder_email(appointment, patient.name)
                receipt = await transport.send_email(patient.email, subject, body)
        except ReminderDeliveryError as exc:
            logger.warning(
                "reminder_delivery_failed",
                appointment_id=appointment.id,
                patient_id=patient.id,
                channel=channel,
                error=str(exc),
            )
            continue
        REMINDERS_SENT_TOTAL.labels(channel=channel).inc()
        receipts.append(receipt)
    return receipts


async def send_follow_up(transport: ReminderTransport, patient: Patient) -> DeliveryReceipt:
    return await transport.send_sms(patient.phone, follow_up_sms_text(patient.name))


async def send_intake_form_link(
    transport: ReminderTransport,
    patient: Patient,
    form_link: str,
) -> DeliveryReceipt:
    subject, body = intake_form_email(patient.name, form_link)
    return await transport.send_email(patient.email, subject, body)


async def send_due_reminders(
    store: Store,
    transport: ReminderTransport,
    now: Optional[datetime] = None,
) -> List[Appointment]:
    """Send reminders for appointments inside the 24 hour window.

    Each appointment that was delivered on at least one channel is marked as
    reminded in the store, so a later run never sends it twice.
    """

    now = now or utc_now()
    reminded: List[Appointment] = []
    for appointment in store.appointments():
        if not appointment.should_send_reminder(now):
            continue
        patient = store.get_patient(appointment.patient_id)
        if patient is None:
            logger.warning("reminder_patient_missing", appointment_id=appointment.id, patient_id=appointment.patient_id)
            continue
        receipts = await send_appointment_reminder(transport, appointment, patient)
        if not receipts:
            continue
        channel = "both" if len(receipts) > 1 else receipts[0].channel
        updated = store.update_appointment(appointment.mark_reminder_sent(channel, now))
        reminded.append(updated)
    logger.info("reminders_sent", count=len(reminded))
    return reminded


__all__ = [
    "DeliveryReceipt",
    "MockReminderTransport",
    "ReminderDeliveryError",
    "ReminderTransport",
    "reminder_sms_text",
    "follow_up_sms_text",
    "reminder_email",
    "intake_form_email",
    "send_appointment_reminder",
    "send_follow_up",
    "send_intake_form_link",
    "send_due_reminders",
]
