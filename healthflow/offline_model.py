"""Deterministic local substitutes used when the AI service is unavailable.

Both helpers are pure functions of their input so the same question or note
always produces the same fallback text.
"""

from __future__ import annotations

from typing import List, Tuple

from healthflow.models import CLINIC_PHONE


SUMMARY_SENTENCE_LIMIT = 3

# Checked in order; the first keyword found in the message wins.
CANNED_RESPONSES: Tuple[Tuple[str, str], ...] = (
    (
        "insurance",
        "We accept most major insurance plans including Blue Cross Blue Shield, Aetna, "
        "Cigna, and UnitedHealthcare. Please bring your insurance card to verify coverage.",
    ),
    (
        "appointment",
        f"To schedule an appointment, you can call us at {CLINIC_PHONE} or use our online "
        "booking system. We typically have availability within 2-3 business days.",
    ),
    (
        "location",
        "We're located at 123 Medical Center Drive, Suite 200, in the downtown medical "
        "district. Free parking is available.",
    ),
    (
        "preparation",
        "Please bring a valid ID, your insurance card, and a list of current medications. "
        "Arrive 15 minutes early to complete any necessary paperwork.",
    ),
)

DEFAULT_CHAT_RESPONSE = (
    "Thank you for your question. For specific medical concerns, please contact our "
    f"office directly at {CLINIC_PHONE} or speak with one of our staff members."
)


def chat_response(message: str) -> str:
    """Return the canned answer whose keyword appears in ``message``."""

    lowered = (message or "").lower()
    for keyword, response in CANNED_RESPONSES:
        if keyword in lowered:
            return response
    return DEFAULT_CHAT_RESPONSE


def summarize(text: str, max_sentences: int = SUMMARY_SENTENCE_LIMIT) -> str:
    """Return the leading sentences of ``text`` joined back with periods.

    Sentences are split naively on ``.``; empty input yields an empty string.
    """

    sentences: List[str] = [s.strip() for s in (text or "").split(".") if s.strip()]
    if not sentences:
        return ""
    return ". ".join(sentences[:max_sentences]) + "."


__all__ = ["chat_response", "summarize", "DEFAULT_CHAT_RESPONSE"]
