"""Consumer-side flows that combine the AI service with the store.

Every chat and summarization caller must degrade gracefully: when the AI
service refuses or fails, a deterministic local answer from
:mod:`healthflow.offline_model` is used and a warning notification is shown.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import List, Optional

import openai
import structlog

from healthflow import offline_model
from healthflow.ai_service import (
    AIService,
    AIServiceError,
    ConfigurationError,
    IntakeQuestion,
    RateLimitExceeded,
    ServiceError,
    default_intake_questions,
)
from healthflow.models import Bot, MessageLog, Note, count_words
from healthflow.store import Store


logger = structlog.get_logger(__name__)

UNAVAILABLE_TITLE = "AI Service Unavailable"
CHAT_FALLBACK_MESSAGE = "Using fallback responses. Please check your API configuration."
SUMMARY_FALLBACK_MESSAGE = "Using fallback summarization. Please check your API configuration."
DEFAULT_PROVIDER_ID = "demo"


@dataclass(frozen=True)
class ChatOutcome:
    reply: str
    used_fallback: bool = False
    error: Optional[str] = None
    incoming: Optional[MessageLog] = None
    outgoing: Optional[MessageLog] = None


@dataclass(frozen=True)
class SummaryOutcome:
    summary: str
    processing_time_ms: int
    used_fallback: bool = False
    error: Optional[str] = None
    note: Optional[Note] = None


def _root_cause(exc: BaseException) -> BaseException:
    seen = set()
    while exc.__cause__ is not None and id(exc) not in seen:
        seen.add(id(exc))
        exc = exc.__cause__
    return exc


def describe_error(exc: BaseException) -> str:
    """Return a short message suitable for showing to the user."""

    if isinstance(exc, RateLimitExceeded):
        return "Rate limit exceeded. Please try again in a moment."
    if isinstance(exc, ConfigurationError):
        return "AI service is not configured. Please check your API configuration."
    root = _root_cause(exc)
    if isinstance(root, (openai.APIConnectionError, asyncio.TimeoutError, ConnectionError)):
        return "Network error. Please check your connection and try again."
    if isinstance(root, openai.RateLimitError):
        return "Rate limit exceeded. Please try again in a moment."
    message = str(root) if isinstance(exc, ServiceError) else str(exc)
    return message or "An unexpected error occurred. Please try again."


def _provider_id(store: Store, provider_id: Optional[str]) -> str:
    if provider_id:
        return provider_id
    current = store.snapshot.current_provider
    return current.id if current is not None else DEFAULT_PROVIDER_ID


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


async def respond_to_chat(
    store: Store,
    ai: AIService,
    message: str,
    *,
    provider_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    bot: Optional[Bot] = None,
) -> ChatOutcome:
    """Answer a visitor's chat message, falling back to a canned reply."""

    provider = _provider_id(store, provider_id)
    visitor = patient_id or f"web_visitor_{int(time.time() * 1000)}"
    knowledge_base = bot.knowledge_base if bot is not None else None
    started = time.perf_counter()
    try:
        reply = await ai.generate_chat_response(message, knowledge_base)
    except AIServiceError as exc:
        error = describe_error(exc)
        logger.warning("chat_fallback_used", error_type=type(exc).__name__, error=error)
        store.add_notification("warning", UNAVAILABLE_TITLE, CHAT_FALLBACK_MESSAGE)
        return ChatOutcome(reply=offline_model.chat_response(message), used_fallback=True, error=error)

    common = {
        "providerId": provider,
        "patientId": visitor,
        "botId": bot.id if bot is not None else "",
        "type": "text",
    }
    incoming = store.add_message({**common, "content": message, "direction": "incoming"})
    outgoing = store.add_message(
        {
            **common,
            "content": reply,
            "direction": "outgoing",
            "status": "sent",
            "responseTime": _elapsed_ms(started),
        }
    )
    return ChatOutcome(reply=reply, incoming=incoming, outgoing=outgoing)


async def summarize_note(
    store: Store,
    ai: AIService,
    raw_text: str,
    *,
    provider_id: Optional[str] = None,
    patient_id: Optional[str] = None,
) -> Optional[SummaryOutcome]:
    """Summarize ``raw_text`` and store it as a final note.

    Returns ``None`` for blank input without contacting the AI service.  On
    failure the leading sentences of the note are returned instead and no
    note is stored.
    """

    if not (raw_text or "").strip():
        return None

    started = time.perf_counter()
    store.set_loading(True)
    try:
        summary = await ai.summarize_clinical_note(raw_text)
    except AIServiceError as exc:
        error = describe_error(exc)
        logger.warning("summary_fallback_used", error_type=type(exc).__name__, error=error)
        store.add_notification("warning", UNAVAILABLE_TITLE, SUMMARY_FALLBACK_MESSAGE)
        return SummaryOutcome(
            summary=offline_model.summarize(raw_text),
            processing_time_ms=_elapsed_ms(started),
            used_fallback=True,
            error=error,
        )
    finally:
        store.set_loading(False)

    elapsed = _elapsed_ms(started)
    note = store.add_note(
        {
            "rawContent": raw_text,
            "summary": summary,
            "providerId": _provider_id(store, provider_id),
            "patientId": patient_id or f"demo_patient_{int(time.time() * 1000)}",
            "processingTime": elapsed,
            "status": "final",
        }
    )
    store.add_notification(
        "success",
        "Note Summarized",
        f"Successfully processed {count_words(raw_text)} words in {elapsed / 1000:.1f}s",
    )
    return SummaryOutcome(summary=summary, processing_time_ms=elapsed, note=note)


async def build_intake_form(ai: AIService, patient_type: str) -> List[IntakeQuestion]:
    """Return intake questions for ``patient_type``; never raises."""

    try:
        return await ai.generate_intake_questions(patient_type)
    except (ConfigurationError, RateLimitExceeded) as exc:
        logger.warning("intake_defaults_used", patient_type=patient_type, reason=type(exc).__name__)
        return default_intake_questions()


__all__ = [
    "ChatOutcome",
    "SummaryOutcome",
    "respond_to_chat",
    "summarize_note",
    "build_intake_form",
    "describe_error",
]
