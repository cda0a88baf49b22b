"""AI operations used by the clinic assistant.

Three operations are exposed: chat replies, clinical note summaries and
intake-question generation.  Each one checks configuration and the local rate
limiter *at call time*, before the returned awaitable performs any network
I/O, so rate-limiter bookkeeping follows the order in which calls were issued
rather than the order in which responses arrive::

    reply = await service.generate_chat_response("Do you take Aetna?")

Chat and summarization raise :class:`ServiceError` when the remote call fails;
callers are expected to substitute a local fallback (see
:mod:`healthflow.workflows`).  Intake generation never raises for a bad remote
reply and returns :data:`DEFAULT_INTAKE_QUESTIONS` instead.
"""

from __future__ import annotations

import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from healthflow import openai_client
from healthflow.config import AISettings, get_ai_settings
from healthflow.observability import record_ai_outcome
from healthflow.prompts import (
    CHAT_MAX_TOKENS,
    CHAT_TEMPERATURE,
    INTAKE_MAX_TOKENS,
    INTAKE_TEMPERATURE,
    SUMMARY_MAX_TOKENS,
    SUMMARY_TEMPERATURE,
    build_chat_prompt,
    build_intake_prompt,
    build_summary_prompt,
)
from healthflow.rate_limiter import RateLimiter


logger = structlog.get_logger(__name__)

Transport = Callable[..., Awaitable[str]]

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.S | re.I)


class AIServiceError(Exception):
    """Base class for AI layer failures."""


class ConfigurationError(AIServiceError):
    """Raised before any network attempt when required settings are missing."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"AI service not configured; missing {', '.join(self.missing)}")


class RateLimitExceeded(AIServiceError):
    """Raised when the local per-minute budget is exhausted."""

    def __init__(self, retry_after: float = 0.0) -> None:
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Please try again in {retry_after:.0f}s.")


class ServiceError(AIServiceError):
    """Remote, network or response parsing failure for ``operation``."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} request failed: {cause}")


class IntakeQuestion(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    question: str = Field(min_length=1)
    type: Literal["text", "select", "checkbox", "date"]
    required: bool
    options: Optional[List[str]] = None


_INTAKE_LIST = TypeAdapter(List[IntakeQuestion])

DEFAULT_INTAKE_QUESTIONS = (
    IntakeQuestion(
        id="chief_complaint",
        question="What is the main reason for your visit today?",
        type="text",
        required=True,
    ),
    IntakeQuestion(
        id="current_medications",
        question="Please list all current medications",
        type="text",
        required=False,
    ),
    IntakeQuestion(
        id="allergies",
        question="Do you have any known allergies?",
        type="text",
        required=False,
    ),
)


def default_intake_questions() -> List[IntakeQuestion]:
    return list(DEFAULT_INTAKE_QUESTIONS)


def parse_intake_questions(raw: str) -> List[IntakeQuestion]:
    """Validate a model reply as a non-empty list of intake questions.

    Raises ``ValueError`` (``ValidationError`` is a subclass) on any mismatch.
    """

    text = (raw or "").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    questions = _INTAKE_LIST.validate_json(text)
    if not questions:
        raise ValueError("intake question list is empty")
    return questions


class AIService:
    """Rate limited access to the remote language model."""

    def __init__(
        self,
        settings: Optional[AISettings] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        self.settings = settings or get_ai_settings()
        self.rate_limiter = rate_limiter or RateLimiter(limit=self.settings.requests_per_minute)
        self._transport = transport

    @classmethod
    def from_env(cls, transport: Optional[Transport] = None) -> "AIService":
        return cls(get_ai_settings(), transport=transport)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def _admit(self, operation: str) -> None:
        missing = self.settings.missing()
        if missing:
            record_ai_outcome(operation, "misconfigured")
            logger.warning("ai_not_configured", operation=operation, missing=missing)
            raise ConfigurationError(missing)
        if not self.rate_limiter.can_proceed():
            retry_after = self.rate_limiter.retry_after()
            record_ai_outcome(operation, "rate_limited")
            logger.warning("ai_rate_limited", operation=operation, retry_after=retry_after)
            raise RateLimitExceeded(retry_after)
        self.rate_limiter.record_request()

    async def _complete(
        self,
        operation: str,
        messages: List[Dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        transport = self._transport or openai_client.call_openai
        started = time.perf_counter()
        try:
            content = await transport(
                messages,
                api_key=self.settings.api_key,
                model=self.settings.model,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.settings.timeout_seconds,
                base_url=self.settings.base_url,
            )
            if not isinstance(content, str) or not content.strip():
                raise RuntimeError("empty completion")
        except Exception as exc:
            record_ai_outcome(operation, "error")
            logger.warning("ai_request_failed", operation=operation, error=str(exc))
            raise ServiceError(operation, exc) from exc
        record_ai_outcome(operation, "success")
        logger.info(
            "ai_request_completed",
            operation=operation,
            model=self.settings.model,
            duration_ms=round((time.perf_counter() - started) * 1000.0, 1),
        )
        return content.strip()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def generate_chat_response(
        self,
        message: str,
        knowledge_base: Optional[Mapping[str, Any]] = None,
    ) -> Awaitable[str]:
        """Return an awaitable front desk reply to ``message``."""

        self._admit("chat")
        return self._complete(
            "chat",
            build_chat_prompt(message, knowledge_base),
            max_tokens=CHAT_MAX_TOKENS,
            temperature=CHAT_TEMPERATURE,
        )

    def summarize_clinical_note(self, raw_text: str) -> Awaitable[str]:
        """Return an awaitable five-part summary of ``raw_text``."""

        self._admit("summarize")
        return self._complete(
            "summarize",
            build_summary_prompt(raw_text),
            max_tokens=SUMMARY_MAX_TOKENS,
            temperature=SUMMARY_TEMPERATURE,
        )

    def generate_intake_questions(self, patient_type: str) -> Awaitable[List[IntakeQuestion]]:
        """Return an awaitable list of intake questions for ``patient_type``.

        Configuration and rate-limit errors raise immediately; every later
        failure yields the default question set.
        """

        self._admit("intake")
        return self._intake(patient_type)

    async def _intake(self, patient_type: str) -> List[IntakeQuestion]:
        try:
            raw = await self._complete(
                "intake",
                build_intake_prompt(patient_type),
                max_tokens=INTAKE_MAX_TOKENS,
                temperature=INTAKE_TEMPERATURE,
            )
        except ServiceError:
            return default_intake_questions()
        try:
            return parse_intake_questions(raw)
        except ValueError as exc:
            detail = exc.error_count() if isinstance(exc, ValidationError) else str(exc)
            record_ai_outcome("intake", "invalid_reply")
            logger.warning("intake_reply_invalid", patient_type=patient_type, detail=detail)
            return default_intake_questions()


__all__ = [
    "AIService",
    "AIServiceError",
    "ConfigurationError",
    "RateLimitExceeded",
    "ServiceError",
    "IntakeQuestion",
    "DEFAULT_INTAKE_QUESTIONS",
    "default_intake_questions",
    "parse_intake_questions",
]
