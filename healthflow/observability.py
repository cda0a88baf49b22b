"""Logging configuration and process metrics."""

from __future__ import annotations

import logging
import os
from typing import Optional

import structlog
from prometheus_client import Counter


AI_REQUESTS_TOTAL = Counter(
    "healthflow_ai_requests_total",
    "AI operations by outcome",
    ("operation", "outcome"),
)

PERSISTENCE_FAILURES_TOTAL = Counter(
    "healthflow_persistence_failures_total",
    "Snapshot load/save failures that were logged and skipped",
    ("stage",),
)

REMINDERS_SENT_TOTAL = Counter(
    "healthflow_reminders_sent_total",
    "Appointment reminders handed to the transport",
    ("channel",),
)

_CONFIGURED = False


def configure_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """Configure stdlib logging and structlog with a JSON renderer.

    Safe to call more than once; later calls are ignored unless ``force``.
    """

    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO), format="%(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def record_ai_outcome(operation: str, outcome: str) -> None:
    AI_REQUESTS_TOTAL.labels(operation=operation, outcome=outcome).inc()


__all__ = [
    "AI_REQUESTS_TOTAL",
    "PERSISTENCE_FAILURES_TOTAL",
    "REMINDERS_SENT_TOTAL",
    "configure_logging",
    "record_ai_outcome",
]
