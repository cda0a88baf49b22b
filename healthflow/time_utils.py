"""Utilities for working with timestamps in UTC."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 string into a UTC ``datetime``.

    A trailing ``Z`` is accepted.  ``None`` is returned for empty or
    unparseable input instead of raising.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    # Offsets near year 1 or 9999 can push the UTC value off the calendar.
    try:
        return ensure_utc(parsed)
    except (ValueError, OverflowError):
        return None


def to_iso(dt: datetime) -> str:
    """Return ``dt`` as ISO-8601 text in UTC with millisecond precision."""

    text = ensure_utc(dt).isoformat(timespec="milliseconds")
    if text.endswith("+00:00"):
        return text[:-6] + "Z"
    return text


def now_iso() -> str:
    return to_iso(utc_now())


__all__ = ["utc_now", "ensure_utc", "parse_iso", "to_iso", "now_iso"]
