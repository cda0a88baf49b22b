"""Sliding-window admission control for outbound AI calls."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque


WINDOW_SECONDS = 60.0


class RateLimiter:
    """Sliding one-minute window limiter.

    Admission is split into :meth:`can_proceed` and :meth:`record_request` so a
    caller can fail fast without consuming a slot.  Both run synchronously, so
    the recorded order is the order in which calls were issued.
    """

    def __init__(
        self,
        limit: int = 60,
        window_seconds: float = WINDOW_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: Deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        threshold = now - self.window_seconds
        while self._events and self._events[0] <= threshold:
            self._events.popleft()

    def can_proceed(self) -> bool:
        with self._lock:
            self._evict(self._clock())
            return len(self._events) < self.limit

    def record_request(self) -> None:
        with self._lock:
            self._events.append(self._clock())

    def retry_after(self) -> float:
        """Seconds until a slot frees up; ``0.0`` when one is available now."""

        now = self._clock()
        with self._lock:
            self._evict(now)
            if len(self._events) < self.limit:
                return 0.0
            oldest = self._events[0]
            return max(0.0, self.window_seconds - (now - oldest))

    @property
    def recorded_count(self) -> int:
        with self._lock:
            return len(self._events)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


__all__ = ["RateLimiter", "WINDOW_SECONDS"]
