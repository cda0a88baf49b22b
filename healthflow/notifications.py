"""Transient UI notifications and the timers that dismiss them."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from healthflow.models import generate_id
from healthflow.time_utils import now_iso


AUTO_DISMISS_SECONDS = 5.0
NOTIFICATION_TYPES = ("info", "success", "warning", "error")


@dataclass(frozen=True)
class Notification:
    type: str = "info"
    title: str = ""
    message: str = ""
    id: str = field(default_factory=lambda: generate_id("notification"))
    timestamp: str = field(default_factory=now_iso)

    def asdict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class ScheduledCall:
    """Handle returned by a scheduler; ``cancel`` must be idempotent."""

    def cancel(self) -> None:
        raise NotImplementedError


class Scheduler:
    """Runs a callback once after ``delay`` seconds unless cancelled."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        raise NotImplementedError


class _TimerCall(ScheduledCall):
    def __init__(self, timer: threading.Timer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class TimerScheduler(Scheduler):
    """Schedules callbacks on daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return _TimerCall(timer)


class _LoopCall(ScheduledCall):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class LoopScheduler(Scheduler):
    """Schedules callbacks on an asyncio event loop.

    Without an explicit loop the running loop is used, so ``call_later`` must
    then be invoked from inside a coroutine or callback.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        loop = self._loop or asyncio.get_running_loop()
        return _LoopCall(loop.call_later(delay, callback))


__all__ = [
    "AUTO_DISMISS_SECONDS",
    "NOTIFICATION_TYPES",
    "Notification",
    "ScheduledCall",
    "Scheduler",
    "TimerScheduler",
    "LoopScheduler",
]
