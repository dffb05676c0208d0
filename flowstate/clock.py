from __future__ import annotations

from datetime import datetime, timedelta, timezone
import threading
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def after(self, seconds: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class RealClock:
    def now(self) -> datetime:
        return datetime.now().astimezone()

    def after(self, seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, seconds), callback)
        timer.daemon = True
        timer.start()
        return timer


class _ScheduledCall:
    def __init__(self, due: datetime, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        self.active = False


class FakeClock:
    """Deterministic clock; scheduled callbacks fire only from advance()."""

    def __init__(self, start: datetime | None = None) -> None:
        base = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        if base.tzinfo is None:
            base = base.replace(tzinfo=timezone.utc)
        self._current = base
        self._scheduled: list[_ScheduledCall] = []
        self._seq = 0

    def now(self) -> datetime:
        return self._current

    def after(self, seconds: float, callback: Callable[[], None]) -> TimerHandle:
        self._seq += 1
        call = _ScheduledCall(self._current + timedelta(seconds=max(0.0, seconds)), self._seq, callback)
        self._scheduled.append(call)
        return call

    def advance(self, seconds: float) -> None:
        target = self._current + timedelta(seconds=max(0.0, seconds))
        while True:
            self._scheduled = [call for call in self._scheduled if call.active]
            due = [call for call in self._scheduled if call.due <= target]
            if not due:
                break
            call = min(due, key=lambda item: (item.due, item.seq))
            call.active = False
            self._current = max(self._current, call.due)
            call.callback()
        self._current = target

    def pending_timers(self) -> int:
        return sum(1 for call in self._scheduled if call.active)
