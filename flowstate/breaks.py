from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Callable

from .clock import Clock, TimerHandle
from .errors import InvalidStateError

MICRO = "micro"
SHORT = "short"
LONG = "long"

SUGGESTIONS: dict[str, tuple[str, ...]] = {
    MICRO: (
        "Look at something 20 feet away for 20 seconds.",
        "Blink slowly ten times and relax your shoulders.",
    ),
    SHORT: (
        "Stand up, stretch and refill your water.",
        "Walk around for five minutes without your phone.",
    ),
    LONG: (
        "Step outside for fresh air and a proper snack.",
        "Take a 15 minute walk and let your mind wander.",
    ),
}


@dataclass(frozen=True)
class BreakConfig:
    micro_interval_sec: int = 20 * 60
    short_interval_sec: int = 50 * 60
    long_interval_sec: int = 120 * 60
    snooze_sec: int = 300
    tick_seconds: float = 1.0


@dataclass(frozen=True)
class ActiveBreak:
    kind: str
    suggestion: str


BreakCallback = Callable[[str, str], None]
OutcomeCallback = Callable[[str, str], None]


class BreakScheduler:
    """Counts active seconds and suggests micro, short and long breaks.

    Micro breaks are only announced; short and long breaks pause counting until
    they are completed, skipped or snoozed.
    """

    def __init__(
        self,
        clock: Clock,
        config: BreakConfig | None = None,
        on_break: BreakCallback | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        self.clock = clock
        self.config = config or BreakConfig()
        self.on_break = on_break
        self.on_outcome = on_outcome
        self._lock = RLock()
        self._elapsed = 0
        self._idle = False
        self._running = False
        self._active: ActiveBreak | None = None
        self._timer: TimerHandle | None = None
        self._gen = 0
        self._issued: dict[str, int] = {MICRO: 0, SHORT: 0, LONG: 0}

    @property
    def elapsed_sec(self) -> int:
        return self._elapsed

    @property
    def active_break(self) -> ActiveBreak | None:
        return self._active

    @property
    def is_ticking(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        with self._lock:
            self._running = True
            self._sync_timer()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            self._sync_timer()

    def set_idle(self, idle: bool) -> None:
        with self._lock:
            self._idle = idle
            self._sync_timer()

    def complete(self) -> None:
        self._resolve("taken")

    def skip(self) -> None:
        self._resolve("skipped")

    def snooze(self) -> None:
        with self._lock:
            if self._active is None:
                raise InvalidStateError("no break to snooze")
            kind = self._active.kind
            self._elapsed = max(0, self._elapsed - self.config.snooze_sec)
            self._active = None
            self._sync_timer()
        self._report(kind, "snoozed")

    def _resolve(self, status: str) -> None:
        with self._lock:
            if self._active is None:
                raise InvalidStateError("no active break")
            kind = self._active.kind
            self._active = None
            self._sync_timer()
        self._report(kind, status)

    def _sync_timer(self) -> None:
        should_tick = self._running and not self._idle and self._active is None
        if should_tick and self._timer is None:
            self._schedule()
        elif not should_tick and self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._gen += 1

    def _schedule(self) -> None:
        self._gen += 1
        gen = self._gen
        self._timer = self.clock.after(self.config.tick_seconds, lambda: self._on_tick(gen))

    def _on_tick(self, gen: int) -> None:
        with self._lock:
            if gen != self._gen:
                return
            self._timer = None
            self._elapsed += 1
            kind = self._due_break(self._elapsed)
            suggestion = ""
            if kind is not None:
                suggestion = self._suggestion(kind)
                if kind != MICRO:
                    self._active = ActiveBreak(kind=kind, suggestion=suggestion)
            self._sync_timer()
        if kind is not None and self.on_break is not None:
            self.on_break(kind, suggestion)

    def _due_break(self, elapsed: int) -> str | None:
        if elapsed % self.config.long_interval_sec == 0:
            return LONG
        if elapsed % self.config.short_interval_sec == 0:
            return SHORT
        if elapsed % self.config.micro_interval_sec == 0:
            return MICRO
        return None

    def _suggestion(self, kind: str) -> str:
        options = SUGGESTIONS[kind]
        text = options[self._issued[kind] % len(options)]
        self._issued[kind] += 1
        return text

    def _report(self, kind: str, status: str) -> None:
        if self.on_outcome is not None:
            self.on_outcome(kind, status)
