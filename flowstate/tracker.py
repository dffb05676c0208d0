"""Client-side flow depth gauge with idle detection.

The tracker is a small state machine driven by an injected clock:

* ``idle``: no qualifying input for ``idle_timeout_sec``; ticking is suspended.
* ``active_no_session``: user is present but no flow session is open.
* ``active_in_session``: a session is open; every tick adds one second of
  elapsed time and ``depth_step`` to the depth gauge, capped at ``max_depth``.

Every timer the tracker schedules is cancelled when the state it belongs to is
left and on ``close()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Callable

from .clock import Clock, TimerHandle
from .errors import InvalidStateError

IDLE = "idle"
ACTIVE_NO_SESSION = "active_no_session"
ACTIVE_IN_SESSION = "active_in_session"

ACTIVITY_KINDS = frozenset({"pointer", "key", "scroll", "touch"})

COST_CHECK_DEPTH = 30


@dataclass(frozen=True)
class TrackerConfig:
    idle_timeout_sec: float = 120.0
    tick_seconds: float = 1.0
    depth_step: float = 0.5
    start_depth: float = 20.0
    max_depth: float = 100.0


@dataclass(frozen=True)
class TrackerSnapshot:
    state: str
    in_session: bool
    idle: bool
    depth: float
    elapsed_sec: int

    @property
    def should_check_cost(self) -> bool:
        return self.in_session and self.depth > COST_CHECK_DEPTH


ChangeCallback = Callable[[str, TrackerSnapshot], None]


class DepthTracker:
    def __init__(
        self,
        clock: Clock,
        config: TrackerConfig | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.clock = clock
        self.config = config or TrackerConfig()
        self.on_change = on_change
        self._lock = RLock()
        self._idle = False
        self._in_session = False
        self._closed = False
        self._depth = 0.0
        self._elapsed = 0
        self._tick_timer: TimerHandle | None = None
        self._idle_timer: TimerHandle | None = None
        self._tick_gen = 0
        self._idle_gen = 0
        with self._lock:
            self._arm_idle_timer()

    @property
    def state(self) -> str:
        if self._idle:
            return IDLE
        return ACTIVE_IN_SESSION if self._in_session else ACTIVE_NO_SESSION

    @property
    def pending_timers(self) -> int:
        return int(self._tick_timer is not None) + int(self._idle_timer is not None)

    def snapshot(self) -> TrackerSnapshot:
        with self._lock:
            return self._snapshot()

    def record_activity(self, kind: str) -> bool:
        if kind not in ACTIVITY_KINDS:
            return False
        with self._lock:
            self._require_open()
            was_idle = self._idle
            self._idle = False
            self._arm_idle_timer()
            if was_idle and self._in_session:
                self._schedule_tick()
            snap = self._snapshot()
        if was_idle:
            self._notify("resumed", snap)
        return True

    def start_session(self) -> TrackerSnapshot:
        with self._lock:
            self._require_open()
            if self._in_session:
                raise InvalidStateError("a flow session is already being tracked")
            self._in_session = True
            self._depth = self.config.start_depth
            self._elapsed = 0
            if not self._idle:
                self._schedule_tick()
            snap = self._snapshot()
        self._notify("session_start", snap)
        return snap

    def end_session(self) -> TrackerSnapshot:
        with self._lock:
            self._require_open()
            if not self._in_session:
                raise InvalidStateError("no flow session is being tracked")
            final = self._snapshot()
            self._cancel_tick()
            self._in_session = False
            self._depth = 0.0
            snap = self._snapshot()
        self._notify("session_end", snap)
        return final

    def close(self) -> None:
        with self._lock:
            self._cancel_tick()
            self._cancel_idle()
            self._in_session = False
            self._closed = True

    def _require_open(self) -> None:
        if self._closed:
            raise InvalidStateError("tracker has been closed")

    def _snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            state=self.state,
            in_session=self._in_session,
            idle=self._idle,
            depth=self._depth,
            elapsed_sec=self._elapsed,
        )

    def _arm_idle_timer(self) -> None:
        self._cancel_idle()
        self._idle_gen += 1
        gen = self._idle_gen
        self._idle_timer = self.clock.after(self.config.idle_timeout_sec, lambda: self._on_idle(gen))

    def _cancel_idle(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None
        self._idle_gen += 1

    def _schedule_tick(self) -> None:
        self._cancel_tick()
        self._tick_gen += 1
        gen = self._tick_gen
        self._tick_timer = self.clock.after(self.config.tick_seconds, lambda: self._on_tick(gen))

    def _cancel_tick(self) -> None:
        if self._tick_timer is not None:
            self._tick_timer.cancel()
            self._tick_timer = None
        self._tick_gen += 1

    def _on_idle(self, gen: int) -> None:
        with self._lock:
            if gen != self._idle_gen or self._closed:
                return
            self._idle_timer = None
            self._idle = True
            self._cancel_tick()
            snap = self._snapshot()
        self._notify("idle", snap)

    def _on_tick(self, gen: int) -> None:
        with self._lock:
            if gen != self._tick_gen or self._closed:
                return
            self._tick_timer = None
            if not self._in_session or self._idle:
                return
            self._elapsed += 1
            self._depth = min(self.config.max_depth, self._depth + self.config.depth_step)
            self._schedule_tick()
            snap = self._snapshot()
        self._notify("tick", snap)

    def _notify(self, event: str, snap: TrackerSnapshot) -> None:
        if self.on_change is None:
            return
        self.on_change(event, snap)
