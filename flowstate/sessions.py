from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
import logging
from threading import Lock
from typing import Any, Iterable, Iterator

from .clock import Clock
from .db import FlowDB, FlowSession
from .errors import InvalidArgumentError, InvalidStateError, NotFoundError
from .heuristics import round_half_up

logger = logging.getLogger(__name__)

BASE_TIPS = ("Focus on one task at a time", "Take deep breaths before starting")


def time_of_day_bucket(hour: int) -> str:
    if hour < 6:
        return "night"
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    return "evening"


def day_of_week(moment: datetime) -> int:
    # 0 = Sunday
    return (moment.weekday() + 1) % 7


def best_time_buckets(payload: dict[str, Any]) -> set[str]:
    buckets: set[str] = set()
    for item in payload.get("best_times") or []:
        if isinstance(item, str):
            buckets.add(item)
        elif isinstance(item, dict) and isinstance(item.get("time_of_day"), str):
            buckets.add(item["time_of_day"])
    return buckets


@dataclass(frozen=True)
class StartResult:
    session_id: int
    started_at: datetime
    time_of_day: str
    tips: list[str]
    message: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


@dataclass(frozen=True)
class EndResult:
    session_id: int
    duration_minutes: int
    quality_score: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class _SessionLock:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


class FlowSessionManager:
    def __init__(self, db: FlowDB, clock: Clock) -> None:
        self.db = db
        self.clock = clock
        self._locks: dict[int, _SessionLock] = {}
        self._locks_guard = Lock()

    @contextmanager
    def _session_lock(self, session_id: int) -> Iterator[None]:
        # entries live only while some caller holds or waits on them
        with self._locks_guard:
            entry = self._locks.get(session_id)
            if entry is None:
                entry = self._locks[session_id] = _SessionLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    self._locks.pop(session_id, None)

    def start(self, user_id: str, task_context: str = "") -> StartResult:
        if not user_id or not user_id.strip():
            raise InvalidArgumentError("user_id is required")

        now = self.clock.now()
        bucket = time_of_day_bucket(now.hour)
        session = self.db.insert_session(
            user_id=user_id,
            task_context=task_context or "",
            started_at=now,
            time_of_day=bucket,
            day_of_week=day_of_week(now),
        )

        tips = list(BASE_TIPS)
        pattern = self.db.get_pattern(user_id)
        if pattern is not None and bucket in best_time_buckets(pattern.payload):
            tips.append(f"Great timing! {bucket} is your peak flow period.")

        logger.info("flow session %s started for %s (%s)", session.id, user_id, bucket)
        return StartResult(
            session_id=session.id,
            started_at=session.started_at,
            time_of_day=bucket,
            tips=tips,
            message="Flow session started. Entering deep work mode...",
        )

    def end(
        self,
        session_id: int,
        quality_score: float,
        triggers: Iterable[str] | None = None,
        breakers: Iterable[Any] | None = None,
    ) -> EndResult:
        if isinstance(quality_score, bool) or not isinstance(quality_score, (int, float)):
            raise InvalidArgumentError("quality_score must be a number")
        if quality_score < 0 or quality_score > 100:
            raise InvalidArgumentError(f"quality_score must be within 0..100, got {quality_score:g}")
        quality = round_half_up(quality_score)
        trigger_list = [str(item) for item in (triggers or [])]
        extra_breakers = list(breakers or [])

        with self._session_lock(session_id):
            session = self._require_session(session_id)
            if not session.is_active:
                raise InvalidStateError(f"flow session {session_id} has already ended")

            ended_at = self.clock.now()
            if ended_at < session.started_at:
                ended_at = session.started_at
            elapsed_ms = (ended_at - session.started_at).total_seconds() * 1000
            duration = max(0, round_half_up(elapsed_ms / 60000))

            merged = list(session.breakers)
            for item in extra_breakers:
                if isinstance(item, dict):
                    merged.append(dict(item))
                else:
                    merged.append({"type": str(item), "source": "", "time": ended_at.isoformat()})

            finalized = self.db.finalize_session(
                session_id=session_id,
                ended_at=ended_at,
                duration_minutes=duration,
                quality_score=quality,
                triggers=trigger_list,
                breakers=merged,
                last_session={"time_of_day": session.time_of_day, "quality": quality, "duration": duration},
            )
            if finalized is None:
                raise InvalidStateError(f"flow session {session_id} has already ended")

        logger.info("flow session %s ended after %s min (quality %s)", session_id, duration, quality)
        return EndResult(
            session_id=session_id,
            duration_minutes=duration,
            quality_score=quality,
            message=f"Flow session complete! {duration} minutes of deep work.",
        )

    def log_interruption(self, session_id: int, interruption_type: str, source: str = "") -> dict[str, Any]:
        kind = (interruption_type or "").strip()
        if not kind:
            raise InvalidArgumentError("interruption_type is required")

        with self._session_lock(session_id):
            session = self._require_session(session_id)
            if not session.is_active:
                raise InvalidStateError(f"flow session {session_id} is not active")
            breaker = {"type": kind, "source": source or "", "time": self.clock.now().isoformat()}
            updated = self.db.append_breaker(session_id, breaker)
            if updated is None:
                raise InvalidStateError(f"flow session {session_id} is not active")

        logger.info("interruption %r logged on flow session %s", kind, session_id)
        return {
            "logged": True,
            "interruptions": updated.interruptions,
            "message": f"Interruption logged: {kind}",
        }

    def get(self, session_id: int) -> FlowSession:
        return self._require_session(session_id)

    def list_sessions(self, user_id: str, limit: int = 20) -> list[FlowSession]:
        return self.db.list_sessions(user_id, limit=limit)

    def _require_session(self, session_id: int) -> FlowSession:
        session = self.db.get_session(session_id)
        if session is None:
            raise NotFoundError(f"flow session {session_id} not found")
        return session
