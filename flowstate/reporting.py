from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from .db import FlowDB, FlowSession
from .errors import InvalidArgumentError
from .heuristics import round_half_up

MAX_WINDOW_DAYS = 3650


@dataclass(frozen=True)
class FlowStats:
    days: int
    total_flow_minutes: int
    total_flow_hours: float
    sessions_count: int
    avg_quality: int
    avg_duration: int
    total_interruptions: int
    interruption_rate: float
    message: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def format_minutes(minutes: int) -> str:
    total = max(0, int(minutes))
    hours, mins = divmod(total, 60)
    if hours > 0:
        return f"{hours}h{mins:02d}m"
    return f"{mins}m"


def build_flow_stats(db: FlowDB, user_id: str, days: int = 7, now: datetime | None = None) -> FlowStats:
    if days <= 0 or days > MAX_WINDOW_DAYS:
        raise InvalidArgumentError(f"days must be within 1..{MAX_WINDOW_DAYS}, got {days}")
    ref = now or datetime.now().astimezone()
    if ref.tzinfo is None:
        ref = ref.astimezone()
    sessions = db.list_finished_sessions(user_id, since=ref - timedelta(days=days))
    return collect_stats(sessions, days)


def collect_stats(sessions: list[FlowSession], days: int) -> FlowStats:
    if not sessions:
        return FlowStats(
            days=days,
            total_flow_minutes=0,
            total_flow_hours=0.0,
            sessions_count=0,
            avg_quality=0,
            avg_duration=0,
            total_interruptions=0,
            interruption_rate=0.0,
            message="No flow sessions recorded",
        )

    count = len(sessions)
    total_minutes = sum(item.duration_minutes or 0 for item in sessions)
    total_quality = sum(item.quality_score or 0 for item in sessions)
    total_interruptions = sum(item.interruptions for item in sessions)

    return FlowStats(
        days=days,
        total_flow_minutes=total_minutes,
        total_flow_hours=round_half_up(total_minutes / 60 * 10) / 10,
        sessions_count=count,
        avg_quality=round_half_up(total_quality / count),
        avg_duration=round_half_up(total_minutes / count),
        total_interruptions=total_interruptions,
        interruption_rate=round_half_up(total_interruptions / count * 10) / 10,
        message=f"{round_half_up(total_minutes / 60)} hours of deep work in the last {days} days",
    )
