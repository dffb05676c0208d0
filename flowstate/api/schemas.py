from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class FlowRequest(BaseModel):
    action: str
    user_id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class SessionOut(BaseModel):
    id: int
    user_id: str
    task_context: str
    started_at: datetime
    ended_at: datetime | None = None
    duration_minutes: int | None = None
    quality_score: int | None = None
    triggers: list[str]
    breakers: list[dict[str, Any]]
    interruptions: int
    time_of_day: str
    day_of_week: int


class PatternOut(BaseModel):
    user_id: str
    payload: dict[str, Any]
    sample_count: int
    confidence: float
    last_updated: datetime | None = None


class HealthOut(BaseModel):
    status: str = Field(default="ok")


class MetaOut(BaseModel):
    app: str
    version: str
    db_path: str
    platform: str
    actions: list[str]
