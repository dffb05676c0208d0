from __future__ import annotations

from datetime import timedelta
import json
import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .clock import Clock
from .db import FlowDB, FlowSession
from .errors import InvalidArgumentError, UpstreamError
from .llm import TextGenerator, complete_with_timeout
from .reporting import MAX_WINDOW_DAYS

logger = logging.getLogger(__name__)

MIN_SESSIONS = 3
CONFIDENCE_SAMPLES = 20
PATTERN_SCHEMA_VERSION = 1

ANALYZE_SYSTEM_PROMPT = "Analyze flow session data to identify patterns. Be specific and actionable."

ANALYZE_RESPONSE_SHAPE = """{
  "best_times": [{ "time_of_day": "string", "avg_quality": number, "avg_duration": number }],
  "best_days": [{ "day": "string", "avg_quality": number }],
  "common_triggers": [{ "trigger": "string", "frequency": number }],
  "common_breakers": [{ "breaker": "string", "frequency": number, "avg_impact": number }],
  "optimal_duration": number,
  "flow_fingerprint": {
    "peak_time": "string",
    "ideal_session_length": number,
    "vulnerability": "string - biggest flow killer",
    "superpower": "string - biggest flow enabler"
  },
  "recommendations": [string],
  "weekly_flow_hours": number
}"""


class BestTime(BaseModel):
    time_of_day: str
    avg_quality: float = 0
    avg_duration: float = 0


class BestDay(BaseModel):
    day: str
    avg_quality: float = 0


class TriggerFrequency(BaseModel):
    trigger: str
    frequency: float = 0


class BreakerFrequency(BaseModel):
    breaker: str
    frequency: float = 0
    avg_impact: float = 0


class FlowFingerprint(BaseModel):
    peak_time: str = ""
    ideal_session_length: float = 0
    vulnerability: str = ""
    superpower: str = ""


class FlowPatternPayload(BaseModel):
    schema_version: int = PATTERN_SCHEMA_VERSION
    best_times: list[BestTime] = Field(default_factory=list)
    best_days: list[BestDay] = Field(default_factory=list)
    common_triggers: list[TriggerFrequency] = Field(default_factory=list)
    common_breakers: list[BreakerFrequency] = Field(default_factory=list)
    optimal_duration: float = 0
    flow_fingerprint: FlowFingerprint = Field(default_factory=FlowFingerprint)
    recommendations: list[str] = Field(default_factory=list)
    weekly_flow_hours: float = 0


def confidence_for(sample_count: int) -> float:
    return min(sample_count / CONFIDENCE_SAMPLES, 1.0)


def parse_pattern_payload(text: str) -> FlowPatternPayload | None:
    try:
        raw = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(raw, dict):
        return None
    raw.pop("schema_version", None)
    try:
        return FlowPatternPayload.model_validate(raw)
    except ValidationError:
        return None


def _session_prompt_row(session: FlowSession) -> dict[str, Any]:
    row = session.to_dict()
    row.pop("user_id", None)
    return row


class FlowPatternAnalyzer:
    def __init__(
        self,
        db: FlowDB,
        generator: TextGenerator,
        clock: Clock,
        timeout_sec: float = 10.0,
    ) -> None:
        self.db = db
        self.generator = generator
        self.clock = clock
        self.timeout_sec = timeout_sec

    def analyze(self, user_id: str, window_days: int = 30) -> dict[str, Any]:
        if not user_id or not user_id.strip():
            raise InvalidArgumentError("user_id is required")
        if window_days <= 0 or window_days > MAX_WINDOW_DAYS:
            raise InvalidArgumentError(f"window_days must be within 1..{MAX_WINDOW_DAYS}, got {window_days}")

        now = self.clock.now()
        sessions = self.db.list_finished_sessions(user_id, since=now - timedelta(days=window_days))
        if len(sessions) < MIN_SESSIONS:
            return {
                "patterns": None,
                "sessions_analyzed": len(sessions),
                "message": f"Need at least {MIN_SESSIONS} completed flow sessions to analyze patterns",
            }

        payload = self._summarize(user_id, sessions)
        confidence = confidence_for(len(sessions))
        pattern = self.db.upsert_pattern(
            user_id=user_id,
            payload=payload.model_dump(),
            sample_count=len(sessions),
            confidence=confidence,
            updated_at=now,
        )
        logger.info("flow patterns for %s rebuilt from %s sessions", user_id, len(sessions))
        return {
            "patterns": pattern.payload,
            "sessions_analyzed": len(sessions),
            "confidence": pattern.confidence,
            "message": f"Analyzed {len(sessions)} flow sessions",
        }

    def _summarize(self, user_id: str, sessions: list[FlowSession]) -> FlowPatternPayload:
        user_prompt = (
            "Analyze these flow sessions and identify patterns:\n"
            f"{json.dumps([_session_prompt_row(s) for s in sessions], indent=2, ensure_ascii=False)}\n\n"
            f"Return JSON:\n{ANALYZE_RESPONSE_SHAPE}"
        )
        try:
            text = complete_with_timeout(self.generator, ANALYZE_SYSTEM_PROMPT, user_prompt, self.timeout_sec)
        except UpstreamError as exc:
            logger.warning("pattern summary unavailable for %s, storing empty aggregate: %s", user_id, exc)
            return FlowPatternPayload()

        payload = parse_pattern_payload(text)
        if payload is None:
            logger.warning("pattern summary for %s was malformed, storing empty aggregate", user_id)
            return FlowPatternPayload()
        return payload
