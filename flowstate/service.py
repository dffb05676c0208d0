from __future__ import annotations

import logging
from typing import Any, Callable

from .clock import Clock, RealClock
from .config import Settings
from .db import FlowDB
from .errors import InvalidArgumentError
from .heuristics import detect_flow_entry, interruption_cost
from .llm import OpenAIChatClient, TextGenerator
from .patterns import FlowPatternAnalyzer
from .recovery import generate_recovery_path
from .reporting import build_flow_stats
from .sessions import FlowSessionManager

logger = logging.getLogger(__name__)

ACTIONS = (
    "start_flow",
    "end_flow",
    "log_interruption",
    "analyze_patterns",
    "detect_flow_entry",
    "calculate_interruption_cost",
    "generate_recovery_path",
    "get_flow_stats",
)


def _require_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or value is None:
        raise InvalidArgumentError(f"{key} is required")
    if isinstance(value, float) and not value.is_integer():
        raise InvalidArgumentError(f"{key} must be an integer, got {value:g}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"{key} must be an integer") from exc


def _optional_number(data: dict[str, Any], key: str, default: float | None = None) -> float | None:
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"{key} must be a number")
    return value


def _list_field(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise InvalidArgumentError(f"{key} must be a list")
    return value


class FlowService:
    """Dispatches `{action, user_id, data}` requests onto the flow components."""

    def __init__(
        self,
        db: FlowDB,
        generator: TextGenerator,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.generator = generator
        self.clock = clock or RealClock()
        self.settings = settings or Settings(db_path=db.db_path)
        self.sessions = FlowSessionManager(db=db, clock=self.clock)
        self.analyzer = FlowPatternAnalyzer(
            db=db,
            generator=generator,
            clock=self.clock,
            timeout_sec=self.settings.llm_timeout_sec,
        )
        self._handlers: dict[str, Callable[[str, dict[str, Any]], dict[str, Any]]] = {
            "start_flow": self._start_flow,
            "end_flow": self._end_flow,
            "log_interruption": self._log_interruption,
            "analyze_patterns": self._analyze_patterns,
            "detect_flow_entry": self._detect_flow_entry,
            "calculate_interruption_cost": self._calculate_interruption_cost,
            "generate_recovery_path": self._generate_recovery_path,
            "get_flow_stats": self._get_flow_stats,
        }

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> FlowService:
        return cls(
            db=FlowDB(settings.db_path, journal_mode=settings.journal_mode),
            generator=OpenAIChatClient.from_settings(settings),
            clock=clock,
            settings=settings,
        )

    def dispatch(self, action: str, user_id: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        handler = self._handlers.get(action)
        if handler is None:
            raise InvalidArgumentError(f"Unknown action: {action}")
        logger.debug("dispatch %s for %s", action, user_id or "-")
        return handler(user_id, dict(data or {}))

    def _start_flow(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self.sessions.start(user_id, str(data.get("task_context") or "")).to_dict()

    def _end_flow(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        quality = _optional_number(data, "quality_score")
        if quality is None:
            raise InvalidArgumentError("quality_score is required")
        result = self.sessions.end(
            _require_int(data, "session_id"),
            quality,
            triggers=_list_field(data, "triggers"),
            breakers=_list_field(data, "breakers"),
        )
        return result.to_dict()

    def _log_interruption(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self.sessions.log_interruption(
            _require_int(data, "session_id"),
            str(data.get("interruption_type") or ""),
            str(data.get("source") or ""),
        )

    def _analyze_patterns(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        window_days = _require_int({"window_days": data.get("window_days", 30)}, "window_days")
        return self.analyzer.analyze(user_id, window_days=window_days)

    def _detect_flow_entry(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        signal = detect_flow_entry(
            typing_speed=_optional_number(data, "typing_speed"),
            tab_switches=data.get("tab_switches"),
            time_on_task_mins=_optional_number(data, "time_on_task_mins"),
            mouse_idle_seconds=_optional_number(data, "mouse_idle_seconds"),
        )
        return signal.to_dict()

    def _calculate_interruption_cost(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        if "current_flow_depth" not in data:
            raise InvalidArgumentError("current_flow_depth is required")
        rate = data.get("hourly_rate", self.settings.hourly_rate)
        return interruption_cost(data["current_flow_depth"], rate).to_dict()

    def _generate_recovery_path(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return generate_recovery_path(
            self.generator,
            interrupted_task=str(data.get("interrupted_task") or ""),
            interruption_reason=str(data.get("interruption_reason") or ""),
            time_since_interruption_mins=_optional_number(data, "time_since_interruption_mins", 0) or 0,
            timeout_sec=self.settings.llm_timeout_sec,
        )

    def _get_flow_stats(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        days = _require_int({"days": data.get("days", 7)}, "days")
        return build_flow_stats(self.db, user_id, days=days, now=self.clock.now()).to_dict()
