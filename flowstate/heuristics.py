from __future__ import annotations

from dataclasses import asdict, dataclass
import math
from typing import Any

from .errors import InvalidArgumentError

BASE_RECOVERY_MINUTES = 23
PRODUCTIVITY_LOSS_FACTOR = 2
HIGH_DEPTH_THRESHOLD = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _require_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"{name} must be a number")
    if not math.isfinite(value):
        raise InvalidArgumentError(f"{name} must be finite")
    return float(value)


@dataclass(frozen=True)
class InterruptionCost:
    recovery_minutes: float
    recovery_time_mins: int
    dollar_cost: int
    productivity_loss_minutes: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        # older clients read the short key
        data["productivity_loss_mins"] = self.productivity_loss_minutes
        return data


def interruption_cost(current_flow_depth: float, hourly_rate: float) -> InterruptionCost:
    depth = _require_number("current_flow_depth", current_flow_depth)
    rate = _require_number("hourly_rate", hourly_rate)
    if depth < 0 or depth > 100:
        raise InvalidArgumentError(f"current_flow_depth must be within 0..100, got {depth:g}")
    if rate <= 0:
        raise InvalidArgumentError(f"hourly_rate must be positive, got {rate:g}")

    adjusted = BASE_RECOVERY_MINUTES * (depth / 100)
    dollar_cost = round_half_up((adjusted / 60) * rate)
    productivity_loss = round_half_up(adjusted * PRODUCTIVITY_LOSS_FACTOR)

    if depth > HIGH_DEPTH_THRESHOLD:
        message = f"Interrupting now costs ~${dollar_cost} in lost productivity"
    else:
        message = "Low flow depth - safe to context switch"

    return InterruptionCost(
        recovery_minutes=adjusted,
        recovery_time_mins=round_half_up(adjusted),
        dollar_cost=dollar_cost,
        productivity_loss_minutes=productivity_loss,
        message=message,
    )


@dataclass(frozen=True)
class FlowEntrySignal:
    is_entering_flow: bool
    flow_depth: int
    indicators: list[str]
    recommendation: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def detect_flow_entry(
    typing_speed: float | None = None,
    tab_switches: int | None = None,
    time_on_task_mins: float | None = None,
    mouse_idle_seconds: float | None = None,
) -> FlowEntrySignal:
    signals = 0
    indicators: list[str] = []
    on_task = time_on_task_mins or 0

    if typing_speed and typing_speed > 60:
        signals += 1
        indicators.append("High typing velocity")
    if tab_switches == 0 and on_task > 5:
        signals += 2
        indicators.append("Zero context switches")
    if on_task > 15:
        signals += 1
        indicators.append("Sustained focus (15+ min)")
    if mouse_idle_seconds and mouse_idle_seconds > 30:
        signals += 1
        indicators.append("Keyboard-focused work")

    entering = signals >= 3
    return FlowEntrySignal(
        is_entering_flow=entering,
        flow_depth=min(signals * 20, 100),
        indicators=indicators,
        recommendation=(
            "You're entering flow! Protect this state - silence notifications."
            if entering
            else "Keep focusing - flow state building..."
        ),
    )
