from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .errors import UpstreamError
from .llm import TextGenerator, complete_with_timeout

RECOVERY_SYSTEM_PROMPT = "Help user recover flow state after interruption. Be concise and practical."


class RecoveryStep(BaseModel):
    step: int
    action: str
    duration_mins: float = 0


class RecoveryPath(BaseModel):
    estimated_recovery_mins: float
    steps: list[RecoveryStep] = Field(default_factory=list)
    mental_reset: str = ""
    context_rebuild: str = ""
    momentum_starter: str = ""


def generate_recovery_path(
    generator: TextGenerator,
    interrupted_task: str,
    interruption_reason: str,
    time_since_interruption_mins: float,
    timeout_sec: float = 10.0,
) -> dict[str, Any]:
    user_prompt = (
        f"User was working on: {interrupted_task}\n"
        f"Interrupted by: {interruption_reason}\n"
        f"Time since interruption: {time_since_interruption_mins} minutes\n\n"
        "Generate recovery path JSON:\n"
        "{\n"
        '  "estimated_recovery_mins": number,\n'
        '  "steps": [{ "step": number, "action": "string", "duration_mins": number }],\n'
        '  "mental_reset": "string - quick technique to clear interruption",\n'
        '  "context_rebuild": "string - how to rebuild mental context",\n'
        '  "momentum_starter": "string - easy first action to build momentum"\n'
        "}"
    )
    text = complete_with_timeout(generator, RECOVERY_SYSTEM_PROMPT, user_prompt, timeout_sec)
    try:
        path = RecoveryPath.model_validate_json(text)
    except ValidationError as exc:
        raise UpstreamError("recovery path response was malformed") from exc

    result = path.model_dump()
    result["message"] = f"Recovery path ready. Start with: {path.momentum_starter}"
    return result
