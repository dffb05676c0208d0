from __future__ import annotations

from dataclasses import dataclass
import logging.config
import os
from pathlib import Path
from typing import Mapping

from .errors import InvalidArgumentError


def default_db_path() -> Path:
    return Path(__file__).resolve().parent / "data" / "flowstate.sqlite"


@dataclass(frozen=True)
class Settings:
    db_path: Path
    journal_mode: str = "MEMORY"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str | None = None
    llm_timeout_sec: float = 10.0
    hourly_rate: float = 50.0
    idle_timeout_sec: float = 120.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        def _text(name: str, default: str) -> str:
            return (env.get(name) or "").strip() or default

        def _number(name: str, default: float) -> float:
            raw = (env.get(name) or "").strip()
            if not raw:
                return default
            try:
                value = float(raw)
            except ValueError as exc:
                raise InvalidArgumentError(f"{name} must be a number, got {raw!r}") from exc
            if value <= 0:
                raise InvalidArgumentError(f"{name} must be positive, got {raw!r}")
            return value

        api_key = (env.get("FLOWSTATE_LLM_API_KEY") or env.get("OPENAI_API_KEY") or "").strip()
        return cls(
            db_path=Path(_text("FLOWSTATE_DB_PATH", str(default_db_path()))),
            journal_mode=_text("FLOWSTATE_JOURNAL_MODE", "MEMORY").upper(),
            llm_base_url=_text("FLOWSTATE_LLM_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            llm_model=_text("FLOWSTATE_LLM_MODEL", "gpt-4o-mini"),
            llm_api_key=api_key or None,
            llm_timeout_sec=_number("FLOWSTATE_LLM_TIMEOUT", 10.0),
            hourly_rate=_number("FLOWSTATE_HOURLY_RATE", 50.0),
            idle_timeout_sec=_number("FLOWSTATE_IDLE_TIMEOUT", 120.0),
            log_level=_text("FLOWSTATE_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "flowstate": {
                    "handlers": ["console"],
                    "level": level.upper(),
                    "propagate": False,
                },
            },
        }
    )
