"""Text-generation collaborator: an OpenAI-compatible chat completions client."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
import logging
import time
from typing import Protocol

import requests

from .config import Settings
from .errors import UpstreamError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


class OpenAIChatClient:
    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = 10.0,
        max_tokens: int = 1000,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIChatClient:
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            timeout=settings.llm_timeout_sec,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.is_configured:
            raise UpstreamError("text generation is not configured (missing API key)")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }
        started = time.monotonic()
        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise UpstreamError(f"text generation timed out after {self.timeout:g}s") from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"text generation request failed: {exc}") from exc

        latency_ms = int((time.monotonic() - started) * 1000)
        if response.status_code >= 400:
            logger.error("completion failed: HTTP %s in %sms", response.status_code, latency_ms)
            raise UpstreamError(f"text generation returned HTTP {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamError("text generation returned an unexpected envelope") from exc

        logger.debug("completion ok: model=%s latency=%sms", self.model, latency_ms)
        return content or ""


def complete_with_timeout(
    generator: TextGenerator,
    system_prompt: str,
    user_prompt: str,
    timeout: float,
) -> str:
    """Run generator.complete on a worker thread; raise UpstreamError on failure or timeout."""
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(generator.complete, system_prompt, user_prompt)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        future.cancel()
        raise UpstreamError(f"text generation timed out after {timeout:g}s") from exc
    except UpstreamError:
        raise
    except Exception as exc:
        raise UpstreamError(f"text generation failed: {exc}") from exc
    finally:
        executor.shutdown(wait=False)
