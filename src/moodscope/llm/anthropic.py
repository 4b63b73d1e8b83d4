"""Anthropic Messages API provider."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from moodscope.exceptions import LLMError
from moodscope.http import request_json
from moodscope.llm.base import BaseLLM
from moodscope.types import Generation

if TYPE_CHECKING:
    from moodscope.config import MoodscopeConfig

__all__ = ["AnthropicLLM"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.anthropic.com"
_API_VERSION = "2023-06-01"


class AnthropicLLM(BaseLLM):
    """Text generation via ``POST /v1/messages``.

    Config fields used::

        [llm]
        provider = "anthropic"
        base_url = ""                      # empty = https://api.anthropic.com
        api_key_env = "ANTHROPIC_API_KEY"
        expansion_model = "claude-haiku-4-5-20251001"
        timeout_s = 60
    """

    def __init__(self, config: MoodscopeConfig) -> None:
        self._base_url = (config.llm.base_url or _DEFAULT_BASE_URL).rstrip("/")
        self._default_model = config.llm.expansion_model
        self._timeout = config.llm.timeout_s
        self._api_key_env = config.llm.api_key_env
        self._api_key = os.environ.get(self._api_key_env) if self._api_key_env else None
        if not self._api_key:
            logger.warning("API key env var %s is not set; requests will fail", self._api_key_env)

    def generate(
        self,
        prompt: str,
        max_output_tokens: int,
        *,
        model: str | None = None,
        system: str | None = None,
        temperature: float | None = None,
    ) -> Generation:
        if not self._api_key:
            raise LLMError(
                f"{self._api_key_env} environment variable is required", 401, retryable=False
            )

        model = model or self._default_model
        payload: dict[str, object] = {
            "model": model,
            "max_tokens": max_output_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        if temperature is not None:
            payload["temperature"] = temperature

        resp = request_json(
            f"{self._base_url}/v1/messages",
            error_cls=LLMError,
            payload=payload,
            headers={"x-api-key": self._api_key, "anthropic-version": _API_VERSION},
            timeout=self._timeout,
        )
        if not resp.ok:
            raise self._classify(resp.status, resp.data)

        data = resp.data if isinstance(resp.data, dict) else {}
        blocks = data.get("content") or []
        text = "".join(
            b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"
        ).strip()
        if not text:
            raise LLMError(f"Empty completion from {model}", 500, retryable=True)

        usage = data.get("usage") or {}
        generation = Generation(
            text=text,
            model=str(data.get("model", model)),
            input_tokens=int(usage.get("input_tokens", 0)),
            output_tokens=int(usage.get("output_tokens", 0)),
        )
        logger.debug(
            "Generated %d output tokens with %s", generation.output_tokens, generation.model
        )
        return generation

    def is_healthy(self) -> bool:
        """List one model via ``GET /v1/models``; costs no tokens."""
        if not self._api_key:
            logger.warning("Anthropic unhealthy: %s is not set", self._api_key_env)
            return False
        try:
            resp = request_json(
                f"{self._base_url}/v1/models",
                error_cls=LLMError,
                params={"limit": "1"},
                headers={"x-api-key": self._api_key, "anthropic-version": _API_VERSION},
                timeout=5.0,
            )
        except LLMError as e:
            logger.warning("Anthropic health check failed: %s", e)
            return False
        if not resp.ok:
            logger.warning("Anthropic health check returned HTTP %d", resp.status)
        return resp.ok

    @staticmethod
    def _classify(status: int, body: object) -> LLMError:
        """Map an error status to an LLMError with the right retry flag."""
        detail = ""
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            detail = str(body["error"].get("message", ""))

        if status == 429:
            return LLMError("Anthropic API rate limit exceeded", 429, retryable=True)
        if status in (401, 403):
            return LLMError("Invalid Anthropic API key", status, retryable=False)
        if status >= 500:
            return LLMError(f"Anthropic API service error (HTTP {status})", status, retryable=True)
        return LLMError.from_status(status, f"Anthropic API error (HTTP {status}): {detail}")
