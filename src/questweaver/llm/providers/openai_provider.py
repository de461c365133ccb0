"""
OpenAI-compatible chat-completions provider over plain HTTPS JSON (httpx).
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from ...exceptions import ProviderConfigurationError, ProviderError
from ..models import FinishReason, LLMResponse, RequestOptions, TokenUsage
from .base import LLMProvider

logger = logging.getLogger("questweaver")

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
AVAILABILITY_CACHE_SECONDS = 60.0

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
}


class OpenAIProvider(LLMProvider):
    """Provider for any OpenAI-compatible ``/chat/completions`` endpoint.

    Args:
        api_key: Bearer token for the API
        model: Default model identifier
        base_url: API root, e.g. https://api.openai.com/v1
        timeout: Request timeout in seconds
        max_retries: Transport-level retries for connection failures
        default_max_tokens: Used when a request does not set max_tokens
        default_temperature: Used when a request does not set temperature
        http_client: Pre-built httpx.AsyncClient (tests, shared pools)

    Raises:
        ProviderConfigurationError: If no API key and no client are given
    """

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_OPENAI_MODEL,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        default_max_tokens: int = 2000,
        default_temperature: float = 0.7,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if http_client is None and not api_key:
            raise ProviderConfigurationError(
                "OpenAI API key is required. Provide it via the 'api_key' parameter "
                "or set the OPENAI_API_KEY environment variable."
            )
        self.model = model
        self.timeout = timeout
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=max_retries),
        )
        self._available: bool | None = None
        self._checked_at = 0.0
        logger.info(f"Initialized OpenAIProvider with model={model}, timeout={timeout}s")

    async def is_available(self) -> bool:
        """Probe ``GET /models``, caching the answer for a minute."""
        now = time.monotonic()
        if self._available is not None and now - self._checked_at < AVAILABILITY_CACHE_SECONDS:
            return self._available

        try:
            response = await self.client.get("/models")
            self._available = response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"OpenAI availability check failed: {e}")
            self._available = False
        self._checked_at = now
        return self._available

    async def generate_response(
        self,
        prompt: str,
        options: RequestOptions | None = None,
    ) -> LLMResponse:
        options = options or RequestOptions()
        start = time.perf_counter()

        payload: dict[str, Any] = {
            "model": options.model or self.model,
            "messages": self._build_messages(prompt, options),
            "max_tokens": options.max_tokens or self.default_max_tokens,
            "temperature": options.temperature if options.temperature is not None else self.default_temperature,
        }

        try:
            response = await self.client.post(
                "/chat/completions",
                json=payload,
                timeout=options.timeout or self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request timed out after {options.timeout or self.timeout}s", self.name) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                message = f"Rate limit exceeded (429): {e.response.text[:200]}"
            else:
                message = f"Provider error {status}: {e.response.text[:200]}"
            raise ProviderError(message, self.name, recoverable=status >= 500 or status == 429) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Network connection error: {e}", self.name) from e
        except ValueError as e:
            raise ProviderError(f"Invalid JSON in provider response: {e}", self.name) from e

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Provider returned an unexpected payload: {e}", self.name) from e

        raw_usage = data.get("usage") or {}
        usage = TokenUsage(
            prompt_tokens=raw_usage.get("prompt_tokens", 0),
            completion_tokens=raw_usage.get("completion_tokens", 0),
            total_tokens=raw_usage.get("total_tokens", 0),
        )
        elapsed = time.perf_counter() - start
        logger.debug(f"OpenAI generated {len(content)} chars with {data.get('model')} in {elapsed:.2f}s")
        return LLMResponse(
            content=content,
            usage=usage,
            model=data.get("model", payload["model"]),
            finish_reason=_FINISH_REASONS.get(choice.get("finish_reason"), FinishReason.ERROR),
            metadata={"processing_time": elapsed, "provider": self.name},
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    @staticmethod
    def _build_messages(prompt: str, options: RequestOptions) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.extend(
            {"role": turn.role, "content": turn.content}
            for turn in options.conversation_history
        )
        messages.append({"role": "user", "content": prompt})
        return messages


__all__ = ["OpenAIProvider", "DEFAULT_OPENAI_MODEL", "DEFAULT_OPENAI_BASE_URL"]
