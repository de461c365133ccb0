"""
Anthropic Messages API provider built on the official ``anthropic`` SDK.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from ...exceptions import ProviderConfigurationError, ProviderError
from ..models import FinishReason, LLMResponse, RequestOptions, TokenUsage
from .base import LLMProvider

logger = logging.getLogger("questweaver")

DEFAULT_ANTHROPIC_MODEL = "claude-3-haiku-20240307"
AVAILABILITY_CACHE_SECONDS = 60.0

_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
}


class AnthropicProvider(LLMProvider):
    """Provider backed by Anthropic's Messages API.

    Args:
        api_key: Anthropic API key
        model: Default model identifier
        timeout: Request timeout in seconds
        max_retries: SDK-level retry count for transient transport errors
        default_max_tokens: Used when a request does not set max_tokens
        default_temperature: Used when a request does not set temperature
        client: Pre-built AsyncAnthropic client (tests, shared pools)

    Raises:
        ProviderConfigurationError: If no API key and no client are given
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        timeout: float = 30.0,
        max_retries: int = 3,
        default_max_tokens: int = 2000,
        default_temperature: float = 0.7,
        client: Any | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ProviderConfigurationError(
                "Anthropic API key is required. Provide it via the 'api_key' parameter "
                "or set the ANTHROPIC_API_KEY environment variable."
            )
        self.model = model
        self.timeout = timeout
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.client = client or AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
        )
        self._available: bool | None = None
        self._checked_at = 0.0
        logger.info(f"Initialized AnthropicProvider with model={model}, timeout={timeout}s")

    async def is_available(self) -> bool:
        """Probe the API, caching the answer for a minute."""
        now = time.monotonic()
        if self._available is not None and now - self._checked_at < AVAILABILITY_CACHE_SECONDS:
            return self._available

        try:
            await self.client.models.list(limit=1)
            self._available = True
        except anthropic.APIError as e:
            logger.warning(f"Anthropic availability check failed: {e}")
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

        create_kwargs: dict[str, Any] = {
            "model": options.model or self.model,
            "max_tokens": options.max_tokens or self.default_max_tokens,
            "temperature": options.temperature if options.temperature is not None else self.default_temperature,
            "messages": self._build_messages(prompt, options),
        }
        if options.system_prompt:
            create_kwargs["system"] = options.system_prompt
        if options.timeout:
            create_kwargs["timeout"] = options.timeout

        try:
            message = await self.client.messages.create(**create_kwargs)
        except anthropic.RateLimitError as e:
            raise ProviderError(f"Rate limit exceeded: {e}", self.name) from e
        except anthropic.APITimeoutError as e:
            raise ProviderError(f"Request timed out: {e}", self.name) from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(f"Network connection error: {e}", self.name) from e
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Provider error {e.status_code}: {e.message}",
                self.name,
                recoverable=e.status_code >= 500,
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(f"Provider error: {e}", self.name) from e

        content = "".join(
            block.text for block in message.content if hasattr(block, "text")
        )
        usage = TokenUsage(
            prompt_tokens=message.usage.input_tokens,
            completion_tokens=message.usage.output_tokens,
            total_tokens=message.usage.input_tokens + message.usage.output_tokens,
        )
        elapsed = time.perf_counter() - start
        logger.debug(
            f"Anthropic generated {len(content)} chars with {message.model} "
            f"({usage.prompt_tokens} in, {usage.completion_tokens} out, {elapsed:.2f}s)"
        )
        return LLMResponse(
            content=content,
            usage=usage,
            model=message.model,
            finish_reason=_STOP_REASONS.get(message.stop_reason, FinishReason.ERROR),
            metadata={
                "processing_time": elapsed,
                "provider": self.name,
                "message_id": message.id,
            },
        )

    async def aclose(self) -> None:
        await self.client.close()

    @staticmethod
    def _build_messages(prompt: str, options: RequestOptions) -> list[dict[str, str]]:
        # The Messages API takes the system prompt separately
        messages = [
            {"role": turn.role, "content": turn.content}
            for turn in options.conversation_history
            if turn.role != "system"
        ]
        messages.append({"role": "user", "content": prompt})
        return messages


__all__ = ["AnthropicProvider", "DEFAULT_ANTHROPIC_MODEL"]
