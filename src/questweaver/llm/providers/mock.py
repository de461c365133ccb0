"""
Mock provider for tests and offline development.
"""

from __future__ import annotations

from typing import Any

from ...exceptions import ProviderError
from ..models import FinishReason, LLMResponse, RequestOptions, TokenUsage
from .base import LLMProvider


class MockProvider(LLMProvider):
    """Provider that returns canned responses instead of calling an API.

    Args:
        name: Provider name used for registration
        responses: Responses returned in order, cycling when exhausted.
            If empty, default_response is returned.
        default_response: Response when the list is empty
        available: Initial availability
        errors: Exceptions (or messages) raised by the first calls, one per
            call, before canned responses are served

    Example:
        >>> mock = MockProvider(responses=['{"ok": true}'])
        >>> (await mock.generate_response("prompt")).content
        '{"ok": true}'
    """

    def __init__(
        self,
        name: str = "mock",
        responses: list[str] | None = None,
        default_response: str = "Mock LLM response.",
        available: bool = True,
        errors: list[BaseException | str] | None = None,
    ) -> None:
        self.name = name
        self.responses = responses or []
        self.default_response = default_response
        self.available = available
        self.errors = list(errors or [])
        self.call_count = 0
        self.calls: list[dict[str, Any]] = []
        self._served = 0

    async def is_available(self) -> bool:
        return self.available

    async def generate_response(
        self,
        prompt: str,
        options: RequestOptions | None = None,
    ) -> LLMResponse:
        self.calls.append({"prompt": prompt, "options": options})
        self.call_count += 1

        if self.errors:
            error = self.errors.pop(0)
            if isinstance(error, str):
                raise ProviderError(error, self.name)
            raise error

        if self.responses:
            content = self.responses[self._served % len(self.responses)]
            self._served += 1
        else:
            content = self.default_response

        words = len(prompt.split())
        out = len(content.split())
        return LLMResponse(
            content=content,
            usage=TokenUsage(prompt_tokens=words, completion_tokens=out, total_tokens=words + out),
            model=(options.model if options and options.model else f"{self.name}-model"),
            finish_reason=FinishReason.STOP,
            metadata={"processing_time": 0.0, "provider": self.name},
        )

    @property
    def last_prompt(self) -> str | None:
        return self.calls[-1]["prompt"] if self.calls else None

    def reset(self) -> None:
        """Reset call history."""
        self.call_count = 0
        self._served = 0
        self.calls.clear()


__all__ = ["MockProvider"]
