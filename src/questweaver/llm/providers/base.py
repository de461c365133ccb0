"""
Provider contract shared by every LLM backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import LLMResponse, RequestOptions, StructuredLLMResponse
from ..structured import (
    STRUCTURED_SYSTEM_PROMPT,
    combine_system_prompts,
    format_structured_prompt,
    parse_structured_response,
)


def structured_options(options: RequestOptions | None) -> RequestOptions:
    """Options for a structured request: capped temperature, JSON system prompt."""
    options = options or RequestOptions()
    temperature = options.temperature if options.temperature is not None else 0.7
    return options.model_copy(update={
        "temperature": min(temperature, 0.3),
        "system_prompt": combine_system_prompts(options.system_prompt, STRUCTURED_SYSTEM_PROMPT),
    })


class LLMProvider(ABC):
    """A pluggable LLM backend.

    Subclasses implement availability probing and free-text generation;
    structured generation is derived from those by default.

    Attributes:
        name: Unique provider name used for registration and logs
    """

    name: str = "provider"

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether the backend is configured and reachable."""

    @abstractmethod
    async def generate_response(
        self,
        prompt: str,
        options: RequestOptions | None = None,
    ) -> LLMResponse:
        """Generate free text for a prompt.

        Raises:
            ProviderError: On any vendor or transport failure
        """

    async def generate_structured_response(
        self,
        prompt: str,
        schema: dict[str, Any],
        options: RequestOptions | None = None,
    ) -> StructuredLLMResponse:
        """Generate JSON matching ``schema``; validation problems never raise."""
        response = await self.generate_response(
            format_structured_prompt(prompt, schema),
            structured_options(options),
        )
        return parse_structured_response(response, schema)

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


__all__ = ["LLMProvider", "structured_options"]
