"""
Request and response models shared by providers, the dispatcher and the cache.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class FinishReason(str, Enum):
    """Why the provider stopped generating."""

    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


class ConversationTurn(BaseModel):
    """One turn of a conversation history."""

    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)


class RequestOptions(BaseModel):
    """Per-request generation options.

    Every field is optional; providers fall back to their own defaults.
    """

    model: str | None = Field(default=None, description="Model override")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    system_prompt: str | None = Field(default=None, description="System prompt")
    conversation_history: list[ConversationTurn] = Field(default_factory=list)
    timeout: float | None = Field(default=None, gt=0.0, description="Per-call timeout in seconds")


class TokenUsage(BaseModel):
    """Token accounting for one response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    """Free-text provider response."""

    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""
    finish_reason: FinishReason = FinishReason.STOP
    metadata: dict[str, Any] = Field(default_factory=dict)


class StructuredLLMResponse(LLMResponse):
    """Provider response with parsed and schema-checked JSON content.

    parsed_content is None when no JSON object could be extracted.
    validation_errors is empty on success; it never raises.
    """

    parsed_content: Any = None
    validation_errors: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.parsed_content is not None and not self.validation_errors


__all__ = [
    "FinishReason",
    "ConversationTurn",
    "RequestOptions",
    "TokenUsage",
    "LLMResponse",
    "StructuredLLMResponse",
]
