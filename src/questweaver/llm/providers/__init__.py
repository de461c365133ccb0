"""
LLM provider implementations.

Every backend implements the LLMProvider contract:
- AnthropicProvider: Anthropic Messages API via the official SDK
- OpenAIProvider: any OpenAI-compatible chat-completions endpoint via httpx
- MockProvider: canned responses for tests and offline use
"""

from .base import LLMProvider, structured_options
from .anthropic_provider import AnthropicProvider
from .openai_provider import OpenAIProvider
from .mock import MockProvider

__all__ = [
    "LLMProvider",
    "structured_options",
    "AnthropicProvider",
    "OpenAIProvider",
    "MockProvider",
]
