"""
LLM orchestration and resilience layer.

Key components:
- ProviderDispatcher: Primary/fallback provider failover behind cache and circuit breakers
- ResponseCache: TTL + LRU cache for prompt responses, generated content and templates
- ErrorHandler / CircuitBreaker: Error classification, retry with backoff, circuit breaking
- TemplateRegistry: Typed prompt templates with validation and substitution
- parse_structured_response: JSON extraction and minimal schema validation
- ContextBuilder / GameContext: Game-state snapshots for prompt compilation
"""

from .cache import CacheEntry, CacheStats, ResponseCache
from .context import ContextBuilder, GameContext, GameInfo, WorldConstraints, extract_context_variables
from .dispatcher import DispatcherStats, ProviderDispatcher
from .models import (
    ConversationTurn,
    FinishReason,
    LLMResponse,
    RequestOptions,
    StructuredLLMResponse,
    TokenUsage,
)
from .providers import AnthropicProvider, LLMProvider, MockProvider, OpenAIProvider
from .resilience import (
    CircuitBreaker,
    CircuitState,
    ErrorHandler,
    ErrorKind,
    ErrorRecord,
    ErrorStats,
    calculate_delay,
    classify_error,
    create_circuit_breaker,
)
from .structured import extract_json_object, parse_structured_response, validate_against_schema
from .templates import CompiledPrompt, PromptTemplate, PromptVariable, TemplateCategory, TemplateRegistry

__all__ = [
    "CacheEntry",
    "CacheStats",
    "ResponseCache",
    "ContextBuilder",
    "GameContext",
    "GameInfo",
    "WorldConstraints",
    "extract_context_variables",
    "DispatcherStats",
    "ProviderDispatcher",
    "ConversationTurn",
    "FinishReason",
    "LLMResponse",
    "RequestOptions",
    "StructuredLLMResponse",
    "TokenUsage",
    "AnthropicProvider",
    "LLMProvider",
    "MockProvider",
    "OpenAIProvider",
    "CircuitBreaker",
    "CircuitState",
    "ErrorHandler",
    "ErrorKind",
    "ErrorRecord",
    "ErrorStats",
    "calculate_delay",
    "classify_error",
    "create_circuit_breaker",
    "extract_json_object",
    "parse_structured_response",
    "validate_against_schema",
    "CompiledPrompt",
    "PromptTemplate",
    "PromptVariable",
    "TemplateCategory",
    "TemplateRegistry",
]
