"""
Exception hierarchy for the QuestWeaver LLM layer.

Every error raised by the package derives from QuestWeaverError so callers
can catch the whole family at once, while the subclasses carry enough context
(provider name, attempt count, classified error record) to drive retry and
recovery decisions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .llm.resilience import ErrorRecord


class QuestWeaverError(Exception):
    """Base exception for all QuestWeaver errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary of additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize the error.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class ProviderError(QuestWeaverError):
    """A single provider call failed.

    The message is kept verbatim from the vendor where possible, since the
    error classifier works on message text (status codes, "rate limit", ...).

    Attributes:
        provider_name: Name of the provider that failed
        recoverable: Whether a retry could plausibly succeed
    """

    def __init__(
        self,
        message: str,
        provider_name: str,
        recoverable: bool = True,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.provider_name = provider_name
        self.recoverable = recoverable


class ProviderConfigurationError(QuestWeaverError):
    """Raised when a provider is misconfigured (missing API key, bad model)."""
    pass


class AllProvidersUnavailableError(QuestWeaverError):
    """Raised when every registered provider failed or was unavailable.

    Attributes:
        attempted: Names of the providers that were actually called
        error_record: Classified record of the last provider failure, or
            None when no provider could be called at all
    """

    def __init__(self, attempted: list[str] | None = None, error_record: ErrorRecord | None = None):
        message = "All LLM providers are unavailable"
        if error_record is not None:
            message = f"All LLM providers failed: {error_record.message}"
        super().__init__(message, {"attempted": attempted or []})
        self.attempted = attempted or []
        self.error_record = error_record


# ---------------------------------------------------------------------------
# Resilience errors
# ---------------------------------------------------------------------------


class CircuitOpenError(QuestWeaverError):
    """Raised when a call is rejected because its circuit breaker is open.

    Attributes:
        retry_after: Seconds until the breaker will admit a trial call
    """

    def __init__(self, name: str = "default", retry_after: float = 0.0):
        super().__init__(
            "Circuit breaker is open - operation not allowed",
            {"breaker": name, "retry_after": retry_after},
        )
        self.retry_after = retry_after


class RetryExhaustedError(QuestWeaverError):
    """Raised when an operation fails for good inside the retry wrapper.

    Covers both a non-retryable failure and running out of attempts. The
    message is the original one with the attempt count appended.

    Attributes:
        error_record: Classified record of the final failure
        attempts: Number of retries performed before giving up
    """

    def __init__(self, error_record: ErrorRecord, attempts: int):
        super().__init__(
            f"{error_record.message} (Failed after {attempts} attempts)",
            {"kind": error_record.kind.value, "attempts": attempts},
        )
        self.error_record = error_record
        self.attempts = attempts


class LLMServiceError(QuestWeaverError):
    """User-facing failure raised by the dispatcher once all recovery failed.

    Attributes:
        error_record: Classified record of the underlying failure
        suggestions: Recovery suggestions for the error kind
    """

    def __init__(
        self,
        message: str,
        error_record: ErrorRecord,
        suggestions: list[str] | None = None,
    ):
        super().__init__(message, {"kind": error_record.kind.value})
        self.error_record = error_record
        self.suggestions = suggestions or []


# ---------------------------------------------------------------------------
# Template errors
# ---------------------------------------------------------------------------


class TemplateNotFoundError(QuestWeaverError):
    """Raised when compiling or fetching an unregistered template."""

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}", {"template_id": template_id})
        self.template_id = template_id


class TemplateVariableError(QuestWeaverError):
    """Raised when a template variable is missing, mistyped or out of bounds.

    Attributes:
        variable_name: Name of the offending variable
    """

    def __init__(self, message: str, variable_name: str):
        super().__init__(message, {"variable": variable_name})
        self.variable_name = variable_name


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class GenerationError(QuestWeaverError):
    """Content generation (room, NPC, quest, story) failed."""
    pass


class EntityNotFoundError(QuestWeaverError):
    """A world entity referenced by id does not exist."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found", {"kind": kind, "id": entity_id})
        self.entity_id = entity_id


class StorySessionError(QuestWeaverError):
    """Story creation session lifecycle errors."""
    pass


__all__ = [
    "QuestWeaverError",
    "ProviderError",
    "ProviderConfigurationError",
    "AllProvidersUnavailableError",
    "CircuitOpenError",
    "RetryExhaustedError",
    "LLMServiceError",
    "TemplateNotFoundError",
    "TemplateVariableError",
    "GenerationError",
    "EntityNotFoundError",
    "StorySessionError",
]
