"""
Configuration models for the QuestWeaver LLM layer.

Settings are plain pydantic models with validated bounds. LLMSettings.from_env()
reads the process environment (populated from .env by the server entry point).
"""

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator


class RetryConfig(BaseModel):
    """Retry and backoff settings for the resilience wrapper."""

    max_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Retries after the first attempt"
    )
    base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay in seconds before the first retry"
    )
    max_delay: float = Field(
        default=30.0,
        ge=0.0,
        description="Upper bound for any single backoff delay in seconds"
    )
    backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the delay on each attempt"
    )
    retryable_kinds: set[str] = Field(
        default_factory=set,
        description="Extra error kind names to retry beyond the intrinsically retryable ones"
    )


class CircuitBreakerConfig(BaseModel):
    """Thresholds for the three-state circuit breaker."""

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures that open the circuit"
    )
    reset_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds after the last failure before a trial call is allowed"
    )
    monitoring_period: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds of quiescence after which failure counters reset"
    )
    success_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive half-open successes needed to close the circuit"
    )


class CacheConfig(BaseModel):
    """Capacity and TTL policy for the response cache."""

    default_ttl: float = Field(default=3600.0, gt=0.0, description="TTL for generic prompt responses")
    max_entries: int = Field(default=1000, ge=1, description="Maximum number of cached entries")
    cleanup_interval: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds between background sweeps of expired entries"
    )
    generation_ttl: float = Field(
        default=7200.0,
        gt=0.0,
        description="TTL for prompts that ask for generated content"
    )
    creative_ttl: float = Field(
        default=1800.0,
        gt=0.0,
        description="TTL for high-temperature creative requests"
    )
    creative_temperature: float = Field(
        default=0.8,
        ge=0.0,
        le=2.0,
        description="Temperature above which a request counts as creative"
    )
    content_ttls: dict[str, float] = Field(
        default_factory=lambda: {
            "room": 14400.0,
            "npc": 10800.0,
            "quest": 7200.0,
            "dialogue": 3600.0,
        },
        description="TTL per generated content type"
    )
    template_ttl: float = Field(default=600.0, gt=0.0, description="TTL for template compilations")


class LLMSettings(BaseModel):
    """Top-level settings for providers and the resilience stack."""

    openai_api_key: str | None = Field(default=None, description="OpenAI-compatible API key")
    openai_model: str = Field(default="gpt-4o-mini", description="Default OpenAI model")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible API"
    )
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    anthropic_model: str = Field(
        default="claude-3-haiku-20240307",
        description="Default Anthropic model"
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Retry count for provider calls"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @field_validator("openai_api_key", "anthropic_api_key", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Any) -> Any:
        """Treat empty strings from the environment as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def from_env(cls) -> "LLMSettings":
        """Build settings from environment variables.

        LLM_TIMEOUT is given in milliseconds; LLM_MAX_RETRIES also seeds the
        retry wrapper's max_retries.
        """
        max_retries = int(os.getenv("LLM_MAX_RETRIES", "3"))
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-3-haiku-20240307"),
            timeout=int(os.getenv("LLM_TIMEOUT", "30000")) / 1000.0,
            max_retries=max_retries,
            retry=RetryConfig(max_retries=max_retries),
        )

    @property
    def has_providers(self) -> bool:
        """Whether at least one provider API key is configured."""
        return bool(self.openai_api_key or self.anthropic_api_key)


__all__ = [
    "RetryConfig",
    "CircuitBreakerConfig",
    "CacheConfig",
    "LLMSettings",
]
