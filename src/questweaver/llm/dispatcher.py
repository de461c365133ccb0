"""
Provider dispatcher: primary/fallback failover behind cache, retry and circuit breakers.

A request is served from the response cache when possible. Otherwise the
primary provider is tried, then each fallback in registration order, all
inside the ErrorHandler's retry loop. Each provider has its own circuit
breaker, so a provider that keeps failing is skipped without being called
until its cooldown elapses.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ..config import CircuitBreakerConfig
from ..exceptions import AllProvidersUnavailableError, LLMServiceError, ProviderError
from .cache import ResponseCache
from .models import ConversationTurn, LLMResponse, RequestOptions, StructuredLLMResponse
from .providers.base import LLMProvider, structured_options
from .resilience import CircuitBreaker, ErrorHandler
from .structured import format_structured_prompt, parse_structured_response

logger = logging.getLogger("questweaver")


@dataclass
class DispatcherStats:
    """Running counters for the dispatcher.

    Attributes:
        total_requests: Calls to generate / generate_structured
        error_count: Individual provider call failures
        failed_requests: Requests that raised to the caller
        success_rate: Share of requests that returned a response
        cache_hits: Requests answered from the cache
        registered_providers: Names of all registered providers
        primary_provider: Name of the primary provider, if any
        fallback_providers: Fallback names in try order
        provider_successes: Successful calls per provider
        circuit_states: Breaker state per provider
    """
    total_requests: int
    error_count: int
    failed_requests: int
    success_rate: float
    cache_hits: int
    registered_providers: list[str]
    primary_provider: str | None
    fallback_providers: list[str]
    provider_successes: dict[str, int] = field(default_factory=dict)
    circuit_states: dict[str, str] = field(default_factory=dict)


class ProviderDispatcher:
    """Registry of named providers with ordered failover.

    Args:
        cache: Response cache; None disables caching
        error_handler: Shared error handler (retry + statistics)
        breaker_config: Settings for each provider's circuit breaker
        request_timeout: Seconds before an in-flight provider call is abandoned
        recurse_arrays: Validate array items in structured responses

    Example:
        >>> dispatcher = ProviderDispatcher(cache=ResponseCache())
        >>> dispatcher.register_provider(AnthropicProvider(api_key=key), primary=True)
        >>> dispatcher.register_provider(OpenAIProvider(api_key=other_key))
        >>> response = await dispatcher.generate("Describe the tavern")
    """

    def __init__(
        self,
        cache: ResponseCache | None = None,
        error_handler: ErrorHandler | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        request_timeout: float | None = 30.0,
        recurse_arrays: bool = False,
    ) -> None:
        self.cache = cache
        self.error_handler = error_handler or ErrorHandler()
        self.breaker_config = breaker_config or CircuitBreakerConfig()
        self.request_timeout = request_timeout
        self.recurse_arrays = recurse_arrays

        self._providers: dict[str, LLMProvider] = {}
        self._breakers: dict[str, CircuitBreaker] = {}
        self._primary: str | None = None
        self._fallbacks: list[str] = []

        self._total_requests = 0
        self._error_count = 0
        self._failed_requests = 0
        self._cache_hits = 0
        self._provider_successes: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_provider(self, provider: LLMProvider, primary: bool = False) -> None:
        """Register a provider as primary or as the next fallback.

        Registering a new primary demotes the previous one to the front of
        the fallback list. Re-registering a name replaces the provider.
        """
        name = provider.name
        self._providers[name] = provider
        self._breakers.setdefault(name, CircuitBreaker(self.breaker_config, name=name))
        self._provider_successes.setdefault(name, 0)

        if primary:
            if name in self._fallbacks:
                self._fallbacks.remove(name)
            if self._primary and self._primary != name:
                self._fallbacks.insert(0, self._primary)
            self._primary = name
        elif name != self._primary and name not in self._fallbacks:
            self._fallbacks.append(name)

        logger.info(f"Registered LLM provider: {name}{' (primary)' if primary else ''}")

    def unregister_provider(self, name: str) -> bool:
        """Remove a provider. Returns True if it was registered."""
        if name not in self._providers:
            return False
        del self._providers[name]
        self._breakers.pop(name, None)
        if self._primary == name:
            self._primary = self._fallbacks.pop(0) if self._fallbacks else None
        elif name in self._fallbacks:
            self._fallbacks.remove(name)
        logger.info(f"Unregistered LLM provider: {name}")
        return True

    @property
    def primary_provider(self) -> str | None:
        return self._primary

    @property
    def fallback_providers(self) -> list[str]:
        return list(self._fallbacks)

    def get_provider(self, name: str) -> LLMProvider | None:
        return self._providers.get(name)

    def get_breaker(self, name: str) -> CircuitBreaker | None:
        return self._breakers.get(name)

    def provider_order(self) -> list[str]:
        """Names in the order a request tries them."""
        order = [self._primary] if self._primary else []
        return order + self._fallbacks

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, options: RequestOptions | None = None) -> LLMResponse:
        """Generate free text using the best available provider.

        Raises:
            LLMServiceError: If no provider could serve the request
        """
        return await self._dispatch(prompt, options or RequestOptions())

    async def generate_structured(
        self,
        prompt: str,
        schema: dict[str, Any],
        options: RequestOptions | None = None,
    ) -> StructuredLLMResponse:
        """Generate JSON for ``schema`` and validate it.

        The prompt is augmented with the schema and the temperature is capped
        at 0.3. Validation problems are reported in ``validation_errors``;
        only provider failure raises.

        Raises:
            LLMServiceError: If no provider could serve the request
        """
        structured_prompt = format_structured_prompt(prompt, schema)
        response = await self._dispatch(structured_prompt, structured_options(options), schema)
        return parse_structured_response(response, schema, self.recurse_arrays)

    async def generate_conversation_response(
        self,
        message: str,
        conversation_history: list[ConversationTurn],
        options: RequestOptions | None = None,
    ) -> LLMResponse:
        """Generate a reply to ``message`` in the context of a conversation."""
        options = (options or RequestOptions()).model_copy(
            update={"conversation_history": list(conversation_history)}
        )
        return await self.generate(message, options)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def is_available(self) -> bool:
        """True if any registered provider reports itself available."""
        for name in self.provider_order():
            if await self._probe(self._providers[name]):
                return True
        return False

    async def test_providers(self) -> dict[str, bool]:
        """Probe every registered provider, independent of dispatch order."""
        results: dict[str, bool] = {}
        for name, provider in self._providers.items():
            results[name] = await self._probe(provider)
            logger.info(f"Provider {name}: {'Available' if results[name] else 'Unavailable'}")
        return results

    def get_stats(self) -> DispatcherStats:
        total = self._total_requests
        return DispatcherStats(
            total_requests=total,
            error_count=self._error_count,
            failed_requests=self._failed_requests,
            success_rate=(total - self._failed_requests) / total if total else 0.0,
            cache_hits=self._cache_hits,
            registered_providers=list(self._providers),
            primary_provider=self._primary,
            fallback_providers=list(self._fallbacks),
            provider_successes=dict(self._provider_successes),
            circuit_states={name: b.state.value for name, b in self._breakers.items()},
        )

    async def aclose(self) -> None:
        """Close every provider's network resources."""
        for provider in self._providers.values():
            await provider.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _dispatch(
        self,
        prompt: str,
        options: RequestOptions,
        schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        self._total_requests += 1

        if self.cache is not None:
            cached = self.cache.get_cached_prompt_response(prompt, options, schema)
            if cached is not None:
                self._cache_hits += 1
                logger.debug("Returning cached response")
                return cached

        try:
            if not self._providers:
                raise AllProvidersUnavailableError([])
            response = await self.error_handler.with_retry(
                lambda: self._call_providers(prompt, options)
            )
        except Exception as e:
            self._failed_requests += 1
            record = self.error_handler.handle_error(e, {"prompt_length": len(prompt)})
            raise LLMServiceError(
                self.error_handler.user_friendly_message(record),
                record,
                self.error_handler.recovery_suggestions(record),
            ) from e

        if self.cache is not None:
            self.cache.cache_prompt_response(prompt, response, options, schema)
        return response

    async def _call_providers(self, prompt: str, options: RequestOptions) -> LLMResponse:
        start = time.perf_counter()
        attempted: list[str] = []
        last_record = None

        for name in self.provider_order():
            provider = self._providers[name]
            breaker = self._breakers[name]

            if not breaker.allows_request():
                logger.debug(f"Skipping provider {name}: circuit {breaker.state.value}")
                continue
            if not await self._probe(provider):
                logger.debug(f"Skipping provider {name}: unavailable")
                continue

            attempted.append(name)
            try:
                response = await breaker.call(self._invoke, provider, prompt, options)
            except Exception as e:
                self._error_count += 1
                last_record = self.error_handler.handle_error(e, {"provider": name})
                role = "Primary" if name == self._primary else "Fallback"
                logger.warning(f"{role} provider {name} failed [{last_record.kind.value}]: {e}")
                continue

            self._provider_successes[name] = self._provider_successes.get(name, 0) + 1
            elapsed_ms = (time.perf_counter() - start) * 1000
            if name == self._primary:
                logger.info(f"Generated response using {name} in {elapsed_ms:.0f}ms")
            else:
                logger.warning(f"Used fallback provider {name} for response in {elapsed_ms:.0f}ms")
            return response

        raise AllProvidersUnavailableError(attempted, last_record)

    async def _invoke(self, provider: LLMProvider, prompt: str, options: RequestOptions) -> LLMResponse:
        timeout = options.timeout or self.request_timeout
        try:
            return await asyncio.wait_for(provider.generate_response(prompt, options), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Request timed out after {timeout}s", provider.name) from e

    @staticmethod
    async def _probe(provider: LLMProvider) -> bool:
        try:
            return await provider.is_available()
        except Exception as e:
            logger.error(f"Provider {provider.name} availability check failed: {e}")
            return False


__all__ = ["DispatcherStats", "ProviderDispatcher"]
