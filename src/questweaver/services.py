"""
Composition root.

Builds the cache, error handler, dispatcher, template registry, generators,
conflict resolver and story agent once, and hands out the shared instances.
"""

import logging
from dataclasses import dataclass

from .config import LLMSettings
from .conflicts.resolver import ConflictResolver
from .exceptions import ProviderConfigurationError
from .generation.narrative import NarrativeGenerator
from .generation.npc import NPCGenerator
from .generation.room import RoomGenerator
from .llm.cache import ResponseCache
from .llm.context import ContextBuilder
from .llm.dispatcher import ProviderDispatcher
from .llm.providers import AnthropicProvider, LLMProvider, OpenAIProvider
from .llm.resilience import ErrorHandler
from .llm.templates import TemplateRegistry
from .story.agent import StoryAgent
from .world import InMemoryWorld, WorldGateway

logger = logging.getLogger("questweaver")


@dataclass
class Services:
    """Process-wide service instances, constructed once at startup."""
    settings: LLMSettings
    world: WorldGateway
    cache: ResponseCache
    error_handler: ErrorHandler
    dispatcher: ProviderDispatcher
    templates: TemplateRegistry
    context_builder: ContextBuilder
    rooms: RoomGenerator
    npcs: NPCGenerator
    narrative: NarrativeGenerator
    conflicts: ConflictResolver
    stories: StoryAgent

    async def start(self) -> None:
        await self.cache.start()

    async def aclose(self) -> None:
        await self.cache.stop()
        await self.dispatcher.aclose()


def build_providers(settings: LLMSettings) -> list[LLMProvider]:
    """Providers for every configured API key, OpenAI first.

    A provider whose configuration is rejected is skipped with a warning.
    """
    providers: list[LLMProvider] = []
    if settings.openai_api_key:
        try:
            providers.append(OpenAIProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                base_url=settings.openai_base_url,
                timeout=settings.timeout,
                max_retries=settings.max_retries,
            ))
        except ProviderConfigurationError as e:
            logger.warning(f"OpenAI provider not configured: {e}")
    if settings.anthropic_api_key:
        try:
            providers.append(AnthropicProvider(
                api_key=settings.anthropic_api_key,
                model=settings.anthropic_model,
                timeout=settings.timeout,
                max_retries=settings.max_retries,
            ))
        except ProviderConfigurationError as e:
            logger.warning(f"Anthropic provider not configured: {e}")
    return providers


def build_services(
    settings: LLMSettings | None = None,
    world: WorldGateway | None = None,
    providers: list[LLMProvider] | None = None,
) -> Services:
    """Wire every service together.

    Args:
        settings: Provider and resilience settings; read from the environment if omitted
        world: World gateway; an empty InMemoryWorld if omitted
        providers: Providers to register instead of those built from ``settings``.
            The first one becomes primary, the rest are fallbacks in order.

    Returns:
        The shared service instances
    """
    settings = settings or LLMSettings.from_env()
    world = world if world is not None else InMemoryWorld()

    cache = ResponseCache(settings.cache)
    error_handler = ErrorHandler(settings.retry)
    dispatcher = ProviderDispatcher(
        cache=cache,
        error_handler=error_handler,
        breaker_config=settings.circuit_breaker,
        request_timeout=settings.timeout,
    )

    if providers is None:
        providers = build_providers(settings)
    for index, provider in enumerate(providers):
        dispatcher.register_provider(provider, primary=index == 0)
    if not providers:
        logger.warning("No LLM providers configured; set OPENAI_API_KEY or ANTHROPIC_API_KEY")

    templates = TemplateRegistry(cache=cache)
    context_builder = ContextBuilder(world)
    generator_args = (dispatcher, templates, world)
    rooms = RoomGenerator(*generator_args, context_builder=context_builder, cache=cache)
    npcs = NPCGenerator(*generator_args, context_builder=context_builder, cache=cache)
    narrative = NarrativeGenerator(
        *generator_args,
        context_builder=context_builder,
        cache=cache,
        room_generator=rooms,
        npc_generator=npcs,
    )

    return Services(
        settings=settings,
        world=world,
        cache=cache,
        error_handler=error_handler,
        dispatcher=dispatcher,
        templates=templates,
        context_builder=context_builder,
        rooms=rooms,
        npcs=npcs,
        narrative=narrative,
        conflicts=ConflictResolver(dispatcher, templates, world, context_builder=context_builder),
        stories=StoryAgent(dispatcher, templates, narrative, world),
    )


__all__ = ["Services", "build_providers", "build_services"]
