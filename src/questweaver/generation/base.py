"""
Shared plumbing for the content generators.
"""

from __future__ import annotations

import logging
from typing import Any

from ..exceptions import GenerationError
from ..llm.cache import ResponseCache
from ..llm.context import ContextBuilder
from ..llm.dispatcher import ProviderDispatcher
from ..llm.models import RequestOptions
from ..llm.templates import TemplateRegistry
from ..world import WorldGateway

logger = logging.getLogger("questweaver")


class ContentGenerator:
    """Base class wiring a generator to the LLM layer and the world.

    Args:
        dispatcher: Provider dispatcher used for every LLM call
        templates: Template registry holding the built-in prompts
        world: World accessors used to read context and create entities
        context_builder: Snapshot builder; one is created for ``world`` if omitted
        cache: Optional content cache (``content:{type}:...`` keys)
    """

    def __init__(
        self,
        dispatcher: ProviderDispatcher,
        templates: TemplateRegistry,
        world: WorldGateway,
        context_builder: ContextBuilder | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.templates = templates
        self.world = world
        self.context_builder = context_builder or ContextBuilder(world)
        self.cache = cache

    async def request_structured(
        self,
        template_id: str,
        variables: dict[str, Any],
        schema: dict[str, Any],
        label: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Render a template, ask for structured output and return the parsed object.

        Validation errors are logged but tolerated; only a response with no
        JSON object at all is an error.

        Raises:
            GenerationError: If no JSON object came back
            LLMServiceError: If no provider could serve the request
        """
        compiled = self.templates.compile_template(template_id, variables)
        options = RequestOptions(
            temperature=temperature,
            max_tokens=max_tokens,
            system_prompt=compiled.system_prompt,
        )
        response = await self.dispatcher.generate_structured(compiled.prompt, schema, options)

        if response.validation_errors:
            logger.warning(f"{label} validation errors: {', '.join(response.validation_errors)}")
        if response.parsed_content is None:
            raise GenerationError(f"No {label.lower()} content returned")
        return response.parsed_content


__all__ = ["ContentGenerator"]
