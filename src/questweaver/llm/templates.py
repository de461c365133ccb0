"""
Prompt template registry and compiler.

Templates are registered by id and declare typed variables. Compilation
validates the supplied variables (required, type, constraints), fills in
declared defaults for optional ones and substitutes every ``{{name}}``
placeholder. Placeholders with no value are left in place so a broken
template is visible in the rendered prompt rather than silently shortened.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from ..exceptions import TemplateNotFoundError, TemplateVariableError
from .cache import ResponseCache
from .context import GameContext, extract_context_variables

logger = logging.getLogger("questweaver")

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")

VariableType = Literal["string", "number", "boolean", "object", "array"]


class TemplateCategory(str, Enum):
    GENERATION = "generation"
    CONFLICT_RESOLUTION = "conflict_resolution"
    ENHANCEMENT = "enhancement"
    VALIDATION = "validation"


class VariableValidation(BaseModel):
    """Constraints checked after the type check passes."""

    pattern: str | None = None
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    minimum: float | None = None
    maximum: float | None = None


class PromptVariable(BaseModel):
    """A typed template variable."""

    name: str
    type: VariableType = "string"
    required: bool = True
    description: str = ""
    default: Any = None
    validation: VariableValidation | None = None


class PromptTemplate(BaseModel):
    """A registered prompt with ``{{name}}`` placeholders."""

    id: str
    name: str
    description: str = ""
    category: TemplateCategory = TemplateCategory.GENERATION
    template: str
    variables: list[PromptVariable] = Field(default_factory=list)
    system_prompt: str | None = None
    output_format: Literal["text", "json", "structured"] = "text"
    version: str = "1.0.0"


class CompiledPromptMetadata(BaseModel):
    template_id: str
    compiled_at: datetime = Field(default_factory=datetime.now)
    variables: list[str] = Field(default_factory=list)


class CompiledPrompt(BaseModel):
    """Result of compiling a template."""

    prompt: str
    system_prompt: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    metadata: CompiledPromptMetadata


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _matches_type(value: Any, expected: str) -> bool:
    return _type_name(value) == expected


def _check_constraints(name: str, value: Any, validation: VariableValidation) -> None:
    if isinstance(value, str):
        if validation.min_length is not None and len(value) < validation.min_length:
            raise TemplateVariableError(
                f"Variable {name} is too short. Minimum length: {validation.min_length}", name
            )
        if validation.max_length is not None and len(value) > validation.max_length:
            raise TemplateVariableError(
                f"Variable {name} is too long. Maximum length: {validation.max_length}", name
            )
        if validation.pattern is not None and not re.search(validation.pattern, value):
            raise TemplateVariableError(f"Variable {name} does not match required pattern", name)

    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        if validation.minimum is not None and value < validation.minimum:
            raise TemplateVariableError(
                f"Variable {name} is too small. Minimum: {validation.minimum:g}", name
            )
        if validation.maximum is not None and value > validation.maximum:
            raise TemplateVariableError(
                f"Variable {name} is too large. Maximum: {validation.maximum:g}", name
            )


def _render_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def substitute_placeholders(text: str, variables: dict[str, Any]) -> str:
    """Replace every ``{{name}}`` in ``text``; unknown names stay intact."""

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables or variables[name] is None:
            logger.warning(f"Template variable not found: {name}")
            return match.group(0)
        return _render_value(variables[name])

    return PLACEHOLDER_PATTERN.sub(replace, text)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TemplateRegistry:
    """Registry of prompt templates, keyed by id.

    Args:
        load_defaults: Register the built-in prompt library
        cache: Optional cache for compiled prompts

    Example:
        >>> registry = TemplateRegistry()
        >>> compiled = registry.compile_template("room_description", {
        ...     "room_name": "Vault", "room_type": "treasury",
        ...     "room_theme": "dwarven", "game_theme": "fantasy",
        ... })
        >>> "medium" in compiled.prompt  # room_size default
        True
    """

    def __init__(self, load_defaults: bool = True, cache: ResponseCache | None = None) -> None:
        self.cache = cache
        self._templates: dict[str, PromptTemplate] = {}
        if load_defaults:
            from .prompt_library import DEFAULT_TEMPLATES

            for template in DEFAULT_TEMPLATES:
                self.register_template(template)
            logger.info(f"Loaded {len(self._templates)} default prompt templates")

    def register_template(self, template: PromptTemplate) -> None:
        """Register or replace a template."""
        self._templates[template.id] = template
        logger.debug(f"Registered prompt template: {template.id} ({template.category.value})")

    def get_template(self, template_id: str) -> PromptTemplate | None:
        return self._templates.get(template_id)

    def require_template(self, template_id: str) -> PromptTemplate:
        """Like get_template but raises TemplateNotFoundError."""
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_templates(self) -> list[PromptTemplate]:
        return list(self._templates.values())

    def get_templates_by_category(self, category: TemplateCategory | str) -> list[PromptTemplate]:
        category = TemplateCategory(category)
        return [t for t in self._templates.values() if t.category == category]

    def compile_template(self, template_id: str, variables: dict[str, Any] | None = None) -> CompiledPrompt:
        """Validate variables and render a template.

        Args:
            template_id: Registered template id
            variables: Values for the template's placeholders. Extra keys are
                kept and may fill placeholders without a declaration.

        Returns:
            CompiledPrompt with the rendered prompt and system prompt

        Raises:
            TemplateNotFoundError: If the id is unknown
            TemplateVariableError: If a required variable is missing, or a
                value has the wrong type or violates its constraints
        """
        template = self.require_template(template_id)
        supplied = dict(variables or {})

        if self.cache is not None:
            cached = self.cache.get_cached_template(template_id, supplied)
            if cached is not None:
                return CompiledPrompt.model_validate(cached)

        resolved = self._resolve_variables(template, supplied)
        compiled = CompiledPrompt(
            prompt=substitute_placeholders(template.template, resolved),
            system_prompt=(
                substitute_placeholders(template.system_prompt, resolved)
                if template.system_prompt else None
            ),
            variables=resolved,
            metadata=CompiledPromptMetadata(template_id=template_id, variables=list(resolved)),
        )

        if self.cache is not None:
            self.cache.cache_template_compilation(template_id, supplied, compiled.model_dump(mode="json"))
        return compiled

    def compile_with_context(
        self,
        template_id: str,
        context: GameContext,
        overrides: dict[str, Any] | None = None,
    ) -> CompiledPrompt:
        """Compile using variables derived from a game snapshot.

        Caller-supplied overrides win over context-derived values.
        """
        variables = extract_context_variables(context)
        variables.update(overrides or {})
        return self.compile_template(template_id, variables)

    def render_template(self, template_id: str, variables: dict[str, Any] | None = None) -> str:
        """Compile and return just the prompt text."""
        return self.compile_template(template_id, variables).prompt

    def get_stats(self) -> dict[str, Any]:
        category_counts: dict[str, int] = {}
        for template in self._templates.values():
            key = template.category.value
            category_counts[key] = category_counts.get(key, 0) + 1
        return {
            "total_templates": len(self._templates),
            "category_counts": category_counts,
            "template_ids": list(self._templates),
        }

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    @staticmethod
    def _resolve_variables(template: PromptTemplate, supplied: dict[str, Any]) -> dict[str, Any]:
        resolved = dict(supplied)
        for variable in template.variables:
            value = supplied.get(variable.name)

            if value is None:
                if variable.required:
                    raise TemplateVariableError(
                        f"Required variable missing: {variable.name}", variable.name
                    )
                if variable.default is not None:
                    resolved[variable.name] = variable.default
                continue

            if not _matches_type(value, variable.type):
                raise TemplateVariableError(
                    f"Variable {variable.name} has invalid type. "
                    f"Expected {variable.type}, got {_type_name(value)}",
                    variable.name,
                )
            if variable.validation is not None:
                _check_constraints(variable.name, value, variable.validation)
        return resolved


__all__ = [
    "PLACEHOLDER_PATTERN",
    "TemplateCategory",
    "VariableValidation",
    "PromptVariable",
    "PromptTemplate",
    "CompiledPromptMetadata",
    "CompiledPrompt",
    "substitute_placeholders",
    "TemplateRegistry",
]
