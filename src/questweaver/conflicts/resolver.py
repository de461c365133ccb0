"""
Conflict resolution engine.

A conflict is first offered to the registered hooks (highest priority
first); the first hook returning a resolution wins. If no hook resolves it,
the LLM is asked for a structured resolution which is then applied to the
affected entities. Any failure along the way produces a failsafe resolution:
resolve_conflict never raises.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any

from ..exceptions import GenerationError
from ..llm.context import ContextBuilder
from ..llm.dispatcher import ProviderDispatcher
from ..llm.models import RequestOptions
from ..llm.templates import TemplateRegistry
from ..world import WorldGateway
from .hooks import default_hooks, default_strategies
from .models import (
    AlternativeSolution,
    ConflictContext,
    ConflictDetails,
    ConflictHook,
    ConflictKind,
    ConflictResolution,
    ResolutionStrategy,
    ResolverType,
    Severity,
)

logger = logging.getLogger("questweaver")

GAME_NAME = "Quest Weaver"
GAME_THEME = "fantasy adventure"
MAGIC_SYSTEM = "elemental magic with physical effects"
TECH_LEVEL = "medieval with magical elements"
PHYSICS_RULES = (
    "Standard physics with magical elements, object material properties affect "
    "interactions, effects can chain through connected objects"
)
LLM_CONFIDENCE = 0.8

FAILSAFE_ACTION = "Reset to safe state"

_DEFAULT_SEVERITY = {
    ConflictKind.WORLD_CONSISTENCY: Severity.HIGH,
    ConflictKind.PLAYER_ACTION: Severity.LOW,
}

RESOLUTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["primary_solution", "narrative_description"],
    "properties": {
        "primary_solution": {
            "type": "object",
            "required": ["action", "explanation", "side_effects", "reversible"],
            "properties": {
                "action": {"type": "string"},
                "explanation": {"type": "string"},
                "side_effects": {"type": "array", "items": {"type": "string"}},
                "reversible": {"type": "boolean"},
            },
        },
        "alternative_solutions": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["action", "explanation", "pros", "cons"],
                "properties": {
                    "action": {"type": "string"},
                    "explanation": {"type": "string"},
                    "pros": {"type": "array", "items": {"type": "string"}},
                    "cons": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "narrative_description": {"type": "string"},
        "consistency_notes": {"type": "string"},
    },
}


def derive_severity(kind: ConflictKind, details: ConflictDetails) -> Severity:
    """Severity for a conflict: explicit override, then error details, then per-kind default."""
    if details.severity is not None:
        return details.severity
    if kind == ConflictKind.PHYSICS and details.error_details.get("severity"):
        try:
            return Severity(details.error_details["severity"])
        except ValueError:
            logger.warning(f"Ignoring unknown severity: {details.error_details['severity']}")
    return _DEFAULT_SEVERITY.get(kind, Severity.MEDIUM)


class ConflictResolver:
    """Hook-first, LLM-fallback conflict resolver.

    Args:
        dispatcher: Provider dispatcher for the LLM path
        templates: Registry holding ``physics_conflict_resolution``
        world: World accessors used for snapshots and applying resolutions
        context_builder: Snapshot builder; one is created for ``world`` if omitted
        register_defaults: Register the built-in hooks and strategies

    Example:
        >>> resolver = ConflictResolver(dispatcher, templates, world)
        >>> result = await resolver.handle_physics_conflict(
        ...     objects=["obj_1"], physics_error="object_overlap", location="room_1")
        >>> result.success, result.resolver_type
        (True, 'llm')
    """

    def __init__(
        self,
        dispatcher: ProviderDispatcher,
        templates: TemplateRegistry,
        world: WorldGateway,
        context_builder: ContextBuilder | None = None,
        register_defaults: bool = True,
    ) -> None:
        self.dispatcher = dispatcher
        self.templates = templates
        self.world = world
        self.context_builder = context_builder or ContextBuilder(world)

        self._hooks: dict[str, ConflictHook] = {}
        self._strategies: dict[str, ResolutionStrategy] = {}
        self._history: dict[str, list[ConflictResolution]] = {}
        self._timings: list[float] = []

        if register_defaults:
            for hook in default_hooks():
                self.register_hook(hook)
            for strategy in default_strategies():
                self._strategies[strategy.id] = strategy

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_hook(self, hook: ConflictHook) -> None:
        """Register or replace a hook by name."""
        self._hooks[hook.name] = hook
        logger.info(f"Registered conflict resolution hook: {hook.name}")

    def unregister_hook(self, name: str) -> bool:
        return self._hooks.pop(name, None) is not None

    @property
    def hooks(self) -> list[ConflictHook]:
        return sorted(self._hooks.values(), key=lambda h: h.priority, reverse=True)

    def get_strategies(self, kind: ConflictKind | str | None = None) -> list[ResolutionStrategy]:
        """Registered strategies, optionally only those applicable to ``kind``."""
        strategies = sorted(self._strategies.values(), key=lambda s: s.priority)
        if kind is None:
            return strategies
        kind = ConflictKind(kind)
        return [s for s in strategies if kind in s.applicable_conflicts]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_conflict(self, kind: ConflictKind | str, details: ConflictDetails) -> ConflictResolution:
        """Resolve a conflict. Never raises.

        Args:
            kind: Conflict kind
            details: Affected entities, location, description, originating action

        Returns:
            The hook or LLM resolution, or a failsafe resolution if anything failed
        """
        start = time.perf_counter()
        try:
            context = self._build_context(kind, details)
        except ValueError as e:
            logger.error(f"Cannot resolve conflict of kind {kind!r}: {e}")
            context = ConflictContext(
                kind=ConflictKind.WORLD_CONSISTENCY,
                severity=Severity.HIGH,
                affected_entities=list(details.affected_entities),
                location=details.location or "unknown",
                description=details.description,
                original_action=details.original_action,
            )
            resolution = self._failsafe_resolution(context)
            resolution.metadata["requested_kind"] = str(kind)
        else:
            logger.info(f"Resolving {context.kind.value} conflict: {details.description}")
            try:
                context.game_state = self._capture_game_state()
                resolution = await self._try_hooks(context)
                if resolution is None:
                    resolution = await self._resolve_with_llm(context)
            except Exception as e:
                logger.error(f"Failed to resolve conflict: {e}")
                resolution = self._failsafe_resolution(context)

        resolution.processing_time = time.perf_counter() - start
        self._record(context, resolution)
        return resolution

    async def handle_physics_conflict(
        self,
        objects: list[str],
        physics_error: str,
        location: str | None = None,
        severity: Severity | str | None = None,
    ) -> ConflictResolution:
        """Objects in an impossible physical state."""
        error_details: dict[str, Any] = {"physics_error": physics_error}
        if severity is not None:
            error_details["severity"] = getattr(severity, "value", severity)
        return await self.resolve_conflict(ConflictKind.PHYSICS, ConflictDetails(
            affected_entities=objects,
            location=location,
            description=f"Physics conflict: {physics_error}",
            original_action="physics_simulation",
            error_details=error_details,
        ))

    async def handle_npc_conflict(
        self,
        npc_id: str,
        conflict_description: str,
        attempted_action: str,
        location: str | None = None,
    ) -> ConflictResolution:
        """An NPC tried to do something impossible."""
        return await self.resolve_conflict(ConflictKind.NPC_BEHAVIOR, ConflictDetails(
            affected_entities=[npc_id],
            location=location,
            description=conflict_description,
            original_action=attempted_action,
        ))

    async def handle_object_conflict(
        self,
        object_id: str,
        conflict_description: str,
        current_state: Any = None,
        desired_state: Any = None,
    ) -> ConflictResolution:
        """An object is in contradictory states."""
        return await self.resolve_conflict(ConflictKind.OBJECT_STATE, ConflictDetails(
            affected_entities=[object_id],
            description=conflict_description,
            original_action="state_change",
            error_details={"current_state": current_state, "desired_state": desired_state},
        ))

    async def handle_player_action_conflict(
        self,
        player_id: str,
        action: str,
        reason: str,
        location: str | None = None,
    ) -> ConflictResolution:
        """A player attempted an impossible action."""
        return await self.resolve_conflict(ConflictKind.PLAYER_ACTION, ConflictDetails(
            affected_entities=[player_id],
            location=location,
            description=f"Player action conflict: {reason}",
            original_action=action,
        ))

    async def handle_world_consistency_conflict(
        self,
        entities: list[str],
        inconsistency: str,
        location: str | None = None,
    ) -> ConflictResolution:
        """The world state contradicts itself."""
        return await self.resolve_conflict(ConflictKind.WORLD_CONSISTENCY, ConflictDetails(
            affected_entities=entities,
            location=location,
            description=f"World consistency conflict: {inconsistency}",
            original_action="world_state_validation",
        ))

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_resolution_stats(self) -> dict[str, Any]:
        total = 0
        successes = 0
        by_kind: dict[str, int] = {}
        for resolutions in self._history.values():
            for resolution in resolutions:
                total += 1
                by_kind[resolution.kind.value] = by_kind.get(resolution.kind.value, 0) + 1
                if resolution.success:
                    successes += 1

        return {
            "total_conflicts": total,
            "resolutions_by_kind": by_kind,
            "success_rate": successes / total if total else 1.0,
            "average_resolution_time": sum(self._timings) / len(self._timings) if self._timings else 0.0,
        }

    def get_history(self, entity_ids: list[str]) -> list[ConflictResolution]:
        """Resolutions recorded for exactly this set of affected entities."""
        return list(self._history.get(",".join(entity_ids), []))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _capture_game_state(self) -> dict[str, Any]:
        state: dict[str, Any] = dict(self.context_builder.capture_world_counts())
        state["timestamp"] = datetime.now().isoformat()
        return state

    async def _try_hooks(self, context: ConflictContext) -> ConflictResolution | None:
        for hook in self.hooks:
            if not hook.matches(context):
                continue
            try:
                resolution = await hook.handler(context)
            except Exception as e:
                logger.warning(f"Hook {hook.name} failed: {e}")
                continue
            if resolution is not None:
                logger.info(f"Conflict resolved by hook: {hook.name}")
                resolution.metadata.setdefault("resolver_type", ResolverType.HOOK.value)
                resolution.metadata.setdefault("hook_name", hook.name)
                return resolution
        return None

    async def _resolve_with_llm(self, context: ConflictContext) -> ConflictResolution:
        context.attempt_count += 1
        compiled = self.templates.compile_template("physics_conflict_resolution", {
            "game_name": GAME_NAME,
            "conflict_type": context.kind.value,
            "affected_objects": ", ".join(context.affected_entities) or "none",
            "location": context.location,
            "conflict_description": context.description,
            "physics_rules": PHYSICS_RULES,
            "current_situation": json.dumps(self._situation(context), indent=2, default=str),
            "game_theme": GAME_THEME,
            "magic_system": MAGIC_SYSTEM,
            "tech_level": TECH_LEVEL,
        })
        response = await self.dispatcher.generate_structured(
            compiled.prompt,
            RESOLUTION_SCHEMA,
            RequestOptions(temperature=0.6, max_tokens=2000, system_prompt=compiled.system_prompt),
        )
        if response.validation_errors:
            logger.warning(f"LLM resolution validation errors: {', '.join(response.validation_errors)}")
        if response.parsed_content is None:
            raise GenerationError("No resolution content returned")

        content = response.parsed_content
        primary = content["primary_solution"]
        resolution = ConflictResolution(
            kind=context.kind,
            success=True,
            resolution=primary["action"],
            explanation=primary.get("explanation", ""),
            applied_changes=[primary["action"]],
            side_effects=list(primary.get("side_effects") or []),
            alternative_solutions=[
                AlternativeSolution(
                    description=alt.get("action", ""),
                    explanation=alt.get("explanation", ""),
                    pros=alt.get("pros") or [],
                    cons=alt.get("cons") or [],
                )
                for alt in content.get("alternative_solutions") or []
                if isinstance(alt, dict)
            ],
            narrative_description=content.get("narrative_description", ""),
            confidence=LLM_CONFIDENCE,
            requires_player_confirmation=context.severity == Severity.CRITICAL,
            metadata={
                "resolver_type": ResolverType.LLM.value,
                "attempt_count": context.attempt_count,
                "timestamp": datetime.now().isoformat(),
                "reversible": primary.get("reversible"),
            },
        )
        self._apply_resolution(context, resolution)
        return resolution

    def _situation(self, context: ConflictContext) -> dict[str, Any]:
        situation: dict[str, Any] = {
            "conflict_type": context.kind.value,
            "location": context.location,
            "affected_entities": context.affected_entities,
            "game_state": context.game_state,
        }
        if context.location != "unknown" and self.world.get_room(context.location) is not None:
            situation["room_context"] = self.context_builder.build_room_context(context.location).model_dump()
        for entity_id in context.affected_entities:
            entity_context = self.context_builder.build_entity_context(entity_id)
            if entity_context is not None:
                situation[f"{entity_context['kind']}_{entity_id}"] = entity_context
            else:
                logger.warning(f"Could not build entity context for {entity_id}")
        return situation

    def _apply_resolution(self, context: ConflictContext, resolution: ConflictResolution) -> None:
        appliers = {
            ConflictKind.PHYSICS: self._apply_physics,
            ConflictKind.NPC_BEHAVIOR: self._apply_npc_behavior,
            ConflictKind.OBJECT_STATE: self._apply_object_state,
            ConflictKind.PLAYER_ACTION: self._apply_player_action,
            ConflictKind.WORLD_CONSISTENCY: self._apply_world_consistency,
        }
        try:
            appliers[context.kind](context, resolution)
            logger.info(f"Applied resolution for {context.kind.value} conflict")
        except Exception as e:
            logger.error(f"Failed to apply resolution: {e}")
            resolution.success = False
            resolution.side_effects.append(f"Resolution application failed: {e}")

    def _resolution_marker(self, resolution: ConflictResolution) -> dict[str, Any]:
        return {"last_resolution": resolution.resolution, "resolved_at": datetime.now().isoformat()}

    def _apply_physics(self, context: ConflictContext, resolution: ConflictResolution) -> None:
        # Objects keep their current position, which is the known-safe fallback
        for entity_id in context.affected_entities:
            obj = self.world.get_object(entity_id)
            if obj is not None:
                self.world.update_object(entity_id, {
                    "position": obj.get("position"),
                    **self._resolution_marker(resolution),
                })

    def _apply_npc_behavior(self, context: ConflictContext, resolution: ConflictResolution) -> None:
        if not context.affected_entities:
            return
        npc_id = context.affected_entities[0]
        if self.world.get_player(npc_id) is not None:
            self.world.update_player(npc_id, self._resolution_marker(resolution))

    def _apply_object_state(self, context: ConflictContext, resolution: ConflictResolution) -> None:
        if not context.affected_entities:
            return
        object_id = context.affected_entities[0]
        if self.world.get_object(object_id) is not None:
            self.world.update_object(object_id, self._resolution_marker(resolution))

    def _apply_player_action(self, context: ConflictContext, resolution: ConflictResolution) -> None:
        # The explanation is the player's feedback; nothing in the world changes
        return None

    def _apply_world_consistency(self, context: ConflictContext, resolution: ConflictResolution) -> None:
        for entity_id in context.affected_entities:
            if self.world.get_entity(entity_id) is not None:
                self.world.update_entity(entity_id, self._resolution_marker(resolution))

    @staticmethod
    def _build_context(kind: ConflictKind | str, details: ConflictDetails) -> ConflictContext:
        kind = ConflictKind(kind)
        return ConflictContext(
            kind=kind,
            severity=derive_severity(kind, details),
            affected_entities=list(details.affected_entities),
            location=details.location or "unknown",
            description=details.description,
            original_action=details.original_action,
            error_details=dict(details.error_details),
        )

    @staticmethod
    def _failsafe_resolution(context: ConflictContext) -> ConflictResolution:
        return ConflictResolution(
            kind=context.kind,
            success=False,
            resolution=FAILSAFE_ACTION,
            explanation="Automatic failsafe resolution applied due to resolution failure",
            applied_changes=["reset_to_safe_state"],
            side_effects=["Some game state may have been reset"],
            narrative_description="The world seems to shimmer for a moment as reality reasserts itself.",
            confidence=1.0,
            metadata={
                "resolver_type": ResolverType.FAILSAFE.value,
                "attempt_count": context.attempt_count,
                "timestamp": datetime.now().isoformat(),
            },
        )

    def _record(self, context: ConflictContext, resolution: ConflictResolution) -> None:
        key = ",".join(context.affected_entities)
        self._history.setdefault(key, []).append(resolution)
        self._timings.append(resolution.processing_time)


__all__ = [
    "ConflictResolver",
    "RESOLUTION_SCHEMA",
    "FAILSAFE_ACTION",
    "derive_severity",
]
