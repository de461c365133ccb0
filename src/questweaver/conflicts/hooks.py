"""
Built-in conflict hooks and resolution strategies.
"""

from __future__ import annotations

from datetime import datetime

from .models import (
    AlternativeSolution,
    ConflictContext,
    ConflictHook,
    ConflictKind,
    ConflictResolution,
    ResolutionStrategy,
    ResolverType,
    Severity,
)


async def simple_physics_reset(context: ConflictContext) -> ConflictResolution | None:
    """Nudge objects back to valid positions for minor physics glitches."""
    if context.kind != ConflictKind.PHYSICS or context.severity != Severity.LOW:
        return None
    return ConflictResolution(
        kind=ConflictKind.PHYSICS,
        success=True,
        resolution="Reset object positions to valid coordinates",
        explanation="Objects were moved to nearby valid positions to resolve the physics conflict.",
        applied_changes=["position_reset"],
        narrative_description="Items shift slightly to more stable positions.",
        confidence=0.9,
        metadata={
            "resolver_type": ResolverType.HOOK.value,
            "hook_name": "simple_physics_reset",
            "timestamp": datetime.now().isoformat(),
        },
    )


async def player_action_validation(context: ConflictContext) -> ConflictResolution | None:
    """Turn an impossible player action into suggestions."""
    if context.kind != ConflictKind.PLAYER_ACTION:
        return None
    return ConflictResolution(
        kind=ConflictKind.PLAYER_ACTION,
        success=True,
        resolution="Provide alternative action suggestions",
        explanation="That action is not possible right now. Here are some alternatives.",
        applied_changes=["suggested_alternatives"],
        alternative_solutions=[
            AlternativeSolution(
                description="Try examining the object first",
                explanation="Understanding the object better might reveal new possibilities",
            ),
            AlternativeSolution(
                description="Look for tools or items that might help",
                explanation="Some actions require specific items or conditions",
            ),
        ],
        narrative_description="You consider your options carefully.",
        confidence=0.7,
        metadata={
            "resolver_type": ResolverType.HOOK.value,
            "hook_name": "player_action_validation",
            "timestamp": datetime.now().isoformat(),
        },
    )


def default_hooks() -> list[ConflictHook]:
    return [
        ConflictHook(
            name="simple_physics_reset",
            trigger_conditions=["object_overlap", "invalid_position", "impossible_state"],
            priority=10,
            handler=simple_physics_reset,
            description="Reset positions for low-severity physics conflicts",
        ),
        ConflictHook(
            name="player_action_validation",
            trigger_conditions=["impossible_action", "invalid_target", "missing_requirements"],
            priority=5,
            handler=player_action_validation,
            description="Suggest alternatives for impossible player actions",
        ),
    ]


def default_strategies() -> list[ResolutionStrategy]:
    return [
        ResolutionStrategy(
            id="physics_reset",
            name="Physics State Reset",
            description="Reset objects to a safe physics state",
            applicable_conflicts=[ConflictKind.PHYSICS],
            priority=1,
            requires_llm=False,
            auto_executable=True,
        ),
        ResolutionStrategy(
            id="npc_behavior_correction",
            name="NPC Behavior Correction",
            description="Correct impossible NPC actions",
            applicable_conflicts=[ConflictKind.NPC_BEHAVIOR],
            priority=2,
            requires_llm=True,
            auto_executable=False,
        ),
        ResolutionStrategy(
            id="world_consistency_repair",
            name="World Consistency Repair",
            description="Repair contradictory world states",
            applicable_conflicts=[ConflictKind.WORLD_CONSISTENCY],
            priority=3,
            requires_llm=True,
            auto_executable=False,
        ),
    ]


__all__ = [
    "simple_physics_reset",
    "player_action_validation",
    "default_hooks",
    "default_strategies",
]
