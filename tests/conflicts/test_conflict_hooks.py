"""
Tests for the built-in conflict hooks, hook matching and strategies.
"""

import pytest

from questweaver.conflicts.hooks import (
    default_hooks,
    default_strategies,
    player_action_validation,
    simple_physics_reset,
)
from questweaver.conflicts.models import (
    ConflictContext,
    ConflictHook,
    ConflictKind,
    ConflictResolution,
    Severity,
)

pytestmark = pytest.mark.anyio


def make_context(kind=ConflictKind.PHYSICS, severity=Severity.LOW, description="Physics conflict: object_overlap"):
    return ConflictContext(kind=kind, severity=severity, description=description)


async def _never(context):
    return None


class TestMatching:

    def test_matches_description_case_insensitively(self) -> None:
        hook = ConflictHook(name="h", trigger_conditions=["OBJECT_OVERLAP"], priority=1, handler=_never)
        assert hook.matches(make_context())

    def test_matches_kind(self) -> None:
        hook = ConflictHook(name="h", trigger_conditions=["npc"], priority=1, handler=_never)
        assert hook.matches(make_context(kind=ConflictKind.NPC_BEHAVIOR, description="The guard walked through a wall"))

    def test_no_match(self) -> None:
        hook = ConflictHook(name="h", trigger_conditions=["teleport"], priority=1, handler=_never)
        assert not hook.matches(make_context())


class TestPhysicsReset:

    async def test_resolves_low_severity_physics(self) -> None:
        resolution = await simple_physics_reset(make_context())

        assert isinstance(resolution, ConflictResolution)
        assert resolution.success is True
        assert resolution.applied_changes == ["position_reset"]
        assert resolution.resolver_type == "hook"
        assert resolution.confidence == 0.9

    @pytest.mark.parametrize("kind, severity", [
        (ConflictKind.PHYSICS, Severity.MEDIUM),
        (ConflictKind.PHYSICS, Severity.CRITICAL),
        (ConflictKind.OBJECT_STATE, Severity.LOW),
    ])
    async def test_passes_on_everything_else(self, kind, severity) -> None:
        assert await simple_physics_reset(make_context(kind=kind, severity=severity)) is None


class TestPlayerActionValidation:

    async def test_offers_alternatives(self) -> None:
        context = make_context(kind=ConflictKind.PLAYER_ACTION, description="Player action conflict: impossible_action")

        resolution = await player_action_validation(context)

        assert resolution.resolution == "Provide alternative action suggestions"
        assert len(resolution.alternative_solutions) == 2
        assert resolution.alternative_solutions[0].description == "Try examining the object first"
        assert resolution.metadata["hook_name"] == "player_action_validation"

    async def test_ignores_other_kinds(self) -> None:
        assert await player_action_validation(make_context()) is None


def test_default_hooks() -> None:
    hooks = {hook.name: hook for hook in default_hooks()}
    assert hooks["simple_physics_reset"].priority == 10
    assert hooks["player_action_validation"].priority == 5
    assert "invalid_position" in hooks["simple_physics_reset"].trigger_conditions
    assert "missing_requirements" in hooks["player_action_validation"].trigger_conditions


def test_default_strategies() -> None:
    strategies = {strategy.id: strategy for strategy in default_strategies()}
    assert set(strategies) == {"physics_reset", "npc_behavior_correction", "world_consistency_repair"}
    assert strategies["physics_reset"].auto_executable is True
    assert strategies["physics_reset"].requires_llm is False
    assert strategies["world_consistency_repair"].applicable_conflicts == [ConflictKind.WORLD_CONSISTENCY]
