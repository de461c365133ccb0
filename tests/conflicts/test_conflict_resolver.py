"""
Tests for the conflict resolution engine: hooks first, then the LLM, then failsafe.
"""

import json

import pytest
from conftest import RESOLUTION_NEEDLE, RoutedProvider, make_dispatcher

from questweaver.conflicts import (
    FAILSAFE_ACTION,
    ConflictDetails,
    ConflictHook,
    ConflictKind,
    ConflictResolution,
    ConflictResolver,
    Severity,
)
from questweaver.conflicts.resolver import derive_severity

pytestmark = pytest.mark.anyio

RESOLUTION_JSON = json.dumps({
    "primary_solution": {
        "action": "Slide the mug to the table edge",
        "explanation": "Two objects cannot share a position",
        "side_effects": ["A little ale spills"],
        "reversible": True,
    },
    "alternative_solutions": [
        {"action": "Remove the mug", "explanation": "Drastic", "pros": ["simple"], "cons": ["mug lost"]},
    ],
    "narrative_description": "The mug wobbles and settles at the edge of the table.",
})


@pytest.fixture
def provider() -> RoutedProvider:
    return RoutedProvider([(RESOLUTION_NEEDLE, RESOLUTION_JSON)])


@pytest.fixture
def resolver(provider, templates, world) -> ConflictResolver:
    return ConflictResolver(make_dispatcher(provider), templates, world)


class TestHooks:

    async def test_low_severity_physics_is_resolved_by_hook(self, resolver, provider, tavern) -> None:
        result = await resolver.handle_physics_conflict(
            ["obj_mug", "obj_table"], "object_overlap", location="room_tavern", severity="low",
        )

        assert result.success is True
        assert result.resolver_type == "hook"
        assert result.metadata["hook_name"] == "simple_physics_reset"
        assert provider.prompts == []

    async def test_impossible_player_action_gets_suggestions(self, resolver, provider, tavern) -> None:
        result = await resolver.handle_player_action_conflict(
            "player_frodo", "fly over the table", "impossible_action: hobbits cannot fly",
        )

        assert result.resolver_type == "hook"
        assert len(result.alternative_solutions) == 2
        assert provider.prompts == []

    async def test_hooks_run_by_priority(self, resolver) -> None:
        order: list[str] = []

        def recording(name, resolution=None):
            async def handler(context):
                order.append(name)
                return resolution
            return handler

        winner = ConflictResolution(kind=ConflictKind.OBJECT_STATE, success=True, resolution="Forced")
        resolver.register_hook(ConflictHook("low", ["flicker"], 1, recording("low")))
        resolver.register_hook(ConflictHook("high", ["flicker"], 50, recording("high", winner)))

        result = await resolver.handle_object_conflict("obj_lamp", "lamp flicker loop")

        assert order == ["high"]
        assert result.resolution == "Forced"
        assert result.metadata["resolver_type"] == "hook"
        assert result.metadata["hook_name"] == "high"

    async def test_failing_hook_is_skipped(self, resolver, provider, tavern) -> None:
        async def broken(context):
            raise RuntimeError("hook exploded")

        resolver.register_hook(ConflictHook("broken", ["overlap"], 100, broken))

        result = await resolver.handle_physics_conflict(["obj_mug"], "object_overlap", severity="low")

        assert result.metadata["hook_name"] == "simple_physics_reset"

    def test_unregister_hook(self, resolver) -> None:
        assert [hook.name for hook in resolver.hooks] == ["simple_physics_reset", "player_action_validation"]
        assert resolver.unregister_hook("simple_physics_reset") is True
        assert resolver.unregister_hook("simple_physics_reset") is False
        assert [hook.name for hook in resolver.hooks] == ["player_action_validation"]

    def test_without_defaults(self, provider, templates, world) -> None:
        resolver = ConflictResolver(make_dispatcher(provider), templates, world, register_defaults=False)
        assert resolver.hooks == []
        assert resolver.get_strategies() == []


class TestLLMResolution:

    async def test_physics_conflict_uses_llm(self, resolver, provider, world, tavern) -> None:
        result = await resolver.handle_physics_conflict(["obj_mug", "obj_table"], "object_overlap", "room_tavern")

        assert result.success is True
        assert result.resolver_type == "llm"
        assert result.resolution == "Slide the mug to the table edge"
        assert result.applied_changes == ["Slide the mug to the table edge"]
        assert result.side_effects == ["A little ale spills"]
        assert result.alternative_solutions[0].cons == ["mug lost"]
        assert result.confidence == 0.8
        assert result.metadata["reversible"] is True
        assert result.requires_player_confirmation is False

        mug = world.get_object("obj_mug")
        assert mug["last_resolution"] == "Slide the mug to the table edge"
        assert mug["position"] == [1, 1]

        prompt = provider.prompts[0]
        assert "obj_mug, obj_table" in prompt
        assert "The Prancing Pony" in prompt
        assert '"total_objects": 2' in prompt

    async def test_critical_conflict_requires_confirmation(self, resolver, tavern) -> None:
        result = await resolver.handle_physics_conflict(["obj_mug"], "mass_duplication", severity="critical")
        assert result.requires_player_confirmation is True

    async def test_npc_conflict_marks_the_npc(self, resolver, world, tavern) -> None:
        result = await resolver.handle_npc_conflict("npc_butterbur", "Walked through a wall", "move_west")

        assert result.resolver_type == "llm"
        assert world.get_player("npc_butterbur")["last_resolution"] == result.resolution

    async def test_world_consistency_marks_every_entity(self, resolver, world, tavern) -> None:
        await resolver.handle_world_consistency_conflict(["room_street", "obj_table", "ghost"], "door leads nowhere")

        assert world.get_room("room_street")["last_resolution"] == "Slide the mug to the table edge"
        assert world.get_object("obj_table")["last_resolution"] == "Slide the mug to the table edge"

    async def test_player_action_changes_nothing(self, resolver, world, tavern) -> None:
        result = await resolver.handle_player_action_conflict("player_frodo", "eat the table", "tables are inedible")

        assert result.resolver_type == "llm"
        assert "last_resolution" not in world.get_player("player_frodo")

    async def test_application_failure_is_reported(self, resolver, world, tavern, monkeypatch) -> None:
        def refuse(object_id, patch):
            raise RuntimeError("storage offline")

        monkeypatch.setattr(world, "update_object", refuse)

        result = await resolver.handle_object_conflict("obj_mug", "mug is both full and empty", "full", "empty")

        assert result.success is False
        assert result.resolver_type == "llm"
        assert result.side_effects[-1] == "Resolution application failed: storage offline"


class TestFailsafe:

    async def test_provider_failure_gives_failsafe(self, failing_provider, templates, world, tavern) -> None:
        resolver = ConflictResolver(make_dispatcher(failing_provider), templates, world)

        result = await resolver.handle_npc_conflict("npc_butterbur", "Sold the same ale twice", "sell")

        assert result.success is False
        assert result.resolution == FAILSAFE_ACTION
        assert result.resolver_type == "failsafe"
        assert result.metadata["attempt_count"] == 1
        assert result.confidence == 1.0

    async def test_unparseable_answer_gives_failsafe(self, templates, world) -> None:
        resolver = ConflictResolver(make_dispatcher(RoutedProvider([], default="Just move it.")), templates, world)
        result = await resolver.handle_object_conflict("obj_lamp", "lamp both lit and unlit")
        assert result.resolver_type == "failsafe"

    async def test_unknown_kind_gives_failsafe(self, resolver, provider) -> None:
        result = await resolver.resolve_conflict("weather", ConflictDetails(
            affected_entities=["room_tavern"], description="storm indoors",
        ))

        assert result.success is False
        assert result.resolution == FAILSAFE_ACTION
        assert result.resolver_type == "failsafe"
        assert result.metadata["requested_kind"] == "weather"
        assert provider.prompts == []
        assert len(resolver.get_history(["room_tavern"])) == 1

    async def test_unknown_physics_severity_is_ignored(self, resolver, tavern) -> None:
        result = await resolver.handle_physics_conflict(["obj_mug"], "object_overlap", severity="dire")
        assert result.resolver_type == "llm"

    async def test_failsafe_is_recorded(self, failing_provider, templates, world) -> None:
        resolver = ConflictResolver(make_dispatcher(failing_provider), templates, world)
        await resolver.handle_object_conflict("obj_lamp", "lamp both lit and unlit")

        assert len(resolver.get_history(["obj_lamp"])) == 1
        assert resolver.get_resolution_stats()["success_rate"] == 0.0


class TestSeverity:

    @pytest.mark.parametrize("kind, details, expected", [
        (ConflictKind.PHYSICS, ConflictDetails(description="x"), Severity.MEDIUM),
        (ConflictKind.PHYSICS, ConflictDetails(description="x", error_details={"severity": "low"}), Severity.LOW),
        (ConflictKind.PHYSICS, ConflictDetails(description="x", error_details={"severity": "dire"}), Severity.MEDIUM),
        (ConflictKind.WORLD_CONSISTENCY, ConflictDetails(description="x"), Severity.HIGH),
        (ConflictKind.PLAYER_ACTION, ConflictDetails(description="x"), Severity.LOW),
        (ConflictKind.NPC_BEHAVIOR, ConflictDetails(description="x"), Severity.MEDIUM),
        (ConflictKind.OBJECT_STATE, ConflictDetails(description="x", severity=Severity.CRITICAL), Severity.CRITICAL),
        (ConflictKind.NPC_BEHAVIOR, ConflictDetails(description="x", error_details={"severity": "low"}), Severity.MEDIUM),
    ])
    def test_derive_severity(self, kind, details, expected) -> None:
        assert derive_severity(kind, details) == expected

    async def test_resolve_conflict_accepts_kind_strings(self, resolver, tavern) -> None:
        result = await resolver.resolve_conflict("object_state", ConflictDetails(
            affected_entities=["obj_mug"], description="mug is invisible", severity="critical",
        ))
        assert result.kind == ConflictKind.OBJECT_STATE
        assert result.requires_player_confirmation is True


class TestStatistics:

    async def test_stats_and_history(self, resolver, tavern) -> None:
        await resolver.handle_physics_conflict(["obj_mug"], "object_overlap", severity="low")
        await resolver.handle_physics_conflict(["obj_mug"], "object_overlap")
        await resolver.handle_npc_conflict("npc_butterbur", "Walked through a wall", "move_west")

        stats = resolver.get_resolution_stats()
        assert stats["total_conflicts"] == 3
        assert stats["resolutions_by_kind"] == {"physics": 2, "npc_behavior": 1}
        assert stats["success_rate"] == 1.0
        assert stats["average_resolution_time"] >= 0.0

        history = resolver.get_history(["obj_mug"])
        assert [r.resolver_type for r in history] == ["hook", "llm"]
        assert all(r.processing_time >= 0.0 for r in history)
        assert resolver.get_history(["nothing"]) == []

    def test_empty_stats(self, resolver) -> None:
        assert resolver.get_resolution_stats() == {
            "total_conflicts": 0,
            "resolutions_by_kind": {},
            "success_rate": 1.0,
            "average_resolution_time": 0.0,
        }

    def test_strategies_by_kind(self, resolver) -> None:
        assert [s.id for s in resolver.get_strategies()] == [
            "physics_reset", "npc_behavior_correction", "world_consistency_repair",
        ]
        assert [s.id for s in resolver.get_strategies("physics")] == ["physics_reset"]
        assert resolver.get_strategies(ConflictKind.PLAYER_ACTION) == []
