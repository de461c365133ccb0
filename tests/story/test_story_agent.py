"""
Tests for the interactive story creation agent.
"""

import asyncio
import json

import pytest
from conftest import VALIDATION_NEEDLE, RoutedProvider, content_routes, make_dispatcher

from questweaver.exceptions import GenerationError, ProviderError, StorySessionError
from questweaver.generation import NarrativeGenerator, NPCGenerator, RoomGenerator
from questweaver.story import StoryAgent, StoryPhase, StoryPreferences
from questweaver.story.agent import (
    calculate_npc_count,
    calculate_room_count,
    calculate_total_steps,
    parse_room_choice,
)

pytestmark = pytest.mark.anyio

FLAWED_VALIDATION_JSON = json.dumps({
    "is_valid": False,
    "quality_score": 45,
    "issues": [
        {"type": "error", "category": "consistency", "description": "The witch dies twice"},
        {
            "type": "warning",
            "category": "balance",
            "description": "Final boss too weak",
            "suggestion": "Raise the witch's level",
            "auto_fix": True,
        },
    ],
    "recommendations": ["Fix the timeline", "Rebalance the boss", "Add a twist", "More loot"],
})


def routes_with_validation(validation) -> list:
    return [(VALIDATION_NEEDLE, validation)] + content_routes()[1:]


def build_agent(provider, templates, world) -> StoryAgent:
    dispatcher = make_dispatcher(provider)
    narrative = NarrativeGenerator(
        dispatcher,
        templates,
        world,
        room_generator=RoomGenerator(dispatcher, templates, world),
        npc_generator=NPCGenerator(dispatcher, templates, world),
    )
    return StoryAgent(dispatcher, templates, narrative, world)


async def run_to_refinement(agent: StoryAgent) -> tuple[str, dict]:
    """Drive a session through world building, characters and content generation."""
    session_id, decision = await agent.start_story_creation("a drowned kingdom", "fantasy", 3)
    result = None
    for choice in ("world_first", "recommended", "diverse_cast", "generate_all"):
        result = await agent.process_decision(session_id, decision.id, choice)
        decision = result["next_decision"]
    return session_id, result


@pytest.fixture
def provider() -> RoutedProvider:
    return RoutedProvider(content_routes(), default="A fine summary.")


@pytest.fixture
def agent(provider, templates, world) -> StoryAgent:
    return build_agent(provider, templates, world)


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


class TestSessions:

    async def test_start_opens_planning_session(self, agent, provider) -> None:
        session_id, decision = await agent.start_story_creation("a haunted lighthouse", "horror", 2)

        assert session_id.startswith("story_")
        assert decision.id == "planning_1"
        assert decision.type == "question"
        assert decision.option_ids == ["world_first", "characters_first", "story_driven"]
        assert decision.default_choice == "world_first"
        assert decision.auto_execute_after == 30.0
        assert "moderate complexity" in decision.description

        session = agent.get_session(session_id)
        assert session.current_phase == StoryPhase.PLANNING
        assert session.state.total_steps == 12
        assert provider.prompts == []

    async def test_preferences_from_dict(self, agent) -> None:
        session_id, _ = await agent.start_story_creation("t", "g", preferences={"length": "short"})
        session = agent.get_session(session_id)
        assert session.preferences == StoryPreferences(length="short")
        assert session.state.total_steps == 8

    async def test_list_and_end_sessions(self, agent) -> None:
        session_id, _ = await agent.start_story_creation("a drowned kingdom", "fantasy")

        listed = agent.list_sessions()
        assert [s["session_id"] for s in listed] == [session_id]
        assert listed[0]["phase"] == "planning"

        assert await agent.end_session(session_id) is True
        assert await agent.end_session(session_id) is False
        assert agent.list_sessions() == []

    async def test_unknown_session(self, agent) -> None:
        with pytest.raises(StorySessionError, match="session not found: nope"):
            agent.get_session_status("nope")
        with pytest.raises(StorySessionError):
            await agent.process_decision("nope", "planning_1", "world_first")

    async def test_session_ended_while_waiting_for_lock(self, agent) -> None:
        session_id, decision = await agent.start_story_creation("a drowned kingdom", "fantasy")
        lock = agent._session_locks[session_id]

        await lock.acquire()
        waiting = asyncio.create_task(agent.process_decision(session_id, decision.id, "world_first"))
        await asyncio.sleep(0)
        await agent.end_session(session_id)
        lock.release()

        with pytest.raises(StorySessionError, match="session not found"):
            await waiting

    async def test_status(self, agent) -> None:
        session_id, decision = await agent.start_story_creation("a drowned kingdom", "fantasy")

        status = agent.get_session_status(session_id)

        assert status["phase"] == "planning"
        assert status["can_continue"] is True
        assert status["pending_decision"]["id"] == decision.id
        assert status["progress"] == pytest.approx(1 / 12)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class TestDecisions:

    async def test_characters_first_skips_world_building(self, agent) -> None:
        session_id, decision = await agent.start_story_creation("a drowned kingdom", "fantasy")

        result = await agent.process_decision(session_id, decision.id, "characters_first", feedback="Love NPCs")

        assert result["progress"] == {"phase": "character_creation", "step": 2, "total": 12}
        assert result["next_decision"].id == "character_creation_2"
        assert result["next_decision"].option_ids == ["diverse_cast", "focused_relationships", "antagonist_driven"]

        session = agent.get_session(session_id)
        assert session.settings["approach"] == "characters_first"
        assert session.decisions[0].chosen == "characters_first"
        assert session.decisions[0].reasoning == "Love NPCs"
        assert session.user_feedback[0].phase == StoryPhase.PLANNING

    async def test_invalid_choice(self, agent) -> None:
        session_id, decision = await agent.start_story_creation("a drowned kingdom", "fantasy")
        with pytest.raises(StorySessionError, match="Invalid choice 'sideways'"):
            await agent.process_decision(session_id, decision.id, "sideways")
        assert agent.get_session(session_id).current_phase == StoryPhase.PLANNING

    async def test_stale_decision_id(self, agent) -> None:
        session_id, _ = await agent.start_story_creation("a drowned kingdom", "fantasy")
        with pytest.raises(StorySessionError, match="is not pending"):
            await agent.process_decision(session_id, "planning_7", "world_first")

    async def test_world_building_offers_room_counts(self, agent) -> None:
        session_id, decision = await agent.start_story_creation("a drowned kingdom", "fantasy")
        result = await agent.process_decision(session_id, decision.id, "world_first")

        world_decision = result["next_decision"]
        assert [option.label for option in world_decision.options] == [
            "Minimal (7)", "Recommended (10)", "Expanded (13)",
        ]
        assert world_decision.default_choice == "recommended"

    async def test_generation_failure_is_recorded(self, templates, world) -> None:
        agent = build_agent(RoutedProvider([], default="no story here"), templates, world)
        session_id, decision = await agent.start_story_creation("a drowned kingdom", "fantasy")
        result = await agent.process_decision(session_id, decision.id, "world_first")

        with pytest.raises(GenerationError, match="Failed to generate story"):
            await agent.process_decision(session_id, result["next_decision"].id, "recommended")

        session = agent.get_session(session_id)
        assert session.current_phase == StoryPhase.WORLD_BUILDING
        assert session.state.errors[0].startswith("world_building:")


# ---------------------------------------------------------------------------
# Full flow
# ---------------------------------------------------------------------------


class TestFullFlow:

    async def test_generation_and_refinement(self, agent, provider, world) -> None:
        session_id, result = await run_to_refinement(agent)

        decision = result["next_decision"]
        assert result["progress"]["phase"] == "refinement"
        assert decision.type == "suggestion"
        assert decision.option_ids == ["finalize", "more_polish"]
        assert "90/100" in decision.description

        kinds = {item["type"]: item for item in result["generated"]}
        assert kinds["rooms"]["count"] == 2
        assert kinds["npcs"]["count"] == 2
        assert kinds["quests"]["count"] == 2
        assert kinds["story"]["data"]["title"] == "The Drowned Crown"
        assert len(world.list_rooms()) == 2

    async def test_finalize(self, agent, provider, world) -> None:
        session_id, result = await run_to_refinement(agent)

        done = await agent.process_decision(session_id, result["next_decision"].id, "finalize")
        assert done["next_decision"] is None
        assert agent.get_session_status(session_id)["can_continue"] is False

        final = await agent.finalize_story(session_id)

        assert final["summary"] == "A fine summary."
        deployed = final["deployed_elements"]
        assert len(deployed["rooms"]) == 2
        assert len(deployed["npcs"]) == 2
        assert deployed["quests"] == ["Into the Depths", "Into the Depths"]
        # Already-created entities are reused, not duplicated
        assert len(world.list_rooms()) == 2
        assert len(world.list_players()) == 2

    async def test_finalize_before_completion(self, agent) -> None:
        session_id, _ = await agent.start_story_creation("a drowned kingdom", "fantasy")
        with pytest.raises(StorySessionError, match="not completed"):
            await agent.finalize_story(session_id)

    async def test_low_score_offers_improvements(self, templates, world) -> None:
        agent = build_agent(RoutedProvider(routes_with_validation(FLAWED_VALIDATION_JSON)), templates, world)
        session_id, result = await run_to_refinement(agent)

        decision = result["next_decision"]
        assert decision.type == "question"
        assert decision.option_ids == ["improve_0", "improve_1", "improve_2", "finalize"]
        assert "45/100" in decision.description

        again = await agent.process_decision(session_id, decision.id, "improve_1")
        assert again["progress"]["phase"] == "refinement"
        assert agent.get_session(session_id).settings["refinement_focus"] == ["Rebalance the boss"]

    async def test_critical_errors_block_finalize(self, templates, world) -> None:
        agent = build_agent(RoutedProvider(routes_with_validation(FLAWED_VALIDATION_JSON)), templates, world)
        session_id, result = await run_to_refinement(agent)
        await agent.process_decision(session_id, result["next_decision"].id, "finalize")

        with pytest.raises(StorySessionError, match="critical errors"):
            await agent.finalize_story(session_id)

    async def test_validation_outage_falls_back(self, templates, world) -> None:
        outage = ProviderError("Provider error 500: validator down", "routed")
        agent = build_agent(RoutedProvider(routes_with_validation(outage)), templates, world)

        session_id, result = await run_to_refinement(agent)

        decision = result["next_decision"]
        assert decision.option_ids == ["finalize", "more_polish"]
        assert decision.default_choice == "more_polish"
        assert agent.get_session(session_id).state.warnings[0].startswith("Validation unavailable")

    async def test_auto_fix(self, templates, world) -> None:
        agent = build_agent(RoutedProvider(routes_with_validation(FLAWED_VALIDATION_JSON)), templates, world)
        session_id, _ = await agent.start_story_creation("a drowned kingdom", "fantasy")

        report = await agent.auto_fix_story_issues(session_id)

        assert report == {"fixed_issues": ["Final boss too weak"], "remaining_issues": ["The witch dies twice"]}
        assert agent.get_session(session_id).applied_fixes == ["Raise the witch's level"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("length, steps, rooms, npcs", [
    ("short", 8, 5, 3),
    ("medium", 12, 10, 6),
    ("long", 18, 20, 12),
    ("epic", 10, 8, 5),
])
def test_length_tables(length, steps, rooms, npcs) -> None:
    assert calculate_total_steps(length) == steps
    assert calculate_room_count(length) == rooms
    assert calculate_npc_count(length) == npcs


@pytest.mark.parametrize("choice, expected", [
    ("minimal", 3),
    ("recommended", 5),
    ("expanded", 6),
    ("whatever", 5),
])
def test_parse_room_choice(choice, expected) -> None:
    assert parse_room_choice(choice, "short") == expected
