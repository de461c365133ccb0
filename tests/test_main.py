"""
Unit tests for the MCP tool logic in questweaver.main.

Tests cover:
- JSON object argument parsing
- llm_status aggregation
- Free text and structured generation through the dispatcher
- Conflict resolution with kind and severity strings
- Story session creation and decisions
"""

import json

import pytest

from questweaver.config import LLMSettings
from questweaver.llm.providers import MockProvider
from questweaver.main import (
    _create_story_logic,
    _generate_structured_logic,
    _generate_text_logic,
    _llm_status_logic,
    _parse_json_object,
    _resolve_conflict_logic,
    _story_decision_logic,
    _to_json,
    make_lifespan,
)
from questweaver.services import build_services
from questweaver.world import InMemoryWorld

pytestmark = pytest.mark.anyio


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider(default_response='{"name": "Ogre", "level": 4}')


@pytest.fixture
def services(provider):
    return build_services(LLMSettings(), InMemoryWorld(), providers=[provider])


class TestParseJsonObject:

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty_input(self, raw) -> None:
        assert _parse_json_object(raw, "variables") == {}

    def test_object(self) -> None:
        assert _parse_json_object('{"room_name": "Crypt"}', "variables") == {"room_name": "Crypt"}

    def test_invalid_json(self) -> None:
        with pytest.raises(ValueError, match="variables must be a JSON object"):
            _parse_json_object("{room_name", "variables")

    def test_non_object(self) -> None:
        with pytest.raises(ValueError, match="schema must be a JSON object"):
            _parse_json_object("[1, 2]", "schema")


class TestLLMTools:

    async def test_status(self, services) -> None:
        status = await _llm_status_logic(services)

        assert status["available"] is True
        assert status["healthy"] is True
        assert status["dispatcher"]["primary_provider"] == "mock"
        assert status["templates"]["total_templates"] == 13
        assert status["story_sessions"] == 0
        assert "recent_errors" not in status["errors"]
        json.loads(_to_json(status))

    async def test_generate_text(self, services, provider) -> None:
        content = await _generate_text_logic(services, "Say hi", "Be brief.", 0.2, 50)

        assert content == '{"name": "Ogre", "level": 4}'
        options = provider.calls[0]["options"]
        assert options.system_prompt == "Be brief."
        assert options.max_tokens == 50

    async def test_generate_structured(self, services) -> None:
        schema = json.dumps({"type": "object", "required": ["name", "hp"]})

        result = await _generate_structured_logic(services, "Make a monster", schema)

        assert result["parsed_content"] == {"name": "Ogre", "level": 4}
        assert result["validation_errors"] == ["Missing required property: hp"]
        assert result["provider"] == "mock"

    async def test_generate_structured_rejects_bad_schema(self, services) -> None:
        with pytest.raises(ValueError):
            await _generate_structured_logic(services, "Make a monster", "not json")


class TestConflictTools:

    async def test_resolve_conflict_failsafe_is_serialisable(self, services) -> None:
        # The mock answer has no primary_solution, so the failsafe applies
        result = await _resolve_conflict_logic(
            services, "object_state", "lamp both lit and unlit", ["obj_lamp"], None, "light", "high",
        )

        assert result["kind"] == "object_state"
        assert result["success"] is False
        assert result["resolution"] == "Reset to safe state"
        assert result["metadata"]["resolver_type"] == "failsafe"
        json.loads(_to_json(result))

    async def test_resolve_conflict_by_hook(self, services, provider) -> None:
        result = await _resolve_conflict_logic(
            services, "physics", "object_overlap near the bar", ["obj_mug"], None, "drop", "low",
        )

        assert result["metadata"]["hook_name"] == "simple_physics_reset"
        assert provider.call_count == 0


class TestStoryTools:

    async def test_create_story_and_decide(self, services) -> None:
        created = await _create_story_logic(services, "a haunted lighthouse", "horror", 2, '{"length": "short"}')

        session_id = created["session_id"]
        decision = created["decision"]
        assert decision["id"] == "planning_1"
        assert [option["id"] for option in decision["options"]] == ["world_first", "characters_first", "story_driven"]

        result = await _story_decision_logic(services, session_id, decision["id"], "characters_first", None)

        assert result["next_decision"]["id"] == "character_creation_2"
        assert result["progress"] == {"phase": "character_creation", "step": 2, "total": 8}
        json.loads(_to_json(result))

    async def test_create_story_with_bad_preferences(self, services) -> None:
        with pytest.raises(ValueError):
            await _create_story_logic(services, "t", "fantasy", 1, "[]")


class ClosingProvider(MockProvider):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


class TestLifespan:

    async def test_lifespan_runs_cache_sweep_and_closes_providers(self) -> None:
        provider = ClosingProvider()
        svc = build_services(LLMSettings(), InMemoryWorld(), providers=[provider])
        lifespan = make_lifespan(svc)

        async with lifespan(None):
            assert svc.cache.is_running is True
            assert provider.closed is False

        assert svc.cache.is_running is False
        assert provider.closed is True
