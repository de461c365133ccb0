"""
Pytest configuration and fixtures for questweaver tests.
"""

import json
import sys
from pathlib import Path
from typing import Any

import pytest

# Add src directory to Python path to allow importing questweaver
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from questweaver.config import RetryConfig
from questweaver.exceptions import ProviderError
from questweaver.llm.dispatcher import ProviderDispatcher
from questweaver.llm.models import FinishReason, LLMResponse, RequestOptions
from questweaver.llm.providers import LLMProvider, MockProvider
from questweaver.llm.resilience import ErrorHandler
from questweaver.llm.templates import TemplateRegistry
from questweaver.world import InMemoryWorld


# Configure anyio to only use asyncio (not trio)
@pytest.fixture
def anyio_backend():
    return "asyncio"


async def no_sleep(_delay: float) -> None:
    return None


class RoutedProvider(LLMProvider):
    """Answers by the first route whose needle occurs in the prompt.

    Routes are (needle, response) pairs; a response may be an exception
    instance, which is raised instead.
    """

    def __init__(self, routes: list[tuple[str, Any]], default: str = "Nothing to say.", name: str = "routed"):
        self.name = name
        self.routes = routes
        self.default = default
        self.prompts: list[str] = []

    async def is_available(self) -> bool:
        return True

    async def generate_response(self, prompt: str, options: RequestOptions | None = None) -> LLMResponse:
        self.prompts.append(prompt)
        for needle, response in self.routes:
            if needle in prompt:
                if isinstance(response, BaseException):
                    raise response
                return LLMResponse(
                    content=response,
                    model="routed-model",
                    finish_reason=FinishReason.STOP,
                    metadata={"provider": self.name},
                )
        return LLMResponse(content=self.default, model="routed-model", metadata={"provider": self.name})

    def calls_matching(self, needle: str) -> int:
        return sum(1 for prompt in self.prompts if needle in prompt)


def make_dispatcher(*providers: LLMProvider, max_retries: int = 0, cache=None) -> ProviderDispatcher:
    """Dispatcher without real backoff delays; the first provider is primary."""
    handler = ErrorHandler(RetryConfig(max_retries=max_retries, base_delay=0.0), sleep=no_sleep)
    dispatcher = ProviderDispatcher(cache=cache, error_handler=handler)
    for index, provider in enumerate(providers):
        dispatcher.register_provider(provider, primary=index == 0)
    return dispatcher


@pytest.fixture
def world() -> InMemoryWorld:
    return InMemoryWorld()


@pytest.fixture
def templates() -> TemplateRegistry:
    return TemplateRegistry()


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider(default_response='{"ok": true}')


@pytest.fixture
def failing_provider() -> MockProvider:
    return MockProvider(name="failing", errors=[ProviderError("Provider error 503: overloaded", "failing")] * 50)


@pytest.fixture
def dispatcher(mock_provider: MockProvider) -> ProviderDispatcher:
    return make_dispatcher(mock_provider)


@pytest.fixture
def tavern(world: InMemoryWorld) -> dict[str, Any]:
    """A small room with a table, a mug on it and an innkeeper."""
    room = world.create_room({
        "id": "room_tavern",
        "name": "The Prancing Pony",
        "type": "tavern",
        "description": "A warm, crowded common room.",
        "exits": [{"direction": "north", "target_room_id": "room_street", "description": "A heavy door"}],
        "ambiance": {"lighting": "dim candlelight"},
    })
    world.create_room({"id": "room_street", "name": "Muddy Street", "type": "street"})
    table = world.create_object({"id": "obj_table", "name": "oak table", "room_id": "room_tavern", "position": [1, 1]})
    mug = world.create_object({"id": "obj_mug", "name": "pewter mug", "room_id": "room_tavern", "position": [1, 1]})
    world.add_spatial_relationship("obj_mug", "on_top_of", "obj_table", "The mug sits on the table")
    innkeeper = world.create_player({
        "id": "npc_butterbur",
        "name": "Barliman",
        "is_npc": True,
        "role": "merchant",
        "room_id": "room_tavern",
        "personality": {"traits": ["forgetful", "kind"], "speech_patterns": ["rambling"]},
        "relationships": {"player_frodo": "friend"},
    })
    hero = world.create_player({"id": "player_frodo", "name": "Frodo", "level": 3, "room_id": "room_tavern"})
    return {"room": room, "table": table, "mug": mug, "innkeeper": innkeeper, "hero": hero}


# ---------------------------------------------------------------------------
# Canned structured responses, keyed by needles unique to each schema
# ---------------------------------------------------------------------------

ROOM_NEEDLE = '"short_description"'
NPC_NEEDLE = '"speech_patterns"'
DIALOGUE_NEEDLE = '"responses"'
STORY_NEEDLE = '"quest_lines"'
QUEST_NEEDLE = '"quest_giver"'
VALIDATION_NEEDLE = '"quality_score"'
RESOLUTION_NEEDLE = '"primary_solution"'

ROOM_JSON = json.dumps({
    "name": "Moonlit Library",
    "description": "Dusty shelves climb into darkness.",
    "short_description": "A dusty library.",
    "objects": [
        {"name": "reading desk", "description": "Scarred oak", "material": "wood", "weight": 40},
        {"name": "iron chest", "description": "Bound in iron", "material": "iron", "can_open": True, "capacity": 10},
    ],
    "exits": [{"direction": "north", "description": "An archway"}],
    "ambiance": {"lighting": "moonlight", "sounds": "creaking", "smells": "old paper", "temperature": "cool"},
})

NPC_JSON = json.dumps({
    "name": "Mirela the Archivist",
    "description": "A stooped woman with ink-stained fingers.",
    "personality": {"traits": ["curious"], "mannerisms": ["squints"], "speech_patterns": ["whispers"]},
    "backstory": {"origin": "The old capital", "motivation": "Preserve forbidden lore"},
    "stats": {"health": 40, "level": 3},
    "inventory": [{"name": "quill", "description": "A raven feather quill"}],
    "dialogue": {"greeting": ["Hush."], "farewell": ["Mind the dust."], "topics": {}},
    "behavior": {"default_action": "sorting scrolls"},
})

DIALOGUE_JSON = json.dumps({"responses": ["Welcome, traveller.", "Mind the stairs."]})

STORY_JSON = json.dumps({
    "title": "The Drowned Crown",
    "synopsis": "A crown lost beneath the lake must be recovered.",
    "acts": [{"title": "Act I", "description": "Rumours", "objectives": ["Find the diver"]}],
    "characters": [
        {"name": "Old Diver", "role": "mentor", "description": "Retired diver", "motivation": "Redemption"},
        {"name": "Lake Witch", "role": "antagonist", "description": "Keeper of the deep", "motivation": "Power"},
    ],
    "locations": [
        {"name": "Lakeside Village", "description": "Fishing huts", "significance": "Starting point"},
        {"name": "Sunken Hall", "description": "Flooded ruins", "significance": "Final confrontation"},
    ],
    "quest_lines": [
        {"name": "Raise the Crown", "description": "Recover the crown", "difficulty": 8, "rewards": ["crown"]},
        {"name": "Lost Nets", "description": "Find the missing nets", "difficulty": 3},
    ],
})

QUEST_JSON = json.dumps({
    "name": "Into the Depths",
    "description": "Dive for the crown.",
    "objectives": [{"description": "Reach the hall", "type": "explore", "target": "Sunken Hall"}],
    "rewards": [{"type": "gold", "amount": 100, "description": "A purse of gold"}],
    "dialogue": {"quest_giver": ["Bring it back."], "completion": ["You did it!"]},
})

VALIDATION_JSON = json.dumps({
    "is_valid": True,
    "quality_score": 90,
    "issues": [],
    "recommendations": ["Add more side quests"],
})


def content_routes() -> list[tuple[str, Any]]:
    """Routes answering every generator schema with a valid payload.

    Validation comes first because its prompt embeds the story itself.
    """
    return [
        (VALIDATION_NEEDLE, VALIDATION_JSON),
        (STORY_NEEDLE, STORY_JSON),
        (ROOM_NEEDLE, ROOM_JSON),
        (NPC_NEEDLE, NPC_JSON),
        (QUEST_NEEDLE, QUEST_JSON),
        (DIALOGUE_NEEDLE, DIALOGUE_JSON),
    ]
