"""
Tests for room generation and room wiring.
"""

import pytest
from conftest import ROOM_NEEDLE, RoutedProvider, content_routes, make_dispatcher

from questweaver.exceptions import EntityNotFoundError, GenerationError
from questweaver.generation import RoomGenerator
from questweaver.generation.models import RoomRequest
from questweaver.generation.room import DIRECTIONS, OPPOSITE_DIRECTIONS
from questweaver.llm.cache import ResponseCache
from questweaver.llm.providers import MockProvider

pytestmark = pytest.mark.anyio


@pytest.fixture
def provider() -> RoutedProvider:
    return RoutedProvider(content_routes())


@pytest.fixture
def rooms(provider, templates, world) -> RoomGenerator:
    return RoomGenerator(make_dispatcher(provider), templates, world)


async def test_generate_room_creates_room_and_objects(rooms, world) -> None:
    room = await rooms.generate_room(RoomRequest(theme="Arcane", purpose="library"))

    assert room["name"] == "Moonlit Library"
    assert room["type"] == "library"
    assert room["short_description"] == "A dusty library."
    assert room["ambiance"]["lighting"] == "moonlight"
    assert room["exits"] == []

    objects = {o["name"]: o for o in world.get_objects_in_room(room["id"])}
    assert set(objects) == {"reading desk", "iron chest"}
    assert objects["iron chest"]["is_open"] is False
    assert objects["iron chest"]["capacity"] == 10
    assert objects["reading desk"]["weight"] == 40
    assert objects["reading desk"]["capacity"] == 1


async def test_prompt_carries_request_details(rooms, provider) -> None:
    await rooms.generate_room(RoomRequest(theme="Arcane", purpose="library", required_objects=["lectern"]))
    prompt = provider.prompts[0]
    assert "lectern" in prompt
    assert ROOM_NEEDLE in prompt


async def test_generation_failure_is_wrapped(templates, world) -> None:
    generator = RoomGenerator(make_dispatcher(MockProvider(responses=["I cannot."])), templates, world)

    with pytest.raises(GenerationError, match="Failed to generate room"):
        await generator.generate_room(RoomRequest())
    assert world.list_rooms() == []


async def test_cached_content_skips_the_provider(provider, templates, world) -> None:
    generator = RoomGenerator(make_dispatcher(provider), templates, world, cache=ResponseCache())

    first = await generator.generate_room(RoomRequest(theme="Arcane"))
    second = await generator.generate_room(RoomRequest(theme="Arcane"))

    assert len(provider.prompts) == 1
    assert first["id"] != second["id"]
    assert second["name"] == "Moonlit Library"


def test_connect_rooms_is_two_way(rooms, world, tavern) -> None:
    rooms.connect_rooms("room_street", "room_tavern", "east")

    street_exit = world.get_room("room_street")["exits"][-1]
    tavern_exit = world.get_room("room_tavern")["exits"][-1]
    assert street_exit["direction"] == "east"
    assert street_exit["target_room_id"] == "room_tavern"
    assert tavern_exit["direction"] == "west"
    assert tavern_exit["target_room_id"] == "room_street"


def test_connect_to_missing_room_is_ignored(rooms, world, tavern) -> None:
    rooms.connect_rooms("room_street", "nowhere", "up")
    # The first leg is written before the missing room is noticed
    assert world.get_room("room_street")["exits"][-1]["target_room_id"] == "nowhere"
    assert world.get_room("nowhere") is None


def test_opposite_directions_cover_every_direction() -> None:
    for direction in DIRECTIONS:
        assert OPPOSITE_DIRECTIONS[OPPOSITE_DIRECTIONS[direction]] == direction


async def test_generate_rooms_chains_neighbours(rooms, world) -> None:
    created = await rooms.generate_rooms([RoomRequest(theme="A"), RoomRequest(theme="B"), RoomRequest(theme="C")])

    assert len(created) == 3
    first, middle, last = created
    assert [e["target_room_id"] for e in first["exits"]] == [middle["id"]]
    assert {e["target_room_id"] for e in middle["exits"]} == {first["id"], last["id"]}
    assert [e["target_room_id"] for e in last["exits"]] == [middle["id"]]


async def test_generate_rooms_without_connecting(rooms) -> None:
    created = await rooms.generate_rooms([RoomRequest(), RoomRequest()], connect=False)
    assert all(room["exits"] == [] for room in created)


async def test_enhance_room(rooms, world, tavern) -> None:
    room = await rooms.enhance_room("room_tavern", {"mood": "haunted"})

    assert room["description"] == "Dusty shelves climb into darkness."
    names = {o["name"] for o in world.get_objects_in_room("room_tavern")}
    assert {"oak table", "pewter mug", "reading desk", "iron chest"} <= names


async def test_enhance_unknown_room(rooms) -> None:
    with pytest.raises(EntityNotFoundError):
        await rooms.enhance_room("nowhere", {})
