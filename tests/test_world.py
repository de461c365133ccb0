"""
Tests for the in-memory world gateway.
"""

import pytest

from questweaver.exceptions import EntityNotFoundError
from questweaver.world import InMemoryWorld, WorldGateway


def test_satisfies_gateway_protocol(world: InMemoryWorld) -> None:
    assert isinstance(world, WorldGateway)


def test_create_assigns_id_and_kind(world: InMemoryWorld) -> None:
    room = world.create_room({"name": "Cellar"})
    assert room["id"].startswith("room_")
    assert room["kind"] == "room"

    explicit = world.create_object({"id": "obj_1", "name": "barrel"})
    assert explicit["id"] == "obj_1"
    assert explicit["kind"] == "object"


def test_reads_return_copies(world: InMemoryWorld) -> None:
    world.create_room({"id": "room_1", "name": "Cellar", "exits": []})
    room = world.get_room("room_1")
    room["name"] = "Changed"
    room["exits"].append("north")

    assert world.get_room("room_1")["name"] == "Cellar"
    assert world.get_room("room_1")["exits"] == []


def test_get_entity_searches_every_store(world: InMemoryWorld, tavern) -> None:
    assert world.get_entity("room_tavern")["kind"] == "room"
    assert world.get_entity("obj_mug")["kind"] == "object"
    assert world.get_entity("player_frodo")["kind"] == "player"


def test_room_queries(world: InMemoryWorld, tavern) -> None:
    objects = world.get_objects_in_room("room_tavern")
    players = world.get_players_in_room("room_tavern")
    assert {o["id"] for o in objects} == {"obj_table", "obj_mug"}
    assert {p["id"] for p in players} == {"npc_butterbur", "player_frodo"}
    assert world.get_objects_in_room("room_street") == []


def test_spatial_relationships(world: InMemoryWorld, tavern) -> None:
    assert world.get_spatial_relationships("obj_mug") == [
        {"type": "on_top_of", "target_id": "obj_table", "description": "The mug sits on the table"}
    ]
    assert world.get_spatial_relationships("obj_table") == []


def test_updates_patch_but_keep_identity(world: InMemoryWorld, tavern) -> None:
    updated = world.update_object("obj_mug", {"position": [2, 2], "id": "hijack", "kind": "room"})
    assert updated["position"] == [2, 2]
    assert updated["id"] == "obj_mug"
    assert updated["kind"] == "object"

    assert world.update_player("player_frodo", {"hp": 5})["hp"] == 5
    assert world.update_entity("room_street", {"visited": True})["visited"] is True


def test_update_unknown_entity(world: InMemoryWorld) -> None:
    with pytest.raises(EntityNotFoundError, match="Object obj_missing not found"):
        world.update_object("obj_missing", {})
    with pytest.raises(EntityNotFoundError, match="Player nobody not found"):
        world.update_player("nobody", {})
    with pytest.raises(EntityNotFoundError):
        world.update_entity("nothing", {})


def test_listing(world: InMemoryWorld, tavern) -> None:
    assert len(world.list_rooms()) == 2
    assert len(world.list_objects()) == 2
    assert len(world.list_players()) == 2
    assert world.get_entity("obj_table")["name"] == "oak table"
    assert world.get_entity("missing") is None
