"""
Narrow accessors into the game-world persistence layer.

The LLM layer never touches storage directly. It reads and patches rooms,
objects and players (NPCs are players with ``is_npc`` set) through the
WorldGateway protocol. InMemoryWorld is the reference implementation used by
the server when no persistence layer is injected, and by the tests.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol, runtime_checkable

import shortuuid

from .exceptions import EntityNotFoundError

logger = logging.getLogger("questweaver")

Entity = dict[str, Any]


@runtime_checkable
class WorldGateway(Protocol):
    """Read/write accessors the LLM layer consumes."""

    def get_entity(self, entity_id: str) -> Entity | None: ...

    def get_room(self, room_id: str) -> Entity | None: ...

    def get_object(self, object_id: str) -> Entity | None: ...

    def get_player(self, player_id: str) -> Entity | None: ...

    def get_objects_in_room(self, room_id: str) -> list[Entity]: ...

    def get_players_in_room(self, room_id: str) -> list[Entity]: ...

    def get_spatial_relationships(self, object_id: str) -> list[Entity]: ...

    def update_entity(self, entity_id: str, patch: dict[str, Any]) -> Entity: ...

    def update_object(self, object_id: str, patch: dict[str, Any]) -> Entity: ...

    def update_player(self, player_id: str, patch: dict[str, Any]) -> Entity: ...

    def create_room(self, data: dict[str, Any]) -> Entity: ...

    def create_object(self, data: dict[str, Any]) -> Entity: ...

    def create_player(self, data: dict[str, Any]) -> Entity: ...

    def list_rooms(self) -> list[Entity]: ...

    def list_objects(self) -> list[Entity]: ...

    def list_players(self) -> list[Entity]: ...


class InMemoryWorld:
    """Dictionary-backed WorldGateway.

    Entities are plain dicts with an ``id`` and a ``kind`` of "room",
    "object" or "player". Every read returns a copy.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Entity] = {}
        self._objects: dict[str, Entity] = {}
        self._players: dict[str, Entity] = {}
        # object_id -> [{"type": "on_top_of", "target_id": ..., ...}]
        self._relationships: dict[str, list[Entity]] = {}

    # -- reads ---------------------------------------------------------

    def get_entity(self, entity_id: str) -> Entity | None:
        for store in (self._rooms, self._objects, self._players):
            if entity_id in store:
                return copy.deepcopy(store[entity_id])
        return None

    def get_room(self, room_id: str) -> Entity | None:
        return copy.deepcopy(self._rooms.get(room_id))

    def get_object(self, object_id: str) -> Entity | None:
        return copy.deepcopy(self._objects.get(object_id))

    def get_player(self, player_id: str) -> Entity | None:
        return copy.deepcopy(self._players.get(player_id))

    def get_objects_in_room(self, room_id: str) -> list[Entity]:
        return [copy.deepcopy(o) for o in self._objects.values() if o.get("room_id") == room_id]

    def get_players_in_room(self, room_id: str) -> list[Entity]:
        return [copy.deepcopy(p) for p in self._players.values() if p.get("room_id") == room_id]

    def get_spatial_relationships(self, object_id: str) -> list[Entity]:
        return copy.deepcopy(self._relationships.get(object_id, []))

    def list_rooms(self) -> list[Entity]:
        return [copy.deepcopy(r) for r in self._rooms.values()]

    def list_objects(self) -> list[Entity]:
        return [copy.deepcopy(o) for o in self._objects.values()]

    def list_players(self) -> list[Entity]:
        return [copy.deepcopy(p) for p in self._players.values()]

    # -- writes --------------------------------------------------------

    def create_room(self, data: dict[str, Any]) -> Entity:
        return self._create(self._rooms, "room", data)

    def create_object(self, data: dict[str, Any]) -> Entity:
        return self._create(self._objects, "object", data)

    def create_player(self, data: dict[str, Any]) -> Entity:
        return self._create(self._players, "player", data)

    def update_entity(self, entity_id: str, patch: dict[str, Any]) -> Entity:
        for store in (self._rooms, self._objects, self._players):
            if entity_id in store:
                return self._update(store, entity_id, patch)
        raise EntityNotFoundError("Entity", entity_id)

    def update_object(self, object_id: str, patch: dict[str, Any]) -> Entity:
        if object_id not in self._objects:
            raise EntityNotFoundError("Object", object_id)
        return self._update(self._objects, object_id, patch)

    def update_player(self, player_id: str, patch: dict[str, Any]) -> Entity:
        if player_id not in self._players:
            raise EntityNotFoundError("Player", player_id)
        return self._update(self._players, player_id, patch)

    def add_spatial_relationship(self, object_id: str, relation: str, target_id: str, description: str = "") -> None:
        self._relationships.setdefault(object_id, []).append({
            "type": relation,
            "target_id": target_id,
            "description": description,
        })

    # -- internals -----------------------------------------------------

    @staticmethod
    def _create(store: dict[str, Entity], kind: str, data: dict[str, Any]) -> Entity:
        entity = copy.deepcopy(data)
        entity_id = entity.get("id") or f"{kind}_{shortuuid.random(length=8)}"
        entity["id"] = entity_id
        entity["kind"] = kind
        store[entity_id] = entity
        logger.debug(f"Created {kind} {entity_id} ({entity.get('name', 'unnamed')})")
        return copy.deepcopy(entity)

    @staticmethod
    def _update(store: dict[str, Entity], entity_id: str, patch: dict[str, Any]) -> Entity:
        entity = store[entity_id]
        entity.update({k: copy.deepcopy(v) for k, v in patch.items() if k not in ("id", "kind")})
        return copy.deepcopy(entity)


__all__ = ["Entity", "WorldGateway", "InMemoryWorld"]
