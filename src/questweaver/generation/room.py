"""
Room generation: LLM-authored rooms and their contents, created through the world gateway.
"""

from __future__ import annotations

import json
import logging
import random
from typing import Any

from ..exceptions import EntityNotFoundError, GenerationError
from ..world import Entity
from .base import ContentGenerator
from .models import RoomRequest
from .schemas import ROOM_CONTENT_SCHEMA

logger = logging.getLogger("questweaver")

DIRECTIONS = [
    "north", "south", "east", "west", "up", "down",
    "northeast", "northwest", "southeast", "southwest",
]

OPPOSITE_DIRECTIONS = {
    "north": "south", "south": "north",
    "east": "west", "west": "east",
    "up": "down", "down": "up",
    "northeast": "southwest", "southwest": "northeast",
    "northwest": "southeast", "southeast": "northwest",
}


class RoomGenerator(ContentGenerator):
    """Generates rooms and places their objects in the world."""

    async def generate_room(self, request: RoomRequest) -> Entity:
        """Generate a room for ``request`` and create it with its objects.

        Raises:
            GenerationError: If content generation or room creation fails
        """
        logger.info(f"Generating room with theme: {request.theme or 'generic'}")
        try:
            content = await self._room_content(request)
            room = self._create_room(content, request)
        except Exception as e:
            logger.error(f"Room generation failed: {e}")
            raise GenerationError(f"Failed to generate room: {e}") from e

        logger.info(f"Successfully generated room: {room['name']} ({room['id']})")
        return room

    async def generate_rooms(self, requests: list[RoomRequest], connect: bool = True) -> list[Entity]:
        """Generate rooms in order, optionally chaining each to the previous one."""
        rooms: list[Entity] = []
        for index, request in enumerate(requests):
            if connect and index > 0:
                request = request.model_copy(update={"connected_rooms": [rooms[-1]["id"]]})
            rooms.append(await self.generate_room(request))

        if connect:
            for current, following in zip(rooms, rooms[1:]):
                self.connect_rooms(current["id"], following["id"], random.choice(DIRECTIONS))
            rooms = [self.world.get_room(room["id"]) or room for room in rooms]
        return rooms

    async def enhance_room(self, room_id: str, enhancements: dict[str, Any]) -> Entity:
        """Ask for additions to an existing room and apply them.

        Raises:
            EntityNotFoundError: If the room does not exist
            GenerationError: If the enhancement could not be generated
        """
        if self.world.get_room(room_id) is None:
            raise EntityNotFoundError("Room", room_id)

        snapshot = self.context_builder.build_room_context(room_id)
        object_names = [o.get("name", o["id"]) for o in snapshot.objects]
        try:
            content = await self.request_structured(
                "room_enhancement",
                {
                    "existing_room": snapshot.model_dump_json(indent=2, exclude={"objects", "players"}),
                    "enhancements": json.dumps(enhancements, indent=2),
                    "current_objects": ", ".join(object_names) or "none",
                },
                ROOM_CONTENT_SCHEMA,
                "Room enhancement",
            )
        except Exception as e:
            raise GenerationError(f"Failed to generate room enhancement: {e}") from e

        if content.get("description"):
            self.world.update_entity(room_id, {"description": content["description"]})
        self._create_objects(room_id, content.get("objects") or [])
        return self.world.get_room(room_id)

    def connect_rooms(self, from_room_id: str, to_room_id: str, direction: str) -> None:
        """Add a two-way exit between rooms."""
        for room_id, target_id, way in (
            (from_room_id, to_room_id, direction),
            (to_room_id, from_room_id, OPPOSITE_DIRECTIONS.get(direction, direction)),
        ):
            room = self.world.get_room(room_id)
            if room is None:
                logger.warning(f"Failed to connect rooms {from_room_id} -> {to_room_id}: {room_id} missing")
                return
            exits = room.get("exits", [])
            exits.append({"direction": way, "target_room_id": target_id, "description": "", "locked": False})
            self.world.update_entity(room_id, {"exits": exits})

    # ------------------------------------------------------------------

    async def _room_content(self, request: RoomRequest) -> dict[str, Any]:
        params = request.model_dump()
        if self.cache is not None:
            cached = self.cache.get_cached_content("room", params)
            if cached is not None:
                logger.debug("Using cached room content")
                return cached

        neighbours = [self.world.get_room(room_id) for room_id in request.connected_rooms]
        neighbour_names = [room["name"] for room in neighbours if room]
        variables = {
            "room_name": f"{request.theme or 'Mystery'} {request.purpose or 'Chamber'}",
            "room_type": request.purpose or "chamber",
            "room_size": request.size,
            "room_theme": f"{request.style} {request.theme or 'mysterious'}",
            "game_theme": request.style,
            "objects_list": ", ".join(request.required_objects) or "various items",
            "connected_rooms": ", ".join(neighbour_names) or "other areas",
            "lighting": request.ambiance or "well-lit",
        }
        content = await self.request_structured(
            "room_description", variables, ROOM_CONTENT_SCHEMA, "Room generation",
            temperature=0.8, max_tokens=3000,
        )
        if self.cache is not None:
            self.cache.cache_generated_content("room", params, content)
        return content

    def _create_room(self, content: dict[str, Any], request: RoomRequest) -> Entity:
        room = self.world.create_room({
            "name": content.get("name") or f"{request.theme or 'Mystery'} {request.purpose or 'Chamber'}",
            "description": content.get("description", ""),
            "short_description": content.get("short_description", ""),
            "type": request.purpose or "chamber",
            "ambiance": content.get("ambiance") or {},
            "secrets": content.get("secrets") or [],
            "exits": [],
        })
        self._create_objects(room["id"], content.get("objects") or [])
        return room

    def _create_objects(self, room_id: str, objects: list[dict[str, Any]]) -> None:
        for data in objects:
            try:
                self.world.create_object({
                    "name": data["name"],
                    "description": data.get("description", ""),
                    "material": data.get("material", "unknown"),
                    "room_id": room_id,
                    "is_open": (not data["can_open"]) if "can_open" in data else None,
                    "capacity": data.get("capacity") or 1,
                    "weight": data.get("weight") or 1,
                })
            except (KeyError, TypeError) as e:
                logger.warning(f"Failed to create object {data!r:.60}: {e}")


__all__ = ["RoomGenerator", "DIRECTIONS", "OPPOSITE_DIRECTIONS"]
