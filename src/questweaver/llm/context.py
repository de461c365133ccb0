"""
Game-context snapshots for prompt compilation.

GameContext is a read-only snapshot assembled from the world collaborators.
extract_context_variables() flattens it into the template variable names the
built-in prompt library uses (room_name, objects_list, tech_level, ...).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..exceptions import EntityNotFoundError
from ..world import WorldGateway

logger = logging.getLogger("questweaver")


class GameInfo(BaseModel):
    """Static facts about the running game."""

    name: str = "Quest Weaver"
    theme: str = "fantasy adventure"
    genre: str = "fantasy"
    description: str = ""


class RoomConnection(BaseModel):
    direction: str
    target_room_id: str
    description: str = ""
    is_locked: bool = False


class RoomSnapshot(BaseModel):
    """A room with the entities currently inside it."""

    id: str
    name: str
    type: str | None = None
    description: str = ""
    objects: list[dict[str, Any]] = Field(default_factory=list)
    players: list[dict[str, Any]] = Field(default_factory=list)
    connections: list[RoomConnection] = Field(default_factory=list)
    lighting: str = "well-lit"


class WorldConstraints(BaseModel):
    """Cultural, narrative and physical rules of the setting."""

    era: str | None = None
    technology: str | None = None
    tone: str | None = None
    physics_rules: list[str] = Field(default_factory=list)


class PlayerSnapshot(BaseModel):
    id: str
    name: str = ""
    level: int | None = None


class GameContext(BaseModel):
    """Snapshot of everything a prompt may need to know about the game."""

    game_info: GameInfo = Field(default_factory=GameInfo)
    active_room: RoomSnapshot | None = None
    time_of_day: str | None = None
    constraints: WorldConstraints | None = None
    player: PlayerSnapshot | None = None
    world_counts: dict[str, int] = Field(default_factory=dict)
    captured_at: datetime = Field(default_factory=datetime.now)


def extract_context_variables(context: GameContext) -> dict[str, Any]:
    """Flatten a GameContext into template variables.

    Only keys whose source is present in the snapshot are produced, so
    template defaults still apply for everything else.
    """
    variables: dict[str, Any] = {
        "game_name": context.game_info.name,
        "game_theme": context.game_info.theme,
        "game_genre": context.game_info.genre,
    }

    room = context.active_room
    if room is not None:
        object_names = [o.get("name", o.get("id", "object")) for o in room.objects]
        variables["location"] = room.name
        variables["room_name"] = room.name
        variables["room_type"] = room.type or "unknown"
        variables["room_theme"] = room.description
        variables["objects_list"] = ", ".join(object_names) if object_names else "none"
        variables["existing_objects"] = ", ".join(object_names)
        variables["connected_rooms"] = ", ".join(
            f"{c.direction} to {c.target_room_id}" for c in room.connections
        )
        variables["lighting"] = room.lighting
        variables["time_of_day"] = context.time_of_day or "unknown"

    if context.constraints is not None:
        variables["cultural_setting"] = context.constraints.era or "fantasy"
        variables["tech_level"] = context.constraints.technology or "medieval"
        variables["narrative_style"] = context.constraints.tone or "balanced"
        variables["physics_rules"] = ", ".join(context.constraints.physics_rules)

    if context.player is not None:
        variables["player_level"] = str(context.player.level or 1)
        variables["player_relationship"] = "neutral"

    return variables


class ContextBuilder:
    """Assembles GameContext snapshots from the world collaborators.

    Args:
        world: World accessors
        game_info: Static game facts
        constraints: Setting rules applied to every context
    """

    def __init__(
        self,
        world: WorldGateway,
        game_info: GameInfo | None = None,
        constraints: WorldConstraints | None = None,
    ) -> None:
        self.world = world
        self.game_info = game_info or GameInfo()
        self.constraints = constraints

    def build_room_context(self, room_id: str) -> RoomSnapshot:
        """Snapshot of a room, its objects, occupants and exits.

        Raises:
            EntityNotFoundError: If the room does not exist
        """
        room = self.world.get_room(room_id)
        if room is None:
            raise EntityNotFoundError("Room", room_id)

        connections = [
            RoomConnection(
                direction=exit_.get("direction", "unknown"),
                target_room_id=exit_.get("target_room_id", ""),
                description=exit_.get("description", ""),
                is_locked=bool(exit_.get("locked", False)),
            )
            for exit_ in room.get("exits", [])
        ]
        ambiance = room.get("ambiance") or {}
        return RoomSnapshot(
            id=room["id"],
            name=room.get("name", room_id),
            type=room.get("type"),
            description=room.get("description", ""),
            objects=self.world.get_objects_in_room(room_id),
            players=self.world.get_players_in_room(room_id),
            connections=connections,
            lighting=ambiance.get("lighting", "well-lit"),
        )

    def build_entity_context(self, entity_id: str) -> dict[str, Any] | None:
        """Describe one entity for a conflict prompt; None if unknown."""
        player = self.world.get_player(entity_id)
        if player is not None:
            return {"kind": "player", "entity": player}
        obj = self.world.get_object(entity_id)
        if obj is not None:
            return {
                "kind": "object",
                "entity": obj,
                "spatial_relationships": self.world.get_spatial_relationships(entity_id),
            }
        room = self.world.get_room(entity_id)
        if room is not None:
            return {"kind": "room", "entity": room}
        return None

    def capture_world_counts(self) -> dict[str, int]:
        return {
            "total_rooms": len(self.world.list_rooms()),
            "total_players": len(self.world.list_players()),
            "total_objects": len(self.world.list_objects()),
        }

    def build_game_context(
        self,
        room_id: str | None = None,
        player_id: str | None = None,
        time_of_day: str | None = None,
    ) -> GameContext:
        """Full snapshot centred on an optional room and player.

        A missing room or player is logged and left out of the snapshot.
        """
        active_room = None
        if room_id:
            try:
                active_room = self.build_room_context(room_id)
            except EntityNotFoundError as e:
                logger.warning(f"Could not build room context: {e}")

        player = None
        if player_id:
            data = self.world.get_player(player_id)
            if data is None:
                logger.warning(f"Could not build player context: Player {player_id} not found")
            else:
                player = PlayerSnapshot(id=data["id"], name=data.get("name", ""), level=data.get("level"))

        return GameContext(
            game_info=self.game_info,
            active_room=active_room,
            time_of_day=time_of_day,
            constraints=self.constraints,
            player=player,
            world_counts=self.capture_world_counts(),
        )


__all__ = [
    "GameInfo",
    "RoomConnection",
    "RoomSnapshot",
    "WorldConstraints",
    "PlayerSnapshot",
    "GameContext",
    "extract_context_variables",
    "ContextBuilder",
]
