"""
Request models for the content generators.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

RoomStyle = Literal["medieval", "modern", "fantasy", "sci-fi", "horror", "mystery"]
NPCRole = Literal["merchant", "guard", "wizard", "villager", "enemy", "ally", "quest_giver"]
StoryLength = Literal["short", "medium", "long"]


class RoomRequest(BaseModel):
    """What to generate a room for."""

    theme: str | None = None
    style: RoomStyle = "fantasy"
    size: Literal["small", "medium", "large"] = "medium"
    purpose: str | None = None
    connected_rooms: list[str] = Field(default_factory=list, description="IDs of neighbouring rooms")
    required_objects: list[str] = Field(default_factory=list)
    ambiance: str | None = None
    danger_level: int | None = Field(default=None, ge=0, le=10)


class NPCRequest(BaseModel):
    """What to generate an NPC for."""

    name: str | None = None
    role: NPCRole = "villager"
    personality: list[str] = Field(default_factory=list)
    backstory: str | None = None
    room_id: str | None = None
    level: int = Field(default=1, ge=1)
    alignment: Literal["good", "neutral", "evil"] = "neutral"
    skills: list[str] = Field(default_factory=list)
    relationships: dict[str, str] = Field(
        default_factory=dict, description="NPC id to friend/enemy/neutral/family"
    )


class DialogueContext(BaseModel):
    """Where and why a conversation is happening."""

    player_id: str | None = None
    room_id: str | None = None
    situation: str = "casual conversation"
    player_action: str | None = None
    conversation_history: list[str] = Field(default_factory=list)


class StoryRequest(BaseModel):
    """Parameters for a complete story outline."""

    genre: str = "fantasy"
    theme: str
    target_length: StoryLength = "medium"
    player_level: int = Field(default=1, ge=1)
    starting_location: str | None = None
    key_elements: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    desired_outcome: Literal["open", "heroic", "tragic", "mysterious"] = "open"


class QuestRequest(BaseModel):
    """Parameters for a single quest."""

    type: Literal["main", "side", "hidden"] = "side"
    difficulty: int = Field(default=5, ge=1, le=10)
    objectives: list[str] = Field(default_factory=list)
    npcs_involved: list[str] = Field(default_factory=list, description="NPC ids")
    locations_involved: list[str] = Field(default_factory=list, description="Room ids")
    time_limit: int | None = Field(default=None, description="Minutes, if the quest is timed")
    prerequisites: list[str] = Field(default_factory=list)


__all__ = [
    "RoomStyle",
    "NPCRole",
    "StoryLength",
    "RoomRequest",
    "NPCRequest",
    "DialogueContext",
    "StoryRequest",
    "QuestRequest",
]
