"""
LLM-backed content generators.

Key components:
- RoomGenerator: Rooms with objects, exits and ambiance
- NPCGenerator: NPCs, NPC enhancement and dialogue
- NarrativeGenerator: Story outlines, quests, plot twists, adaptive narrative
"""

from .base import ContentGenerator
from .models import DialogueContext, NPCRequest, QuestRequest, RoomRequest, StoryRequest
from .narrative import NarrativeGenerator
from .npc import NPCGenerator
from .room import RoomGenerator

__all__ = [
    "ContentGenerator",
    "DialogueContext",
    "NPCRequest",
    "QuestRequest",
    "RoomRequest",
    "StoryRequest",
    "NarrativeGenerator",
    "NPCGenerator",
    "RoomGenerator",
]
