"""
Story, quest and adaptive-narrative generation.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..exceptions import GenerationError
from .base import ContentGenerator
from .models import NPCRequest, QuestRequest, RoomRequest, StoryRequest
from .npc import NPCGenerator
from .room import RoomGenerator
from .schemas import ADAPTIVE_NARRATIVE_SCHEMA, PLOT_TWIST_SCHEMA, QUEST_SCHEMA, STORY_SCHEMA

logger = logging.getLogger("questweaver")

MAX_ROOMS_BY_LENGTH = {"short": 5, "medium": 15, "long": 30}
MAX_NPCS_BY_LENGTH = {"short": 3, "medium": 8, "long": 15}
MAIN_QUEST_DIFFICULTY = 7

_GENRE_STYLES = {
    "fantasy": "fantasy",
    "sci-fi": "sci-fi",
    "horror": "horror",
    "mystery": "mystery",
    "adventure": "fantasy",
    "drama": "modern",
}

_CHARACTER_ROLES = {
    "protagonist": "ally",
    "antagonist": "enemy",
    "ally": "ally",
    "mentor": "wizard",
    "neutral": "villager",
}


def genre_to_style(genre: str) -> str:
    return _GENRE_STYLES.get(genre.lower(), "fantasy")


def character_role_to_npc_role(role: str) -> str:
    return _CHARACTER_ROLES.get(role, "villager")


class NarrativeGenerator(ContentGenerator):
    """Generates stories and quests and turns stories into world content.

    Args:
        room_generator: Used by implement_story to build locations
        npc_generator: Used by implement_story to build characters
        **kwargs: Passed to ContentGenerator
    """

    def __init__(self, *args: Any, room_generator: RoomGenerator, npc_generator: NPCGenerator, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.room_generator = room_generator
        self.npc_generator = npc_generator

    async def generate_story(self, request: StoryRequest) -> dict[str, Any]:
        """Generate a story outline: acts, characters, locations and quest lines.

        Raises:
            GenerationError: If the story could not be generated
        """
        logger.info(f"Generating {request.genre} story: {request.theme}")
        variables = {
            "genre": request.genre,
            "theme": request.theme,
            "target_length": request.target_length,
            "player_level": str(request.player_level),
            "key_elements": ", ".join(request.key_elements) or "adventure, discovery, challenge",
            "conflicts": ", ".join(request.conflicts) or "overcome obstacles",
            "desired_outcome": request.desired_outcome,
            "max_rooms": str(MAX_ROOMS_BY_LENGTH.get(request.target_length, 10)),
            "max_npcs": str(MAX_NPCS_BY_LENGTH.get(request.target_length, 5)),
        }
        try:
            story = await self.request_structured(
                "story_generation", variables, STORY_SCHEMA, "Story generation",
                temperature=0.8, max_tokens=6000,
            )
        except Exception as e:
            logger.error(f"Story generation failed: {e}")
            raise GenerationError(f"Failed to generate story: {e}") from e

        story.setdefault("genre", request.genre)
        logger.info(f"Successfully generated story: {story.get('title', 'untitled')}")
        return story

    async def implement_story(self, story: dict[str, Any]) -> dict[str, list[Any]]:
        """Create the story's locations, characters and quests.

        Quest lines harder than 7 become main quests; the rest are side quests.

        Returns:
            {"rooms": [...], "npcs": [...], "quests": [...]}

        Raises:
            GenerationError: If any part could not be generated
        """
        logger.info(f"Implementing story: {story.get('title', 'untitled')}")
        results: dict[str, list[Any]] = {"rooms": [], "npcs": [], "quests": []}
        style = genre_to_style(story.get("genre", "fantasy"))

        try:
            for location in story.get("locations") or []:
                results["rooms"].append(await self.room_generator.generate_room(RoomRequest(
                    theme=location.get("name"),
                    purpose=location.get("significance"),
                    style=style,
                )))

            first_room = results["rooms"][0]["id"] if results["rooms"] else None
            for character in story.get("characters") or []:
                results["npcs"].append(await self.npc_generator.generate_npc(NPCRequest(
                    name=character.get("name"),
                    role=character_role_to_npc_role(character.get("role", "neutral")),
                    backstory=f"{character.get('description', '')} Motivation: {character.get('motivation', '')}",
                    room_id=first_room,
                )))

            for quest_line in story.get("quest_lines") or []:
                difficulty = int(quest_line.get("difficulty") or 5)
                results["quests"].append(await self.generate_quest(QuestRequest(
                    type="main" if difficulty > MAIN_QUEST_DIFFICULTY else "side",
                    difficulty=min(max(difficulty, 1), 10),
                    objectives=[quest_line.get("description", "")],
                    npcs_involved=[npc["id"] for npc in results["npcs"][:2]],
                )))
        except Exception as e:
            logger.error(f"Story implementation failed: {e}")
            raise GenerationError(f"Failed to implement story: {e}") from e

        logger.info(
            f"Story implementation complete: {len(results['rooms'])} rooms, "
            f"{len(results['npcs'])} NPCs, {len(results['quests'])} quests"
        )
        return results

    async def generate_quest(self, request: QuestRequest) -> dict[str, Any]:
        """Generate a quest.

        Raises:
            GenerationError: If the quest could not be generated
        """
        logger.info(f"Generating {request.type} quest with difficulty {request.difficulty}")
        params = request.model_dump()
        if self.cache is not None:
            cached = self.cache.get_cached_content("quest", params)
            if cached is not None:
                return cached

        npc_names = [
            (self.world.get_player(npc_id) or {}).get("name", npc_id) for npc_id in request.npcs_involved
        ]
        location_names = [
            (self.world.get_room(room_id) or {}).get("name", room_id) for room_id in request.locations_involved
        ]
        variables = {
            "type": request.type,
            "difficulty": str(request.difficulty),
            "objectives": ", ".join(request.objectives) or "explore the area",
            "npcs_involved": ", ".join(npc_names) or None,
            "locations_involved": ", ".join(location_names) or None,
            "prerequisites": ", ".join(request.prerequisites) or None,
        }
        try:
            quest = await self.request_structured(
                "quest_generation", variables, QUEST_SCHEMA, "Quest generation", temperature=0.7,
            )
        except Exception as e:
            raise GenerationError(f"Failed to generate quest: {e}") from e

        quest.setdefault("type", request.type)
        quest.setdefault("difficulty", request.difficulty)
        if self.cache is not None:
            self.cache.cache_generated_content("quest", params, quest)
        return quest

    async def generate_plot_twist(self, story_state: Any, story_progress: str | None = None) -> dict[str, Any]:
        """Twist for the current story state: twist, impact, new_objectives, affected_characters."""
        try:
            return await self.request_structured(
                "plot_twist",
                {
                    "current_state": json.dumps(story_state, indent=2, default=str),
                    "story_progress": story_progress,
                },
                PLOT_TWIST_SCHEMA,
                "Plot twist",
                temperature=0.9,
            )
        except Exception as e:
            raise GenerationError(f"Failed to generate plot twist: {e}") from e

    async def generate_adaptive_narrative(
        self,
        player_actions: list[str],
        game_state: Any,
        story_context: Any,
    ) -> dict[str, Any]:
        """Narrative reaction to player actions: narrative_response, consequences, new_story_elements."""
        try:
            return await self.request_structured(
                "adaptive_narrative",
                {
                    "player_actions": ", ".join(player_actions) or "none",
                    "game_state": json.dumps(game_state, indent=2, default=str),
                    "story_context": json.dumps(story_context, indent=2, default=str),
                },
                ADAPTIVE_NARRATIVE_SCHEMA,
                "Adaptive narrative",
                temperature=0.8,
            )
        except Exception as e:
            raise GenerationError(f"Failed to generate adaptive narrative: {e}") from e


__all__ = [
    "NarrativeGenerator",
    "MAX_ROOMS_BY_LENGTH",
    "MAX_NPCS_BY_LENGTH",
    "genre_to_style",
    "character_role_to_npc_role",
]
