"""
NPC generation, enhancement and dialogue.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..exceptions import EntityNotFoundError, GenerationError
from ..world import Entity
from .base import ContentGenerator
from .models import DialogueContext, NPCRequest
from .schemas import DIALOGUE_SCHEMA, NPC_CONTENT_SCHEMA

logger = logging.getLogger("questweaver")


class NPCGenerator(ContentGenerator):
    """Generates non-player characters as players flagged ``is_npc``."""

    async def generate_npc(self, request: NPCRequest) -> Entity:
        """Generate an NPC and create it in the world.

        Raises:
            GenerationError: If content generation or creation fails
        """
        logger.info(f"Generating NPC with role: {request.role}")
        try:
            content = await self._npc_content(request)
            npc = self._create_npc(content, request)
        except Exception as e:
            logger.error(f"NPC generation failed: {e}")
            raise GenerationError(f"Failed to generate NPC: {e}") from e

        logger.info(f"Successfully generated NPC: {npc['name']} ({npc['id']})")
        return npc

    async def enhance_npc(self, npc_id: str, enhancements: dict[str, Any]) -> Entity:
        """Deepen an existing NPC.

        Raises:
            EntityNotFoundError: If the NPC does not exist
            GenerationError: If the enhancement could not be generated
        """
        npc = self._require_npc(npc_id)
        try:
            content = await self.request_structured(
                "npc_enhancement",
                {
                    "existing_npc": json.dumps(npc, indent=2, default=str),
                    "enhancements": json.dumps(enhancements, indent=2),
                },
                NPC_CONTENT_SCHEMA,
                "NPC enhancement",
            )
        except Exception as e:
            raise GenerationError(f"Failed to generate NPC enhancement: {e}") from e

        patch: dict[str, Any] = {}
        if content.get("description"):
            patch["description"] = content["description"]
        for key in ("personality", "backstory", "dialogue", "behavior"):
            if isinstance(content.get(key), dict):
                patch[key] = content[key]

        health = (content.get("stats") or {}).get("health")
        if isinstance(health, (int, float)) and health != npc.get("health"):
            patch["health"] = min(health, npc.get("max_health") or health)
            patch["max_health"] = health

        return self.world.update_player(npc_id, patch)

    async def generate_dialogue(
        self,
        npc_id: str,
        topic: str,
        context: DialogueContext | None = None,
    ) -> list[str]:
        """Candidate lines for an NPC on a topic.

        Returns a single silent fallback line when the model returns no
        usable responses.

        Raises:
            EntityNotFoundError: If the NPC does not exist
            GenerationError: If no provider could serve the request
        """
        npc = self._require_npc(npc_id)
        context = context or DialogueContext()

        room_id = context.room_id or npc.get("room_id")
        room = self.world.get_room(room_id) if room_id else None
        personality = npc.get("personality") or {}
        variables = {
            "npc_name": npc.get("name", npc_id),
            "npc_role": npc.get("role", "villager"),
            "personality_traits": ", ".join(personality.get("traits", [])) or "friendly",
            "current_mood": npc.get("mood", "neutral"),
            "speech_pattern": ", ".join(personality.get("speech_patterns", [])) or "plain speech",
            "player_relationship": self._relationship_to(npc, context.player_id),
            "dialogue_context": f"{topic} ({context.situation})",
            "player_action": context.player_action,
            "location": room["name"] if room else "unknown location",
            "conversation_history": "\n".join(context.conversation_history) or None,
        }

        params = {"npc_id": npc_id, "topic": topic, **context.model_dump()}
        if self.cache is not None:
            cached = self.cache.get_cached_content("dialogue", params)
            if cached is not None:
                return cached

        try:
            content = await self.request_structured(
                "npc_dialogue", variables, DIALOGUE_SCHEMA, "Dialogue generation", temperature=0.9,
            )
        except Exception as e:
            raise GenerationError(f"Failed to generate dialogue: {e}") from e

        responses = [line for line in content.get("responses") or [] if isinstance(line, str)]
        if not responses:
            return [f"{variables['npc_name']} looks at you thoughtfully but says nothing."]
        if self.cache is not None:
            self.cache.cache_generated_content("dialogue", params, responses)
        return responses

    # ------------------------------------------------------------------

    def _require_npc(self, npc_id: str) -> Entity:
        npc = self.world.get_player(npc_id)
        if npc is None:
            raise EntityNotFoundError("NPC", npc_id)
        return npc

    @staticmethod
    def _relationship_to(npc: Entity, player_id: str | None) -> str:
        if not player_id:
            return "neutral"
        return (npc.get("relationships") or {}).get(player_id, "neutral")

    async def _npc_content(self, request: NPCRequest) -> dict[str, Any]:
        params = request.model_dump()
        if self.cache is not None:
            cached = self.cache.get_cached_content("npc", params)
            if cached is not None:
                logger.debug("Using cached NPC content")
                return cached

        location = "unknown location"
        existing: list[str] = []
        if request.room_id:
            snapshot = self.context_builder.build_room_context(request.room_id)
            location = snapshot.name
            existing = [p.get("name", p["id"]) for p in snapshot.players if p.get("is_npc")]

        related = []
        for other_id, relation in request.relationships.items():
            other = self.world.get_player(other_id)
            if other is not None:
                related.append(f"{other.get('name', other_id)} ({relation})")

        variables = {
            "location": location,
            "game_theme": self.context_builder.game_info.theme,
            "npc_role": request.role,
            "existing_npcs": ", ".join(existing) or None,
            "relationships": ", ".join(related) or None,
            "npc_name": request.name,
            "personality": ", ".join(request.personality) or None,
            "backstory": request.backstory,
            "npc_level": str(request.level),
            "alignment": request.alignment,
            "skills": ", ".join(request.skills) or None,
        }
        content = await self.request_structured(
            "npc_generation", variables, NPC_CONTENT_SCHEMA, "NPC generation",
            temperature=0.8, max_tokens=4000,
        )
        if self.cache is not None:
            self.cache.cache_generated_content("npc", params, content)
        return content

    def _create_npc(self, content: dict[str, Any], request: NPCRequest) -> Entity:
        stats = content.get("stats") or {}
        health = stats.get("health") if isinstance(stats.get("health"), (int, float)) else 100
        return self.world.create_player({
            "name": content.get("name") or request.name or "Unnamed stranger",
            "description": content.get("description", ""),
            "is_npc": True,
            "role": request.role,
            "alignment": request.alignment,
            "health": health,
            "max_health": health,
            "level": request.level,
            "experience": 0,
            "personality": content.get("personality") or {},
            "backstory": content.get("backstory") or {},
            "dialogue": content.get("dialogue") or {},
            "behavior": content.get("behavior") or {},
            "inventory": [item.get("name") for item in content.get("inventory") or [] if isinstance(item, dict)],
            "relationships": dict(request.relationships),
            "room_id": request.room_id,
        })


__all__ = ["NPCGenerator"]
