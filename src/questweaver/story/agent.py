"""
Interactive story creation agent.

Walks an author through a phased session (planning, world building,
character creation, content generation, refinement) by putting one
decision at a time to them and acting on the answer. Content is produced
through the narrative generator; the finished story is deployed to the
world through the world gateway.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from pydantic import ValidationError

from ..exceptions import GenerationError, StorySessionError
from ..generation.models import StoryRequest
from ..generation.narrative import NarrativeGenerator
from ..llm.dispatcher import ProviderDispatcher
from ..llm.models import RequestOptions
from ..llm.templates import TemplateRegistry
from ..world import WorldGateway
from .models import (
    AgenticDecision,
    DecisionOption,
    DecisionRecord,
    FeedbackEntry,
    StoryPhase,
    StoryPreferences,
    StorySession,
    StoryValidationResult,
)

logger = logging.getLogger("questweaver")

DECISION_TIMEOUT = 30.0
QUALITY_THRESHOLD = 80

TOTAL_STEPS = {"short": 8, "medium": 12, "long": 18}
ROOM_COUNTS = {"short": 5, "medium": 10, "long": 20}
NPC_COUNTS = {"short": 3, "medium": 6, "long": 12}

CAST_STYLES = {
    "diverse_cast": "a diverse cast of allies, enemies and neutrals",
    "focused_relationships": "few characters with deep, interconnected relationships",
    "antagonist_driven": "strong villains and their network of minions",
}

VALIDATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["is_valid", "issues", "quality_score", "recommendations"],
    "properties": {
        "is_valid": {"type": "boolean"},
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["type", "category", "description"],
                "properties": {
                    "type": {"type": "string", "enum": ["error", "warning", "suggestion"]},
                    "category": {
                        "type": "string",
                        "enum": ["consistency", "balance", "engagement", "technical"],
                    },
                    "description": {"type": "string"},
                    "suggestion": {"type": "string"},
                    "auto_fix": {"type": "boolean"},
                },
            },
        },
        "quality_score": {"type": "number", "minimum": 0, "maximum": 100},
        "recommendations": {"type": "array", "items": {"type": "string"}},
    },
}


def calculate_total_steps(length: str) -> int:
    return TOTAL_STEPS.get(length, 10)


def calculate_room_count(length: str) -> int:
    return ROOM_COUNTS.get(length, 8)


def calculate_npc_count(length: str) -> int:
    return NPC_COUNTS.get(length, 5)


def parse_room_choice(choice: str, length: str) -> int:
    """Room count for a world-building choice (minimal, recommended, expanded)."""
    base = calculate_room_count(length)
    if choice == "minimal":
        return math.floor(base * 0.7)
    if choice == "expanded":
        return math.floor(base * 1.3)
    return base


class StoryAgent:
    """Phase-driven story authoring sessions.

    Sessions live in memory until ended explicitly; there is no expiry.

    Args:
        dispatcher: Provider dispatcher for validation and summaries
        templates: Registry holding ``story_validation`` and ``story_summary``
        narrative: Generator used for the outline and its implementation
        world: World gateway the finished story is deployed to
        decision_timeout: Auto-execute timeout attached to question decisions

    Example:
        >>> agent = StoryAgent(dispatcher, templates, narrative, world)
        >>> session_id, decision = await agent.start_story_creation("a haunted lighthouse", "horror", 3)
        >>> [option.id for option in decision.options]
        ['world_first', 'characters_first', 'story_driven']
    """

    def __init__(
        self,
        dispatcher: ProviderDispatcher,
        templates: TemplateRegistry,
        narrative: NarrativeGenerator,
        world: WorldGateway,
        decision_timeout: float = DECISION_TIMEOUT,
    ) -> None:
        self.dispatcher = dispatcher
        self.templates = templates
        self.narrative = narrative
        self.world = world
        self.decision_timeout = decision_timeout

        self._sessions: dict[str, StorySession] = {}
        self._session_locks: dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_story_creation(
        self,
        theme: str,
        genre: str,
        player_level: int = 1,
        preferences: StoryPreferences | dict[str, Any] | None = None,
    ) -> tuple[str, AgenticDecision]:
        """Open a session in the planning phase.

        Returns:
            (session_id, first decision)
        """
        if isinstance(preferences, dict):
            preferences = StoryPreferences(**preferences)
        preferences = preferences or StoryPreferences()

        session = StorySession(
            theme=theme,
            genre=genre,
            player_level=player_level,
            preferences=preferences,
        )
        session.state.total_steps = calculate_total_steps(preferences.length)

        async with self._lock:
            self._sessions[session.session_id] = session
            self._session_locks[session.session_id] = asyncio.Lock()
        logger.info(f"Started story creation session: {session.session_id} for theme: {theme}")

        decision = await self.generate_next_decision(session.session_id)
        if decision is None:
            raise StorySessionError("Failed to generate initial decision for story creation")
        return session.session_id, decision

    async def end_session(self, session_id: str) -> bool:
        """Drop a session. Returns False if it did not exist."""
        async with self._lock:
            self._session_locks.pop(session_id, None)
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info(f"Ended story creation session: {session_id}")
        return removed

    def list_sessions(self) -> list[dict[str, Any]]:
        return [
            {
                "session_id": session.session_id,
                "theme": session.theme,
                "genre": session.genre,
                "phase": session.current_phase.value,
                "progress": session.progress,
                "started_at": session.started_at.isoformat(),
            }
            for session in self._sessions.values()
        ]

    def get_session(self, session_id: str) -> StorySession:
        session = self._sessions.get(session_id)
        if session is None:
            raise StorySessionError(f"Story creation session not found: {session_id}")
        return session

    @asynccontextmanager
    async def _locked_session(self, session_id: str) -> AsyncIterator[StorySession]:
        """Hold the session's lock; fails if the session is ended before or while waiting."""
        lock = self._session_locks.get(session_id)
        if lock is None:
            raise StorySessionError(f"Story creation session not found: {session_id}")
        async with lock:
            yield self.get_session(session_id)

    def get_session_status(self, session_id: str) -> dict[str, Any]:
        session = self.get_session(session_id)
        return {
            "phase": session.current_phase.value,
            "progress": session.progress,
            "generated": session.generated_content.model_dump(),
            "can_continue": session.current_phase != StoryPhase.COMPLETED,
            "pending_decision": session.pending_decision.model_dump() if session.pending_decision else None,
        }

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def process_decision(
        self,
        session_id: str,
        decision_id: str,
        choice: str,
        feedback: str | None = None,
    ) -> dict[str, Any]:
        """Apply the author's choice and move the session forward.

        Args:
            session_id: Session identifier
            decision_id: Id of the pending decision being answered
            choice: One of the pending decision's option ids
            feedback: Optional free-text feedback for the current phase

        Returns:
            {"next_decision": AgenticDecision | None, "progress": {...}, "generated": [...]}

        Raises:
            StorySessionError: Unknown session, no pending decision, or invalid choice
            GenerationError: If content generation for the phase failed
        """
        async with self._locked_session(session_id) as session:
            pending = session.pending_decision
            if pending is None:
                raise StorySessionError(f"No decision is pending for session: {session_id}")
            if decision_id != pending.id:
                raise StorySessionError(f"Decision {decision_id} is not pending (expected {pending.id})")
            if choice not in pending.option_ids:
                raise StorySessionError(
                    f"Invalid choice '{choice}' for decision {pending.id}; "
                    f"expected one of: {', '.join(pending.option_ids)}"
                )

            session.decisions.append(DecisionRecord(
                decision_id=decision_id,
                options=pending.option_ids,
                chosen=choice,
                reasoning=feedback,
            ))
            if feedback:
                session.user_feedback.append(FeedbackEntry(phase=session.current_phase, feedback=feedback))

            await self._advance_session(session, choice)
            next_decision = await self._next_decision(session)

        return {
            "next_decision": next_decision,
            "progress": {
                "phase": session.current_phase.value,
                "step": session.state.current_step,
                "total": session.state.total_steps,
            },
            "generated": session.summary_items(),
        }

    async def generate_next_decision(self, session_id: str) -> AgenticDecision | None:
        """Build (and make pending) the decision for the session's current phase.

        Returns:
            The decision, or None once the session is completed
        """
        async with self._locked_session(session_id) as session:
            return await self._next_decision(session)

    async def _next_decision(self, session: StorySession) -> AgenticDecision | None:
        builders = {
            StoryPhase.PLANNING: self._planning_decision,
            StoryPhase.WORLD_BUILDING: self._world_building_decision,
            StoryPhase.CHARACTER_CREATION: self._character_creation_decision,
            StoryPhase.CONTENT_GENERATION: self._content_decision,
            StoryPhase.REFINEMENT: self._refinement_decision,
        }
        if session.current_phase == StoryPhase.COMPLETED:
            session.pending_decision = None
            return None

        decision = await builders[session.current_phase](session)
        session.pending_decision = decision
        return decision

    def _decision_id(self, session: StorySession) -> str:
        return f"{session.current_phase.value}_{session.state.current_step}"

    async def _planning_decision(self, session: StorySession) -> AgenticDecision:
        return AgenticDecision(
            id=self._decision_id(session),
            type="question",
            priority="high",
            description=(
                f'Based on the theme "{session.theme}" and genre "{session.genre}", what aspect should '
                f"we focus on first for this {session.preferences.complexity} complexity story?"
            ),
            options=[
                DecisionOption(
                    id="world_first",
                    label="Build the World First",
                    description="Create locations and environments before characters",
                    consequences=["Rich environmental storytelling", "Characters fit naturally into world"],
                ),
                DecisionOption(
                    id="characters_first",
                    label="Create Characters First",
                    description="Develop NPCs and their relationships before locations",
                    consequences=["Character-driven narrative", "Locations serve character needs"],
                ),
                DecisionOption(
                    id="story_driven",
                    label="Plot-Driven Approach",
                    description="Start with core story structure and build around it",
                    consequences=["Tight narrative focus", "All elements serve the plot"],
                ),
            ],
            auto_execute_after=self.decision_timeout,
            default_choice="world_first",
        )

    async def _world_building_decision(self, session: StorySession) -> AgenticDecision:
        length = session.preferences.length
        room_count = calculate_room_count(length)
        return AgenticDecision(
            id=self._decision_id(session),
            type="question",
            priority="medium",
            description=f"How many locations should we create? (Recommended: {room_count} for {length} length)",
            options=[
                DecisionOption(
                    id="minimal",
                    label=f"Minimal ({parse_room_choice('minimal', length)})",
                    description="Focused, tightly connected locations",
                ),
                DecisionOption(
                    id="recommended",
                    label=f"Recommended ({room_count})",
                    description="Balanced variety and depth",
                ),
                DecisionOption(
                    id="expanded",
                    label=f"Expanded ({parse_room_choice('expanded', length)})",
                    description="Rich world with optional exploration",
                ),
            ],
            auto_execute_after=self.decision_timeout,
            default_choice="recommended",
        )

    async def _character_creation_decision(self, session: StorySession) -> AgenticDecision:
        return AgenticDecision(
            id=self._decision_id(session),
            type="question",
            priority="medium",
            description=(
                "What type of characters should populate this world? "
                f"(About {calculate_npc_count(session.preferences.length)} characters)"
            ),
            options=[
                DecisionOption(
                    id="diverse_cast",
                    label="Diverse Cast",
                    description="Mix of allies, enemies, and neutrals with varied backgrounds",
                ),
                DecisionOption(
                    id="focused_relationships",
                    label="Focused Relationships",
                    description="Fewer characters with deeper, interconnected relationships",
                ),
                DecisionOption(
                    id="antagonist_driven",
                    label="Antagonist-Driven",
                    description="Strong villains and their network of minions/allies",
                ),
            ],
            auto_execute_after=self.decision_timeout,
            default_choice="diverse_cast",
        )

    async def _content_decision(self, session: StorySession) -> AgenticDecision:
        return AgenticDecision(
            id=self._decision_id(session),
            type="action",
            priority="high",
            description="Ready to generate story content. This will create all locations, characters, and quests.",
            options=[
                DecisionOption(
                    id="generate_all",
                    label="Generate Everything",
                    description="Create all story elements based on previous decisions",
                ),
                DecisionOption(
                    id="preview_first",
                    label="Preview First",
                    description="Show a preview of what will be generated before creating",
                ),
            ],
            default_choice="generate_all",
        )

    async def _refinement_decision(self, session: StorySession) -> AgenticDecision:
        finalize = DecisionOption(
            id="finalize",
            label="Finalize Story",
            description="Deploy the story to the game world",
        )
        try:
            validation = await self._validate(session)
        except Exception as e:
            logger.warning(f"Story validation failed for {session.session_id}: {e}")
            session.state.warnings.append(f"Validation unavailable: {e}")
            return AgenticDecision(
                id=self._decision_id(session),
                type="question",
                priority="medium",
                description="The story could not be reviewed automatically. Finalize anyway or keep refining?",
                options=[
                    finalize,
                    DecisionOption(id="more_polish", label="More Polish", description="Try the review again"),
                ],
                default_choice="more_polish",
            )

        score = f"{validation.quality_score:g}"
        if validation.is_valid and validation.quality_score >= QUALITY_THRESHOLD:
            return AgenticDecision(
                id=self._decision_id(session),
                type="suggestion",
                priority="low",
                description=f"Story looks great! Quality score: {score}/100. Ready to finalize?",
                options=[
                    finalize,
                    DecisionOption(id="more_polish", label="More Polish", description="Continue refining the story"),
                ],
                default_choice="finalize",
            )

        improvements = [
            DecisionOption(id=f"improve_{index}", label=recommendation, description="Focus on this improvement area")
            for index, recommendation in enumerate(validation.recommendations[:3])
        ]
        return AgenticDecision(
            id=self._decision_id(session),
            type="question",
            priority="medium",
            description=f"Story quality score: {score}/100. What would you like to improve?",
            options=[*improvements, finalize],
        )

    # ------------------------------------------------------------------
    # Phase transitions
    # ------------------------------------------------------------------

    async def _advance_session(self, session: StorySession, choice: str) -> None:
        advancers = {
            StoryPhase.PLANNING: self._advance_planning,
            StoryPhase.WORLD_BUILDING: self._advance_world_building,
            StoryPhase.CHARACTER_CREATION: self._advance_character_creation,
            StoryPhase.CONTENT_GENERATION: self._advance_content_generation,
            StoryPhase.REFINEMENT: self._advance_refinement,
        }
        phase = session.current_phase
        try:
            await advancers[phase](session, choice)
        except Exception as e:
            session.state.errors.append(f"{phase.value}: {e}")
            raise

        session.state.current_step += 1
        logger.debug(f"Session {session.session_id} advanced from {phase.value} to {session.current_phase.value}")

    async def _advance_planning(self, session: StorySession, choice: str) -> None:
        session.settings["approach"] = choice
        if choice == "characters_first":
            session.current_phase = StoryPhase.CHARACTER_CREATION
        else:
            session.current_phase = StoryPhase.WORLD_BUILDING

    async def _advance_world_building(self, session: StorySession, choice: str) -> None:
        session.settings["room_count"] = parse_room_choice(choice, session.preferences.length)
        session.generated_content.story = await self._generate_outline(session)
        session.current_phase = StoryPhase.CHARACTER_CREATION

    async def _advance_character_creation(self, session: StorySession, choice: str) -> None:
        session.settings["cast_style"] = choice
        session.current_phase = StoryPhase.CONTENT_GENERATION

    async def _advance_content_generation(self, session: StorySession, choice: str) -> None:
        content = session.generated_content
        if content.story is None:
            content.story = await self._generate_outline(session)

        story = dict(content.story)
        room_count = session.settings.get("room_count")
        if room_count is not None:
            story["locations"] = (story.get("locations") or [])[:room_count]
        story["characters"] = (story.get("characters") or [])[:calculate_npc_count(session.preferences.length)]

        implemented = await self.narrative.implement_story(story)
        content.rooms = implemented["rooms"]
        content.npcs = implemented["npcs"]
        content.quests = implemented["quests"]
        session.current_phase = StoryPhase.REFINEMENT

    async def _advance_refinement(self, session: StorySession, choice: str) -> None:
        if choice == "finalize":
            session.current_phase = StoryPhase.COMPLETED
            return
        # Stay in refinement; remember what the author wants improved
        pending = session.pending_decision
        if pending is not None and choice.startswith("improve_"):
            label = next(option.label for option in pending.options if option.id == choice)
            session.settings.setdefault("refinement_focus", []).append(label)

    async def _generate_outline(self, session: StorySession) -> dict[str, Any]:
        key_elements = list(session.preferences.focus_areas)
        cast_style = session.settings.get("cast_style")
        if cast_style in CAST_STYLES:
            key_elements.append(CAST_STYLES[cast_style])
        return await self.narrative.generate_story(StoryRequest(
            genre=session.genre,
            theme=session.theme,
            target_length=session.preferences.length,
            player_level=session.player_level,
            key_elements=key_elements,
        ))

    # ------------------------------------------------------------------
    # Validation and deployment
    # ------------------------------------------------------------------

    async def validate_story(self, session_id: str) -> StoryValidationResult:
        """Ask the LLM for a quality report on the session's story.

        Raises:
            StorySessionError: Unknown session
            GenerationError: If no usable report came back
        """
        return await self._validate(self.get_session(session_id))

    async def _validate(self, session: StorySession) -> StoryValidationResult:
        content = session.generated_content
        compiled = self.templates.compile_template("story_validation", {
            "story": json.dumps(content.story, indent=2, default=str),
            "rooms": str(len(content.rooms)),
            "npcs": str(len(content.npcs)),
            "quests": str(len(content.quests)),
            "theme": session.theme,
            "genre": session.genre,
            "player_level": str(session.player_level),
        })
        response = await self.dispatcher.generate_structured(
            compiled.prompt,
            VALIDATION_SCHEMA,
            RequestOptions(temperature=0.3, system_prompt=compiled.system_prompt),
        )
        if response.validation_errors:
            logger.warning(f"Story validation errors: {', '.join(response.validation_errors)}")
        if response.parsed_content is None:
            raise GenerationError("No story validation content returned")
        try:
            return StoryValidationResult.model_validate(response.parsed_content)
        except ValidationError as e:
            raise GenerationError(f"Malformed story validation report: {e}") from e

    async def auto_fix_story_issues(self, session_id: str) -> dict[str, list[str]]:
        """Apply every auto-fixable issue; report the rest as remaining."""
        session = self.get_session(session_id)
        validation = await self._validate(session)

        fixed: list[str] = []
        remaining: list[str] = []
        for issue in validation.issues:
            if not issue.auto_fix:
                remaining.append(issue.description)
                continue
            logger.info(f"Auto-fixing issue: {issue.description}")
            session.applied_fixes.append(issue.suggestion or issue.description)
            fixed.append(issue.description)

        return {"fixed_issues": fixed, "remaining_issues": remaining}

    async def finalize_story(self, session_id: str) -> dict[str, Any]:
        """Deploy a completed story and summarise it.

        Returns:
            {"deployed_elements": {"rooms": [...], "npcs": [...], "quests": [...]}, "summary": str}

        Raises:
            StorySessionError: Session not completed, or the story has error-level issues
        """
        session = self.get_session(session_id)
        if session.current_phase != StoryPhase.COMPLETED:
            raise StorySessionError("Story creation not completed yet")

        validation = await self._validate(session)
        if not validation.is_valid and validation.has_errors:
            raise StorySessionError("Story has critical errors that prevent deployment")

        deployed = self._deploy(session)
        compiled = self.templates.compile_template("story_summary", {
            "theme": session.theme,
            "genre": session.genre,
            "room_count": str(len(deployed["rooms"])),
            "npc_count": str(len(deployed["npcs"])),
            "quest_count": str(len(deployed["quests"])),
        })
        response = await self.dispatcher.generate(
            compiled.prompt,
            RequestOptions(temperature=0.7, system_prompt=compiled.system_prompt),
        )

        logger.info(f"Finalized story creation session: {session_id}")
        return {"deployed_elements": deployed, "summary": response.content}

    def _deploy(self, session: StorySession) -> dict[str, list[str]]:
        deployed: dict[str, list[str]] = {"rooms": [], "npcs": [], "quests": []}
        content = session.generated_content

        for room in content.rooms:
            if room.get("id") and self.world.get_room(room["id"]) is not None:
                deployed["rooms"].append(room["id"])
            else:
                deployed["rooms"].append(self.world.create_room(room)["id"])

        for npc in content.npcs:
            if npc.get("id") and self.world.get_player(npc["id"]) is not None:
                deployed["npcs"].append(npc["id"])
            else:
                deployed["npcs"].append(self.world.create_player({**npc, "is_npc": True})["id"])

        for quest in content.quests:
            deployed["quests"].append(quest.get("name") or quest.get("id") or "Unnamed quest")

        return deployed


__all__ = [
    "StoryAgent",
    "VALIDATION_SCHEMA",
    "calculate_total_steps",
    "calculate_room_count",
    "calculate_npc_count",
    "parse_room_choice",
]
