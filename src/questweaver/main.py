"""
Quest Weaver MCP Server
LLM orchestration for a text-adventure world, exposed as FastMCP tools.
"""

import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import asdict
from typing import Annotated, Any, Literal

from dotenv import load_dotenv
from fastmcp import FastMCP
from pydantic import Field, ValidationError

from .conflicts.models import ConflictDetails, ConflictKind, Severity
from .exceptions import QuestWeaverError
from .generation.models import DialogueContext, NPCRequest, QuestRequest, RoomRequest
from .llm.models import RequestOptions
from .services import Services, build_services

logger = logging.getLogger("questweaver")

logging.basicConfig(
    level=logging.DEBUG,
    )

if not load_dotenv():
    logger.warning("❌ .env file invalid or not found! Provider keys are read from the environment only.")

services = build_services()
logger.debug("✅ Services initialized")


def make_lifespan(svc: Services) -> Callable[[FastMCP], AbstractAsyncContextManager[None]]:
    """Server lifespan that runs the cache sweep and closes provider clients on shutdown."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        await svc.start()
        logger.debug("✅ Cache sweep started")
        try:
            yield
        finally:
            await svc.aclose()
            logger.debug("✅ Services closed")

    return lifespan


mcp = FastMCP(
    name="questweaver",
    lifespan=make_lifespan(services),
)


# ─── Helpers ───────────────────────────────────────────────────────────


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def _parse_json_object(raw: str | None, field_name: str) -> dict[str, Any]:
    """Parse a JSON object argument; empty input is an empty dict."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"{field_name} must be a JSON object: {e}") from e
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a JSON object")
    return value


def _error(e: Exception) -> str:
    return f"Error: {e}"


# ─── Tool logic ────────────────────────────────────────────────────────


async def _llm_status_logic(svc: Services) -> dict[str, Any]:
    return {
        "available": await svc.dispatcher.is_available(),
        "healthy": svc.error_handler.is_system_healthy(),
        "dispatcher": asdict(svc.dispatcher.get_stats()),
        "cache": asdict(svc.cache.get_stats()),
        "errors": {
            key: value
            for key, value in asdict(svc.error_handler.get_error_stats()).items()
            if key != "recent_errors"
        },
        "conflicts": svc.conflicts.get_resolution_stats(),
        "templates": svc.templates.get_stats(),
        "story_sessions": len(svc.stories.list_sessions()),
    }


async def _generate_text_logic(
    svc: Services,
    prompt: str,
    system_prompt: str | None,
    temperature: float | None,
    max_tokens: int | None,
) -> str:
    response = await svc.dispatcher.generate(prompt, RequestOptions(
        system_prompt=system_prompt,
        temperature=temperature,
        max_tokens=max_tokens,
    ))
    return response.content


async def _generate_structured_logic(svc: Services, prompt: str, schema: str) -> dict[str, Any]:
    response = await svc.dispatcher.generate_structured(prompt, _parse_json_object(schema, "schema"))
    return {
        "parsed_content": response.parsed_content,
        "validation_errors": response.validation_errors,
        "provider": response.metadata.get("provider"),
    }


async def _resolve_conflict_logic(
    svc: Services,
    kind: str,
    description: str,
    affected_entities: list[str],
    location: str | None,
    original_action: str,
    severity: str | None,
) -> dict[str, Any]:
    resolution = await svc.conflicts.resolve_conflict(ConflictKind(kind), ConflictDetails(
        affected_entities=affected_entities,
        location=location,
        description=description,
        original_action=original_action,
        severity=Severity(severity) if severity else None,
    ))
    return resolution.model_dump(mode="json")


async def _create_story_logic(
    svc: Services,
    theme: str,
    genre: str,
    player_level: int,
    preferences: str | None,
) -> dict[str, Any]:
    session_id, decision = await svc.stories.start_story_creation(
        theme, genre, player_level, _parse_json_object(preferences, "preferences") or None,
    )
    return {"session_id": session_id, "decision": decision.model_dump()}


async def _story_decision_logic(
    svc: Services,
    session_id: str,
    decision_id: str,
    choice: str,
    feedback: str | None,
) -> dict[str, Any]:
    result = await svc.stories.process_decision(session_id, decision_id, choice, feedback)
    next_decision = result["next_decision"]
    return {**result, "next_decision": next_decision.model_dump() if next_decision else None}


# ─── LLM tools ─────────────────────────────────────────────────────────


@mcp.tool
async def llm_status() -> str:
    """Provider availability, circuit states, cache and error statistics."""
    return _to_json(await _llm_status_logic(services))


@mcp.tool
async def test_providers() -> str:
    """Probe every registered LLM provider."""
    results = await services.dispatcher.test_providers()
    if not results:
        return "❌ No LLM providers registered."
    return "\n".join(f"{'✅' if ok else '❌'} {name}" for name, ok in results.items())


@mcp.tool
async def generate_text(
    prompt: Annotated[str, Field(description="Prompt text")],
    system_prompt: Annotated[str | None, Field(description="Optional system prompt")] = None,
    temperature: Annotated[float | None, Field(description="Sampling temperature", ge=0.0, le=2.0)] = None,
    max_tokens: Annotated[int | None, Field(description="Maximum tokens to generate", ge=1)] = None,
) -> str:
    """Generate free text through the provider chain."""
    try:
        return await _generate_text_logic(services, prompt, system_prompt, temperature, max_tokens)
    except QuestWeaverError as e:
        return _error(e)


@mcp.tool
async def generate_structured(
    prompt: Annotated[str, Field(description="Prompt text; should ask for a JSON object")],
    schema: Annotated[str, Field(description="JSON schema (object with type/required/properties) as JSON text")],
) -> str:
    """Generate a JSON object and check it against a minimal schema."""
    try:
        return _to_json(await _generate_structured_logic(services, prompt, schema))
    except (QuestWeaverError, ValueError) as e:
        return _error(e)


# ─── Content tools ─────────────────────────────────────────────────────


@mcp.tool
async def generate_room(
    theme: Annotated[str | None, Field(description="Room theme, e.g. 'abandoned chapel'")] = None,
    style: Annotated[
        Literal["medieval", "modern", "fantasy", "sci-fi", "horror", "mystery"],
        Field(description="Visual and narrative style"),
    ] = "fantasy",
    size: Annotated[Literal["small", "medium", "large"], Field(description="Room size")] = "medium",
    purpose: Annotated[str | None, Field(description="What the room is for")] = None,
    connect_to: Annotated[str | None, Field(description="Existing room ID to connect the new room to")] = None,
    direction: Annotated[str, Field(description="Direction from the existing room to the new one")] = "north",
) -> str:
    """Generate a room with objects and add it to the world."""
    try:
        room = await services.rooms.generate_room(RoomRequest(
            theme=theme,
            style=style,
            size=size,
            purpose=purpose,
            connected_rooms=[connect_to] if connect_to else [],
        ))
        if connect_to:
            services.rooms.connect_rooms(connect_to, room["id"], direction)
            room = services.world.get_room(room["id"]) or room
        return _to_json(room)
    except (QuestWeaverError, ValidationError) as e:
        return _error(e)


@mcp.tool
async def generate_npc(
    name: Annotated[str | None, Field(description="NPC name; generated if omitted")] = None,
    role: Annotated[
        Literal["merchant", "guard", "wizard", "villager", "enemy", "ally", "quest_giver"],
        Field(description="NPC role"),
    ] = "villager",
    room_id: Annotated[str | None, Field(description="Room to place the NPC in")] = None,
    personality: Annotated[list[str] | None, Field(description="Personality traits")] = None,
    backstory: Annotated[str | None, Field(description="Backstory hints")] = None,
    level: Annotated[int, Field(description="NPC level", ge=1)] = 1,
) -> str:
    """Generate an NPC with personality, dialogue and behaviour."""
    try:
        npc = await services.npcs.generate_npc(NPCRequest(
            name=name,
            role=role,
            room_id=room_id,
            personality=personality or [],
            backstory=backstory,
            level=level,
        ))
        return _to_json(npc)
    except (QuestWeaverError, ValidationError) as e:
        return _error(e)


@mcp.tool
async def generate_dialogue(
    npc_id: Annotated[str, Field(description="NPC ID")],
    topic: Annotated[str, Field(description="What the player is talking about")],
    player_id: Annotated[str | None, Field(description="Player ID, for relationship context")] = None,
    situation: Annotated[str, Field(description="Conversation situation")] = "casual conversation",
) -> str:
    """Candidate dialogue lines for an NPC."""
    try:
        lines = await services.npcs.generate_dialogue(
            npc_id, topic, DialogueContext(player_id=player_id, situation=situation),
        )
        return "\n".join(f"- {line}" for line in lines)
    except QuestWeaverError as e:
        return _error(e)


@mcp.tool
async def generate_quest(
    type: Annotated[Literal["main", "side", "hidden"], Field(description="Quest type")] = "side",
    difficulty: Annotated[int, Field(description="Difficulty from 1 to 10", ge=1, le=10)] = 5,
    objectives: Annotated[list[str] | None, Field(description="Objective hints")] = None,
    npcs_involved: Annotated[list[str] | None, Field(description="IDs of NPCs involved")] = None,
    locations_involved: Annotated[list[str] | None, Field(description="IDs of rooms involved")] = None,
) -> str:
    """Generate a quest."""
    try:
        quest = await services.narrative.generate_quest(QuestRequest(
            type=type,
            difficulty=difficulty,
            objectives=objectives or [],
            npcs_involved=npcs_involved or [],
            locations_involved=locations_involved or [],
        ))
        return _to_json(quest)
    except (QuestWeaverError, ValidationError) as e:
        return _error(e)


# ─── Conflict tools ────────────────────────────────────────────────────


@mcp.tool
async def resolve_conflict(
    kind: Annotated[
        Literal["physics", "npc_behavior", "object_state", "player_action", "world_consistency"],
        Field(description="Conflict kind"),
    ],
    description: Annotated[str, Field(description="What went wrong")],
    affected_entities: Annotated[list[str] | None, Field(description="IDs of affected entities")] = None,
    location: Annotated[str | None, Field(description="Room ID where the conflict happened")] = None,
    original_action: Annotated[str, Field(description="Action that caused the conflict")] = "unknown",
    severity: Annotated[
        Literal["low", "medium", "high", "critical"] | None,
        Field(description="Severity override"),
    ] = None,
) -> str:
    """Resolve a game-state conflict. Always returns a resolution."""
    return _to_json(await _resolve_conflict_logic(
        services, kind, description, affected_entities or [], location, original_action, severity,
    ))


@mcp.tool
async def resolve_physics_conflict(
    objects: Annotated[list[str], Field(description="IDs of the objects involved")],
    physics_error: Annotated[str, Field(description="Error, e.g. 'object_overlap'")],
    location: Annotated[str | None, Field(description="Room ID")] = None,
    severity: Annotated[
        Literal["low", "medium", "high", "critical"] | None,
        Field(description="Severity of the glitch"),
    ] = None,
) -> str:
    """Resolve objects in an impossible physical state."""
    resolution = await services.conflicts.handle_physics_conflict(objects, physics_error, location, severity)
    return _to_json(resolution.model_dump(mode="json"))


@mcp.tool
async def resolve_npc_conflict(
    npc_id: Annotated[str, Field(description="NPC ID")],
    conflict_description: Annotated[str, Field(description="What the NPC did wrong")],
    attempted_action: Annotated[str, Field(description="Action the NPC attempted")],
    location: Annotated[str | None, Field(description="Room ID")] = None,
) -> str:
    """Resolve an NPC attempting something impossible."""
    resolution = await services.conflicts.handle_npc_conflict(npc_id, conflict_description, attempted_action, location)
    return _to_json(resolution.model_dump(mode="json"))


# ─── Template tools ────────────────────────────────────────────────────


@mcp.tool
def list_templates(
    category: Annotated[
        Literal["generation", "conflict_resolution", "enhancement", "validation"] | None,
        Field(description="Only list templates in this category"),
    ] = None,
) -> str:
    """List registered prompt templates."""
    templates = (
        services.templates.get_templates_by_category(category) if category
        else services.templates.list_templates()
    )
    if not templates:
        return "No templates found."
    return "\n".join(f"• {t.id} ({t.category.value}): {t.description}" for t in templates)


@mcp.tool
def get_template(
    template_id: Annotated[str, Field(description="Template ID")],
) -> str:
    """Show a prompt template and its variables."""
    template = services.templates.get_template(template_id)
    if template is None:
        return f"❌ Template '{template_id}' not found."
    return _to_json(template.model_dump(mode="json"))


@mcp.tool
def compile_template(
    template_id: Annotated[str, Field(description="Template ID")],
    variables: Annotated[str | None, Field(description="Template variables as a JSON object")] = None,
) -> str:
    """Compile a template with variables and show the resulting prompt."""
    try:
        compiled = services.templates.compile_template(template_id, _parse_json_object(variables, "variables"))
        return _to_json(compiled.model_dump(mode="json"))
    except (QuestWeaverError, ValueError) as e:
        return _error(e)


# ─── Story tools ───────────────────────────────────────────────────────


@mcp.tool
async def create_story(
    theme: Annotated[str, Field(description="Story theme")],
    genre: Annotated[str, Field(description="Genre, e.g. fantasy, horror, mystery")] = "fantasy",
    player_level: Annotated[int, Field(description="Target player level", ge=1)] = 1,
    preferences: Annotated[str | None, Field(description="""
        Preferences as a JSON object: complexity (simple/moderate/complex), length (short/medium/long),
        style, focus_areas.
        """)] = None,
) -> str:
    """Start an interactive story creation session."""
    try:
        return _to_json(await _create_story_logic(services, theme, genre, player_level, preferences))
    except (QuestWeaverError, ValidationError, ValueError) as e:
        return _error(e)


@mcp.tool
async def story_decision(
    session_id: Annotated[str, Field(description="Story session ID")],
    decision_id: Annotated[str, Field(description="ID of the pending decision")],
    choice: Annotated[str, Field(description="Chosen option ID")],
    feedback: Annotated[str | None, Field(description="Optional feedback for this phase")] = None,
) -> str:
    """Answer the pending decision of a story session."""
    try:
        return _to_json(await _story_decision_logic(services, session_id, decision_id, choice, feedback))
    except QuestWeaverError as e:
        return _error(e)


@mcp.tool
def story_status(
    session_id: Annotated[str, Field(description="Story session ID")],
) -> str:
    """Phase, progress and generated content of a story session."""
    try:
        return _to_json(services.stories.get_session_status(session_id))
    except QuestWeaverError as e:
        return _error(e)


@mcp.tool
async def finalize_story(
    session_id: Annotated[str, Field(description="Story session ID")],
) -> str:
    """Deploy a completed story to the world and summarise it."""
    try:
        return _to_json(await services.stories.finalize_story(session_id))
    except QuestWeaverError as e:
        return _error(e)


logger.debug("✅ All tools successfully registered. Quest Weaver server running!")

def main() -> None:
    """Main entry point for the Quest Weaver MCP Server."""
    mcp.run()

if __name__ == "__main__":
    main()
