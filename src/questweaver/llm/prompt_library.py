"""
Built-in prompt templates.

Each generator and the conflict engine renders one of these. Optional
variables carry defaults so a caller only has to supply the essentials.
"""

from __future__ import annotations

from typing import Any

from .templates import PromptTemplate, PromptVariable, TemplateCategory


def _required(name: str, description: str, type: str = "string") -> PromptVariable:
    return PromptVariable(name=name, type=type, required=True, description=description)


def _optional(name: str, description: str, default: Any) -> PromptVariable:
    return PromptVariable(name=name, type="string", required=False, description=description, default=default)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

ROOM_DESCRIPTION = PromptTemplate(
    id="room_description",
    name="Room Description Generator",
    description="Rich description of a room from its context",
    category=TemplateCategory.GENERATION,
    template="""Write a vivid description of {{room_name}} for a {{game_theme}} game.

Room:
- Name: {{room_name}}
- Type: {{room_type}}
- Size: {{room_size}}
- Theme: {{room_theme}}
- Objects present: {{objects_list}}
- Exits lead to: {{connected_rooms}}
- Time of day: {{time_of_day}}
- Lighting: {{lighting}}

The description should:
1. Engage several senses (sight, sound, smell, touch)
2. Work the notable objects into the prose naturally
3. Make the purpose and mood of the room clear
4. Follow a {{narrative_style}} style
5. Be {{description_length}}

Describe the room so the player feels they are standing in it:""",
    variables=[
        _required("room_name", "Name of the room"),
        _required("room_type", "Purpose of the room"),
        _optional("room_size", "Size of the room", "medium"),
        _required("room_theme", "Style or theme of the room"),
        _required("game_theme", "Overall game theme"),
        _optional("objects_list", "Objects in the room", "various items"),
        _optional("connected_rooms", "Neighbouring rooms", "other areas"),
        _optional("time_of_day", "Current time of day", "day"),
        _optional("lighting", "Lighting conditions", "well-lit"),
        _optional("narrative_style", "Writing style", "descriptive"),
        _optional("description_length", "Length preference", "detailed"),
    ],
    system_prompt=(
        "You are a storyteller building immersive game locations. "
        "Favour atmosphere and concrete detail the player can interact with."
    ),
    output_format="text",
)

NPC_GENERATION = PromptTemplate(
    id="npc_generation",
    name="NPC Generator",
    description="Non-player character with personality, background and speech",
    category=TemplateCategory.GENERATION,
    template="""Create a non-player character found in {{location}} in a {{game_theme}} world.

Context:
- Location: {{location}}
- Role: {{npc_role}}
- Importance: {{importance_level}}
- Culture: {{cultural_setting}}
- Other characters nearby: {{existing_npcs}}
- Relationships: {{relationships}}

Requested details:
- Name: {{npc_name}}
- Personality: {{personality}}
- Backstory: {{backstory}}
- Level: {{npc_level}}
- Alignment: {{alignment}}
- Skills: {{skills}}

Give the character a description, personality (traits, mannerisms, speech
patterns), a backstory (origin, motivation, secrets, fears), stats (health,
level, skills), an inventory, dialogue (greetings, farewells, topics) and a
default behaviour.""",
    variables=[
        _required("location", "Where the NPC lives or works"),
        _required("game_theme", "Game setting"),
        _required("npc_role", "Job or function of the NPC"),
        _optional("importance_level", "Importance to the story", "minor"),
        _optional("cultural_setting", "Cultural context", "standard fantasy"),
        _optional("existing_npcs", "Characters the NPC may know", "none specified"),
        _optional("relationships", "Known relationships to other NPCs", "none"),
        _optional("npc_name", "Fixed name, if any", "choose a fitting name"),
        _optional("personality", "Personality hints", "choose a fitting personality"),
        _optional("backstory", "Backstory hints", "invent an interesting backstory"),
        _optional("npc_level", "Character level", "1"),
        _optional("alignment", "Moral alignment", "neutral"),
        _optional("skills", "Skills to include", "choose fitting skills"),
    ],
    system_prompt=(
        "You design believable characters with consistent personalities "
        "and clear motivations."
    ),
    output_format="json",
)

NPC_DIALOGUE = PromptTemplate(
    id="npc_dialogue",
    name="NPC Dialogue Generator",
    description="In-character dialogue for an NPC in the current situation",
    category=TemplateCategory.GENERATION,
    template="""Write what {{npc_name}} says next.

Character:
- Name: {{npc_name}}
- Role: {{npc_role}}
- Personality: {{personality_traits}}
- Mood: {{current_mood}}
- Speech: {{speech_pattern}}
- Attitude to the player: {{player_relationship}}

Situation:
- Context: {{dialogue_context}}
- Player just: {{player_action}}
- Location: {{location}}
- Recent events: {{recent_events}}
- Current goals: {{npc_goals}}

Conversation so far:
{{conversation_history}}

Keep the voice consistent with the personality and speech pattern, move the
conversation forward and keep a {{dialogue_tone}} tone. Offer a few
alternative lines the NPC might say.""",
    variables=[
        _required("npc_name", "NPC name"),
        _required("npc_role", "NPC role"),
        _required("personality_traits", "Key personality traits"),
        _required("current_mood", "Current emotional state"),
        _required("speech_pattern", "How the NPC speaks"),
        _required("player_relationship", "Relationship to the player"),
        _required("dialogue_context", "What the conversation is about"),
        _optional("player_action", "What the player just did", "approached"),
        _required("location", "Current location"),
        _optional("recent_events", "Recent notable events", "nothing notable"),
        _optional("npc_goals", "What the NPC wants right now", "daily routine"),
        _optional("conversation_history", "Earlier lines of the conversation", "first meeting"),
        _optional("dialogue_tone", "Desired tone", "natural"),
    ],
    system_prompt="You write distinctive, in-character NPC dialogue that moves the story along.",
    output_format="json",
)

OBJECT_GENERATION = PromptTemplate(
    id="object_generation",
    name="Object Generator",
    description="An object that fits a location and the world's rules",
    category=TemplateCategory.GENERATION,
    template="""Create an object for {{location}} in a {{game_theme}} world.

Context:
- Purpose: {{object_purpose}}
- Materials available: {{available_materials}}
- Culture: {{cultural_setting}}
- Technology level: {{tech_level}}
- Objects already present: {{existing_objects}}
- Player level: {{player_level}}

The object must suit the location, be interesting without being
overpowered and respect the world's consistency. Include its name,
descriptions (full and brief), type, material, weight, size, properties
(portable, container, durability, value, magical, interactive), functionality,
backstory, markings, condition and where it sits in the location.""",
    variables=[
        _required("location", "Where the object is placed"),
        _required("game_theme", "Overall game theme"),
        _required("object_purpose", "Why the object is needed"),
        _optional("available_materials", "Materials to draw on", "common materials"),
        _optional("cultural_setting", "Cultural context", "standard fantasy"),
        _optional("tech_level", "Technology level", "medieval"),
        _optional("existing_objects", "Objects already present", "none specified"),
        _optional("player_level", "Player progression", "beginner"),
    ],
    system_prompt="You design objects that serve both gameplay and story and feel native to the world.",
    output_format="json",
)

STORY_GENERATION = PromptTemplate(
    id="story_generation",
    name="Story Generator",
    description="Complete story structure with acts, characters, locations and quests",
    category=TemplateCategory.GENERATION,
    template="""Create a {{genre}} story on the theme "{{theme}}".

Parameters:
- Length: {{target_length}}
- Player level: {{player_level}}
- Key elements: {{key_elements}}
- Conflicts: {{conflicts}}
- Desired outcome: {{desired_outcome}}

Limits:
- At most {{max_rooms}} locations
- At most {{max_npcs}} characters
- Challenges suitable for player level {{player_level}}

Provide a title and synopsis, three to five acts with clear progression,
memorable characters, locations that serve the plot, plot hooks, quest lines
and difficulty that rises sensibly.""",
    variables=[
        _required("genre", "Story genre"),
        _required("theme", "Story theme"),
        _required("target_length", "short, medium or long"),
        _required("player_level", "Player level"),
        _optional("key_elements", "Elements to include", "adventure"),
        _optional("conflicts", "Central conflicts", "challenges"),
        _optional("desired_outcome", "How the story should end", "open"),
        _required("max_rooms", "Maximum number of locations"),
        _required("max_npcs", "Maximum number of characters"),
    ],
    system_prompt=(
        "You write adventure stories built around compelling characters, "
        "real conflicts and meaningful choices."
    ),
    output_format="json",
)

QUEST_GENERATION = PromptTemplate(
    id="quest_generation",
    name="Quest Generator",
    description="Quest with objectives, rewards and dialogue",
    category=TemplateCategory.GENERATION,
    template="""Design a {{type}} quest at difficulty {{difficulty}}/10.

- Objectives: {{objectives}}
- NPCs involved: {{npcs_involved}}
- Locations: {{locations_involved}}
- Prerequisites: {{prerequisites}}

The quest needs clear objectives that match the difficulty, fair rewards,
dialogue for the quest giver and a place in the wider world.""",
    variables=[
        _required("type", "Quest type"),
        _required("difficulty", "Difficulty from 1 to 10"),
        _required("objectives", "What the player must do"),
        _optional("npcs_involved", "NPCs involved", "none"),
        _optional("locations_involved", "Locations involved", "current area"),
        _optional("prerequisites", "Requirements before starting", "none"),
    ],
    system_prompt="You design quests with clear goals, fair rewards and interesting challenges.",
    output_format="json",
)

PLOT_TWIST = PromptTemplate(
    id="plot_twist",
    name="Plot Twist Generator",
    description="Plot twist that fits the current story state",
    category=TemplateCategory.GENERATION,
    template="""Propose a plot twist for the story as it stands.

Current state:
{{current_state}}

Progress: {{story_progress}}

The twist should surprise yet make sense in hindsight, cast earlier events in
a new light, open new directions and raise the tension without breaking the
story.""",
    variables=[
        _required("current_state", "Current story situation"),
        _optional("story_progress", "How far the story has progressed", "50%"),
    ],
    system_prompt="You craft dramatic turns that surprise players while keeping the story coherent.",
    output_format="json",
)

ADAPTIVE_NARRATIVE = PromptTemplate(
    id="adaptive_narrative",
    name="Adaptive Narrative Generator",
    description="Narrative response to the player's recent actions",
    category=TemplateCategory.GENERATION,
    template="""Respond to what the player has done and adapt the story.

Player actions:
{{player_actions}}

Game state:
{{game_state}}

Story context:
{{story_context}}

Acknowledge the player's choices, show their consequences, advance the plot
and introduce new elements where useful so the story feels personal.""",
    variables=[
        _required("player_actions", "Recent player actions"),
        _required("game_state", "Current game state"),
        _required("story_context", "Story so far"),
    ],
    system_prompt="You adapt the story in real time so it reacts to each player's choices.",
    output_format="json",
)

STORY_SUMMARY = PromptTemplate(
    id="story_summary",
    name="Story Summary",
    description="Player-facing summary of a finished story",
    category=TemplateCategory.GENERATION,
    template="""Summarise the story that has just been created.

- Theme: {{theme}}
- Genre: {{genre}}
- Locations: {{room_count}}
- Characters: {{npc_count}}
- Quests: {{quest_count}}

Highlight the key story elements, the world, notable characters and places,
the kind of adventure players can expect and the overall tone. Make players
want to start.""",
    variables=[
        _required("theme", "Story theme"),
        _required("genre", "Story genre"),
        _required("room_count", "Number of locations created"),
        _required("npc_count", "Number of characters created"),
        _required("quest_count", "Number of quests created"),
    ],
    system_prompt="You write short, inviting descriptions of game content.",
    output_format="text",
)

# ---------------------------------------------------------------------------
# Enhancement
# ---------------------------------------------------------------------------

ROOM_ENHANCEMENT = PromptTemplate(
    id="room_enhancement",
    name="Room Enhancement",
    description="New elements for an existing room",
    category=TemplateCategory.ENHANCEMENT,
    template="""Improve an existing room as requested.

Room:
{{existing_room}}

Requested changes:
{{enhancements}}

Objects already there:
{{current_objects}}

Additions must fit the existing design, add something to play with and keep
the theme and atmosphere. Describe only the new additions using the room
content schema.""",
    variables=[
        _required("existing_room", "Current room data"),
        _required("enhancements", "Requested changes"),
        _optional("current_objects", "Objects already present", "none"),
    ],
    system_prompt="You extend existing game content without contradicting it.",
    output_format="json",
)

NPC_ENHANCEMENT = PromptTemplate(
    id="npc_enhancement",
    name="NPC Enhancement",
    description="Deeper version of an existing NPC",
    category=TemplateCategory.ENHANCEMENT,
    template="""Deepen an existing character as requested.

Character:
{{existing_npc}}

Requested changes:
{{enhancements}}

Build on the established personality, add depth without contradiction and
open new ways to interact. Return the full character using the NPC schema.""",
    variables=[
        _required("existing_npc", "Current NPC data"),
        _required("enhancements", "Requested changes"),
    ],
    system_prompt="You enrich established characters while keeping them recognisable.",
    output_format="json",
)

# ---------------------------------------------------------------------------
# Conflict resolution and validation
# ---------------------------------------------------------------------------

PHYSICS_CONFLICT_RESOLUTION = PromptTemplate(
    id="physics_conflict_resolution",
    name="Physics Conflict Resolver",
    description="Narrative resolution of an impossible game state",
    category=TemplateCategory.CONFLICT_RESOLUTION,
    template="""A conflict has occurred in {{game_name}}.

Conflict:
- Type: {{conflict_type}}
- Affected entities: {{affected_objects}}
- Location: {{location}}
- Description: {{conflict_description}}
- World rules: {{physics_rules}}

Current situation:
{{current_situation}}

World:
- Theme: {{game_theme}}
- Magic: {{magic_system}}
- Technology: {{tech_level}}

Propose a primary solution (action, explanation for the players, side
effects, whether it can be reversed), alternative solutions with pros and
cons, a narrative description of how the fix appears in the game and notes on
how it keeps the world consistent.""",
    variables=[
        _required("game_name", "Name of the game"),
        _required("conflict_type", "Kind of conflict"),
        _required("affected_objects", "Entities involved"),
        _required("location", "Where the conflict happened"),
        _required("conflict_description", "What went wrong"),
        _required("physics_rules", "Rules of the world"),
        _required("current_situation", "Snapshot of the game state"),
        _required("game_theme", "Game theme"),
        _optional("magic_system", "How magic works", "none"),
        _optional("tech_level", "Technology level", "medieval"),
    ],
    system_prompt=(
        "You are a game master who repairs impossible situations while keeping "
        "the world consistent and the players immersed."
    ),
    output_format="json",
)

STORY_VALIDATION = PromptTemplate(
    id="story_validation",
    name="Story Validator",
    description="Quality and consistency review of generated story content",
    category=TemplateCategory.VALIDATION,
    template="""Review this generated story for quality, consistency and playability.

Story:
{{story}}

Content:
- Locations: {{rooms}}
- Characters: {{npcs}}
- Quests: {{quests}}
- Theme: {{theme}}
- Genre: {{genre}}
- Player level: {{player_level}}

Check internal consistency, balance for the player level, fit with the theme
and genre, technical problems and overall narrative quality. Report each issue
with its severity and whether it can be fixed automatically, give a score from
0 to 100 and list recommendations.""",
    variables=[
        _required("story", "Story content to review"),
        _required("rooms", "Number of locations"),
        _required("npcs", "Number of characters"),
        _required("quests", "Number of quests"),
        _required("theme", "Story theme"),
        _required("genre", "Story genre"),
        _required("player_level", "Target player level"),
    ],
    system_prompt="You review game content and give specific, actionable feedback.",
    output_format="json",
)


DEFAULT_TEMPLATES: list[PromptTemplate] = [
    ROOM_DESCRIPTION,
    NPC_GENERATION,
    PHYSICS_CONFLICT_RESOLUTION,
    NPC_DIALOGUE,
    OBJECT_GENERATION,
    ROOM_ENHANCEMENT,
    NPC_ENHANCEMENT,
    STORY_GENERATION,
    QUEST_GENERATION,
    PLOT_TWIST,
    ADAPTIVE_NARRATIVE,
    STORY_VALIDATION,
    STORY_SUMMARY,
]


__all__ = ["DEFAULT_TEMPLATES"]
