"""
JSON schemas for structured generation requests.

These use the minimal schema subset understood by the structured-output
validator: type, required, properties, items.
"""

from __future__ import annotations

from typing import Any

_STRING: dict[str, Any] = {"type": "string"}
_NUMBER: dict[str, Any] = {"type": "number"}
_BOOLEAN: dict[str, Any] = {"type": "boolean"}
_STRING_LIST: dict[str, Any] = {"type": "array", "items": _STRING}


ROOM_CONTENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "description", "short_description", "objects", "exits", "ambiance"],
    "properties": {
        "name": {"type": "string", "description": "The name of the room"},
        "description": {"type": "string", "description": "Detailed description of the room"},
        "short_description": {"type": "string", "description": "One-line description"},
        "objects": {
            "type": "array",
            "description": "Objects found in the room",
            "items": {
                "type": "object",
                "required": ["name", "description", "material"],
                "properties": {
                    "name": _STRING,
                    "description": _STRING,
                    "material": _STRING,
                    "can_open": _BOOLEAN,
                    "capacity": _NUMBER,
                    "weight": _NUMBER,
                    "flammability": _NUMBER,
                },
            },
        },
        "exits": {
            "type": "array",
            "description": "Ways out of the room",
            "items": {
                "type": "object",
                "required": ["direction", "description"],
                "properties": {
                    "direction": _STRING,
                    "description": _STRING,
                    "locked": _BOOLEAN,
                    "hidden": _BOOLEAN,
                },
            },
        },
        "ambiance": {
            "type": "object",
            "required": ["lighting", "sounds", "smells", "temperature"],
            "properties": {
                "lighting": _STRING,
                "sounds": _STRING,
                "smells": _STRING,
                "temperature": _STRING,
            },
        },
        "secrets": {
            "type": "array",
            "description": "Hidden features and how to find them",
            "items": {
                "type": "object",
                "required": ["trigger", "description"],
                "properties": {"trigger": _STRING, "description": _STRING, "reward": _STRING},
            },
        },
    },
}

NPC_CONTENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "description", "personality", "backstory", "stats", "dialogue", "behavior"],
    "properties": {
        "name": _STRING,
        "description": _STRING,
        "personality": {
            "type": "object",
            "required": ["traits", "mannerisms", "speech_patterns"],
            "properties": {
                "traits": _STRING_LIST,
                "mannerisms": _STRING_LIST,
                "speech_patterns": _STRING_LIST,
            },
        },
        "backstory": {
            "type": "object",
            "required": ["origin", "motivation"],
            "properties": {
                "origin": _STRING,
                "motivation": _STRING,
                "secrets": _STRING_LIST,
                "fears": _STRING_LIST,
            },
        },
        "stats": {
            "type": "object",
            "required": ["health", "level"],
            "properties": {
                "health": _NUMBER,
                "level": _NUMBER,
                "skills": {"type": "object", "description": "Skill name to rating"},
            },
        },
        "inventory": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "description"],
                "properties": {"name": _STRING, "description": _STRING, "material": _STRING, "value": _NUMBER},
            },
        },
        "dialogue": {
            "type": "object",
            "required": ["greeting", "farewell", "topics"],
            "properties": {
                "greeting": _STRING_LIST,
                "farewell": _STRING_LIST,
                "topics": {"type": "object", "description": "Topic name to lines"},
            },
        },
        "behavior": {
            "type": "object",
            "required": ["default_action"],
            "properties": {
                "default_action": _STRING,
                "combat_style": _STRING,
                "trade_items": _STRING_LIST,
                "wander_pattern": _STRING,
            },
        },
    },
}

DIALOGUE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["responses"],
    "properties": {
        "responses": {
            "type": "array",
            "items": _STRING,
            "description": "Alternative lines the NPC might say",
        },
    },
}

STORY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["title", "synopsis", "acts", "characters", "locations", "quest_lines"],
    "properties": {
        "title": _STRING,
        "synopsis": _STRING,
        "acts": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "description", "objectives"],
                "properties": {
                    "title": _STRING,
                    "description": _STRING,
                    "objectives": _STRING_LIST,
                    "locations": _STRING_LIST,
                    "characters": _STRING_LIST,
                    "key_events": _STRING_LIST,
                },
            },
        },
        "characters": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "role", "description", "motivation"],
                "properties": {
                    "name": _STRING,
                    "role": {"type": "string", "description": "protagonist, antagonist, ally, mentor or neutral"},
                    "description": _STRING,
                    "motivation": _STRING,
                },
            },
        },
        "locations": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "description", "significance"],
                "properties": {
                    "name": _STRING,
                    "description": _STRING,
                    "significance": _STRING,
                    "connections": _STRING_LIST,
                },
            },
        },
        "plot_hooks": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["trigger", "description", "consequences"],
                "properties": {"trigger": _STRING, "description": _STRING, "consequences": _STRING_LIST},
            },
        },
        "quest_lines": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "description", "difficulty"],
                "properties": {
                    "name": _STRING,
                    "description": _STRING,
                    "prerequisites": _STRING_LIST,
                    "rewards": _STRING_LIST,
                    "difficulty": {"type": "number", "description": "1 (easy) to 10 (hard)"},
                },
            },
        },
    },
}

QUEST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "description", "objectives", "rewards", "dialogue"],
    "properties": {
        "name": _STRING,
        "description": _STRING,
        "objectives": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["description", "type", "target"],
                "properties": {
                    "description": _STRING,
                    "type": {"type": "string", "description": "collect, defeat, explore, deliver or interact"},
                    "target": _STRING,
                    "quantity": _NUMBER,
                    "location": _STRING,
                },
            },
        },
        "rewards": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["type", "amount", "description"],
                "properties": {
                    "type": {"type": "string", "description": "experience, item, gold or reputation"},
                    "amount": _NUMBER,
                    "description": _STRING,
                },
            },
        },
        "dialogue": {
            "type": "object",
            "required": ["quest_giver", "completion"],
            "properties": {
                "quest_giver": _STRING_LIST,
                "completion": _STRING_LIST,
                "failure": _STRING_LIST,
            },
        },
    },
}

PLOT_TWIST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["twist", "impact", "new_objectives", "affected_characters"],
    "properties": {
        "twist": {"type": "string", "description": "The plot twist"},
        "impact": {"type": "string", "description": "How the twist changes the story"},
        "new_objectives": {"type": "array", "items": _STRING, "description": "Objectives the twist creates"},
        "affected_characters": {"type": "array", "items": _STRING, "description": "Characters the twist touches"},
    },
}

ADAPTIVE_NARRATIVE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["narrative_response", "consequences", "new_story_elements"],
    "properties": {
        "narrative_response": {"type": "string", "description": "Narration reacting to the player"},
        "consequences": {"type": "array", "items": _STRING, "description": "Consequences of the actions"},
        "new_story_elements": {
            "type": "array",
            "items": {"type": "object"},
            "description": "New story elements introduced",
        },
    },
}


__all__ = [
    "ROOM_CONTENT_SCHEMA",
    "NPC_CONTENT_SCHEMA",
    "DIALOGUE_SCHEMA",
    "STORY_SCHEMA",
    "QUEST_SCHEMA",
    "PLOT_TWIST_SCHEMA",
    "ADAPTIVE_NARRATIVE_SCHEMA",
]
