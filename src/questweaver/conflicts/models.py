"""
Data model for conflict resolution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field


class ConflictKind(str, Enum):
    PHYSICS = "physics"
    NPC_BEHAVIOR = "npc_behavior"
    OBJECT_STATE = "object_state"
    PLAYER_ACTION = "player_action"
    WORLD_CONSISTENCY = "world_consistency"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResolverType(str, Enum):
    HOOK = "hook"
    LLM = "llm"
    FAILSAFE = "failsafe"


class ConflictDetails(BaseModel):
    """What the caller knows about a conflict."""

    affected_entities: list[str] = Field(default_factory=list)
    location: str | None = None
    description: str
    original_action: str = "unknown"
    error_details: dict[str, Any] = Field(default_factory=dict)
    severity: Severity | None = Field(default=None, description="Overrides the severity derived from the kind")


class ConflictContext(BaseModel):
    """A conflict being resolved, with a snapshot of the game state."""

    kind: ConflictKind
    severity: Severity
    affected_entities: list[str] = Field(default_factory=list)
    location: str = "unknown"
    description: str
    original_action: str = "unknown"
    error_details: dict[str, Any] = Field(default_factory=dict)
    game_state: dict[str, Any] = Field(default_factory=dict)
    attempt_count: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)


class AlternativeSolution(BaseModel):
    description: str
    explanation: str = ""
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)


class ConflictResolution(BaseModel):
    """Outcome of a resolution attempt. Always returned, never raised."""

    kind: ConflictKind
    success: bool
    resolution: str
    explanation: str = ""
    applied_changes: list[str] = Field(default_factory=list)
    side_effects: list[str] = Field(default_factory=list)
    alternative_solutions: list[AlternativeSolution] = Field(default_factory=list)
    narrative_description: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    processing_time: float = Field(default=0.0, description="Seconds spent resolving")
    requires_player_confirmation: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def resolver_type(self) -> str | None:
        return self.metadata.get("resolver_type")


class ResolutionStrategy(BaseModel):
    """A named way of handling a class of conflicts."""

    id: str
    name: str
    description: str
    applicable_conflicts: list[ConflictKind]
    priority: int
    requires_llm: bool
    auto_executable: bool


HookHandler = Callable[[ConflictContext], Awaitable["ConflictResolution | None"]]


@dataclass
class ConflictHook:
    """Rule-based resolver tried before any LLM call.

    Attributes:
        name: Unique hook name
        trigger_conditions: Substrings matched case-insensitively against the
            conflict description and kind
        priority: Higher priority hooks run first
        handler: Returns a resolution, or None to pass
    """
    name: str
    trigger_conditions: list[str]
    priority: int
    handler: HookHandler
    description: str = field(default="")

    def matches(self, context: ConflictContext) -> bool:
        description = context.description.lower()
        kind = context.kind.value
        return any(
            condition.lower() in description or condition.lower() in kind
            for condition in self.trigger_conditions
        )


__all__ = [
    "ConflictKind",
    "Severity",
    "ResolverType",
    "ConflictDetails",
    "ConflictContext",
    "AlternativeSolution",
    "ConflictResolution",
    "ResolutionStrategy",
    "HookHandler",
    "ConflictHook",
]
