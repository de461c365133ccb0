"""
Data model for interactive story creation sessions.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field
from shortuuid import random


class StoryPhase(str, Enum):
    PLANNING = "planning"
    WORLD_BUILDING = "world_building"
    CHARACTER_CREATION = "character_creation"
    CONTENT_GENERATION = "content_generation"
    REFINEMENT = "refinement"
    COMPLETED = "completed"


StoryLength = Literal["short", "medium", "long"]


class StoryPreferences(BaseModel):
    """Author preferences that shape the session."""

    complexity: Literal["simple", "moderate", "complex"] = "moderate"
    length: StoryLength = "medium"
    style: str = "balanced"
    focus_areas: list[str] = Field(default_factory=lambda: ["adventure", "exploration"])


class DecisionOption(BaseModel):
    id: str
    label: str
    description: str
    consequences: list[str] = Field(default_factory=list)


class AgenticDecision(BaseModel):
    """A choice the agent puts to the author.

    Question decisions carry an auto-execute timeout; when it elapses the
    caller may submit ``default_choice`` on the author's behalf.
    """

    id: str = Field(description="Decision identifier, unique within the session")
    type: Literal["question", "suggestion", "action"]
    priority: Literal["low", "medium", "high", "critical"]
    description: str
    options: list[DecisionOption] = Field(default_factory=list)
    auto_execute_after: float | None = Field(
        default=None,
        description="Seconds after which default_choice may be applied"
    )
    default_choice: str | None = None

    @property
    def option_ids(self) -> list[str]:
        return [option.id for option in self.options]


class DecisionRecord(BaseModel):
    decision_id: str
    options: list[str] = Field(default_factory=list)
    chosen: str
    reasoning: str | None = None


class FeedbackEntry(BaseModel):
    phase: StoryPhase
    feedback: str
    timestamp: datetime = Field(default_factory=datetime.now)


class GeneratedContent(BaseModel):
    story: dict[str, Any] | None = None
    rooms: list[dict[str, Any]] = Field(default_factory=list)
    npcs: list[dict[str, Any]] = Field(default_factory=list)
    quests: list[dict[str, Any]] = Field(default_factory=list)
    objects: list[dict[str, Any]] = Field(default_factory=list)


class SessionState(BaseModel):
    current_step: int = Field(default=1, ge=1)
    total_steps: int = Field(default=10, ge=1)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class StorySession(BaseModel):
    """One multi-step story authoring session."""

    session_id: str = Field(
        default_factory=lambda: f"story_{random(length=12)}",
        description="Unique session identifier"
    )
    theme: str
    genre: str
    player_level: int = Field(default=1, ge=1)
    current_phase: StoryPhase = StoryPhase.PLANNING
    preferences: StoryPreferences = Field(default_factory=StoryPreferences)
    generated_content: GeneratedContent = Field(default_factory=GeneratedContent)
    user_feedback: list[FeedbackEntry] = Field(default_factory=list)
    decisions: list[DecisionRecord] = Field(default_factory=list)
    state: SessionState = Field(default_factory=SessionState)
    pending_decision: AgenticDecision | None = None
    settings: dict[str, Any] = Field(
        default_factory=dict,
        description="Choices made along the way (approach, room_count, cast_style)"
    )
    applied_fixes: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)

    @property
    def progress(self) -> float:
        return self.state.current_step / self.state.total_steps

    def summary_items(self) -> list[dict[str, Any]]:
        """Compact description of what has been generated so far."""
        content = self.generated_content
        items: list[dict[str, Any]] = []
        if content.story:
            items.append({"type": "story", "data": content.story})
        if content.rooms:
            items.append({"type": "rooms", "count": len(content.rooms)})
        if content.npcs:
            items.append({"type": "npcs", "count": len(content.npcs)})
        if content.quests:
            items.append({"type": "quests", "count": len(content.quests)})
        return items


class ValidationIssue(BaseModel):
    type: Literal["error", "warning", "suggestion"]
    category: Literal["consistency", "balance", "engagement", "technical"]
    description: str
    suggestion: str | None = None
    auto_fix: bool = False


class StoryValidationResult(BaseModel):
    """Quality report for the generated story."""

    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    quality_score: float = Field(ge=0, le=100)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.type == "error" for issue in self.issues)


__all__ = [
    "StoryPhase",
    "StoryPreferences",
    "DecisionOption",
    "AgenticDecision",
    "DecisionRecord",
    "FeedbackEntry",
    "GeneratedContent",
    "SessionState",
    "StorySession",
    "ValidationIssue",
    "StoryValidationResult",
]
