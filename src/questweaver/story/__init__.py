"""
Interactive story creation.

Key components:
- StoryAgent: Phase-driven authoring sessions that end in a deployed story
- StorySession: Session state, decision log and generated content
- AgenticDecision: A choice put to the author
"""

from .agent import StoryAgent
from .models import (
    AgenticDecision,
    DecisionOption,
    StoryPhase,
    StoryPreferences,
    StorySession,
    StoryValidationResult,
    ValidationIssue,
)

__all__ = [
    "StoryAgent",
    "AgenticDecision",
    "DecisionOption",
    "StoryPhase",
    "StoryPreferences",
    "StorySession",
    "StoryValidationResult",
    "ValidationIssue",
]
