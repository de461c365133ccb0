"""
Conflict resolution for impossible game states.

Key components:
- ConflictResolver: Hook-first, LLM-fallback resolver with a failsafe
- ConflictHook: Priority-ordered rule handler matched by trigger substrings
- ConflictResolution: Outcome returned for every conflict
"""

from .models import (
    AlternativeSolution,
    ConflictContext,
    ConflictDetails,
    ConflictHook,
    ConflictKind,
    ConflictResolution,
    ResolutionStrategy,
    ResolverType,
    Severity,
)
from .resolver import FAILSAFE_ACTION, ConflictResolver

__all__ = [
    "AlternativeSolution",
    "ConflictContext",
    "ConflictDetails",
    "ConflictHook",
    "ConflictKind",
    "ConflictResolution",
    "ResolutionStrategy",
    "ResolverType",
    "Severity",
    "FAILSAFE_ACTION",
    "ConflictResolver",
]
