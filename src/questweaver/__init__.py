"""
Quest Weaver - LLM orchestration and resilience for a text-adventure backend.

Provider failover, response caching, retry and circuit breaking, prompt
templates, structured output, conflict resolution and story creation.
"""

from .config import LLMSettings
from .exceptions import QuestWeaverError
from .services import Services, build_services
from .world import InMemoryWorld, WorldGateway

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("questweaver")
except Exception:
    __version__ = "0.1.0"  # Fallback if metadata unavailable
__all__ = ["LLMSettings", "QuestWeaverError", "Services", "build_services", "InMemoryWorld", "WorldGateway"]
