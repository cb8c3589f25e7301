"""Init file for AI services."""

from .agents import PydanticAITrackGenerator, create_setlist_agent
from .race import RaceOrchestrator


__all__ = [
    "create_setlist_agent",
    "PydanticAITrackGenerator",
    "RaceOrchestrator",
]
