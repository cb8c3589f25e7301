"""Service interfaces for setlist generation.

This module defines protocols that enable clean dependency injection of the
race orchestrator's collaborators, so tests can swap in scripted generators
and resolvers.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from schemas.generation import GenerationRequest, ProviderId, TrackSkeleton
from schemas.media import MediaReference


class TrackGeneratorProtocol(Protocol):
    """Protocol for one provider's track list generation."""

    provider: ProviderId

    async def generate(self, request: GenerationRequest) -> list[TrackSkeleton]:
        """Return the provider's ordered track list or raise ProviderError."""
        ...


class MediaResolverProtocol(Protocol):
    """Protocol for batch media resolution used during enrichment."""

    async def resolve_many(
        self,
        tracks: Iterable[tuple[str, str]],
        *,
        prefer_album_art: bool = True,
        allow_paid: bool = False,
    ) -> dict[tuple[str, str], MediaReference]:
        """Resolve (artist, title) pairs; misses are absent from the result."""
        ...


class UsageRecorderProtocol(Protocol):
    """Protocol for per-category usage counters."""

    async def track(self, category: str, tokens: int | None = None) -> None:
        ...
