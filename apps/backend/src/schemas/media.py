"""Media metadata schemas shared by the resolvers, cache and API layer."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


Provenance = Literal["cache", "mirror-a", "mirror-b", "catalog", "paid-api"]

# Fallback duration used when a source omits one (four minutes)
DEFAULT_DURATION_SECONDS: int = 240


class MediaReference(BaseModel):
    """Playable media metadata for a single track.

    `video_id` may be empty when only catalog metadata could be found.
    """

    video_id: str = Field(default="", description="Playable video identifier")
    thumbnail: str = Field(default="", description="Thumbnail / artwork URL")
    duration_seconds: int = Field(default=DEFAULT_DURATION_SECONDS, ge=0)
    provenance: Provenance | None = Field(
        default=None, description="Tier that resolved this; None when unresolved"
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def empty(cls) -> "MediaReference":
        """Placeholder for a track no tier could resolve."""
        return cls(video_id="", thumbnail="", duration_seconds=0)

    @property
    def is_playable(self) -> bool:
        return bool(self.video_id)


class CacheEntry(BaseModel):
    """Stored form of a resolved MediaReference.

    `source` keeps the tier that originally resolved the entry; readers get
    the payload back with provenance `cache`.
    """

    key: str
    video_id: str = ""
    thumbnail: str = ""
    duration_seconds: int = DEFAULT_DURATION_SECONDS
    title: str | None = None
    source: Provenance
    cached_at: float

    def to_reference(self) -> MediaReference:
        return MediaReference(
            video_id=self.video_id,
            thumbnail=self.thumbnail,
            duration_seconds=self.duration_seconds,
            provenance="cache",
        )


class QuotaCheck(BaseModel):
    """Result of a quota ledger check for one category."""

    available: bool
    remaining: int
    cost: int


class QuotaStats(BaseModel):
    pool: str
    used: int
    remaining: int
    limit: int
    percent_used: int


class TrackQuery(BaseModel):
    artist: str = Field(..., min_length=1, max_length=200)
    title: str = Field(..., min_length=1, max_length=300)

    model_config = ConfigDict(extra="forbid")


class MediaSearchRequest(BaseModel):
    """Single or batch media lookup.

    Either `artist`+`title` or `tracks` must be provided. `allow_paid` lets
    the lookup fall through to the quota-tracked paid API.
    """

    artist: str | None = Field(default=None, max_length=200)
    title: str | None = Field(default=None, max_length=300)
    tracks: list[TrackQuery] | None = Field(default=None, max_length=100)
    allow_paid: bool = False

    model_config = ConfigDict(extra="forbid")


class ResolvedTrack(BaseModel):
    artist: str
    title: str
    media: MediaReference | None = None


class MediaSearchResult(BaseModel):
    tracks: list[ResolvedTrack]
    total: int
    found: int
    with_video_id: int
