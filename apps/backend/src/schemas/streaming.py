"""Schemas for generation race SSE streaming."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from schemas.generation import ProviderId, TrackSkeleton
from schemas.media import MediaReference


HEARTBEAT_SSE: str = ": heartbeat\n\n"


class _SseEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        """Serialize event to SSE format."""
        return f"data: {self.model_dump_json()}\n\n"


class StartedEvent(_SseEvent):
    event: Literal["started"] = "started"
    providers: list[ProviderId]


class ProviderStartedEvent(_SseEvent):
    event: Literal["provider-started"] = "provider-started"
    provider: ProviderId


class PrimaryResultEvent(_SseEvent):
    event: Literal["primary-result"] = "primary-result"
    provider: ProviderId
    tracks: list[TrackSkeleton]


class AlternativeResultEvent(_SseEvent):
    event: Literal["alternative-result"] = "alternative-result"
    provider: ProviderId
    tracks: list[TrackSkeleton]


class ProviderFailedEvent(_SseEvent):
    event: Literal["provider-failed"] = "provider-failed"
    provider: ProviderId
    error: str


class TrackEnrichedEvent(_SseEvent):
    """Media metadata for one track of one provider's list.

    `best_effort` is set when enrichment gave up on the track (timeout or no
    source found); `media` is then an empty reference.
    """

    event: Literal["track-enriched"] = "track-enriched"
    provider: ProviderId
    index: int = Field(..., ge=0)
    media: MediaReference = Field(default_factory=MediaReference.empty)
    best_effort: bool = False


class RaceSummary(BaseModel):
    primary: ProviderId
    alternatives: list[ProviderId]
    failed: list[ProviderId]


class CompleteEvent(_SseEvent):
    event: Literal["complete"] = "complete"
    summary: RaceSummary


class FailedProvider(BaseModel):
    provider: ProviderId
    error: str


class AllFailedEvent(_SseEvent):
    event: Literal["all-failed"] = "all-failed"
    errors: list[FailedProvider]


StreamEvent = Annotated[
    Union[
        StartedEvent,
        ProviderStartedEvent,
        PrimaryResultEvent,
        AlternativeResultEvent,
        ProviderFailedEvent,
        TrackEnrichedEvent,
        CompleteEvent,
        AllFailedEvent,
    ],
    Field(discriminator="event"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def render_sse(event: StreamEvent | None) -> str:
    """Render a stream item; None is a heartbeat comment."""
    if event is None:
        return HEARTBEAT_SSE
    return event.to_sse()
