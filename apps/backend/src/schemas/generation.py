"""Generation request and provider outcome schemas."""

from __future__ import annotations

from enum import Enum
from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.exceptions import InvalidOutcomeTransition


ProviderId = Literal["openai", "claude", "gemini"]

ALL_PROVIDERS: tuple[ProviderId, ...] = get_args(ProviderId)


class EnergyRange(BaseModel):
    min: int = Field(default=40, ge=1, le=100)
    max: int = Field(default=80, ge=1, le=100)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_bounds(self) -> "EnergyRange":
        if self.min > self.max:
            raise ValueError("energy_range.min must not exceed energy_range.max")
        return self


class GenerationConstraints(BaseModel):
    """Numeric and list constraints forwarded to every provider."""

    energy_range: EnergyRange = Field(default_factory=EnergyRange)
    artist_diversity: int | None = Field(default=None, ge=0, le=100)
    discovery: int | None = Field(default=None, ge=0, le=100)
    active_decades: tuple[str, ...] = ()
    denylist: tuple[str, ...] = Field(default=(), max_length=50)
    avoid_explicit: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")


class GenerationRequest(BaseModel):
    """A single race request. Immutable once issued."""

    prompt: str = Field(..., min_length=1, max_length=2000)
    track_count: int = Field(default=8, ge=1, le=50)
    constraints: GenerationConstraints = Field(default_factory=GenerationConstraints)
    providers: tuple[ProviderId, ...] = Field(default=ALL_PROVIDERS, min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _dedupe_roster(self) -> "GenerationRequest":
        # Keep first occurrence; roster order is the tie-break order
        deduped = tuple(dict.fromkeys(self.providers))
        if deduped != self.providers:
            object.__setattr__(self, "providers", deduped)
        return self


class GeneratedTrack(BaseModel):
    """One track as returned by a provider (agent output item)."""

    title: str = Field(..., min_length=1)
    artist: str = Field(..., min_length=1)
    key: str | None = Field(default=None, description="Musical key, e.g. 'Am'")
    genre: str | None = None
    energy: int | None = Field(default=None, ge=1, le=100)
    duration_seconds: int | None = Field(default=None, ge=1)
    reasoning: str | None = Field(
        default=None, description="One sentence on why the track fits"
    )


class GeneratedSetlist(BaseModel):
    """Agent output: the ordered track list."""

    tracks: list[GeneratedTrack]


class TrackSkeleton(GeneratedTrack):
    """A generated track with its position in the provider's list."""

    index: int = Field(..., ge=0)


class ProviderStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[ProviderStatus, set[ProviderStatus]] = {
    ProviderStatus.PENDING: {ProviderStatus.RUNNING},
    ProviderStatus.RUNNING: {ProviderStatus.SUCCEEDED, ProviderStatus.FAILED},
    ProviderStatus.SUCCEEDED: set(),
    ProviderStatus.FAILED: set(),
}


class ProviderOutcome(BaseModel):
    """Lifecycle record of one provider's participation in a race."""

    provider: ProviderId
    status: ProviderStatus = ProviderStatus.PENDING
    tracks: list[TrackSkeleton] = Field(default_factory=list)
    error: str | None = None
    error_code: str | None = None

    def _transition(self, new_status: ProviderStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidOutcomeTransition(
                f"{self.provider}: cannot move from {self.status.value} "
                f"to {new_status.value}"
            )
        self.status = new_status

    def start(self) -> None:
        self._transition(ProviderStatus.RUNNING)

    def succeed(self, tracks: list[TrackSkeleton]) -> None:
        self._transition(ProviderStatus.SUCCEEDED)
        self.tracks = tracks

    def fail(self, error: str, error_code: str | None = None) -> None:
        self._transition(ProviderStatus.FAILED)
        self.error = error
        self.error_code = error_code

    @property
    def is_terminal(self) -> bool:
        return self.status in {ProviderStatus.SUCCEEDED, ProviderStatus.FAILED}
