"""Tests for the provider race orchestrator event stream."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import pytest

from schemas.generation import GenerationRequest, TrackSkeleton
from schemas.media import MediaReference
from schemas.streaming import (
    AllFailedEvent,
    CompleteEvent,
    PrimaryResultEvent,
    ProviderFailedEvent,
    TrackEnrichedEvent,
)
from services.ai.exceptions import EmptyTrackList
from services.ai.race import RaceOrchestrator


def _tracks(prefix: str, count: int = 3) -> list[TrackSkeleton]:
    return [
        TrackSkeleton(index=i, title=f"{prefix} Song {i}", artist=f"{prefix} Artist")
        for i in range(count)
    ]


class FakeGenerator:
    def __init__(
        self,
        provider: str,
        *,
        delay: float = 0.0,
        tracks: list[TrackSkeleton] | None = None,
        error: Exception | None = None,
        yield_first: bool = False,
    ) -> None:
        self.provider = provider
        self.delay = delay
        self.tracks = tracks if tracks is not None else _tracks(provider)
        self.error = error
        self.yield_first = yield_first
        self.cancelled = asyncio.Event()

    async def generate(self, request: GenerationRequest) -> list[TrackSkeleton]:
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            elif self.yield_first:
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            self.cancelled.set()
            raise
        if self.error is not None:
            raise self.error
        return self.tracks


class FakeResolver:
    """Resolves every track except titles containing 'Unknown'."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.batches: list[list[tuple[str, str]]] = []

    async def resolve_many(
        self,
        tracks: Iterable[tuple[str, str]],
        *,
        prefer_album_art: bool = True,
        allow_paid: bool = False,
    ) -> dict[tuple[str, str], MediaReference]:
        assert allow_paid is False
        batch = list(tracks)
        self.batches.append(batch)
        if self.delay:
            await asyncio.sleep(self.delay)
        return {
            (artist, title): MediaReference(
                video_id=f"vid-{title}", thumbnail="t", provenance="mirror-a"
            )
            for artist, title in batch
            if "Unknown" not in title
        }


class FakeUsage:
    def __init__(self) -> None:
        self.categories: list[str] = []

    async def track(self, category: str, tokens: int | None = None) -> None:
        self.categories.append(category)


def _request(*providers: str, track_count: int = 3) -> GenerationRequest:
    return GenerationRequest(
        prompt="sunset rooftop house", track_count=track_count, providers=providers
    )


async def _collect(orchestrator: RaceOrchestrator, request: GenerationRequest, **kw):
    return [event async for event in orchestrator.stream(request, **kw)]


def _names(events) -> list[str]:
    return [e.event for e in events if e is not None and e.event != "track-enriched"]


class TestRaceOrdering:
    @pytest.mark.asyncio
    async def test_failed_then_primary_then_alternative(self) -> None:
        usage = FakeUsage()
        orchestrator = RaceOrchestrator(
            {
                "openai": FakeGenerator("openai", delay=0.05, error=EmptyTrackList()),
                "claude": FakeGenerator("claude", delay=0.08),
                "gemini": FakeGenerator("gemini", delay=0.12),
            },
            FakeResolver(),
            usage_tracker=usage,
        )

        events = await _collect(orchestrator, _request("openai", "claude", "gemini"))

        assert _names(events) == [
            "started",
            "provider-started",
            "provider-started",
            "provider-started",
            "provider-failed",
            "primary-result",
            "alternative-result",
            "complete",
        ]
        assert events[0].providers == ["openai", "claude", "gemini"]
        failed = next(e for e in events if isinstance(e, ProviderFailedEvent))
        assert failed.provider == "openai"
        assert failed.error == "provider returned no tracks"
        primary = next(e for e in events if isinstance(e, PrimaryResultEvent))
        assert primary.provider == "claude"

        complete = events[-1]
        assert isinstance(complete, CompleteEvent)
        assert complete.summary.primary == "claude"
        assert complete.summary.alternatives == ["gemini"]
        assert complete.summary.failed == ["openai"]
        assert usage.categories[-1] == "generation:success"
        assert {"ai:openai", "ai:claude", "ai:gemini"} <= set(usage.categories)

    @pytest.mark.asyncio
    async def test_every_track_enriched_once_after_its_result(self) -> None:
        orchestrator = RaceOrchestrator(
            {
                "openai": FakeGenerator("openai", delay=0.02, tracks=_tracks("openai", 5)),
                "gemini": FakeGenerator("gemini", delay=0.04),
            },
            FakeResolver(),
            enrichment_batch_size=2,
        )

        events = await _collect(orchestrator, _request("openai", "gemini", track_count=5))

        for provider, count in (("openai", 5), ("gemini", 3)):
            result_pos = next(
                i
                for i, e in enumerate(events)
                if e.event in {"primary-result", "alternative-result"}
                and e.provider == provider
            )
            enriched = [
                (i, e)
                for i, e in enumerate(events)
                if isinstance(e, TrackEnrichedEvent) and e.provider == provider
            ]
            assert sorted(e.index for _, e in enriched) == list(range(count))
            assert all(i > result_pos for i, _ in enriched)
            assert all(e.media.provenance == "mirror-a" for _, e in enriched)

        complete_pos = len(events) - 1
        assert isinstance(events[complete_pos], CompleteEvent)

    @pytest.mark.asyncio
    async def test_unresolved_track_is_best_effort(self) -> None:
        tracks = [
            TrackSkeleton(index=0, title="Known", artist="A"),
            TrackSkeleton(index=1, title="Unknown Demo", artist="B"),
        ]
        orchestrator = RaceOrchestrator(
            {"claude": FakeGenerator("claude", tracks=tracks)}, FakeResolver()
        )

        events = await _collect(orchestrator, _request("claude", track_count=2))

        enriched = {e.index: e for e in events if isinstance(e, TrackEnrichedEvent)}
        assert enriched[0].best_effort is False
        assert enriched[1].best_effort is True
        assert enriched[1].media == MediaReference.empty()

    @pytest.mark.asyncio
    async def test_simultaneous_outcomes_follow_roster_order(self) -> None:
        # openai needs one extra loop turn, so claude's outcome is queued first
        # but both are drained together
        orchestrator = RaceOrchestrator(
            {
                "openai": FakeGenerator("openai", yield_first=True),
                "claude": FakeGenerator("claude"),
            },
            FakeResolver(),
        )

        events = await _collect(orchestrator, _request("openai", "claude"))

        assert events[-1].summary.primary == "openai"
        assert events[-1].summary.alternatives == ["claude"]


class TestRaceFailures:
    @pytest.mark.asyncio
    async def test_all_failed(self) -> None:
        usage = FakeUsage()
        orchestrator = RaceOrchestrator(
            {
                "openai": FakeGenerator("openai", error=RuntimeError("upstream 500")),
                "gemini": FakeGenerator("gemini", delay=0.01, error=EmptyTrackList()),
            },
            FakeResolver(),
            usage_tracker=usage,
        )

        events = await _collect(orchestrator, _request("openai", "gemini"))

        assert "complete" not in _names(events)
        assert not any(isinstance(e, TrackEnrichedEvent) for e in events)
        final = events[-1]
        assert isinstance(final, AllFailedEvent)
        assert [(f.provider, f.error) for f in final.errors] == [
            ("openai", "upstream 500"),
            ("gemini", "provider returned no tracks"),
        ]
        assert usage.categories[-1] == "generation:failure"

    @pytest.mark.asyncio
    async def test_unconfigured_provider_fails_inside_race(self) -> None:
        orchestrator = RaceOrchestrator(
            {"gemini": FakeGenerator("gemini", delay=0.01)}, FakeResolver()
        )

        events = await _collect(orchestrator, _request("claude", "gemini"))

        failed = [e for e in events if isinstance(e, ProviderFailedEvent)]
        assert [(e.provider, e.error) for e in failed] == [
            ("claude", "provider not configured")
        ]
        assert events[-1].summary.primary == "gemini"
        assert events[-1].summary.failed == ["claude"]

    @pytest.mark.asyncio
    async def test_provider_timeout(self) -> None:
        slow = FakeGenerator("openai", delay=5)
        orchestrator = RaceOrchestrator(
            {"openai": slow}, FakeResolver(), provider_timeout=0.05
        )

        events = await _collect(orchestrator, _request("openai"))

        failed = next(e for e in events if isinstance(e, ProviderFailedEvent))
        assert failed.error == "provider timed out after 0.05s"
        assert isinstance(events[-1], AllFailedEvent)
        assert slow.cancelled.is_set()

    @pytest.mark.asyncio
    async def test_enrichment_timeout_marks_remaining_best_effort(self) -> None:
        orchestrator = RaceOrchestrator(
            {"claude": FakeGenerator("claude")},
            FakeResolver(delay=5),
            enrichment_timeout=0.05,
        )

        events = await _collect(orchestrator, _request("claude"))

        enriched = [e for e in events if isinstance(e, TrackEnrichedEvent)]
        assert sorted(e.index for e in enriched) == [0, 1, 2]
        assert all(e.best_effort for e in enriched)
        assert all(e.media.video_id == "" for e in enriched)
        assert isinstance(events[-1], CompleteEvent)


class TestRaceStreaming:
    @pytest.mark.asyncio
    async def test_heartbeat_while_idle(self) -> None:
        orchestrator = RaceOrchestrator(
            {"openai": FakeGenerator("openai", delay=0.2)}, FakeResolver()
        )

        events = await _collect(
            orchestrator, _request("openai"), heartbeat_interval=0.03
        )

        first_result = next(i for i, e in enumerate(events) if e is not None and e.event == "primary-result")
        assert None in events[:first_result]
        assert isinstance(events[-1], CompleteEvent)

    @pytest.mark.asyncio
    async def test_closing_stream_cancels_providers(self) -> None:
        openai = FakeGenerator("openai", delay=10)
        claude = FakeGenerator("claude", delay=10)
        orchestrator = RaceOrchestrator(
            {"openai": openai, "claude": claude}, FakeResolver()
        )

        stream = orchestrator.stream(_request("openai", "claude"), heartbeat_interval=0.01)
        seen = []
        async for event in stream:
            seen.append(event)
            if event is None:
                break
        await stream.aclose()

        assert [e.event for e in seen if e is not None] == [
            "started",
            "provider-started",
            "provider-started",
        ]
        assert openai.cancelled.is_set()
        assert claude.cancelled.is_set()
