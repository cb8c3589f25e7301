"""Provider race orchestrator.

Runs every provider in the request roster concurrently and turns their
progress into an ordered stream of events:

    started -> provider-started (per provider) -> [primary-result |
    alternative-result | provider-failed | track-enriched]* ->
    complete | all-failed

Provider tasks share nothing but the output queue. The collector is the only
reader and the only place outcome state changes, so the first successful
outcome it dequeues is the primary result. Outcomes that arrive in the same
drain are ordered by roster position.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field

from schemas.generation import (
    GenerationRequest,
    ProviderId,
    ProviderOutcome,
    TrackSkeleton,
)
from schemas.media import MediaReference
from schemas.streaming import (
    AllFailedEvent,
    AlternativeResultEvent,
    CompleteEvent,
    FailedProvider,
    PrimaryResultEvent,
    ProviderFailedEvent,
    ProviderStartedEvent,
    RaceSummary,
    StartedEvent,
    StreamEvent,
    TrackEnrichedEvent,
)
from services.ai.exceptions import (
    GenerationFailure,
    ProviderError,
    ProviderNotConfigured,
    ProviderTimeout,
)
from services.ai.interfaces import (
    MediaResolverProtocol,
    TrackGeneratorProtocol,
    UsageRecorderProtocol,
)


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _OutcomeMessage:
    roster_index: int
    provider: ProviderId
    tracks: list[TrackSkeleton] = field(default_factory=list)
    error: ProviderError | None = None


@dataclass(slots=True)
class _EnrichedMessage:
    event: TrackEnrichedEvent


@dataclass(slots=True)
class _EnrichmentDone:
    provider: ProviderId


_Message = _OutcomeMessage | _EnrichedMessage | _EnrichmentDone


def _batched(tracks: Sequence[TrackSkeleton], size: int) -> list[list[TrackSkeleton]]:
    return [list(tracks[i : i + size]) for i in range(0, len(tracks), size)]


class RaceOrchestrator:
    def __init__(
        self,
        generators: Mapping[ProviderId, TrackGeneratorProtocol],
        resolver: MediaResolverProtocol,
        *,
        enrichment_batch_size: int = 4,
        enrichment_timeout: float | None = 20.0,
        provider_timeout: float | None = 45.0,
        usage_tracker: UsageRecorderProtocol | None = None,
    ) -> None:
        self.generators = dict(generators)
        self.resolver = resolver
        self.enrichment_batch_size = max(1, enrichment_batch_size)
        self.enrichment_timeout = enrichment_timeout
        self.provider_timeout = provider_timeout
        self.usage_tracker = usage_tracker

    async def _track_usage(self, category: str) -> None:
        if self.usage_tracker is not None:
            await self.usage_tracker.track(category)

    async def _generate(
        self, provider: ProviderId, request: GenerationRequest
    ) -> list[TrackSkeleton]:
        generator = self.generators.get(provider)
        if generator is None:
            raise ProviderNotConfigured()
        await self._track_usage(f"ai:{provider}")
        try:
            async with asyncio.timeout(self.provider_timeout):
                return await generator.generate(request)
        except TimeoutError:
            raise ProviderTimeout(
                f"provider timed out after {self.provider_timeout:g}s"
            ) from None

    async def _run_provider(
        self,
        roster_index: int,
        provider: ProviderId,
        request: GenerationRequest,
        queue: asyncio.Queue[_Message],
    ) -> None:
        try:
            tracks = await self._generate(provider, request)
        except ProviderError as e:
            logger.warning("Provider %s failed (%s): %s", provider, e.error_code, e)
            await queue.put(_OutcomeMessage(roster_index, provider, error=e))
            return
        except Exception as e:
            logger.exception("Provider %s raised unexpectedly", provider)
            error = GenerationFailure(str(e) or type(e).__name__)
            await queue.put(_OutcomeMessage(roster_index, provider, error=error))
            return

        logger.info("Provider %s returned %d tracks", provider, len(tracks))
        await queue.put(_OutcomeMessage(roster_index, provider, tracks=tracks))
        await self._enrich(provider, tracks, queue)

    async def _enrich(
        self,
        provider: ProviderId,
        tracks: list[TrackSkeleton],
        queue: asyncio.Queue[_Message],
    ) -> None:
        """Emit exactly one track-enriched event per track, in index order."""
        done = 0
        try:
            async with asyncio.timeout(self.enrichment_timeout):
                for batch in _batched(tracks, self.enrichment_batch_size):
                    resolved = await self.resolver.resolve_many(
                        [(t.artist, t.title) for t in batch], allow_paid=False
                    )
                    for track in batch:
                        media = resolved.get((track.artist, track.title))
                        event = TrackEnrichedEvent(
                            provider=provider,
                            index=track.index,
                            media=media or MediaReference.empty(),
                            best_effort=media is None,
                        )
                        await queue.put(_EnrichedMessage(event))
                        done += 1
        except TimeoutError:
            logger.warning(
                "Enrichment for %s timed out after %d/%d tracks",
                provider,
                done,
                len(tracks),
            )
        except Exception:
            logger.exception("Enrichment for %s failed", provider)

        for track in tracks[done:]:
            await queue.put(
                _EnrichedMessage(
                    TrackEnrichedEvent(
                        provider=provider,
                        index=track.index,
                        media=MediaReference.empty(),
                        best_effort=True,
                    )
                )
            )
        await queue.put(_EnrichmentDone(provider))

    async def stream(
        self,
        request: GenerationRequest,
        heartbeat_interval: float | None = None,
    ) -> AsyncIterator[StreamEvent | None]:
        """Race the roster and yield events; None marks an idle heartbeat.

        Closing the generator cancels every provider and enrichment task; no
        further events (and no `complete`) are produced.
        """
        roster = list(request.providers)
        outcomes = {p: ProviderOutcome(provider=p) for p in roster}
        queue: asyncio.Queue[_Message] = asyncio.Queue()
        tasks: list[asyncio.Task[None]] = []

        primary: ProviderId | None = None
        alternatives: list[ProviderId] = []
        failures: list[FailedProvider] = []
        awaiting_outcome = len(roster)
        enriching = 0

        yield StartedEvent(providers=roster)
        for provider in roster:
            yield ProviderStartedEvent(provider=provider)

        try:
            for index, provider in enumerate(roster):
                outcomes[provider].start()
                tasks.append(
                    asyncio.create_task(
                        self._run_provider(index, provider, request, queue),
                        name=f"race:{provider}",
                    )
                )

            while awaiting_outcome or enriching:
                try:
                    if heartbeat_interval:
                        first = await asyncio.wait_for(queue.get(), heartbeat_interval)
                    else:
                        first = await queue.get()
                except TimeoutError:
                    yield None
                    continue

                drained: list[_Message] = [first]
                while not queue.empty():
                    drained.append(queue.get_nowait())

                finished = sorted(
                    (m for m in drained if isinstance(m, _OutcomeMessage)),
                    key=lambda m: m.roster_index,
                )
                for msg in finished:
                    awaiting_outcome -= 1
                    outcome = outcomes[msg.provider]
                    if msg.error is not None:
                        outcome.fail(msg.error.message, msg.error.error_code)
                        failures.append(
                            FailedProvider(provider=msg.provider, error=msg.error.message)
                        )
                        yield ProviderFailedEvent(
                            provider=msg.provider, error=msg.error.message
                        )
                        continue

                    outcome.succeed(msg.tracks)
                    enriching += 1
                    if primary is None:
                        primary = msg.provider
                        yield PrimaryResultEvent(provider=msg.provider, tracks=msg.tracks)
                    else:
                        alternatives.append(msg.provider)
                        yield AlternativeResultEvent(
                            provider=msg.provider, tracks=msg.tracks
                        )

                for msg in drained:
                    if isinstance(msg, _EnrichedMessage):
                        yield msg.event
                    elif isinstance(msg, _EnrichmentDone):
                        enriching -= 1

            if primary is None:
                logger.warning("All %d providers failed", len(roster))
                await self._track_usage("generation:failure")
                yield AllFailedEvent(errors=failures)
            else:
                logger.info(
                    "Race complete: primary=%s alternatives=%s failed=%d",
                    primary,
                    alternatives,
                    len(failures),
                )
                await self._track_usage("generation:success")
                yield CompleteEvent(
                    summary=RaceSummary(
                        primary=primary,
                        alternatives=alternatives,
                        failed=[f.provider for f in failures],
                    )
                )
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
