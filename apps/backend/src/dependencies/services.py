"""Service dependencies for the generation and media endpoints.

Services are built once per process from settings and the shared key/value
backend. Endpoints receive them through FastAPI `Depends` so tests can swap
any of them via `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.config import get_settings
from core.kv import get_kv_backend
from schemas.generation import ProviderId
from services.ai.agents import PydanticAITrackGenerator
from services.ai.model_factory import configured_providers
from services.ai.race import RaceOrchestrator
from services.media.cache import MediaCache
from services.media.catalog import CatalogArtResolver
from services.media.mirrors import FreeMirrorResolver
from services.media.paid_api import PaidVideoClient
from services.media.quota import QuotaLedger, UsageTracker
from services.media.resolver import MediaResolutionService


@lru_cache
def get_usage_tracker() -> UsageTracker:
    return UsageTracker(get_kv_backend())


@lru_cache
def get_quota_ledger() -> QuotaLedger:
    settings = get_settings()
    return QuotaLedger(
        get_kv_backend(),
        daily_limit=settings.PAID_API_DAILY_QUOTA,
        counter_ttl_seconds=settings.QUOTA_COUNTER_TTL_SECONDS,
    )


@lru_cache
def get_media_cache() -> MediaCache:
    return MediaCache(
        get_kv_backend(), ttl_seconds=get_settings().MEDIA_CACHE_TTL_SECONDS
    )


@lru_cache
def get_media_resolver() -> MediaResolutionService:
    settings = get_settings()
    mirrors = FreeMirrorResolver(
        invidious_instances=settings.INVIDIOUS_INSTANCES,
        piped_instances=settings.PIPED_INSTANCES,
        instances_per_family=settings.MIRROR_INSTANCES_PER_FAMILY,
        timeout=settings.MIRROR_TIMEOUT_SECONDS,
    )
    paid = PaidVideoClient(
        settings.YOUTUBE_API_KEY,
        get_quota_ledger(),
        timeout=settings.PAID_API_TIMEOUT_SECONDS,
        usage=get_usage_tracker(),
    )
    return MediaResolutionService(
        get_media_cache(),
        mirrors,
        CatalogArtResolver(timeout=settings.CATALOG_TIMEOUT_SECONDS),
        paid,
        concurrency=settings.RESOLVE_CONCURRENCY,
    )


def get_track_generators() -> dict[ProviderId, PydanticAITrackGenerator]:
    """One generator per provider with an API key; others stay unregistered."""
    return {p: PydanticAITrackGenerator(p) for p in configured_providers()}


def get_race_orchestrator(
    resolver: Annotated[MediaResolutionService, Depends(get_media_resolver)],
    usage: Annotated[UsageTracker, Depends(get_usage_tracker)],
) -> RaceOrchestrator:
    settings = get_settings()
    return RaceOrchestrator(
        get_track_generators(),
        resolver,
        enrichment_batch_size=settings.ENRICHMENT_BATCH_SIZE,
        enrichment_timeout=settings.ENRICHMENT_TIMEOUT_SECONDS,
        provider_timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        usage_tracker=usage,
    )


MediaResolver = Annotated[MediaResolutionService, Depends(get_media_resolver)]
Orchestrator = Annotated[RaceOrchestrator, Depends(get_race_orchestrator)]
Ledger = Annotated[QuotaLedger, Depends(get_quota_ledger)]
Usage = Annotated[UsageTracker, Depends(get_usage_tracker)]
Cache = Annotated[MediaCache, Depends(get_media_cache)]
