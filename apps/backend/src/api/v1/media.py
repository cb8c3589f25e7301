"""Media lookup and quota reporting endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from core.ratelimit import check_rate_limit
from dependencies.services import Cache, Ledger, MediaResolver, Usage
from schemas.api import ApiResponse
from schemas.media import (
    MediaReference,
    MediaSearchRequest,
    MediaSearchResult,
    QuotaStats,
    ResolvedTrack,
)
from services.media.cache import CacheStats
from services.media.quota import DailyUsageReport


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])


class QuotaReport(BaseModel):
    paid_api: QuotaStats
    usage: DailyUsageReport | None = None
    cache: CacheStats


def _summarize(tracks: list[ResolvedTrack]) -> MediaSearchResult:
    return MediaSearchResult(
        tracks=tracks,
        total=len(tracks),
        found=sum(1 for t in tracks if t.media is not None),
        with_video_id=sum(1 for t in tracks if t.media is not None and t.media.is_playable),
    )


@router.post(
    "/search",
    response_model=ApiResponse[MediaSearchResult],
    dependencies=[Depends(check_rate_limit)],
)
async def search_media(
    payload: MediaSearchRequest, resolver: MediaResolver
) -> ApiResponse[MediaSearchResult]:
    """Resolve one track (`artist` + `title`) or a batch (`tracks`).

    The paid API is only consulted when `allow_paid` is set. A single-track
    miss returns an empty reference; batch misses carry `media: null`.
    """
    if payload.tracks:
        pairs = [(t.artist, t.title) for t in payload.tracks]
        resolved = await resolver.resolve_many(pairs, allow_paid=payload.allow_paid)
        result = _summarize(
            [
                ResolvedTrack(artist=a, title=t, media=resolved.get((a, t)))
                for a, t in pairs
            ]
        )
        return ApiResponse(
            success=True,
            data=result,
            message=f"Resolved {result.found} of {result.total} tracks",
        )

    if not payload.artist or not payload.title:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide artist and title, or a tracks list",
        )

    media = await resolver.resolve(
        payload.artist, payload.title, allow_paid=payload.allow_paid
    )
    if media is None:
        logger.info("No media found for %s - %s", payload.artist, payload.title)
    track = ResolvedTrack(
        artist=payload.artist,
        title=payload.title,
        media=media or MediaReference.empty(),
    )
    return ApiResponse(
        success=True,
        data=MediaSearchResult(
            tracks=[track],
            total=1,
            found=int(media is not None),
            with_video_id=int(media is not None and media.is_playable),
        ),
        message="Media found" if media else "No media found",
    )


@router.get("/quota", response_model=ApiResponse[QuotaReport])
async def get_quota(
    ledger: Ledger, usage: Usage, cache: Cache
) -> ApiResponse[QuotaReport]:
    """Paid API pool usage, today's call counters and cache state."""
    report = QuotaReport(
        paid_api=await ledger.stats("youtube"),
        usage=await usage.daily_report(),
        cache=await cache.stats(),
    )
    return ApiResponse(success=True, data=report, message="Quota report")
