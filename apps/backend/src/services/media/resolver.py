"""Tiered media resolution: cache, free mirrors, catalog, then paid API.

The tiers are tried cheapest first. Only playable results (mirror or paid)
are written back to the cache. Catalog-only results carry artwork and a
duration but no video id, and are returned without being cached.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from schemas.media import DEFAULT_DURATION_SECONDS, MediaReference
from services.media.cache import MediaCache
from services.media.catalog import CatalogArt, CatalogArtResolver
from services.media.mirrors import FreeMirrorResolver
from services.media.paid_api import PaidVideoClient


logger = logging.getLogger(__name__)

TrackKey = tuple[str, str]


def _usable_hit(
    media: MediaReference, *, require_playable: bool, allow_paid: bool
) -> bool:
    # A catalog-only hit cannot satisfy callers that want (or may pay for) an id
    return media.is_playable or not (require_playable or allow_paid)


class MediaResolutionService:
    def __init__(
        self,
        cache: MediaCache,
        mirrors: FreeMirrorResolver,
        catalog: CatalogArtResolver,
        paid: PaidVideoClient | None = None,
        *,
        concurrency: int = 2,
    ) -> None:
        self.cache = cache
        self.mirrors = mirrors
        self.catalog = catalog
        self.paid = paid
        self.concurrency = max(1, concurrency)

    async def _resolve_uncached(
        self,
        artist: str,
        title: str,
        *,
        prefer_album_art: bool,
        require_playable: bool,
        allow_paid: bool,
    ) -> MediaReference | None:
        hit = await self.mirrors.search(artist, title)
        if hit is not None:
            thumbnail = hit.thumbnail
            if prefer_album_art:
                album = await self.catalog.search(artist, title)
                if album is not None and album.thumbnail:
                    thumbnail = album.thumbnail
            return MediaReference(
                video_id=hit.video_id,
                thumbnail=thumbnail,
                duration_seconds=hit.duration_seconds,
                provenance=hit.family,
            )

        art: CatalogArt | None = None
        if not require_playable or allow_paid:
            art = await self.catalog.search(artist, title)

        if allow_paid and self.paid is not None:
            paid_hit = await self.paid.search(artist, title)
            if paid_hit is not None:
                thumbnail = paid_hit.thumbnail
                if prefer_album_art and art is not None and art.thumbnail:
                    thumbnail = art.thumbnail
                return MediaReference(
                    video_id=paid_hit.video_id,
                    thumbnail=thumbnail,
                    duration_seconds=paid_hit.duration_seconds,
                    provenance="paid-api",
                )

        if not require_playable and art is not None and art.thumbnail:
            return MediaReference(
                video_id="",
                thumbnail=art.thumbnail,
                duration_seconds=art.duration_seconds or DEFAULT_DURATION_SECONDS,
                provenance="catalog",
            )

        logger.info("No media found for: %s - %s", artist, title)
        return None

    async def resolve(
        self,
        artist: str,
        title: str,
        *,
        prefer_album_art: bool = True,
        require_playable: bool = False,
        allow_paid: bool = False,
    ) -> MediaReference | None:
        """Resolve one track through the tiers; None when every tier misses."""
        cached = await self.cache.get(artist, title)
        if cached is not None and _usable_hit(
            cached, require_playable=require_playable, allow_paid=allow_paid
        ):
            return cached

        media = await self._resolve_uncached(
            artist,
            title,
            prefer_album_art=prefer_album_art,
            require_playable=require_playable,
            allow_paid=allow_paid,
        )
        if media is not None and media.is_playable:
            await self.cache.put(artist, title, media)
        return media

    async def resolve_many(
        self,
        tracks: Iterable[TrackKey],
        *,
        prefer_album_art: bool = True,
        require_playable: bool = False,
        allow_paid: bool = False,
    ) -> dict[TrackKey, MediaReference]:
        """Resolve a batch with one bulk cache read and one bulk cache write.

        Misses are resolved with bounded concurrency. Tracks that no tier
        could resolve are absent from the result.
        """
        pairs = list(dict.fromkeys(tracks))
        if not pairs:
            return {}

        results: dict[TrackKey, MediaReference] = {}
        for pair, media in (await self.cache.get_many(pairs)).items():
            if _usable_hit(media, require_playable=require_playable, allow_paid=allow_paid):
                results[pair] = media
        misses = [p for p in pairs if p not in results]
        logger.info(
            "Resolving batch: %d cache hits, %d need lookup", len(results), len(misses)
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(pair: TrackKey) -> tuple[TrackKey, MediaReference | None]:
            async with semaphore:
                try:
                    media = await self._resolve_uncached(
                        *pair,
                        prefer_album_art=prefer_album_art,
                        require_playable=require_playable,
                        allow_paid=allow_paid,
                    )
                except Exception as e:
                    logger.warning("Media lookup failed for %s - %s: %s", *pair, e)
                    media = None
                return pair, media

        resolved = await asyncio.gather(*(_one(p) for p in misses))
        to_cache: list[tuple[str, str, MediaReference]] = []
        for pair, media in resolved:
            if media is None:
                continue
            results[pair] = media
            if media.is_playable:
                to_cache.append((pair[0], pair[1], media))

        await self.cache.put_many(to_cache)
        logger.info("Batch complete: %d/%d found", len(results), len(pairs))
        return results
