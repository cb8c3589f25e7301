"""Media lookup cache backed by the key/value store.

Entries live under `video:<artist>:<title>` with both parts normalized
(lowercased, non-word characters removed, whitespace trimmed) and expire after
the configured TTL; expiry is the only eviction. An entry is always replaced
whole. Entries without a playable id are written set-if-absent so they never
downgrade a playable entry.

Every operation is a miss or a no-op when the backend is absent or failing.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from schemas.media import CacheEntry, MediaReference


if TYPE_CHECKING:
    from upstash_redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS: int = 30 * 24 * 60 * 60

_NON_WORD = re.compile(r"[^\w\s]")

# Provenances that only ever carry a playable id
_PLAYABLE_SOURCES = {"mirror-a", "mirror-b", "paid-api"}


def normalize_part(value: str) -> str:
    return _NON_WORD.sub("", value.lower()).strip()


def cache_key(artist: str, title: str) -> str:
    """Build the cache key; equivalent spellings map to one key."""
    return f"video:{normalize_part(artist)}:{normalize_part(title)}"


class CacheStats(BaseModel):
    enabled: bool
    # Every key in the backend, quota and usage counters included.
    backend_key_count: int | None = None


class MediaCache:
    def __init__(
        self, redis: Redis | None, *, ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    ) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    @staticmethod
    def _decode(key: str, raw: object) -> MediaReference | None:
        if raw is None:
            return None
        try:
            if isinstance(raw, dict):
                entry = CacheEntry.model_validate(raw)
            else:
                entry = CacheEntry.model_validate_json(str(raw))
        except ValidationError as e:
            logger.warning("Discarding malformed cache entry %s: %s", key, e)
            return None
        return entry.to_reference()

    def _entry(self, artist: str, title: str, media: MediaReference) -> CacheEntry | None:
        """Build the stored entry, or None when the write must be refused."""
        if media.provenance is None or media.provenance == "cache":
            return None
        if not media.video_id and media.provenance in _PLAYABLE_SOURCES:
            logger.warning(
                "Refusing to cache %s result without a video id: %s - %s",
                media.provenance,
                artist,
                title,
            )
            return None
        return CacheEntry(
            key=cache_key(artist, title),
            video_id=media.video_id,
            thumbnail=media.thumbnail,
            duration_seconds=media.duration_seconds,
            title=title,
            source=media.provenance,
            cached_at=time.time(),
        )

    async def get(self, artist: str, title: str) -> MediaReference | None:
        if self._redis is None:
            return None
        key = cache_key(artist, title)
        try:
            raw = await self._redis.get(key)
        except Exception as e:
            logger.warning("Media cache read failed for %s: %s", key, e)
            return None
        media = self._decode(key, raw)
        logger.debug("Media cache %s: %s", "HIT" if media else "MISS", key)
        return media

    async def put(self, artist: str, title: str, media: MediaReference) -> None:
        if self._redis is None:
            return
        entry = self._entry(artist, title, media)
        if entry is None:
            return
        try:
            if entry.video_id:
                await self._redis.set(
                    entry.key, entry.model_dump_json(), ex=self.ttl_seconds
                )
            else:
                await self._redis.set(
                    entry.key, entry.model_dump_json(), ex=self.ttl_seconds, nx=True
                )
        except Exception as e:
            logger.warning("Media cache write failed for %s: %s", entry.key, e)

    async def get_many(
        self, tracks: Iterable[tuple[str, str]]
    ) -> dict[tuple[str, str], MediaReference]:
        """Bulk lookup in a single round trip; misses are absent."""
        pairs = list(dict.fromkeys(tracks))
        if self._redis is None or not pairs:
            return {}
        keys = [cache_key(artist, title) for artist, title in pairs]
        try:
            values = await self._redis.mget(*keys)
        except Exception as e:
            logger.warning("Media cache bulk read failed: %s", e)
            return {}

        results: dict[tuple[str, str], MediaReference] = {}
        for pair, key, raw in zip(pairs, keys, values, strict=False):
            media = self._decode(key, raw)
            if media is not None:
                results[pair] = media
        logger.info("Media cache bulk get: %d/%d hits", len(results), len(pairs))
        return results

    async def put_many(
        self, items: Iterable[tuple[str, str, MediaReference]]
    ) -> None:
        """Bulk write in a single pipeline."""
        if self._redis is None:
            return
        entries = [
            entry
            for artist, title, media in items
            if (entry := self._entry(artist, title, media)) is not None
        ]
        if not entries:
            return
        try:
            pipe = self._redis.pipeline()
            for entry in entries:
                if entry.video_id:
                    pipe.set(entry.key, entry.model_dump_json(), ex=self.ttl_seconds)
                else:
                    pipe.set(
                        entry.key,
                        entry.model_dump_json(),
                        ex=self.ttl_seconds,
                        nx=True,
                    )
            await pipe.exec()
            logger.info("Media cache bulk stored %d entries", len(entries))
        except Exception as e:
            logger.warning("Media cache bulk write failed: %s", e)

    async def stats(self) -> CacheStats:
        if self._redis is None:
            return CacheStats(enabled=False)
        try:
            return CacheStats(enabled=True, backend_key_count=await self._redis.dbsize())
        except Exception as e:
            logger.warning("Media cache stats failed: %s", e)
            return CacheStats(enabled=True)
