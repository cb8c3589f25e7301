"""Free mirror video search (Invidious and Piped front-ends).

Mirrors need no API key and have no quota. Individual instances are often
slow or down, so a few randomly chosen instances of both families are raced
and the first well-formed hit wins; the rest are cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from schemas.media import DEFAULT_DURATION_SECONDS


logger = logging.getLogger(__name__)

MirrorFamily = Literal["mirror-a", "mirror-b"]

_WATCH_ID = re.compile(r"/watch\?v=([^&]+)")


def build_search_query(artist: str, title: str) -> str:
    return f"{artist} - {title} official audio"


def default_thumbnail(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/mqdefault.jpg"


def _duration(value: Any) -> int:
    """Positive whole seconds, else the default (live streams report -1)."""
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return DEFAULT_DURATION_SECONDS
    return seconds if seconds > 0 else DEFAULT_DURATION_SECONDS


def _thumbnail_url(value: Any) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    if value.startswith("//"):
        return f"https:{value}"
    return value


@dataclass(frozen=True)
class MirrorHit:
    video_id: str
    title: str
    thumbnail: str
    duration_seconds: int
    author: str | None
    family: MirrorFamily


def parse_invidious_results(payload: Any) -> MirrorHit | None:
    """Pick the first video item of an Invidious `/api/v1/search` payload."""
    if not isinstance(payload, list):
        return None
    video = next(
        (i for i in payload if isinstance(i, dict) and i.get("type") == "video"),
        None,
    )
    if video is None or not video.get("videoId"):
        return None

    video_id = str(video["videoId"])
    thumbnails = [t for t in video.get("videoThumbnails") or [] if isinstance(t, dict)]
    by_quality = {t.get("quality"): _thumbnail_url(t.get("url")) for t in thumbnails}
    thumbnail = (
        by_quality.get("medium")
        or by_quality.get("high")
        or next((u for u in by_quality.values() if u), None)
        or default_thumbnail(video_id)
    )

    return MirrorHit(
        video_id=video_id,
        title=str(video.get("title") or ""),
        thumbnail=thumbnail,
        duration_seconds=_duration(video.get("lengthSeconds")),
        author=video.get("author"),
        family="mirror-a",
    )


def parse_piped_results(payload: Any) -> MirrorHit | None:
    """Pick the first stream item of a Piped `/search` payload."""
    if not isinstance(payload, dict):
        return None
    items = payload.get("items") or []
    video = next(
        (i for i in items if isinstance(i, dict) and i.get("type") == "stream"),
        None,
    )
    if video is None:
        return None

    url = str(video.get("url") or "")
    match = _WATCH_ID.search(url)
    video_id = match.group(1) if match else url.rstrip("/").rsplit("/", 1)[-1]
    if not video_id:
        return None

    return MirrorHit(
        video_id=video_id,
        title=str(video.get("title") or ""),
        thumbnail=_thumbnail_url(video.get("thumbnail")) or default_thumbnail(video_id),
        duration_seconds=_duration(video.get("duration")),
        author=video.get("uploaderName"),
        family="mirror-b",
    )


class FreeMirrorResolver:
    """Race a random subset of Invidious and Piped instances."""

    def __init__(
        self,
        *,
        invidious_instances: Sequence[str],
        piped_instances: Sequence[str],
        instances_per_family: int = 2,
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.invidious_instances = list(invidious_instances)
        self.piped_instances = list(piped_instances)
        self.instances_per_family = instances_per_family
        self.timeout = timeout
        self._client = client
        self._rng = rng or random.Random()

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    def _pick(self, instances: list[str]) -> list[str]:
        count = min(self.instances_per_family, len(instances))
        return self._rng.sample(instances, count)

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        family: MirrorFamily,
        instance: str,
        query: str,
    ) -> MirrorHit | None:
        if family == "mirror-a":
            url = f"{instance}/api/v1/search"
            params = {"q": query, "type": "video", "sort_by": "relevance"}
        else:
            url = f"{instance}/search"
            params = {"q": query, "filter": "music_songs"}

        try:
            async with asyncio.timeout(self.timeout):
                response = await client.get(url, params=params)
            if response.status_code != 200:
                logger.info("Mirror %s returned %s", instance, response.status_code)
                return None
            payload = response.json()
            if family == "mirror-a":
                return parse_invidious_results(payload)
            return parse_piped_results(payload)
        except TimeoutError:
            logger.info("Mirror %s timed out", instance)
        except httpx.HTTPError as exc:
            logger.info("Mirror %s request failed: %s", instance, type(exc).__name__)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.info("Mirror %s returned malformed payload: %s", instance, exc)
        return None

    async def search(self, artist: str, title: str) -> MirrorHit | None:
        """Return the first well-formed hit from any raced instance."""
        query = build_search_query(artist, title)
        targets: list[tuple[MirrorFamily, str]] = [
            ("mirror-a", i) for i in self._pick(self.invidious_instances)
        ] + [("mirror-b", i) for i in self._pick(self.piped_instances)]
        if not targets:
            return None

        async with self._http() as client:
            tasks = [
                asyncio.create_task(self._fetch(client, family, instance, query))
                for family, instance in targets
            ]
            try:
                for next_done in asyncio.as_completed(tasks):
                    hit = await next_done
                    if hit is not None:
                        logger.info(
                            "Mirror hit (%s) for %s: %s", hit.family, query, hit.video_id
                        )
                        return hit
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("No mirror result for %s", query)
        return None
