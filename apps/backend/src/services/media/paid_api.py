"""YouTube Data API v3 client, the quota-tracked last-resort video search.

Only used when a caller explicitly allows it. The quota ledger is checked
before each call and debited only after a successful response.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from schemas.media import DEFAULT_DURATION_SECONDS
from services.media.mirrors import build_search_query
from services.media.quota import QuotaLedger, UsageTracker


logger = logging.getLogger(__name__)

YOUTUBE_SEARCH_ENDPOINT = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_VIDEOS_ENDPOINT = "https://www.googleapis.com/youtube/v3/videos"

_ISO8601_DURATION = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_iso8601_duration(value: str | None, default: int = DEFAULT_DURATION_SECONDS) -> int:
    """Convert an ISO-8601 duration such as `PT4M13S` to seconds."""
    if not value:
        return default
    match = _ISO8601_DURATION.match(value)
    if not match or not any(match.groups()):
        return default
    hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


@dataclass(frozen=True)
class PaidVideoHit:
    video_id: str
    title: str
    thumbnail: str
    duration_seconds: int


def parse_search_item(payload: dict[str, Any]) -> PaidVideoHit | None:
    items = payload.get("items") or []
    if not items:
        return None
    item = items[0]
    video_id = (item.get("id") or {}).get("videoId")
    if not video_id:
        return None
    snippet = item.get("snippet") or {}
    thumbnails = snippet.get("thumbnails") or {}
    thumbnail = (thumbnails.get("high") or thumbnails.get("default") or {}).get(
        "url", ""
    )
    return PaidVideoHit(
        video_id=str(video_id),
        title=str(snippet.get("title") or ""),
        thumbnail=thumbnail,
        duration_seconds=DEFAULT_DURATION_SECONDS,
    )


class PaidVideoClient:
    def __init__(
        self,
        api_key: str | None,
        ledger: QuotaLedger,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        usage: UsageTracker | None = None,
    ) -> None:
        self.api_key = api_key
        self.ledger = ledger
        self.timeout = timeout
        self._client = client
        self._usage = usage

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def _get(
        self, client: httpx.AsyncClient, url: str, params: dict[str, Any]
    ) -> httpx.Response:
        async with asyncio.timeout(self.timeout):
            return await client.get(url, params={**params, "key": self.api_key})

    async def _record(self, category: str) -> None:
        await self.ledger.consume(category)
        if self._usage is not None:
            await self._usage.track(category)

    async def _fetch_duration(self, client: httpx.AsyncClient, video_id: str) -> int:
        check = await self.ledger.check_quota("youtube:videos")
        if not check.available:
            return DEFAULT_DURATION_SECONDS
        response = await self._get(
            client, YOUTUBE_VIDEOS_ENDPOINT, {"part": "contentDetails", "id": video_id}
        )
        if response.status_code != 200:
            logger.info("Paid API videos lookup returned %s", response.status_code)
            return DEFAULT_DURATION_SECONDS
        await self._record("youtube:videos")
        items = response.json().get("items") or []
        if not items:
            return DEFAULT_DURATION_SECONDS
        return parse_iso8601_duration((items[0].get("contentDetails") or {}).get("duration"))

    async def search(self, artist: str, title: str) -> PaidVideoHit | None:
        """Search one track; None on missing key, no headroom or any soft miss."""
        if not self.configured:
            return None

        check = await self.ledger.check_quota("youtube:search")
        if not check.available:
            logger.warning(
                "Paid API quota headroom insufficient (remaining=%d, cost=%d); skipping",
                check.remaining,
                check.cost,
            )
            return None

        query = build_search_query(artist, title)
        try:
            async with self._http() as client:
                response = await self._get(
                    client,
                    YOUTUBE_SEARCH_ENDPOINT,
                    {"part": "snippet", "type": "video", "maxResults": 1, "q": query},
                )
                if response.status_code == 403:
                    logger.warning("Paid API returned 403: daily quota exhausted")
                    return None
                if response.status_code != 200:
                    logger.info("Paid API search returned %s", response.status_code)
                    return None
                await self._record("youtube:search")

                hit = parse_search_item(response.json())
                if hit is None:
                    logger.info("Paid API found nothing for: %s", query)
                    return None
                duration = await self._fetch_duration(client, hit.video_id)
        except TimeoutError:
            logger.info("Paid API timed out for: %s", query)
            return None
        except httpx.HTTPError as exc:
            logger.warning(
                "Paid API request failed: %s - %s", type(exc).__name__, str(exc)
            )
            return None
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Paid API parse failed: %s - %s", type(exc).__name__, str(exc)
            )
            return None

        return PaidVideoHit(
            video_id=hit.video_id,
            title=hit.title,
            thumbnail=hit.thumbnail,
            duration_seconds=duration,
        )
