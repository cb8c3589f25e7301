"""Album artwork and duration lookup via the iTunes Search API.

Free, keyless, generous limits. Never yields a playable video id; it provides
artwork and duration only.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger(__name__)

ITUNES_SEARCH_ENDPOINT = "https://itunes.apple.com/search"
CATALOG_RESULT_LIMIT = 5


@dataclass(frozen=True)
class CatalogArt:
    thumbnail: str
    thumbnail_small: str
    album: str | None = None
    genre: str | None = None
    duration_seconds: int | None = None


def _contains_either(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a in b or b in a


def pick_best_match(
    results: list[dict[str, Any]], artist: str, title: str
) -> dict[str, Any] | None:
    """First result whose artist and title contain each other, else the first."""
    if not results:
        return None
    want_artist = artist.lower().strip()
    want_title = title.lower().strip()
    for result in results:
        got_artist = str(result.get("artistName") or "").lower()
        got_title = str(result.get("trackName") or "").lower()
        if _contains_either(got_artist, want_artist) and _contains_either(
            got_title, want_title
        ):
            return result
    return results[0]


def parse_catalog_result(match: dict[str, Any]) -> CatalogArt | None:
    artwork = match.get("artworkUrl100")
    if not artwork:
        return None
    millis = match.get("trackTimeMillis")
    return CatalogArt(
        thumbnail=artwork.replace("100x100", "600x600"),
        thumbnail_small=artwork.replace("100x100", "200x200"),
        album=match.get("collectionName"),
        genre=match.get("primaryGenreName"),
        duration_seconds=round(millis / 1000) if millis else None,
    )


class CatalogArtResolver:
    def __init__(
        self,
        *,
        timeout: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout
        self._client = client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def search(self, artist: str, title: str) -> CatalogArt | None:
        """Look up artwork for one track; soft misses return None."""
        term = f"{artist} {title}".strip()
        params = {
            "term": term,
            "media": "music",
            "entity": "song",
            "limit": CATALOG_RESULT_LIMIT,
        }
        try:
            async with self._http() as client:
                async with asyncio.timeout(self.timeout):
                    response = await client.get(ITUNES_SEARCH_ENDPOINT, params=params)
            if response.status_code != 200:
                logger.info("Catalog search returned %s", response.status_code)
                return None
            results = response.json().get("results") or []
            match = pick_best_match(results, artist, title)
            if match is None:
                logger.info("No catalog results for: %s", term)
                return None
            return parse_catalog_result(match)
        except TimeoutError:
            logger.info("Catalog search timed out for: %s - %s", artist, title)
        except httpx.HTTPError as exc:
            logger.warning(
                "Catalog search request failed: %s - %s",
                type(exc).__name__,
                str(exc),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Catalog search parse failed: %s - %s",
                type(exc).__name__,
                str(exc),
            )
        return None

    async def search_many(
        self, tracks: Iterable[tuple[str, str]], *, concurrency: int = 5
    ) -> dict[tuple[str, str], CatalogArt]:
        """Look up many tracks with bounded concurrency; misses are absent."""
        pairs = list(dict.fromkeys(tracks))
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _one(pair: tuple[str, str]) -> tuple[tuple[str, str], CatalogArt | None]:
            async with semaphore:
                return pair, await self.search(*pair)

        found = await asyncio.gather(*(_one(p) for p in pairs))
        results = {pair: art for pair, art in found if art is not None}
        logger.info("Catalog batch search: %d/%d found", len(results), len(pairs))
        return results
