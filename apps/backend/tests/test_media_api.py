"""Media lookup and quota endpoint tests."""

from __future__ import annotations

from datetime import date

import pytest

from dependencies.services import (
    get_media_cache,
    get_media_resolver,
    get_quota_ledger,
    get_usage_tracker,
)
from main import app
from schemas.media import MediaReference
from services.media.cache import MediaCache
from services.media.quota import QuotaLedger, UsageTracker


FOUND = MediaReference(
    video_id="abc123",
    thumbnail="https://art/600x600.jpg",
    duration_seconds=222,
    provenance="mirror-a",
)
CATALOG_ONLY = MediaReference(
    video_id="", thumbnail="https://art/600x600.jpg", provenance="catalog"
)


class _Resolver:
    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []

    async def resolve(self, artist, title, *, allow_paid=False, **kwargs):
        self.calls.append(("resolve", allow_paid))
        if artist == "Known":
            return FOUND
        return None

    async def resolve_many(self, tracks, *, allow_paid=False, **kwargs):
        pairs = list(tracks)
        self.calls.append(("resolve_many", allow_paid))
        results = {}
        for artist, title in pairs:
            if artist == "Known":
                results[(artist, title)] = FOUND
            elif artist == "ArtOnly":
                results[(artist, title)] = CATALOG_ONLY
        return results


@pytest.fixture
def resolver() -> _Resolver:
    fake = _Resolver()
    app.dependency_overrides[get_media_resolver] = lambda: fake
    return fake


class TestMediaSearch:
    @pytest.mark.asyncio
    async def test_single_track_found(self, async_client, resolver) -> None:
        resp = await async_client.post(
            "/api/v1/media/search", json={"artist": "Known", "title": "Song"}
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Media found"
        assert body["data"]["tracks"][0]["media"]["video_id"] == "abc123"
        assert body["data"]["with_video_id"] == 1
        assert resolver.calls == [("resolve", False)]

    @pytest.mark.asyncio
    async def test_single_track_miss_returns_empty_reference(
        self, async_client, resolver
    ) -> None:
        resp = await async_client.post(
            "/api/v1/media/search",
            json={"artist": "Nobody", "title": "Nothing", "allow_paid": True},
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["message"] == "No media found"
        assert body["data"]["found"] == 0
        assert body["data"]["tracks"][0]["media"] == {
            "video_id": "",
            "thumbnail": "",
            "duration_seconds": 0,
            "provenance": None,
        }
        assert resolver.calls == [("resolve", True)]

    @pytest.mark.asyncio
    async def test_batch(self, async_client, resolver) -> None:
        resp = await async_client.post(
            "/api/v1/media/search",
            json={
                "tracks": [
                    {"artist": "Known", "title": "One"},
                    {"artist": "ArtOnly", "title": "Two"},
                    {"artist": "Nobody", "title": "Three"},
                ]
            },
        )

        data = resp.json()["data"]
        assert data["total"] == 3
        assert data["found"] == 2
        assert data["with_video_id"] == 1
        assert data["tracks"][2]["media"] is None
        assert resolver.calls == [("resolve_many", False)]

    @pytest.mark.asyncio
    async def test_missing_artist_and_title_is_bad_request(
        self, async_client, resolver
    ) -> None:
        resp = await async_client.post("/api/v1/media/search", json={"artist": "Only"})

        assert resp.status_code == 400
        assert resp.json()["error"]["type"] == "http_error"
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_batch_limit(self, async_client, resolver) -> None:
        tracks = [{"artist": "A", "title": str(i)} for i in range(101)]
        resp = await async_client.post("/api/v1/media/search", json={"tracks": tracks})
        assert resp.status_code == 422


class TestQuotaEndpoint:
    @pytest.mark.asyncio
    async def test_reports_pool_usage_and_cache(self, async_client, fake_redis) -> None:
        today = date(2026, 3, 14)
        fake_redis.store["quota:youtube:2026-03-14"] = "300"
        fake_redis.store["usage:2026-03-14:ai:claude:count"] = "4"
        app.dependency_overrides[get_quota_ledger] = lambda: QuotaLedger(
            fake_redis, clock=lambda: today
        )
        app.dependency_overrides[get_usage_tracker] = lambda: UsageTracker(
            fake_redis, clock=lambda: today
        )
        app.dependency_overrides[get_media_cache] = lambda: MediaCache(fake_redis)

        resp = await async_client.get("/api/v1/media/quota")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["paid_api"]["used"] == 300
        assert data["paid_api"]["remaining"] == 9700
        assert data["usage"]["totals"]["ai_calls"] == 4
        assert data["cache"] == {"enabled": True, "backend_key_count": 2}

    @pytest.mark.asyncio
    async def test_without_backend(self, async_client) -> None:
        app.dependency_overrides[get_quota_ledger] = lambda: QuotaLedger(None)
        app.dependency_overrides[get_usage_tracker] = lambda: UsageTracker(None)
        app.dependency_overrides[get_media_cache] = lambda: MediaCache(None)

        resp = await async_client.get("/api/v1/media/quota")

        data = resp.json()["data"]
        assert data["paid_api"]["used"] == 0
        assert data["usage"] is None
        assert data["cache"]["enabled"] is False
