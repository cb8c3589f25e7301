"""Tests for the quota-tracked paid video API client."""

from __future__ import annotations

from datetime import date

import httpx
import pytest

from services.media.paid_api import (
    PaidVideoClient,
    parse_iso8601_duration,
    parse_search_item,
)
from services.media.quota import QuotaLedger, UsageTracker


DAY = date(2026, 3, 14)
QUOTA_KEY = "quota:youtube:2026-03-14"

SEARCH_PAYLOAD = {
    "items": [
        {
            "id": {"kind": "youtube#video", "videoId": "yt789"},
            "snippet": {
                "title": "Artist - Song",
                "thumbnails": {"high": {"url": "https://i.ytimg.com/vi/yt789/hq.jpg"}},
            },
        }
    ]
}

VIDEOS_PAYLOAD = {"items": [{"contentDetails": {"duration": "PT4M13S"}}]}


def _handler(request: httpx.Request) -> httpx.Response:
    assert request.url.params["key"] == "test-key"
    if request.url.path.endswith("/search"):
        return httpx.Response(200, json=SEARCH_PAYLOAD)
    return httpx.Response(200, json=VIDEOS_PAYLOAD)


class TestParsing:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("PT4M13S", 253),
            ("PT1H2M3S", 3723),
            ("PT45S", 45),
            ("PT3M", 180),
            ("P1D", 240),
            ("", 240),
            (None, 240),
        ],
    )
    def test_iso8601_duration(self, value, expected: int) -> None:
        assert parse_iso8601_duration(value) == expected

    def test_search_item(self) -> None:
        hit = parse_search_item(SEARCH_PAYLOAD)
        assert hit is not None
        assert hit.video_id == "yt789"
        assert hit.thumbnail.endswith("hq.jpg")

    def test_empty_search(self) -> None:
        assert parse_search_item({"items": []}) is None


class TestPaidSearch:
    @pytest.mark.asyncio
    async def test_success_debits_quota_and_tracks_usage(self, fake_redis, mock_http) -> None:
        ledger = QuotaLedger(fake_redis, clock=lambda: DAY)
        usage = UsageTracker(fake_redis, clock=lambda: DAY)

        async with mock_http(_handler) as client:
            paid = PaidVideoClient("test-key", ledger, client=client, usage=usage)
            hit = await paid.search("Artist", "Song")

        assert hit is not None
        assert hit.video_id == "yt789"
        assert hit.duration_seconds == 253
        assert fake_redis.store[QUOTA_KEY] == "101"
        assert fake_redis.store["usage:2026-03-14:youtube:search:count"] == "1"
        assert fake_redis.store["usage:2026-03-14:youtube:videos:count"] == "1"

    @pytest.mark.asyncio
    async def test_missing_key_skips_network(self, fake_redis, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with mock_http(handler) as client:
            paid = PaidVideoClient(None, QuotaLedger(fake_redis), client=client)
            assert await paid.search("A", "B") is None

    @pytest.mark.asyncio
    async def test_insufficient_headroom_skips_call(self, fake_redis, mock_http) -> None:
        fake_redis.store[QUOTA_KEY] = "9950"
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=SEARCH_PAYLOAD)

        async with mock_http(handler) as client:
            paid = PaidVideoClient(
                "test-key", QuotaLedger(fake_redis, clock=lambda: DAY), client=client
            )
            assert await paid.search("A", "B") is None

        assert calls == []
        assert fake_redis.store[QUOTA_KEY] == "9950"

    @pytest.mark.asyncio
    async def test_forbidden_does_not_debit(self, fake_redis, mock_http) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": {"reason": "quotaExceeded"}})

        async with mock_http(handler) as client:
            paid = PaidVideoClient(
                "test-key", QuotaLedger(fake_redis, clock=lambda: DAY), client=client
            )
            assert await paid.search("A", "B") is None

        assert QUOTA_KEY not in fake_redis.store

    @pytest.mark.asyncio
    async def test_duration_lookup_skipped_without_headroom(
        self, fake_redis, mock_http
    ) -> None:
        # exactly enough for one search, nothing left for the videos call
        fake_redis.store[QUOTA_KEY] = "9900"

        async with mock_http(_handler) as client:
            paid = PaidVideoClient(
                "test-key", QuotaLedger(fake_redis, clock=lambda: DAY), client=client
            )
            hit = await paid.search("Artist", "Song")

        assert hit is not None
        assert hit.duration_seconds == 240
        assert fake_redis.store[QUOTA_KEY] == "10000"
