"""Daily quota ledger for the paid video API and API usage counters.

The ledger keeps one increment-only counter per pool and UTC day
(`quota:<pool>:<YYYY-MM-DD>`), expiring 25 hours after its last write so a
day's counter always outlives the day. Categories carry a fixed unit cost and
share their pool's daily limit.

Both the ledger and the usage tracker fail open: with no backend, or when the
backend errors, checks report full headroom and writes become no-ops.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from core.exceptions import UnknownQuotaCategoryError
from schemas.media import QuotaCheck, QuotaStats


if TYPE_CHECKING:
    from upstash_redis.asyncio import Redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QuotaCategory:
    name: str
    pool: str
    cost: int


# YouTube Data API v3 unit costs (search.list=100, videos.list=1)
QUOTA_CATEGORIES: dict[str, QuotaCategory] = {
    "youtube:search": QuotaCategory("youtube:search", "youtube", 100),
    "youtube:videos": QuotaCategory("youtube:videos", "youtube", 1),
}

USAGE_CATEGORIES: tuple[str, ...] = (
    "ai:openai",
    "ai:claude",
    "ai:gemini",
    "youtube:search",
    "youtube:videos",
    "generation:success",
    "generation:failure",
)

USAGE_TTL_SECONDS: int = 30 * 24 * 60 * 60


def _utc_today() -> date:
    return datetime.now(UTC).date()


def _as_int(raw: Any) -> int:
    if raw is None:
        return 0
    return int(raw)


def _lookup(category: str) -> QuotaCategory:
    try:
        return QUOTA_CATEGORIES[category]
    except KeyError:
        raise UnknownQuotaCategoryError(
            f"Unknown quota category: {category}"
        ) from None


class QuotaLedger:
    """Per-day unit counter guarding the paid video API."""

    def __init__(
        self,
        redis: Redis | None,
        *,
        daily_limit: int = 10_000,
        counter_ttl_seconds: int = 25 * 60 * 60,
        clock: Callable[[], date] = _utc_today,
    ) -> None:
        self._redis = redis
        self.daily_limit = daily_limit
        self.counter_ttl_seconds = counter_ttl_seconds
        self._clock = clock

    def key_for(self, pool: str) -> str:
        return f"quota:{pool}:{self._clock().isoformat()}"

    async def _used(self, pool: str) -> int | None:
        """Units used today, or None when the backend is absent or failing."""
        if self._redis is None:
            return None
        try:
            return _as_int(await self._redis.get(self.key_for(pool)))
        except Exception as e:
            logger.warning("Quota ledger read failed for %s, failing open: %s", pool, e)
            return None

    async def check_quota(self, category: str) -> QuotaCheck:
        """Report whether one more `category` call fits in today's pool."""
        entry = _lookup(category)
        used = await self._used(entry.pool)
        if used is None:
            return QuotaCheck(
                available=True, remaining=self.daily_limit, cost=entry.cost
            )
        remaining = self.daily_limit - used
        return QuotaCheck(
            available=remaining >= entry.cost, remaining=remaining, cost=entry.cost
        )

    async def consume(self, category: str) -> None:
        """Add the category's cost to today's pool counter."""
        entry = _lookup(category)
        if self._redis is None:
            return
        key = self.key_for(entry.pool)
        try:
            tx = self._redis.multi()
            tx.incrby(key, entry.cost)
            tx.expire(key, self.counter_ttl_seconds)
            await tx.exec()
        except Exception as e:
            logger.warning("Quota ledger write failed for %s: %s", key, e)

    async def stats(self, pool: str = "youtube") -> QuotaStats:
        used = await self._used(pool) or 0
        return QuotaStats(
            pool=pool,
            used=used,
            remaining=max(0, self.daily_limit - used),
            limit=self.daily_limit,
            percent_used=round(used / self.daily_limit * 100) if self.daily_limit else 0,
        )


class UsageEntry(BaseModel):
    count: int = 0
    tokens: int | None = None


class UsageTotals(BaseModel):
    ai_calls: int = 0
    youtube_calls: int = 0
    generations_success: int = 0
    generations_failure: int = 0


class DailyUsageReport(BaseModel):
    date: str
    categories: dict[str, UsageEntry] = Field(default_factory=dict)
    totals: UsageTotals = Field(default_factory=UsageTotals)


class UsageTracker:
    """Daily per-category call and token counters for monitoring."""

    def __init__(
        self,
        redis: Redis | None,
        *,
        ttl_seconds: int = USAGE_TTL_SECONDS,
        clock: Callable[[], date] = _utc_today,
    ) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def key_prefix(category: str, day: date) -> str:
        return f"usage:{day.isoformat()}:{category}"

    async def track(self, category: str, tokens: int | None = None) -> None:
        if self._redis is None:
            return
        prefix = self.key_prefix(category, self._clock())
        try:
            pipe = self._redis.pipeline()
            pipe.incr(f"{prefix}:count")
            pipe.expire(f"{prefix}:count", self.ttl_seconds)
            if tokens is not None:
                pipe.incrby(f"{prefix}:tokens", tokens)
                pipe.expire(f"{prefix}:tokens", self.ttl_seconds)
            await pipe.exec()
        except Exception as e:
            logger.warning("Usage tracking failed for %s: %s", category, e)

    async def daily_report(self, day: date | None = None) -> DailyUsageReport | None:
        """Aggregate one day's counters; None when no backend is available."""
        if self._redis is None:
            return None
        day = day or self._clock()
        keys: list[str] = []
        for category in USAGE_CATEGORIES:
            prefix = self.key_prefix(category, day)
            keys.extend([f"{prefix}:count", f"{prefix}:tokens"])
        try:
            values = await self._redis.mget(*keys)
        except Exception as e:
            logger.warning("Usage report read failed: %s", e)
            return None

        report = DailyUsageReport(date=day.isoformat())
        for i, category in enumerate(USAGE_CATEGORIES):
            count = _as_int(values[2 * i])
            raw_tokens = values[2 * i + 1]
            report.categories[category] = UsageEntry(
                count=count,
                tokens=_as_int(raw_tokens) if raw_tokens is not None else None,
            )
            if category.startswith("ai:"):
                report.totals.ai_calls += count
            elif category.startswith("youtube:"):
                report.totals.youtube_calls += count
            elif category == "generation:success":
                report.totals.generations_success = count
            elif category == "generation:failure":
                report.totals.generations_failure = count
        return report
