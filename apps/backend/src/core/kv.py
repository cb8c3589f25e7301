"""Key/value backend shared by the media cache and the quota ledger.

The backend is an Upstash Redis database reached over its REST protocol. It is
entirely optional: when Upstash is not configured `get_kv_backend()` returns
None and every consumer degrades to its no-cache / fail-open behavior.
Consumers receive the handle explicitly so tests can inject fakes or None.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Literal

from core.config import get_settings


if TYPE_CHECKING:
    from upstash_redis.asyncio import Redis

logger = logging.getLogger(__name__)

BackendStatus = Literal["ok", "error", "not_configured"]


@lru_cache
def get_kv_backend() -> Redis | None:
    """Create and cache the async Upstash client.

    Returns None if Upstash is not configured, allowing the application
    to run without caching or quota accounting in development/test.
    """
    from upstash_redis.asyncio import Redis

    settings = get_settings()

    if not settings.UPSTASH_REDIS_REST_URL or not settings.UPSTASH_REDIS_REST_TOKEN:
        logger.warning(
            "Upstash Redis not configured. Media cache and quota ledger are "
            "disabled. Set UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN "
            "to enable."
        )
        return None

    try:
        redis = Redis(
            url=settings.UPSTASH_REDIS_REST_URL,
            token=settings.UPSTASH_REDIS_REST_TOKEN,
        )
        logger.info("Key/value backend enabled (Upstash Redis)")
        return redis
    except Exception as e:
        logger.error("Failed to initialize key/value backend: %s", e)
        return None


async def check_kv_backend(redis: Redis | None) -> BackendStatus:
    """Ping the backend for health reporting."""
    if redis is None:
        return "not_configured"
    try:
        await redis.ping()
        return "ok"
    except Exception as e:
        logger.warning("Key/value backend ping failed: %s", e)
        return "error"
