"""Shared test fixtures for pytest.

Environment defaults are set before any app module is imported so the cached
settings never pick up real provider keys or an Upstash database from the
developer's shell.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from typing import Any


os.environ["ENVIRONMENT"] = "test"
for _var in (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "YOUTUBE_API_KEY",
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
):
    os.environ.pop(_var, None)

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from main import app


class _FakeCommandQueue:
    """Pipeline / transaction stand-in: queue commands, run them on exec()."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def __getattr__(self, name: str) -> Callable[..., _FakeCommandQueue]:
        def _queue(*args: Any, **kwargs: Any) -> _FakeCommandQueue:
            self._commands.append((name, args, kwargs))
            return self

        return _queue

    async def exec(self) -> list[Any]:
        self._redis.exec_calls += 1
        return [
            await getattr(self._redis, name)(*args, **kwargs)
            for name, args, kwargs in self._commands
        ]


class FakeRedis:
    """In-memory subset of the async Upstash Redis client.

    Values are stored as strings like the REST API returns them. Expiry is
    recorded, not enforced.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[str] = []
        self.exec_calls = 0

    async def get(self, key: str) -> str | None:
        self.calls.append("get")
        return self.store.get(key)

    async def mget(self, *keys: str) -> list[str | None]:
        self.calls.append("mget")
        return [self.store.get(k) for k in keys]

    async def set(
        self, key: str, value: Any, ex: int | None = None, nx: bool = False
    ) -> bool | None:
        self.calls.append("set")
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def incrby(self, key: str, increment: int) -> int:
        self.calls.append("incrby")
        value = int(self.store.get(key, "0")) + increment
        self.store[key] = str(value)
        return value

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def expire(self, key: str, seconds: int) -> bool:
        self.calls.append("expire")
        self.ttls[key] = seconds
        return key in self.store

    async def ping(self) -> str:
        return "PONG"

    async def dbsize(self) -> int:
        return len(self.store)

    def pipeline(self) -> _FakeCommandQueue:
        return _FakeCommandQueue(self)

    def multi(self) -> _FakeCommandQueue:
        return _FakeCommandQueue(self)


class UnavailableRedis:
    """Backend that is configured but fails every call."""

    def __getattr__(self, name: str) -> Callable[..., Any]:
        async def _fail(*args: Any, **kwargs: Any) -> Any:
            raise ConnectionError("backend unreachable")

        if name in {"pipeline", "multi"}:
            return lambda: _FailingQueue()
        return _fail


class _FailingQueue:
    def __getattr__(self, name: str) -> Callable[..., _FailingQueue]:
        return lambda *args, **kwargs: self

    async def exec(self) -> list[Any]:
        raise ConnectionError("backend unreachable")


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def unavailable_redis() -> UnavailableRedis:
    return UnavailableRedis()


@pytest.fixture
def mock_http() -> Callable[..., httpx.AsyncClient]:
    """Factory for an AsyncClient whose requests are answered by `handler`."""

    def _make(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Async client against the app; dependency overrides are reset after."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
