"""Shared test fixtures for the streamfinder test suite."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from streamfinder.domain.entities.resolution import CacheEntry, ResolutionKey

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def movie_key() -> ResolutionKey:
    return ResolutionKey(content_id="550", media_type="movie", title="Fight Club")


@pytest.fixture()
def episode_key() -> ResolutionKey:
    return ResolutionKey(
        content_id="1399",
        media_type="series",
        season=1,
        episode=2,
        title="Game of Thrones",
    )


@pytest.fixture()
def cache_entry(movie_key: ResolutionKey) -> CacheEntry:
    return CacheEntry(
        key=movie_key,
        url="https://cdn.example.com/hls/550/master.m3u8",
        kind="playlist",
        provider_id="inline",
        created_at=NOW,
        expires_at=NOW + timedelta(days=7),
    )


# ---------------------------------------------------------------------------
# Mock port fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.get_many = AsyncMock(return_value={})
    cache.delete = AsyncMock(return_value=True)
    cache.aclose = AsyncMock()
    return cache


class MemoryCache:
    """Dict-backed CachePort for stateful repository tests (TTL ignored)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def get_many(self, keys: Sequence[str]) -> dict[str, str]:
        return {k: self.data[k] for k in keys if k in self.data}

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.data.pop(key, None) is not None

    async def aclose(self) -> None:
        return None


@pytest.fixture()
def memory_cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture()
def mock_cache_repo() -> AsyncMock:
    """Mock ResolutionCachePort (always a miss)."""
    repo = AsyncMock()
    repo.get_fresh = AsyncMock(return_value=None)
    repo.replace = AsyncMock(return_value=True)
    repo.list_entries = AsyncMock(return_value=[])
    return repo


@pytest.fixture()
def mock_log_repo() -> AsyncMock:
    """Mock ResolutionLogPort."""
    repo = AsyncMock()
    repo.append = AsyncMock()
    return repo


@pytest.fixture()
def mock_failure_store() -> AsyncMock:
    """Mock FailureStorePort."""
    store = AsyncMock()
    store.record = AsyncMock()
    store.clear = AsyncMock()
    store.list_due = AsyncMock(return_value=[])
    return store
