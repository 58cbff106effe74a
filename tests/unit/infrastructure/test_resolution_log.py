"""Tests for the resolution attempt log and failure store repositories."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from streamfinder.domain.entities.resolution import LogEntry, ResolutionKey
from streamfinder.domain.ports.cache import NO_EXPIRY
from streamfinder.infrastructure.persistence.failure_store import (
    CacheFailureRepository,
)
from streamfinder.infrastructure.persistence.resolution_log import (
    MAX_LIST_LIMIT,
    CacheResolutionLogRepository,
)

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _log_entry(content_id: str, *, success: bool = True) -> LogEntry:
    return LogEntry(
        key=ResolutionKey(content_id=content_id, media_type="movie"),
        provider_id="inline",
        success=success,
        created_at=NOW,
        url="https://cdn/x.mp4" if success else None,
        error_message=None if success else "No stream found",
        title=f"Title {content_id}",
    )


class TestResolutionLog:
    async def test_append_assigns_id(self, memory_cache: Any) -> None:
        repo = CacheResolutionLogRepository(memory_cache)

        await repo.append(_log_entry("1"))
        rows = await repo.list_recent()

        assert len(rows) == 1
        assert rows[0].log_id
        assert rows[0].title == "Title 1"
        assert f"resolve_log:{rows[0].log_id}" in memory_cache.data

    async def test_newest_first(self, memory_cache: Any) -> None:
        repo = CacheResolutionLogRepository(memory_cache)
        for cid in ("1", "2", "3"):
            await repo.append(_log_entry(cid))

        rows = await repo.list_recent(limit=2)

        assert [r.key.content_id for r in rows] == ["3", "2"]

    async def test_bounded_by_max_entries(self, memory_cache: Any) -> None:
        repo = CacheResolutionLogRepository(memory_cache, max_entries=2)
        for cid in ("1", "2", "3"):
            await repo.append(_log_entry(cid))

        rows = await repo.list_recent()

        assert [r.key.content_id for r in rows] == ["3", "2"]
        row_keys = [k for k in memory_cache.data if not k.endswith("_index")]
        assert len(row_keys) == 2

    async def test_rows_kept_until_purge(self, memory_cache: Any) -> None:
        repo = CacheResolutionLogRepository(memory_cache)
        for i in range(5001):
            await repo.append(_log_entry(str(i)))

        row_keys = [k for k in memory_cache.data if not k.endswith("_index")]
        assert len(row_keys) == 5001
        assert {memory_cache.ttls[k] for k in memory_cache.data} == {NO_EXPIRY}

        assert await repo.purge() == 5001
        assert memory_cache.data == {}

    async def test_limit_capped(self, memory_cache: Any) -> None:
        repo = CacheResolutionLogRepository(memory_cache)
        for i in range(MAX_LIST_LIMIT + 5):
            await repo.append(_log_entry(str(i)))

        rows = await repo.list_recent(limit=10_000)

        assert len(rows) == MAX_LIST_LIMIT

    async def test_failure_row_fields(self, memory_cache: Any) -> None:
        repo = CacheResolutionLogRepository(memory_cache)
        await repo.append(_log_entry("9", success=False))

        (row,) = await repo.list_recent()

        assert row.success is False
        assert row.url is None
        assert row.error_message == "No stream found"
        assert row.created_at == NOW

    async def test_purge(self, memory_cache: Any) -> None:
        repo = CacheResolutionLogRepository(memory_cache)
        await repo.append(_log_entry("1"))
        await repo.append(_log_entry("2"))

        assert await repo.purge() == 2
        assert await repo.list_recent() == []
        assert memory_cache.data == {}


class TestFailureStore:
    async def test_record_and_clear(self, memory_cache: Any) -> None:
        store = CacheFailureRepository(memory_cache, clock=lambda: NOW)

        await store.record("603", "movie")
        records = await store.list_all()
        assert [(r.content_id, r.media_type) for r in records] == [("603", "movie")]
        assert records[0].attempted_at == NOW

        await store.clear("603", "movie")
        assert await store.list_all() == []

    async def test_record_twice_keeps_one_row(self, memory_cache: Any) -> None:
        store = CacheFailureRepository(memory_cache, clock=lambda: NOW)

        await store.record("603", "movie")
        await store.record("603", "movie")

        assert len(await store.list_all()) == 1

    async def test_list_due_oldest_first(self, memory_cache: Any) -> None:
        times = iter(
            [
                NOW - timedelta(hours=7),
                NOW - timedelta(hours=12),
                NOW - timedelta(hours=1),
            ]
        )
        store = CacheFailureRepository(memory_cache, clock=lambda: next(times))
        await store.record("a", "movie")
        await store.record("b", "series")
        await store.record("c", "movie")

        due = await store.list_due(NOW - timedelta(hours=6), limit=50)

        assert [r.content_id for r in due] == ["b", "a"]

    async def test_list_due_limit(self, memory_cache: Any) -> None:
        store = CacheFailureRepository(memory_cache, clock=lambda: NOW)
        for cid in ("a", "b", "c"):
            await store.record(cid, "movie")

        due = await store.list_due(NOW + timedelta(seconds=1), limit=2)

        assert len(due) == 2
