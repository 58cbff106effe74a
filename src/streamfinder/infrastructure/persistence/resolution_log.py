"""Append-only resolution attempt log backed by CachePort."""

from __future__ import annotations

import json
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any

import structlog

from streamfinder.domain.entities.resolution import LogEntry
from streamfinder.domain.ports.cache import NO_EXPIRY, CachePort
from streamfinder.infrastructure.persistence._index import KeyIndex
from streamfinder.infrastructure.persistence.resolution_cache import (
    _deserialize_key,
    _serialize_key,
)

log = structlog.get_logger(__name__)

_PREFIX = "resolve_log"
_INDEX_KEY = f"{_PREFIX}:_index"

# Hard cap for a single listing request.
MAX_LIST_LIMIT = 500


def _row_key(log_id: str) -> str:
    return f"{_PREFIX}:{log_id}"


def _serialize(entry: LogEntry) -> str:
    return json.dumps(
        {
            "log_id": entry.log_id,
            "key": _serialize_key(entry.key),
            "title": entry.title,
            "provider_id": entry.provider_id,
            "success": entry.success,
            "url": entry.url,
            "error_message": entry.error_message,
            "created_at": entry.created_at.isoformat(),
        }
    )


def _deserialize(data: str) -> LogEntry:
    d: dict[str, Any] = json.loads(data)
    return LogEntry(
        log_id=d["log_id"],
        key=_deserialize_key(d["key"]),
        title=d.get("title"),
        provider_id=d["provider_id"],
        success=d["success"],
        url=d.get("url"),
        error_message=d.get("error_message"),
        created_at=datetime.fromisoformat(d["created_at"]),
    )


class CacheResolutionLogRepository:
    """Attempt log. Rows stay until purge(), or until they fall past an
    optional *max_entries* cap (oldest first).

    Key schema:
    - ``resolve_log:{log_id}`` -> JSON LogEntry
    - ``resolve_log:_index`` -> JSON list of row keys, oldest first
    """

    def __init__(
        self,
        cache: CachePort,
        *,
        max_entries: int | None = None,
    ) -> None:
        self.cache = cache
        self.max_entries = max_entries
        self._index = KeyIndex(cache, _INDEX_KEY)

    async def append(self, entry: LogEntry) -> None:
        if not entry.log_id:
            entry = replace(entry, log_id=uuid.uuid4().hex)
        row_key = _row_key(entry.log_id)
        await self.cache.set(row_key, _serialize(entry), ttl=NO_EXPIRY)
        evicted = await self._index.add(row_key, max_size=self.max_entries)
        for old in evicted:
            await self.cache.delete(old)

    async def list_recent(self, limit: int = 100) -> list[LogEntry]:
        """Newest first, at most ``min(limit, 500)`` rows."""
        limit = max(0, min(limit, MAX_LIST_LIMIT))
        newest = list(reversed(await self._index.load()))
        results: list[LogEntry] = []
        start = 0
        # Missing rows leave gaps, so read page by page until full.
        while len(results) < limit and start < len(newest):
            page = newest[start : start + limit]
            start += limit
            rows = await self.cache.get_many(page)
            for row_key in page:
                data = rows.get(row_key)
                if data is None or len(results) >= limit:
                    continue
                try:
                    results.append(_deserialize(data))
                except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
                    log.error(
                        "resolution_log_deserialize_error", key=row_key, error=str(e)
                    )
        return results

    async def purge(self) -> int:
        """Delete every log row. Returns the number of index entries dropped."""
        row_keys = await self._index.reset()
        for row_key in row_keys:
            await self.cache.delete(row_key)
        log.warning("resolution_log_purged", count=len(row_keys))
        return len(row_keys)
