"""Failure records (content with no resolvable stream) backed by CachePort."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Callable

import structlog

from streamfinder.domain.entities.resolution import FailureRecord, MediaType
from streamfinder.domain.ports.cache import CachePort
from streamfinder.infrastructure.persistence._index import KeyIndex

log = structlog.get_logger(__name__)

_PREFIX = "resolve_failure"
_INDEX_KEY = f"{_PREFIX}:_index"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_key(content_id: str, media_type: str) -> str:
    return f"{_PREFIX}:{media_type}:{content_id}"


class CacheFailureRepository:
    """One row per content item; re-recording refreshes ``attempted_at``.

    Key schema:
    - ``resolve_failure:{type}:{id}`` -> JSON FailureRecord
    - ``resolve_failure:_index`` -> JSON list of row keys
    """

    def __init__(
        self,
        cache: CachePort,
        *,
        ttl_seconds: int = 30 * 86_400,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.ttl = ttl_seconds
        self._clock = clock
        self._index = KeyIndex(cache, _INDEX_KEY)

    async def record(self, content_id: str, media_type: MediaType) -> None:
        row_key = _row_key(content_id, media_type)
        payload = json.dumps(
            {
                "content_id": content_id,
                "media_type": media_type,
                "attempted_at": self._clock().isoformat(),
            }
        )
        await self.cache.set(row_key, payload, ttl=self.ttl)
        await self._index.add(row_key)

    async def clear(self, content_id: str, media_type: MediaType) -> None:
        row_key = _row_key(content_id, media_type)
        await self.cache.delete(row_key)
        await self._index.discard(row_key)

    async def list_all(self) -> list[FailureRecord]:
        row_keys = await self._index.load()
        rows = await self.cache.get_many(row_keys)
        records: list[FailureRecord] = []
        for row_key in row_keys:
            data = rows.get(row_key)
            if data is None:
                continue
            try:
                d = json.loads(data)
                records.append(
                    FailureRecord(
                        content_id=d["content_id"],
                        media_type=d["media_type"],
                        attempted_at=datetime.fromisoformat(d["attempted_at"]),
                    )
                )
            except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
                log.error("failure_record_deserialize_error", key=row_key, error=str(e))
        return records

    async def list_due(
        self, older_than: datetime, limit: int = 50
    ) -> list[FailureRecord]:
        """Records last attempted before *older_than*, oldest first."""
        due = [r for r in await self.list_all() if r.attempted_at < older_than]
        due.sort(key=lambda r: r.attempted_at)
        return due[:limit]
