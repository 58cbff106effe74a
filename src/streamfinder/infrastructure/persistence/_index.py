"""JSON key index stored next to the rows it enumerates.

CachePort has no key scan, so repositories that need listing keep the
ids of their rows under one index key.
"""

from __future__ import annotations

import asyncio
import json

from streamfinder.domain.ports.cache import NO_EXPIRY, CachePort


class KeyIndex:
    """Ordered, duplicate-free list of row ids (oldest first)."""

    def __init__(self, cache: CachePort, index_key: str) -> None:
        self._cache = cache
        self._key = index_key
        self._lock = asyncio.Lock()

    async def load(self) -> list[str]:
        data = await self._cache.get(self._key)
        if data is None:
            return []
        try:
            ids = json.loads(data)
        except (json.JSONDecodeError, TypeError):
            return []
        return [i for i in ids if isinstance(i, str)]

    async def _save(self, ids: list[str]) -> None:
        await self._cache.set(self._key, json.dumps(ids), ttl=NO_EXPIRY)

    async def add(self, row_id: str, *, max_size: int | None = None) -> list[str]:
        """Append *row_id*; return ids evicted by *max_size*."""
        async with self._lock:
            ids = await self.load()
            if row_id in ids:
                ids.remove(row_id)
            ids.append(row_id)
            evicted: list[str] = []
            if max_size is not None and len(ids) > max_size:
                evicted = ids[: len(ids) - max_size]
                ids = ids[len(ids) - max_size :]
            await self._save(ids)
            return evicted

    async def discard(self, *row_ids: str) -> None:
        async with self._lock:
            ids = await self.load()
            kept = [i for i in ids if i not in row_ids]
            if len(kept) != len(ids):
                await self._save(kept)

    async def reset(self) -> list[str]:
        """Drop the index; return the ids it held."""
        async with self._lock:
            ids = await self.load()
            await self._cache.delete(self._key)
            return ids
