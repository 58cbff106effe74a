"""Resolution cache persistence backed by CachePort (diskcache/redis)."""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from streamfinder.domain.entities.resolution import CacheEntry, ResolutionKey
from streamfinder.domain.ports.cache import CachePort
from streamfinder.infrastructure.persistence._index import KeyIndex

log = structlog.get_logger(__name__)

_PREFIX = "resolution"
_INDEX_KEY = f"{_PREFIX}:_index"

# Pinned rows stay in the backend regardless of their nominal expiry.
_PINNED_BACKEND_TTL: int = 365 * 86_400


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _part(value: int | None) -> str:
    # Absent season/episode gets a fixed marker so it only matches itself.
    return "-" if value is None else str(value)


def cache_key(key: ResolutionKey) -> str:
    return ":".join(
        (
            _PREFIX,
            key.media_type,
            key.content_id,
            key.audio_track,
            _part(key.season),
            _part(key.episode),
        )
    )


def _serialize_key(key: ResolutionKey) -> dict[str, Any]:
    return {
        "content_id": key.content_id,
        "media_type": key.media_type,
        "audio_track": key.audio_track,
        "season": key.season,
        "episode": key.episode,
    }


def _deserialize_key(data: dict[str, Any]) -> ResolutionKey:
    return ResolutionKey(
        content_id=data["content_id"],
        media_type=data["media_type"],
        audio_track=data["audio_track"],
        season=data.get("season"),
        episode=data.get("episode"),
    )


def _serialize_entry(entry: CacheEntry) -> str:
    return json.dumps(
        {
            "key": _serialize_key(entry.key),
            "url": entry.url,
            "kind": entry.kind,
            "provider_id": entry.provider_id,
            "created_at": entry.created_at.isoformat(),
            "expires_at": entry.expires_at.isoformat(),
            "pinned": entry.pinned,
        }
    )


def _deserialize_entry(data: str) -> CacheEntry:
    d = json.loads(data)
    return CacheEntry(
        key=_deserialize_key(d["key"]),
        url=d["url"],
        kind=d["kind"],
        provider_id=d["provider_id"],
        created_at=datetime.fromisoformat(d["created_at"]),
        expires_at=datetime.fromisoformat(d["expires_at"]),
        pinned=bool(d.get("pinned", False)),
    )


class CacheResolutionRepository:
    """At most one cached resolution per exact ResolutionKey.

    Key schema:
    - ``resolution:{type}:{id}:{audio}:{season|-}:{episode|-}`` -> JSON CacheEntry
    - ``resolution:_index`` -> JSON list of row keys
    """

    def __init__(
        self,
        cache: CachePort,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self._clock = clock
        self._index = KeyIndex(cache, _INDEX_KEY)

    async def _load(self, row_key: str) -> CacheEntry | None:
        data = await self.cache.get(row_key)
        if data is None:
            return None
        return self._decode(row_key, data)

    def _decode(self, row_key: str, data: str) -> CacheEntry | None:
        try:
            return _deserialize_entry(data)
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            log.error("resolution_cache_deserialize_error", key=row_key, error=str(e))
            return None

    async def get(self, key: ResolutionKey) -> CacheEntry | None:
        return await self._load(cache_key(key))

    async def get_fresh(self, key: ResolutionKey) -> CacheEntry | None:
        """Return the row for *key* if it has not expired (pinned rows never do)."""
        entry = await self.get(key)
        if entry is None:
            return None
        if entry.pinned or entry.is_fresh(self._clock()):
            return entry
        return None

    async def replace(self, entry: CacheEntry) -> bool:
        """Delete-then-insert the row for ``entry.key``.

        Returns False without writing when the existing row is pinned and
        *entry* is not.
        """
        row_key = cache_key(entry.key)
        existing = await self._load(row_key)
        if existing is not None and existing.pinned and not entry.pinned:
            log.info(
                "resolution_cache_pinned_skip",
                key=row_key,
                provider=entry.provider_id,
            )
            return False

        await self.cache.delete(row_key)
        await self.cache.set(row_key, _serialize_entry(entry), ttl=self._ttl_for(entry))
        await self._index.add(row_key)
        log.debug("resolution_cache_saved", key=row_key, provider=entry.provider_id)
        return True

    def _ttl_for(self, entry: CacheEntry) -> int:
        if entry.pinned:
            return _PINNED_BACKEND_TTL
        remaining = (entry.expires_at - self._clock()).total_seconds()
        return max(1, math.ceil(remaining))

    async def delete(self, key: ResolutionKey) -> bool:
        row_key = cache_key(key)
        deleted = await self.cache.delete(row_key)
        await self._index.discard(row_key)
        return deleted

    async def pin(self, key: ResolutionKey, pinned: bool = True) -> bool:
        """Flip the curated flag on an existing row. False if there is none."""
        row_key = cache_key(key)
        entry = await self._load(row_key)
        if entry is None:
            return False
        updated = CacheEntry(
            key=entry.key,
            url=entry.url,
            kind=entry.kind,
            provider_id=entry.provider_id,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
            pinned=pinned,
        )
        await self.cache.set(
            row_key, _serialize_entry(updated), ttl=self._ttl_for(updated)
        )
        log.info("resolution_cache_pinned", key=row_key, pinned=pinned)
        return True

    async def list_entries(self) -> list[CacheEntry]:
        """All rows still present in the backend, oldest write first."""
        row_keys = await self._index.load()
        rows = await self.cache.get_many(row_keys)
        entries: list[CacheEntry] = []
        stale: list[str] = []
        for row_key in row_keys:
            data = rows.get(row_key)
            entry = None if data is None else self._decode(row_key, data)
            if entry is None:
                stale.append(row_key)
            else:
                entries.append(entry)
        if stale:
            await self._index.discard(*stale)
        return entries

    async def purge_expired(self) -> int:
        """Delete expired, unpinned rows. Returns the number removed."""
        now = self._clock()
        removed = 0
        for entry in await self.list_entries():
            if entry.pinned or entry.is_fresh(now):
                continue
            if await self.delete(entry.key):
                removed += 1
        log.info("resolution_cache_purged", removed=removed)
        return removed
