"""Ports for resolution persistence (cache rows, attempt log, failures)."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from streamfinder.domain.entities.resolution import (
    CacheEntry,
    FailureRecord,
    LogEntry,
    MediaType,
    ResolutionKey,
)


@runtime_checkable
class ResolutionCachePort(Protocol):
    """At most one cached resolution per exact key."""

    async def get_fresh(self, key: ResolutionKey) -> CacheEntry | None: ...

    async def get(self, key: ResolutionKey) -> CacheEntry | None: ...

    async def replace(self, entry: CacheEntry) -> bool:
        """Delete-then-insert. False when a pinned row blocked the write."""
        ...

    async def delete(self, key: ResolutionKey) -> bool: ...

    async def pin(self, key: ResolutionKey, pinned: bool = True) -> bool: ...

    async def list_entries(self) -> list[CacheEntry]: ...


@runtime_checkable
class ResolutionLogPort(Protocol):
    """Append-only attempt log."""

    async def append(self, entry: LogEntry) -> None: ...

    async def list_recent(self, limit: int = 100) -> list[LogEntry]: ...

    async def purge(self) -> int: ...


@runtime_checkable
class FailureStorePort(Protocol):
    """Content items whose last full chain produced nothing."""

    async def record(self, content_id: str, media_type: MediaType) -> None: ...

    async def clear(self, content_id: str, media_type: MediaType) -> None: ...

    async def list_due(
        self, older_than: datetime, limit: int = 50
    ) -> list[FailureRecord]: ...
