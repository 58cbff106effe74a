"""Background maintenance over the resolution cache.

``execute`` re-resolves cached rows selected by a sweep mode so that
links are renewed before they expire. ``resolve_many`` warms the cache
for an explicit list of keys.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

import structlog

from streamfinder.application.use_cases.resolve_stream import ResolveStreamUseCase
from streamfinder.domain.entities.resolution import (
    CacheEntry,
    ResolutionKey,
    ResolutionResult,
)
from streamfinder.domain.ports.resolution_store import ResolutionCachePort

RefreshMode = Literal["expiring", "old", "all"]
REFRESH_MODES: tuple[str, ...] = ("expiring", "old", "all")

_EXPIRING_WINDOW = timedelta(hours=24)
_OLD_AGE = timedelta(days=3)

log = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_direct(result: ResolutionResult) -> bool:
    """True when *result* carries a playable URL rather than a proxy page."""
    return result.success and result.kind != "embedded-proxy"


@dataclass(frozen=True)
class RefreshSummary:
    processed: int
    updated: int
    failed: int
    done: bool


@dataclass(frozen=True)
class BatchSummary:
    resolved: int
    failed: int


def select_rows(
    entries: Sequence[CacheEntry],
    mode: RefreshMode,
    now: datetime,
    batch_size: int,
) -> list[CacheEntry]:
    """Unpinned rows matching *mode*, soonest to expire first."""
    if mode == "expiring":
        cutoff = now + _EXPIRING_WINDOW
        rows = [e for e in entries if e.expires_at < cutoff]
    elif mode == "old":
        cutoff = now - _OLD_AGE
        rows = [e for e in entries if e.created_at < cutoff]
    elif mode == "all":
        rows = list(entries)
    else:
        raise ValueError(f"Unknown refresh mode: {mode!r}")
    rows = [e for e in rows if not e.pinned]
    rows.sort(key=lambda e: e.expires_at)
    return rows[:batch_size]


class RefreshLinksUseCase:
    def __init__(
        self,
        *,
        resolver: ResolveStreamUseCase,
        cache_repo: ResolutionCachePort,
        concurrency: int = 8,
        batch_concurrency: int = 5,
        skip_providers: Sequence[str] = ("secondary",),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._resolver = resolver
        self._cache_repo = cache_repo
        self._concurrency = max(1, concurrency)
        self._batch_concurrency = max(1, batch_concurrency)
        self._skip = tuple(skip_providers)
        self._clock = clock

    async def execute(
        self, mode: RefreshMode = "expiring", batch_size: int = 30
    ) -> RefreshSummary:
        entries = await self._cache_repo.list_entries()
        rows = select_rows(entries, mode, self._clock(), batch_size)
        if not rows:
            log.info("refresh_nothing_to_do", mode=mode)
            return RefreshSummary(processed=0, updated=0, failed=0, done=True)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _refresh_one(entry: CacheEntry) -> bool:
            async with semaphore:
                try:
                    result = await self._resolver.execute(
                        entry.key, skip_providers=self._skip, bypass_cache=True
                    )
                except Exception:
                    log.warning(
                        "refresh_item_error", key=entry.key.label(), exc_info=True
                    )
                    return False
                return is_direct(result)

        outcomes = await asyncio.gather(*(_refresh_one(row) for row in rows))
        updated = sum(1 for ok in outcomes if ok)
        summary = RefreshSummary(
            processed=len(rows),
            updated=updated,
            failed=len(rows) - updated,
            done=len(rows) < batch_size,
        )
        log.info(
            "refresh_done",
            mode=mode,
            processed=summary.processed,
            updated=summary.updated,
            failed=summary.failed,
        )
        return summary

    async def resolve_many(self, keys: Sequence[ResolutionKey]) -> BatchSummary:
        """Resolve every key (cache first) with bounded concurrency."""
        semaphore = asyncio.Semaphore(self._batch_concurrency)

        async def _resolve_one(key: ResolutionKey) -> bool:
            async with semaphore:
                try:
                    result = await self._resolver.execute(key)
                except Exception:
                    log.warning("batch_item_error", key=key.label(), exc_info=True)
                    return False
                return is_direct(result)

        outcomes = await asyncio.gather(*(_resolve_one(k) for k in keys))
        resolved = sum(1 for ok in outcomes if ok)
        log.info("batch_resolve_done", resolved=resolved, failed=len(keys) - resolved)
        return BatchSummary(resolved=resolved, failed=len(keys) - resolved)
