"""Periodic retry of content whose last full provider chain found nothing."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from streamfinder.application.use_cases.refresh_links import is_direct
from streamfinder.application.use_cases.resolve_stream import ResolveStreamUseCase
from streamfinder.domain.entities.resolution import (
    FailureRecord,
    LogEntry,
    ResolutionKey,
)
from streamfinder.domain.ports.resolution_store import (
    FailureStorePort,
    ResolutionLogPort,
)

AUTO_RETRY_PROVIDER = "auto-retry"

log = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RetrySummary:
    resolved: int
    still_failed: int

    @property
    def total(self) -> int:
        return self.resolved + self.still_failed


class RetryFailuresUseCase:
    """Re-resolve failure records older than ``retry_after``.

    Records that now resolve to a direct link are cleared; the rest are
    re-stamped so they wait another full interval. One summary log row is
    appended per run that had work to do.
    """

    def __init__(
        self,
        *,
        resolver: ResolveStreamUseCase,
        failure_store: FailureStorePort,
        log_repo: ResolutionLogPort,
        retry_after: timedelta = timedelta(hours=6),
        limit: int = 50,
        concurrency: int = 5,
        skip_providers: Sequence[str] = ("secondary",),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._resolver = resolver
        self._failures = failure_store
        self._log_repo = log_repo
        self._retry_after = retry_after
        self._limit = limit
        self._concurrency = max(1, concurrency)
        self._skip = tuple(skip_providers)
        self._clock = clock

    async def execute(self) -> RetrySummary:
        due = await self._failures.list_due(
            self._clock() - self._retry_after, limit=self._limit
        )
        if not due:
            log.info("auto_retry_nothing_due")
            return RetrySummary(resolved=0, still_failed=0)

        log.info("auto_retry_started", count=len(due))
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _retry_one(record: FailureRecord) -> bool:
            async with semaphore:
                return await self._retry(record)

        outcomes = await asyncio.gather(*(_retry_one(r) for r in due))
        resolved = sum(1 for ok in outcomes if ok)
        summary = RetrySummary(resolved=resolved, still_failed=len(due) - resolved)
        await self._append_summary(summary)
        log.info(
            "auto_retry_done",
            resolved=summary.resolved,
            still_failed=summary.still_failed,
        )
        return summary

    async def _retry(self, record: FailureRecord) -> bool:
        key = ResolutionKey(content_id=record.content_id, media_type=record.media_type)
        try:
            result = await self._resolver.execute(
                key, skip_providers=self._skip, bypass_cache=True
            )
            ok = is_direct(result)
        except Exception:
            log.warning("auto_retry_item_error", key=key.label(), exc_info=True)
            ok = False

        if ok:
            await self._failures.clear(record.content_id, record.media_type)
        else:
            await self._failures.record(record.content_id, record.media_type)
        return ok

    async def _append_summary(self, summary: RetrySummary) -> None:
        entry = LogEntry(
            key=ResolutionKey(content_id=AUTO_RETRY_PROVIDER, media_type="movie"),
            provider_id=AUTO_RETRY_PROVIDER,
            success=summary.resolved > 0,
            created_at=self._clock(),
            error_message=(
                f"Resolved: {summary.resolved}, Still failed: {summary.still_failed}"
            ),
            title="Auto-retry batch",
        )
        try:
            await self._log_repo.append(entry)
        except Exception:
            log.warning("auto_retry_log_write_error", exc_info=True)
