"""Resolution orchestrator: cache first, then the ranked provider chain."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Protocol
from urllib.parse import quote

import structlog

from streamfinder.domain.entities.resolution import (
    ALL_PROVIDERS,
    CacheEntry,
    Deadline,
    Found,
    LogEntry,
    NotFound,
    ProxyFallback,
    ResolutionKey,
    ResolutionOutcome,
    ResolutionResult,
)
from streamfinder.domain.exceptions import UnknownProviderError
from streamfinder.domain.ports.provider import ProviderPort
from streamfinder.domain.ports.resolution_store import (
    FailureStorePort,
    ResolutionCachePort,
    ResolutionLogPort,
)

PROXY_FALLBACK_MESSAGE = "proxy fallback"

log = structlog.get_logger(__name__)


class _ProviderSource(Protocol):
    """Ranked provider lookup (satisfied by ProviderRegistry)."""

    def ranked(self) -> list[ProviderPort]: ...

    def get(self, provider_id: str) -> ProviderPort: ...


class _MetricsRecorder(Protocol):
    """Records per-provider and per-request counters."""

    def record_provider(
        self, provider_id: str, outcome: str, duration_ns: int
    ) -> None: ...

    def record_request(self, *, cache_hit: bool) -> None: ...

    def record_result(self, *, resolved: bool, proxied: bool) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResolveStreamUseCase:
    """Turn a ResolutionKey into a playable URL.

    Flow:
        1. Return a fresh cache row unless a provider is forced.
        2. Run providers one at a time in priority order, each under its
           own deadline. The first direct ``Found`` wins and is cached.
        3. Without a direct hit, surface the first ``ProxyFallback`` seen,
           else a proxy synthesized from the best-ranked embed URL.
        4. Otherwise return the terminal result.

    Any non-direct outcome of a full chain run (proxy or nothing) is
    recorded as a failure so the retry sweep picks it up later.

    Exactly one log row is written per non-cached resolution.
    """

    def __init__(
        self,
        *,
        providers: _ProviderSource,
        cache_repo: ResolutionCachePort,
        log_repo: ResolutionLogPort,
        failure_store: FailureStorePort | None = None,
        metrics: _MetricsRecorder | None = None,
        cache_ttl_seconds: int = 604_800,
        proxy_path: str = "/proxy/player",
        synthesize_proxy: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._providers = providers
        self._cache_repo = cache_repo
        self._log_repo = log_repo
        self._failure_store = failure_store
        self._metrics = metrics
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._proxy_path = proxy_path
        self._synthesize_proxy = synthesize_proxy
        self._clock = clock

    async def execute(
        self,
        key: ResolutionKey,
        *,
        force_provider: str | None = None,
        skip_providers: Iterable[str] = (),
        bypass_cache: bool = False,
    ) -> ResolutionResult:
        """Resolve *key*. Forcing a provider or *bypass_cache* skips the cache read."""
        with structlog.contextvars.bound_contextvars(
            content_id=key.content_id, media_type=key.media_type
        ):
            return await self._execute(
                key,
                force_provider,
                frozenset(skip_providers),
                use_cache=not bypass_cache and force_provider is None,
            )

    async def _execute(
        self,
        key: ResolutionKey,
        force_provider: str | None,
        skip: frozenset[str],
        *,
        use_cache: bool,
    ) -> ResolutionResult:
        if use_cache:
            cached = await self._read_cache(key)
            if cached is not None:
                log.info(
                    "resolution_cache_hit",
                    provider=cached.provider_id,
                    key=key.label(),
                )
                self._record_request(cache_hit=True)
                return ResolutionResult(
                    url=cached.url,
                    kind=cached.kind,
                    provider_id=cached.provider_id,
                    was_cached=True,
                )
        self._record_request(cache_hit=False)

        if force_provider is not None:
            try:
                chain = [self._providers.get(force_provider)]
            except UnknownProviderError:
                message = f"unknown provider: {force_provider}"
                log.warning("resolution_unknown_provider", provider=force_provider)
                await self._append_log(
                    key, force_provider, success=False, error_message=message
                )
                self._record_result(resolved=False, proxied=False)
                return ResolutionResult.not_found(message)
        else:
            chain = [p for p in self._providers.ranked() if p.id not in skip]

        first_proxy: tuple[str, ProxyFallback] | None = None
        for provider in chain:
            outcome = await self._run_provider(provider, key)
            if isinstance(outcome, Found):
                return await self._finish_found(key, provider.id, outcome)
            if isinstance(outcome, ProxyFallback):
                if force_provider is not None:
                    return await self._finish_proxy(
                        key, provider.id, outcome, forced=True
                    )
                if first_proxy is None:
                    first_proxy = (provider.id, outcome)

        if first_proxy is not None:
            return await self._finish_proxy(key, *first_proxy)

        synthesized = self._synthesize(chain, key)
        if synthesized is not None:
            log.info("resolution_proxy_synthesized", provider=synthesized[0])
            return await self._finish_proxy(key, *synthesized)

        return await self._finish_exhausted(key, chain)

    async def _run_provider(
        self, provider: ProviderPort, key: ResolutionKey
    ) -> ResolutionOutcome:
        """Run one provider under its deadline; never raises."""
        timeout = provider.timeout
        deadline = Deadline.after(timeout)
        t0 = time.perf_counter_ns()
        metric = "not_found"
        try:
            # wait_for cancels the provider task on expiry, which aborts
            # any in-flight httpx request.
            outcome = await asyncio.wait_for(
                provider.resolve(key, deadline), timeout=timeout
            )
        except TimeoutError:
            log.warning("provider_timeout", provider=provider.id, timeout=timeout)
            metric = "timeout"
            outcome = NotFound(f"timed out after {timeout:g}s")
        except Exception:
            log.warning("provider_error", provider=provider.id, exc_info=True)
            metric = "error"
            outcome = NotFound("provider error")
        else:
            if isinstance(outcome, Found):
                metric = "found"
            elif isinstance(outcome, ProxyFallback):
                metric = "proxy"
        finally:
            duration_ns = time.perf_counter_ns() - t0
            if self._metrics is not None:
                self._metrics.record_provider(provider.id, metric, duration_ns)

        log.debug(
            "provider_done",
            provider=provider.id,
            outcome=metric,
            duration_ms=round(duration_ns / 1_000_000, 1),
        )
        return outcome

    def _synthesize(
        self, chain: list[ProviderPort], key: ResolutionKey
    ) -> tuple[str, ProxyFallback] | None:
        if not self._synthesize_proxy:
            return None
        for provider in chain:
            embed = provider.embed_url(key)
            if embed:
                return provider.id, ProxyFallback(embed_url=embed)
        return None

    def proxy_url(self, embed_url: str) -> str:
        """Same-origin proxy URL framing *embed_url*."""
        return f"{self._proxy_path}?url={quote(embed_url, safe='')}"

    async def _finish_found(
        self, key: ResolutionKey, provider_id: str, found: Found
    ) -> ResolutionResult:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            url=found.url,
            kind=found.kind,
            provider_id=provider_id,
            created_at=now,
            expires_at=now + self._cache_ttl,
        )
        await self._write_cache(entry)
        await self._append_log(key, provider_id, success=True, url=found.url)
        self._record_result(resolved=True, proxied=False)
        log.info("resolution_found", provider=provider_id, kind=found.kind)
        return ResolutionResult(url=found.url, kind=found.kind, provider_id=provider_id)

    async def _finish_proxy(
        self,
        key: ResolutionKey,
        provider_id: str,
        proxy: ProxyFallback,
        *,
        forced: bool = False,
    ) -> ResolutionResult:
        # Proxy results are never cached: the next request retries the chain.
        await self._append_log(
            key,
            provider_id,
            success=False,
            url=proxy.embed_url,
            error_message=PROXY_FALLBACK_MESSAGE,
        )
        if not forced:
            await self._record_failure(key)
        self._record_result(resolved=False, proxied=True)
        log.info("resolution_proxy_fallback", provider=provider_id)
        return ResolutionResult(
            url=self.proxy_url(proxy.embed_url),
            kind="embedded-proxy",
            provider_id=provider_id,
            message=PROXY_FALLBACK_MESSAGE,
        )

    async def _finish_exhausted(
        self, key: ResolutionKey, chain: list[ProviderPort]
    ) -> ResolutionResult:
        if chain:
            tried = ", ".join(p.id for p in chain)
            message = f"No stream found for {key.label()} (tried: {tried})"
        else:
            message = f"No stream found for {key.label()} (no providers available)"
        await self._append_log(key, ALL_PROVIDERS, success=False, error_message=message)
        await self._record_failure(key)
        self._record_result(resolved=False, proxied=False)
        log.info("resolution_exhausted", tried=[p.id for p in chain])
        return ResolutionResult.not_found(message)

    async def _record_failure(self, key: ResolutionKey) -> None:
        if self._failure_store is None:
            return
        try:
            await self._failure_store.record(key.content_id, key.media_type)
        except Exception:
            log.warning("failure_record_error", exc_info=True)

    async def _read_cache(self, key: ResolutionKey) -> CacheEntry | None:
        try:
            return await self._cache_repo.get_fresh(key)
        except Exception:
            log.warning("resolution_cache_read_error", exc_info=True)
            return None

    async def _write_cache(self, entry: CacheEntry) -> None:
        try:
            written = await self._cache_repo.replace(entry)
        except Exception:
            log.warning("resolution_cache_write_error", exc_info=True)
            return
        if not written:
            log.info("resolution_cache_pinned_kept", key=entry.key.label())

    async def _append_log(
        self,
        key: ResolutionKey,
        provider_id: str,
        *,
        success: bool,
        url: str | None = None,
        error_message: str | None = None,
    ) -> None:
        entry = LogEntry(
            key=key,
            provider_id=provider_id,
            success=success,
            created_at=self._clock(),
            url=url,
            error_message=error_message,
            title=key.title,
        )
        try:
            await self._log_repo.append(entry)
        except Exception:
            log.warning("resolution_log_write_error", exc_info=True)

    def _record_request(self, *, cache_hit: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_request(cache_hit=cache_hit)

    def _record_result(self, *, resolved: bool, proxied: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_result(resolved=resolved, proxied=proxied)
