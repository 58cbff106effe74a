"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Iterable, cast
from urllib.parse import urlparse

import httpx
import structlog
from fastapi import FastAPI

from streamfinder.application.use_cases import (
    RefreshLinksUseCase,
    ResolveStreamUseCase,
    RetryFailuresUseCase,
)
from streamfinder.infrastructure.cache.cache_factory import create_cache
from streamfinder.infrastructure.common.rate_limiter import DomainRateLimiter
from streamfinder.infrastructure.common.retry_transport import RetryTransport
from streamfinder.infrastructure.config.schema import AppConfig
from streamfinder.infrastructure.interception import ProxyPageFetcher
from streamfinder.infrastructure.metrics import MetricsCollector
from streamfinder.infrastructure.persistence import (
    CacheFailureRepository,
    CacheResolutionLogRepository,
    CacheResolutionRepository,
)
from streamfinder.infrastructure.providers import build_provider_registry
from streamfinder.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def build_http_client(config: AppConfig) -> httpx.AsyncClient:
    """Shared client with per-domain rate limiting and 429/503 retry."""
    rate_limiter = DomainRateLimiter(
        default_rps=config.rate_limit_requests_per_second,
        burst=10,
    )
    transport = RetryTransport(
        wrapped=httpx.AsyncHTTPTransport(),
        rate_limiter=rate_limiter,
        max_retries=config.http_retry_max_attempts,
        backoff_base=config.http_retry_backoff_base,
        max_backoff=config.http_retry_max_backoff,
    )
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=config.http_follow_redirects,
    )


def proxy_allow_list(config: AppConfig, provider_ids: Iterable[str]) -> list[str]:
    """Configured proxy domains plus the hosts of every registered provider."""
    domains = list(config.interception.allowed_domains)
    for provider_id in provider_ids:
        provider = config.providers.get(provider_id)
        if provider is None:
            continue
        for base in provider.all_base_urls:
            host = urlparse(base).hostname
            if host and host not in domains:
                domains.append(host)
    return domains


def wire_use_cases(state: AppState, config: AppConfig) -> None:
    """Build repositories and use cases on top of cache, client and registry."""
    resolution = config.resolution
    state.resolution_cache = CacheResolutionRepository(state.cache)
    state.resolution_log = CacheResolutionLogRepository(
        state.cache, max_entries=resolution.log_max_entries
    )
    state.failure_store = CacheFailureRepository(state.cache)

    state.resolve_uc = ResolveStreamUseCase(
        providers=state.providers,
        cache_repo=state.resolution_cache,
        log_repo=state.resolution_log,
        failure_store=state.failure_store,
        metrics=state.metrics,
        cache_ttl_seconds=resolution.cache_ttl_seconds,
        proxy_path=resolution.proxy_path,
        synthesize_proxy=resolution.synthesize_proxy,
    )
    state.refresh_uc = RefreshLinksUseCase(
        resolver=state.resolve_uc,
        cache_repo=state.resolution_cache,
        concurrency=resolution.refresh_concurrency,
        batch_concurrency=resolution.retry_concurrency,
        skip_providers=resolution.refresh_skip_providers,
    )
    state.retry_uc = RetryFailuresUseCase(
        resolver=state.resolve_uc,
        failure_store=state.failure_store,
        log_repo=state.resolution_log,
        retry_after=timedelta(hours=resolution.retry_after_hours),
        limit=resolution.retry_limit,
        concurrency=resolution.retry_concurrency,
        skip_providers=resolution.refresh_skip_providers,
    )


@asynccontextmanager
async def open_resources(state: AppState) -> AsyncIterator[AppState]:
    """
    Composition Root: initializes all resources in order on *state*.

    Order:
        1. Metrics collector
        2. Cache (diskcache or redis)
        3. HTTP client (rate limited, retrying)
        4. Provider registry
        5. Repositories and use cases
        6. Interception proxy
    """
    config = state.config

    # 1) Metrics collector (must exist before components that record)
    state.metrics = MetricsCollector()

    # 2) Cache (other components depend on it)
    cache = create_cache(
        config.cache, default_ttl=config.resolution.cache_ttl_seconds
    )
    await cache.__aenter__()
    state.cache = cache
    log.info("cache_initialized", backend=config.cache.backend)

    # 3) HTTP client
    state.http_client = build_http_client(config)
    log.info(
        "http_client_initialized",
        rate_limit_rps=config.rate_limit_requests_per_second,
        retry_max_attempts=config.http_retry_max_attempts,
    )

    # 4) Providers
    state.providers = build_provider_registry(
        http_client=state.http_client,
        providers=config.providers,
        discovery=config.discovery,
    )

    # 5) Persistence + use cases
    wire_use_cases(state, config)

    # 6) Interception proxy
    state.proxy_fetcher = ProxyPageFetcher(
        http_client=state.http_client,
        allowed_domains=proxy_allow_list(config, state.providers.ids()),
        user_agent=config.http_user_agent,
        timeout_seconds=config.http_timeout_seconds,
    )

    log.info("app_startup_complete", providers=state.providers.ids())

    try:
        yield state
    finally:
        await state.http_client.aclose()
        log.info("http_client_closed")

        await state.cache.aclose()
        log.info("cache_closed")

        log.info("app_shutdown_complete")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with open_resources(cast(AppState, app.state)):
        yield
