"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from streamfinder.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from streamfinder.application.use_cases import (
        RefreshLinksUseCase,
        ResolveStreamUseCase,
        RetryFailuresUseCase,
    )
    from streamfinder.domain.ports import (
        CachePort,
        FailureStorePort,
        ResolutionCachePort,
        ResolutionLogPort,
    )
    from streamfinder.infrastructure.interception import ProxyPageFetcher
    from streamfinder.infrastructure.metrics import MetricsCollector
    from streamfinder.infrastructure.providers import ProviderRegistry


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    cache: CachePort
    http_client: httpx.AsyncClient
    providers: ProviderRegistry
    proxy_fetcher: ProxyPageFetcher

    # Persistence
    resolution_cache: ResolutionCachePort
    resolution_log: ResolutionLogPort
    failure_store: FailureStorePort

    # Use cases
    resolve_uc: ResolveStreamUseCase
    refresh_uc: RefreshLinksUseCase
    retry_uc: RetryFailuresUseCase

    # Metrics (zero-impact in-memory counters)
    metrics: MetricsCollector
