"""Picks the row store for the configured backend."""

from __future__ import annotations

import structlog

from streamfinder.domain.ports.cache import CachePort
from streamfinder.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from streamfinder.infrastructure.cache.redis_adapter import RedisAdapter
from streamfinder.infrastructure.config.schema import CacheConfig

log = structlog.get_logger(__name__)


def create_cache(config: CacheConfig, *, default_ttl: int) -> CachePort:
    """Unopened store for ``config.backend``; enter it with ``async with``.

    *default_ttl* applies to writes that pass no explicit ttl.
    """
    if config.backend == "redis":
        log.info("row_store_selected", backend="redis", url=config.redis_url)
        # Redis tolerates far more parallel ops than SQLite.
        return RedisAdapter(
            url=config.redis_url,
            ttl_seconds=default_ttl,
            max_concurrent=max(50, config.max_concurrent),
            namespace=config.namespace,
        )
    log.info(
        "row_store_selected", backend="diskcache", directory=str(config.directory)
    )
    return DiskcacheAdapter(
        directory=config.directory,
        ttl_seconds=default_ttl,
        max_concurrent=config.max_concurrent,
        namespace=config.namespace,
    )
