"""SQLite-backed row store for single-process deployments."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

import structlog
from diskcache import Cache as DiskCache

log = structlog.get_logger(__name__)


class DiskcacheAdapter:
    """Async facade over the synchronous ``diskcache.Cache``.

    Every disk call runs in a worker thread; a semaphore bounds how many
    run at once so SQLite write locks do not pile up. Keys are stored
    under ``{namespace}:`` so several deployments can share a directory.
    """

    def __init__(
        self,
        directory: str | Path = "./.cache/streamfinder",
        ttl_seconds: int = 7 * 86_400,
        max_concurrent: int = 10,
        namespace: str = "streamfinder",
    ) -> None:
        self.directory = Path(directory)
        self.default_ttl = ttl_seconds
        self.namespace = namespace
        self._cache: DiskCache | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> DiskcacheAdapter:
        if self._cache is None:
            self._cache = await asyncio.to_thread(DiskCache, str(self.directory))
            log.info(
                "row_store_opened",
                backend="diskcache",
                directory=str(self.directory),
                namespace=self.namespace,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._cache is not None:
            await asyncio.to_thread(self._cache.close)
            self._cache = None
            log.info("row_store_closed", backend="diskcache")

    def _require_open(self) -> DiskCache:
        if self._cache is None:
            raise RuntimeError("Row store is closed. Use 'async with store:'")
        return self._cache

    def _k(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> str | None:
        cache = self._require_open()
        async with self._semaphore:
            return await asyncio.to_thread(cache.get, self._k(key), None)

    async def get_many(self, keys: Sequence[str]) -> dict[str, str]:
        cache = self._require_open()
        wanted = list(keys)

        def _read() -> dict[str, str]:
            found: dict[str, str] = {}
            for key in wanted:
                value = cache.get(self._k(key), None)
                if value is not None:
                    found[key] = value
            return found

        async with self._semaphore:
            found = await asyncio.to_thread(_read)
        log.debug("row_store_get_many", requested=len(wanted), found=len(found))
        return found

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        cache = self._require_open()
        expire = ttl if ttl is not None else self.default_ttl
        async with self._semaphore:
            await asyncio.to_thread(cache.set, self._k(key), value, expire or None)

    async def delete(self, key: str) -> bool:
        cache = self._require_open()
        async with self._semaphore:
            return bool(await asyncio.to_thread(cache.delete, self._k(key)))
