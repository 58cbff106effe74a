"""Redis-backed row store, shared by every replica of the service."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

log = structlog.get_logger(__name__)


class RedisAdapter:
    """Stores repository rows as UTF-8 strings under ``{namespace}:``.

    Connection failures at startup propagate. Once running, a failed read
    is reported as a miss so the resolution chain still runs; failed
    writes are logged and dropped.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 7 * 86_400,
        max_concurrent: int = 50,
        namespace: str = "streamfinder",
    ) -> None:
        self.url = url
        self.default_ttl = ttl_seconds
        self.namespace = namespace
        self._client: Redis | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> RedisAdapter:
        if self._client is None:
            client = Redis.from_url(self.url, decode_responses=True)
            try:
                await client.ping()
            except RedisError as e:
                log.error("row_store_connect_failed", url=self.url, error=str(e))
                await client.aclose()
                raise
            self._client = client
            log.info(
                "row_store_opened",
                backend="redis",
                url=self.url,
                namespace=self.namespace,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("row_store_closed", backend="redis")

    def _require_open(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Row store is closed. Use 'async with store:'")
        return self._client

    def _k(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> str | None:
        client = self._require_open()
        async with self._semaphore:
            try:
                return await client.get(self._k(key))
            except RedisError as e:
                log.warning("row_store_read_failed", key=key, error=str(e))
                return None

    async def get_many(self, keys: Sequence[str]) -> dict[str, str]:
        wanted = list(keys)
        if not wanted:
            return {}
        client = self._require_open()
        async with self._semaphore:
            try:
                values = await client.mget([self._k(k) for k in wanted])
            except RedisError as e:
                log.warning("row_store_read_failed", keys=len(wanted), error=str(e))
                return {}
        return {k: v for k, v in zip(wanted, values) if v is not None}

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        client = self._require_open()
        expire = ttl if ttl is not None else self.default_ttl
        async with self._semaphore:
            try:
                await client.set(
                    self._k(key), value, ex=max(1, int(expire)) if expire else None
                )
            except RedisError as e:
                log.error("row_store_write_failed", key=key, error=str(e))

    async def delete(self, key: str) -> bool:
        client = self._require_open()
        async with self._semaphore:
            try:
                return await client.delete(self._k(key)) > 0
            except RedisError as e:
                log.error("row_store_delete_failed", key=key, error=str(e))
                return False
