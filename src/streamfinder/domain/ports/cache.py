"""Storage port for the JSON rows behind the resolution repositories."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

NO_EXPIRY = 0


class CachePort(Protocol):
    """Namespaced text store with per-key expiry.

    Repositories keep one JSON document per key and enumerate their rows
    through an index key, so no key scan is required.

    Implementations:
      - DiskcacheAdapter (SQLite file, single process)
      - RedisAdapter (shared between replicas)

    Usage:
        async with store:
            await store.set("resolution:movie:603", payload, ttl=3600)
    """

    async def get(self, key: str) -> str | None:
        """Stored text, or None when missing or expired."""
        ...

    async def get_many(self, keys: Sequence[str]) -> dict[str, str]:
        """Present keys only; missing and expired keys are left out."""
        ...

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        """*ttl* None uses the store default; NO_EXPIRY keeps the row until deleted."""
        ...

    async def delete(self, key: str) -> bool:
        """True when a row was removed."""
        ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> CachePort: ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...
