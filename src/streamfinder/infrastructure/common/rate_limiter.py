"""Per-host token-bucket rate limiter for outgoing provider requests."""

from __future__ import annotations

import asyncio
import time
from urllib.parse import urlparse


class TokenBucket:
    """Classic token bucket.

    Args:
        rate: Tokens replenished per second. ``<= 0`` disables limiting.
        burst: Maximum bucket size (allows short bursts).
    """

    def __init__(self, rate: float, burst: int = 10) -> None:
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        if self._rate <= 0:
            return

        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                await asyncio.sleep((1.0 - self._tokens) / self._rate)
                self._refill()
            self._tokens -= 1.0

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self._burst, self._tokens + elapsed * self._rate)
        self._last_refill = now


class DomainRateLimiter:
    """One TokenBucket per registrable domain.

    Provider mirrors usually share a second-level name across TLDs, so the
    bucket key is the label left of the TLD.
    """

    def __init__(self, default_rps: float = 10.0, burst: int = 10) -> None:
        self._default_rps = default_rps
        self._burst = burst
        self._buckets: dict[str, TokenBucket] = {}

    @staticmethod
    def domain_of(url: str) -> str:
        hostname = urlparse(url).hostname or ""
        if not hostname:
            return ""
        parts = hostname.split(".")
        return parts[-2] if len(parts) >= 2 else parts[0]

    async def acquire(self, url: str) -> None:
        if self._default_rps <= 0:
            return
        domain = self.domain_of(url)
        if not domain:
            return
        bucket = self._buckets.get(domain)
        if bucket is None:
            bucket = TokenBucket(rate=self._default_rps, burst=self._burst)
            self._buckets[domain] = bucket
        await bucket.acquire()
