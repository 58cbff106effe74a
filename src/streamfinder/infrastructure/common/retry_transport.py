"""httpx transport with per-domain rate limiting and 429/503 retry."""

from __future__ import annotations

import asyncio
import random

import httpx
import structlog

from streamfinder.infrastructure.common.rate_limiter import DomainRateLimiter

log = structlog.get_logger(__name__)

_DEFAULT_RETRYABLE = frozenset({429, 503})


def _parse_retry_after(headers: httpx.Headers) -> float | None:
    """Seconds from a ``Retry-After`` header; HTTP-date values are ignored."""
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Wraps an httpx transport with rate limiting and retry on 429/503.

    Retries sleep inside the caller's task, so a provider deadline that
    cancels the task also cancels any pending backoff.
    """

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        rate_limiter: DomainRateLimiter,
        *,
        max_retries: int = 1,
        backoff_base: float = 0.5,
        max_backoff: float = 3.0,
        retryable_status_codes: frozenset[int] = _DEFAULT_RETRYABLE,
    ) -> None:
        self._wrapped = wrapped
        self._rate_limiter = rate_limiter
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._retryable = retryable_status_codes

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        attempt = 0
        while True:
            await self._rate_limiter.acquire(str(request.url))
            response = await self._wrapped.handle_async_request(request)

            retryable = response.status_code in self._retryable
            if not retryable or attempt >= self._max_retries:
                return response

            await response.aread()
            await response.aclose()

            delay = self._compute_delay(response, attempt)
            log.info(
                "http_retry",
                url=str(request.url),
                status=response.status_code,
                attempt=attempt + 1,
                delay=round(delay, 2),
            )
            await asyncio.sleep(delay)
            attempt += 1

    def _compute_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = _parse_retry_after(response.headers)
        if retry_after is not None:
            return min(retry_after, self._max_backoff)
        delay = self._backoff_base * (2**attempt)
        jitter = random.uniform(0, self._backoff_base)  # noqa: S311
        return min(delay + jitter, self._max_backoff)

    async def aclose(self) -> None:
        await self._wrapped.aclose()
