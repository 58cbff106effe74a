"""Ordered playback candidates for the native player."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from streamfinder.domain.entities.interception import InterceptedSource
from streamfinder.domain.entities.resolution import ResolutionKey

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResolveRequest:
    """Arguments for a fresh resolution after a provider's link failed."""

    key: ResolutionKey
    skip_providers: tuple[str, ...] = field(default_factory=tuple)


class PlayerSourceQueue:
    """Walks candidates in discovery order, one fatal error at a time.

    When every candidate is exhausted the host asks the resolver again via
    ``retry_request``, skipping the provider whose link failed.
    """

    def __init__(
        self,
        key: ResolutionKey,
        candidates: Sequence[InterceptedSource],
        *,
        skip_providers: Iterable[str] = (),
    ) -> None:
        self._key = key
        self._candidates = list(candidates)
        self._index = 0
        self._skip = list(dict.fromkeys(skip_providers))

    @property
    def current(self) -> InterceptedSource | None:
        if self._index < len(self._candidates):
            return self._candidates[self._index]
        return None

    @property
    def has_next(self) -> bool:
        return self._index + 1 < len(self._candidates)

    def advance(self) -> InterceptedSource | None:
        """Drop the current candidate; return the next one or None."""
        if self._index < len(self._candidates):
            failed = self._candidates[self._index]
            self._index += 1
            log.info("player_source_failed", url=failed.url, remaining=self.remaining)
        return self.current

    @property
    def remaining(self) -> int:
        return max(0, len(self._candidates) - self._index)

    def retry_request(self, failed_provider: str) -> ResolveRequest:
        skip = list(self._skip)
        if failed_provider not in skip:
            skip.append(failed_provider)
        return ResolveRequest(key=self._key, skip_providers=tuple(skip))
