"""Domain entities for stream resolution.

Pure value objects: no framework dependencies, no I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Union

MediaType = Literal["movie", "series"]
StreamKind = Literal["direct-file", "playlist", "embedded-proxy"]

DEFAULT_AUDIO_TRACK = "legendado"
NO_PROVIDER = "none"
# Provider id recorded on log rows that summarise a whole chain.
ALL_PROVIDERS = "all"


@dataclass(frozen=True)
class ResolutionKey:
    """Identity of one resolvable content item.

    ``title`` and ``imdb_id`` are hints for providers that search by name;
    they take no part in equality or hashing.
    """

    content_id: str
    media_type: MediaType
    audio_track: str = DEFAULT_AUDIO_TRACK
    season: int | None = None
    episode: int | None = None
    title: str | None = field(default=None, compare=False)
    imdb_id: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.content_id:
            raise ValueError("content_id must not be empty")
        # Movies never carry an episode position.
        if self.media_type == "movie":
            object.__setattr__(self, "season", None)
            object.__setattr__(self, "episode", None)

    @property
    def is_episode(self) -> bool:
        return (
            self.media_type == "series"
            and self.season is not None
            and self.episode is not None
        )

    def label(self) -> str:
        """Short human-readable form for logs and messages."""
        base = f"{self.media_type}:{self.content_id}:{self.audio_track}"
        if self.is_episode:
            return f"{base}:S{self.season}E{self.episode}"
        return base


@dataclass(frozen=True)
class Found:
    """A provider produced a directly playable URL."""

    url: str
    kind: StreamKind


@dataclass(frozen=True)
class NotFound:
    """A provider produced nothing usable."""

    reason: str = ""


@dataclass(frozen=True)
class ProxyFallback:
    """A provider can only offer its embed page, to be framed via the proxy."""

    embed_url: str


ResolutionOutcome = Union[Found, NotFound, ProxyFallback]


@dataclass(frozen=True)
class ResolutionResult:
    """Final answer of one resolution request."""

    url: str | None
    kind: StreamKind | None
    provider_id: str
    was_cached: bool = False
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.url is not None

    @classmethod
    def not_found(cls, message: str) -> ResolutionResult:
        return cls(url=None, kind=None, provider_id=NO_PROVIDER, message=message)


@dataclass(frozen=True)
class CacheEntry:
    """A cached successful resolution.

    ``pinned`` marks curated rows that automated refreshes leave alone.
    """

    key: ResolutionKey
    url: str
    kind: StreamKind
    provider_id: str
    created_at: datetime
    expires_at: datetime
    pinned: bool = False

    def is_fresh(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass(frozen=True)
class LogEntry:
    """Append-only record of a resolution attempt."""

    key: ResolutionKey
    provider_id: str
    success: bool
    created_at: datetime
    url: str | None = None
    error_message: str | None = None
    title: str | None = None
    log_id: str = ""


@dataclass(frozen=True)
class FailureRecord:
    """Last time a full provider chain found nothing for a content item."""

    content_id: str
    media_type: MediaType
    attempted_at: datetime


@dataclass(frozen=True)
class Deadline:
    """Monotonic point in time after which a provider must give up."""

    at: float

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        return cls(at=time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0
