"""Host side of the interception fallback.

A provider's embed page is framed through the proxy route. The injected
script posts ``{type: "VIDEO_SOURCE", url, sourceTag}`` messages for
every media request it sees; the session collects them and decides
between the native player (``custom``) and the raw page (``embed``).

State flow::

    audio-select -> extracting -> custom -> embed
                              \\-> embed

Two independent timers run while extracting: the collection window,
armed by the first accepted candidate, and the overall timeout. Both
are cancelled on ``close()``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

import structlog

from streamfinder.domain.entities.interception import (
    VIDEO_SOURCE_MESSAGE,
    InterceptedSource,
    InterceptionState,
)
from streamfinder.domain.entities.resolution import DEFAULT_AUDIO_TRACK, StreamKind

log = structlog.get_logger(__name__)

TransitionCallback = Callable[[InterceptionState | None, InterceptionState], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_origin(value: str) -> str:
    """``scheme://host[:port]`` in lower case, or ``""`` if unparsable."""
    parsed = urlparse(value.strip())
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


class InterceptionSession:
    def __init__(
        self,
        *,
        expected_origin: str,
        is_media: Callable[[str], bool],
        classify: Callable[[str], StreamKind],
        audio_tracks: Sequence[str] = (DEFAULT_AUDIO_TRACK,),
        collection_window: float = 0.5,
        timeout: float = 20.0,
        on_transition: TransitionCallback | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not audio_tracks:
            raise ValueError("audio_tracks must not be empty")
        self._expected_origin = normalize_origin(expected_origin)
        self._is_media = is_media
        self._classify = classify
        self._audio_tracks = tuple(audio_tracks)
        self._window = collection_window
        self._timeout = timeout
        self._on_transition = on_transition
        self._clock = clock

        self._state: InterceptionState | None = None
        self._audio_track: str | None = None
        self._candidates: list[InterceptedSource] = []
        self._seen: set[str] = set()
        self._window_handle: asyncio.TimerHandle | None = None
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._settled = asyncio.Event()

    @property
    def state(self) -> InterceptionState | None:
        return self._state

    @property
    def audio_track(self) -> str | None:
        return self._audio_track

    @property
    def candidates(self) -> list[InterceptedSource]:
        """Accepted sources in discovery order."""
        return list(self._candidates)

    @property
    def has_pending_timers(self) -> bool:
        return self._window_handle is not None or self._timeout_handle is not None

    def start(self) -> None:
        """Enter the first state. Must be called from a running event loop."""
        if self._state is not None:
            raise RuntimeError("session already started")
        if len(self._audio_tracks) > 1:
            self._transition(InterceptionState.AUDIO_SELECT)
        else:
            self._audio_track = self._audio_tracks[0]
            self._begin_extracting()

    def choose_audio(self, track: str) -> None:
        if self._state is not InterceptionState.AUDIO_SELECT:
            raise RuntimeError(f"cannot choose audio in state {self._state}")
        if track not in self._audio_tracks:
            raise ValueError(f"unknown audio track: {track!r}")
        self._audio_track = track
        self._begin_extracting()

    def handle_message(self, origin: str, data: Mapping[str, Any]) -> bool:
        """Offer one frame message. Returns True if it became a candidate."""
        if self._state is not InterceptionState.EXTRACTING:
            return False
        if normalize_origin(origin) != self._expected_origin:
            log.warning("interception_origin_rejected", origin=origin)
            return False
        if data.get("type") != VIDEO_SOURCE_MESSAGE:
            return False
        url = data.get("url")
        if not isinstance(url, str) or not self._is_media(url):
            return False
        if url in self._seen:
            return False

        self._seen.add(url)
        self._candidates.append(
            InterceptedSource(
                url=url, kind=self._classify(url), detected_at=self._clock()
            )
        )
        log.debug(
            "interception_candidate",
            url=url,
            source_tag=data.get("sourceTag"),
            count=len(self._candidates),
        )
        if self._window_handle is None:
            loop = asyncio.get_running_loop()
            self._window_handle = loop.call_later(self._window, self._on_window_closed)
        return True

    def player_failed(self) -> None:
        """The native player hit a fatal error; fall back to the raw page."""
        if self._state is InterceptionState.CUSTOM:
            self._transition(InterceptionState.EMBED)

    def close(self) -> None:
        self._cancel_timers()
        if self._state is not InterceptionState.CLOSED:
            self._transition(InterceptionState.CLOSED)

    async def wait_settled(self) -> InterceptionState:
        """Wait until the session leaves ``extracting``."""
        await self._settled.wait()
        assert self._state is not None
        return self._state

    def _begin_extracting(self) -> None:
        self._transition(InterceptionState.EXTRACTING)
        loop = asyncio.get_running_loop()
        self._timeout_handle = loop.call_later(self._timeout, self._on_timeout)

    def _on_window_closed(self) -> None:
        self._window_handle = None
        if self._state is InterceptionState.EXTRACTING:
            self._cancel_timers()
            self._transition(InterceptionState.CUSTOM)

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        # A running collection window decides the outcome instead.
        if self._state is InterceptionState.EXTRACTING and not self._candidates:
            log.info("interception_timeout", timeout=self._timeout)
            self._cancel_timers()
            self._transition(InterceptionState.EMBED)

    def _cancel_timers(self) -> None:
        for handle in (self._window_handle, self._timeout_handle):
            if handle is not None:
                handle.cancel()
        self._window_handle = None
        self._timeout_handle = None

    def _transition(self, new: InterceptionState) -> None:
        old = self._state
        self._state = new
        if new not in (InterceptionState.AUDIO_SELECT, InterceptionState.EXTRACTING):
            self._settled.set()
        log.debug(
            "interception_transition",
            old=old.value if old else None,
            new=new.value,
        )
        if self._on_transition is not None:
            self._on_transition(old, new)
