"""Tests for resolution domain entities."""

from __future__ import annotations

import time
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from streamfinder.domain.entities.interception import InterceptionState
from streamfinder.domain.entities.resolution import (
    NO_PROVIDER,
    CacheEntry,
    Deadline,
    ResolutionKey,
    ResolutionResult,
)

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestResolutionKey:
    def test_defaults(self) -> None:
        key = ResolutionKey(content_id="603", media_type="movie")
        assert key.audio_track == "legendado"
        assert key.season is None
        assert key.episode is None

    def test_movie_drops_episode_position(self) -> None:
        key = ResolutionKey(content_id="603", media_type="movie", season=1, episode=2)
        assert key.season is None
        assert key.episode is None
        assert key.is_episode is False

    def test_series_episode(self) -> None:
        key = ResolutionKey(content_id="1399", media_type="series", season=1, episode=2)
        assert key.is_episode is True
        assert key.label() == "series:1399:legendado:S1E2"

    def test_hints_do_not_affect_equality(self) -> None:
        a = ResolutionKey(content_id="603", media_type="movie", title="The Matrix")
        b = ResolutionKey(content_id="603", media_type="movie", imdb_id="tt0133093")
        assert a == b
        assert hash(a) == hash(b)

    def test_audio_track_affects_equality(self) -> None:
        a = ResolutionKey(content_id="603", media_type="movie", audio_track="dublado")
        b = ResolutionKey(content_id="603", media_type="movie")
        assert a != b

    def test_empty_content_id(self) -> None:
        with pytest.raises(ValueError):
            ResolutionKey(content_id="", media_type="movie")

    def test_frozen(self) -> None:
        key = ResolutionKey(content_id="603", media_type="movie")
        with pytest.raises(FrozenInstanceError):
            key.content_id = "604"  # type: ignore[misc]


class TestResolutionResult:
    def test_not_found(self) -> None:
        result = ResolutionResult.not_found("nothing here")
        assert result.url is None
        assert result.provider_id == NO_PROVIDER
        assert result.success is False
        assert result.was_cached is False

    def test_success(self) -> None:
        result = ResolutionResult(
            url="https://cdn/x.mp4", kind="direct-file", provider_id="inline"
        )
        assert result.success is True


class TestCacheEntry:
    def test_freshness(self) -> None:
        entry = CacheEntry(
            key=ResolutionKey(content_id="603", media_type="movie"),
            url="https://cdn/x.mp4",
            kind="direct-file",
            provider_id="inline",
            created_at=NOW,
            expires_at=NOW + timedelta(hours=1),
        )
        assert entry.is_fresh(NOW) is True
        assert entry.is_fresh(NOW + timedelta(hours=1)) is False
        assert entry.pinned is False


class TestDeadline:
    def test_remaining_positive(self) -> None:
        deadline = Deadline.after(10.0)
        assert 9.0 < deadline.remaining() <= 10.0
        assert deadline.expired is False

    def test_expired(self) -> None:
        deadline = Deadline(at=time.monotonic() - 1.0)
        assert deadline.remaining() == 0.0
        assert deadline.expired is True


class TestInterceptionState:
    def test_values(self) -> None:
        assert InterceptionState("audio-select") is InterceptionState.AUDIO_SELECT
