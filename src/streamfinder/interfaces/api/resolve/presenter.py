"""Request/response shapes for the resolve endpoint (camelCase on the wire)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from streamfinder.domain.entities.resolution import (
    DEFAULT_AUDIO_TRACK,
    ResolutionKey,
    ResolutionResult,
)


class ResolveBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    content_id: str = Field(min_length=1)
    media_type: Literal["movie", "series"]
    audio_track: str = DEFAULT_AUDIO_TRACK
    season: int | None = Field(default=None, ge=0)
    episode: int | None = Field(default=None, ge=0)
    title: str | None = None
    imdb_id: str | None = None
    force_provider: str | None = None
    skip_providers: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _episode_needs_season(self) -> ResolveBody:
        if self.episode is not None and self.season is None:
            raise ValueError("episode requires season")
        return self

    def to_key(self) -> ResolutionKey:
        return ResolutionKey(
            content_id=self.content_id,
            media_type=self.media_type,
            audio_track=self.audio_track,
            season=self.season,
            episode=self.episode,
            title=self.title,
            imdb_id=self.imdb_id,
        )


def render_result(result: ResolutionResult) -> dict[str, Any]:
    return {
        "url": result.url,
        "kind": result.kind,
        "providerId": result.provider_id,
        "wasCached": result.was_cached,
        "message": result.message,
    }
