"""Admin endpoints: attempt log, maintenance sweeps, cache curation.

Every route requires the ``X-Admin-Pass`` header to match the configured
admin password. Without a configured password all routes answer 403.
"""

from __future__ import annotations

import secrets
from dataclasses import asdict
from typing import Any, Literal, cast

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from streamfinder.domain.entities.resolution import (
    DEFAULT_AUDIO_TRACK,
    LogEntry,
    ResolutionKey,
)
from streamfinder.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


async def require_admin(
    request: Request,
    x_admin_pass: str | None = Header(default=None, alias="X-Admin-Pass"),
) -> None:
    state = cast(AppState, request.app.state)
    expected = state.config.admin.password
    if not expected or not x_admin_pass:
        raise HTTPException(status_code=403, detail="Unauthorized")
    if not secrets.compare_digest(x_admin_pass.encode(), expected.encode()):
        log.warning("admin_auth_failed", path=request.url.path)
        raise HTTPException(status_code=403, detail="Unauthorized")


router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RefreshBody(_CamelModel):
    mode: Literal["expiring", "old", "all"] = "expiring"
    batch_size: int = Field(default=30, ge=1, le=500)


class PinBody(_CamelModel):
    content_id: str = Field(min_length=1)
    media_type: Literal["movie", "series"]
    audio_track: str = DEFAULT_AUDIO_TRACK
    season: int | None = None
    episode: int | None = None
    pinned: bool = True


def _render_log(entry: LogEntry) -> dict[str, Any]:
    return {
        "id": entry.log_id,
        "contentId": entry.key.content_id,
        "mediaType": entry.key.media_type,
        "audioTrack": entry.key.audio_track,
        "season": entry.key.season,
        "episode": entry.key.episode,
        "title": entry.title,
        "providerId": entry.provider_id,
        "success": entry.success,
        "url": entry.url,
        "errorMessage": entry.error_message,
        "createdAt": entry.created_at.isoformat(),
    }


@router.get("/logs")
async def list_logs(
    request: Request,
    limit: int = Query(default=100, ge=1, description="Capped at 500."),
) -> JSONResponse:
    state = cast(AppState, request.app.state)
    entries = await state.resolution_log.list_recent(limit)
    return JSONResponse(
        content={"logs": [_render_log(e) for e in entries], "count": len(entries)}
    )


@router.delete("/logs")
async def purge_logs(request: Request) -> JSONResponse:
    state = cast(AppState, request.app.state)
    deleted = await state.resolution_log.purge()
    log.info("admin_logs_purged", deleted=deleted)
    return JSONResponse(content={"deleted": deleted})


@router.post("/refresh")
async def refresh_links(body: RefreshBody, request: Request) -> JSONResponse:
    state = cast(AppState, request.app.state)
    summary = await state.refresh_uc.execute(body.mode, body.batch_size)
    return JSONResponse(content=asdict(summary))


@router.post("/retry-failures")
async def retry_failures(request: Request) -> JSONResponse:
    state = cast(AppState, request.app.state)
    summary = await state.retry_uc.execute()
    return JSONResponse(
        content={
            "resolved": summary.resolved,
            "stillFailed": summary.still_failed,
            "total": summary.total,
        }
    )


@router.post("/cache/pin")
async def pin_cache_entry(body: PinBody, request: Request) -> JSONResponse:
    state = cast(AppState, request.app.state)
    key = ResolutionKey(
        content_id=body.content_id,
        media_type=body.media_type,
        audio_track=body.audio_track,
        season=body.season,
        episode=body.episode,
    )
    changed = await state.resolution_cache.pin(key, body.pinned)
    if not changed:
        return JSONResponse(status_code=404, content={"error": "cache entry not found"})
    log.info("admin_cache_pinned", key=key.label(), pinned=body.pinned)
    return JSONResponse(content={"key": key.label(), "pinned": body.pinned})
