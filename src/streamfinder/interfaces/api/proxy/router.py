"""Interception proxy: frames allow-listed embed pages same-origin."""

from __future__ import annotations

from typing import cast

import httpx
import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response

from streamfinder.domain.entities.interception import VIDEO_SOURCE_MESSAGE
from streamfinder.domain.exceptions import ProxyTargetNotAllowedError
from streamfinder.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["proxy"])


@router.get("/proxy/player")
async def proxy_player(
    request: Request,
    url: str = Query(default="", description="Embed page to frame."),
) -> Response:
    state = cast(AppState, request.app.state)

    try:
        page = await state.proxy_fetcher.fetch(url)
    except ProxyTargetNotAllowedError:
        log.warning("proxy_target_rejected", url=url)
        return JSONResponse(
            status_code=400, content={"error": "Invalid or disallowed URL"}
        )
    except httpx.HTTPError as e:
        log.warning("proxy_fetch_failed", url=url, error=str(e))
        return JSONResponse(status_code=502, content={"error": "Proxy failed"})

    return Response(
        content=page.body,
        status_code=page.status_code,
        media_type=page.media_type,
        headers=page.headers,
    )


@router.get("/proxy/settings")
async def proxy_settings(request: Request) -> JSONResponse:
    """Timers and message type the embedding page needs to run interception."""
    config = cast(AppState, request.app.state).config
    return JSONResponse(
        content={
            "proxyPath": config.resolution.proxy_path,
            "messageType": VIDEO_SOURCE_MESSAGE,
            "collectionWindowSeconds": config.interception.collection_window_seconds,
            "timeoutSeconds": config.interception.timeout_seconds,
        }
    )
