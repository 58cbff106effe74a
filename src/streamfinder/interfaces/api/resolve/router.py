"""Stream resolution endpoint."""

from __future__ import annotations

from typing import cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from streamfinder.interfaces.api.resolve.presenter import ResolveBody, render_result
from streamfinder.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["resolve"])


@router.post("/resolve")
async def resolve(body: ResolveBody, request: Request) -> JSONResponse:
    """Resolve one catalog item to a playable URL.

    Always answers 200 with the resolution shape; an exhausted chain or an
    unknown forced provider yields ``url: null`` with a message.
    """
    state = cast(AppState, request.app.state)
    key = body.to_key()

    log.info(
        "resolve_request",
        key=key.label(),
        force_provider=body.force_provider,
        skip_providers=body.skip_providers,
    )
    result = await state.resolve_uc.execute(
        key,
        force_provider=body.force_provider,
        skip_providers=body.skip_providers,
    )
    return JSONResponse(content=render_result(result))
