"""Runtime metrics endpoint."""

from __future__ import annotations

from typing import Any, cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from streamfinder.interfaces.app_state import AppState

router = APIRouter(tags=["stats"])


@router.get("/stats")
async def stats(request: Request) -> JSONResponse:
    """Return in-memory resolution and per-provider counters."""
    state = cast(AppState, request.app.state)

    data: dict[str, Any] = {}
    m = getattr(state, "metrics", None)
    if m is not None:
        data.update(m.snapshot())

    providers = getattr(state, "providers", None)
    if providers is not None:
        data["chain"] = providers.ids()

    return JSONResponse(content=data)
