"""
api/routes/state.py — View snapshots, layout persistence and console selection.

Endpoints:
    GET  /api/state   — Channel snapshot for one view (?bus=&busId=)
    GET  /api/layout  — Sections (aux only), global groups and settings for one view
    PUT  /api/layout  — Replace any part of the layout for one view
    POST /api/connect — Switch to another console host (and its layout file)

Handlers are ``async def`` so they run on the event loop that owns the
mixing session.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Response

from api.deps import get_session, parse_bus
from api.schemas.mixer import ConnectRequest, LayoutUpdateRequest
from core.mixer.types import BusContext
from ingestion.mix_session import MixSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["state"])


@router.get("/state")
async def get_state(
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> dict[str, Any]:
    """Return host, connection status, aux bus names and the channels of one view."""
    return session.snapshot(ctx)


@router.get("/layout")
async def get_layout(
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> dict[str, Any]:
    return session.layout_payload(ctx)


@router.put("/layout", status_code=204)
async def put_layout(
    request: LayoutUpdateRequest,
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> Response:
    """Persist a layout edit and resynchronise group ratios.

    Omitted parts are left untouched. ``sections`` only applies to aux views.
    """
    session.update_layout(ctx, request.model_dump(by_alias=True, exclude_none=True))
    return Response(status_code=204)


@router.post("/connect", status_code=204)
async def connect(
    request: ConnectRequest,
    session: MixSession = Depends(get_session),
) -> Response:
    session.connect(request.host)
    return Response(status_code=204)
