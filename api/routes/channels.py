"""
api/routes/channels.py — Single-channel writes.

Endpoints:
    POST /api/channels/{channel_id}/fader — Set a fader in the selected view (?bus=&busId=)
    POST /api/channels/{channel_id}/gain  — Set the preamp gain
    POST /api/channels/{channel_id}/mute  — Mute in the selected view (not on gain)
    POST /api/channels/{channel_id}/solo  — Solo (main mix only)

A fader write is a direct edit: it becomes the new balance baseline for
every group the channel belongs to in that view.

Error mapping:
    400 — unknown channel id, or an operation the view does not support
    503 — console not connected
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from api.deps import get_session, parse_bus, parse_channel_id
from api.schemas.mixer import FaderRequest, MuteRequest, SoloRequest
from core.mixer.types import BusContext, BusType
from ingestion.console_bridge import ConsoleNotConnectedError
from ingestion.mix_session import MixSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/channels", tags=["channels"])


@router.post("/{channel_id}/fader", status_code=204)
async def set_fader(
    request: FaderRequest,
    channel_id: int = Depends(parse_channel_id),
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> Response:
    try:
        session.set_fader(ctx, channel_id, request.value)
    except ConsoleNotConnectedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)


@router.post("/{channel_id}/gain", status_code=204)
async def set_gain(
    request: FaderRequest,
    channel_id: int = Depends(parse_channel_id),
    session: MixSession = Depends(get_session),
) -> Response:
    try:
        session.set_fader(BusContext.gain(), channel_id, request.value)
    except ConsoleNotConnectedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)


@router.post("/{channel_id}/mute", status_code=204)
async def set_mute(
    request: MuteRequest,
    channel_id: int = Depends(parse_channel_id),
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> Response:
    if ctx.bus_type is BusType.GAIN:
        raise HTTPException(status_code=400, detail="Mute not supported for gain view")
    try:
        session.set_mute(ctx, channel_id, request.muted)
    except ConsoleNotConnectedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)


@router.post("/{channel_id}/solo", status_code=204)
async def set_solo(
    request: SoloRequest,
    channel_id: int = Depends(parse_channel_id),
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> Response:
    if ctx.bus_type is not BusType.MAIN:
        raise HTTPException(status_code=400, detail="Solo only supported for main mix")
    try:
        session.set_solo(channel_id, request.solo)
    except ConsoleNotConnectedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)
