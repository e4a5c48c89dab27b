"""
api/routes/groups.py — Virtual group (VCA-style) controls.

Endpoints:
    POST /api/groups/{kind}/{group_id}/offset — Move a group master (returns moved faders)
    POST /api/groups/{kind}/{group_id}/mode   — Change a group's floor policy
    POST /api/groups/{kind}/{group_id}/mute   — Mute every member in the selected view
    POST /api/groups/{kind}/{group_id}/solo   — Solo every member (main mix only)

``kind`` is ``local`` (aux sections), ``global`` or ``view`` (the implicit
``all`` master on main/gain). Unknown groups are a no-op, not an error:
``offset`` returns an empty ``updated`` map.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from api.deps import get_session, parse_bus
from api.schemas.mixer import ModeRequest, MuteRequest, OffsetRequest, OffsetResponse, SoloRequest
from core.mixer.types import BusContext, BusType, GroupKind
from ingestion.console_bridge import ConsoleNotConnectedError
from ingestion.mix_session import MixSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/groups", tags=["groups"])


@router.post("/{kind}/{group_id}/offset", response_model=OffsetResponse)
async def change_offset(
    kind: GroupKind,
    group_id: str,
    request: OffsetRequest,
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> OffsetResponse:
    """Shift every qualifying member by the change in master offset.

    Members at the floor are skipped according to the group's policy.
    """
    try:
        updated = session.change_offset(ctx, kind, group_id, request.offset_db)
    except ConsoleNotConnectedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return OffsetResponse(updated=updated)


@router.post("/{kind}/{group_id}/mode", status_code=204)
async def set_mode(
    kind: GroupKind,
    group_id: str,
    request: ModeRequest,
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> Response:
    if kind is GroupKind.VIEW:
        raise HTTPException(status_code=400, detail="The view master's policy is fixed")
    session.set_group_mode(ctx, kind, group_id, request.mode)
    return Response(status_code=204)


@router.post("/{kind}/{group_id}/mute", status_code=204)
async def set_mute(
    kind: GroupKind,
    group_id: str,
    request: MuteRequest,
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> Response:
    if ctx.bus_type is BusType.GAIN:
        raise HTTPException(status_code=400, detail="Mute not supported for gain view")
    try:
        session.set_group_mute(ctx, kind, group_id, request.muted)
    except ConsoleNotConnectedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)


@router.post("/{kind}/{group_id}/solo", status_code=204)
async def set_solo(
    kind: GroupKind,
    group_id: str,
    request: SoloRequest,
    ctx: BusContext = Depends(parse_bus),
    session: MixSession = Depends(get_session),
) -> Response:
    if ctx.bus_type is not BusType.MAIN:
        raise HTTPException(status_code=400, detail="Solo only supported for main mix")
    try:
        session.set_group_solo(kind, group_id, request.solo)
    except ConsoleNotConnectedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)
