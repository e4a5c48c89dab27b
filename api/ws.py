"""
api/ws.py — WebSocket push channel for browser clients.

Endpoint:
    WS /ws — sends a ``state`` snapshot on connect, then live updates

Message types (JSON, ``{"type": ..., "data": ...}``):
    state    full snapshot of the main view
    channel  one channel record (coalesced per bus/channel per loop tick)
    aux      aux bus name change
    status   console connection status
    meter    pre/post-fader levels of one input (sampled, at most every 50 ms)

Clients never send anything meaningful; inbound frames are read and dropped
so that disconnects are detected.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.broadcast import Broadcaster
from api.deps import get_broadcaster, get_session
from core.mixer.types import BusContext
from ingestion.mix_session import MixSession

router = APIRouter(tags=["ws"])


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    session: MixSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> None:
    await broadcaster.connect(websocket)
    try:
        await websocket.send_text(
            json.dumps({"type": "state", "data": session.snapshot(BusContext.main())})
        )
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)
