"""
api/broadcast.py — Fan-out of server messages to connected browsers.

Satisfies the :class:`~ingestion.mix_session.UpdatePublisher` protocol.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from core.mixer.types import Channel

logger = logging.getLogger(__name__)


class Broadcaster:
    """Fan-out of server messages to every connected browser.

    Must be used from the event loop thread. ``channel`` messages are
    coalesced: several writes to the same channel within one loop iteration
    produce a single message carrying the latest record.
    """

    def __init__(self) -> None:
        self.active: list[WebSocket] = []
        self._pending: dict[tuple[str, int, int], Channel] = {}
        self._flush_scheduled = False
        self._tasks: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active.append(websocket)
        logger.info("WS connect (%d clients)", len(self.active))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active:
            self.active.remove(websocket)
            logger.info("WS disconnect (%d clients)", len(self.active))

    def publish(self, message: dict[str, Any]) -> None:
        if not self.active:
            return
        payload = json.dumps(message)
        task = asyncio.get_running_loop().create_task(self._send_all(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def queue_channel(self, channel: Channel) -> None:
        if not self.active:
            return
        self._pending[(channel.bus_type.value, channel.bus_id, channel.id)] = channel
        if self._flush_scheduled:
            return
        self._flush_scheduled = True
        asyncio.get_running_loop().call_soon(self.flush)

    def flush(self) -> None:
        self._flush_scheduled = False
        updates = list(self._pending.values())
        self._pending.clear()
        for channel in updates:
            self.publish({"type": "channel", "data": channel.to_dict()})

    async def _send_all(self, payload: str) -> None:
        for websocket in list(self.active):
            try:
                await websocket.send_text(payload)
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("Dropping WS client after send failure: %s", exc)
                self.disconnect(websocket)

