"""ingestion/mix_session.py — Ties the console, the layout and the group engine together.

One :class:`MixSession` per server process. It owns the channel state cache,
the per-host layout store, the console bridge and the group mixing engine,
and pushes every visible change to connected browsers through an
:class:`UpdatePublisher`.

Threading
─────────
Every public method must run on the asyncio event loop that serves the API.
The console bridge delivers updates on its own thread; :meth:`start` wires
them back onto the loop with ``loop.call_soon_threadsafe`` so the engine is
only ever touched from one thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from core.config import MixerConfig
from core.mixer.engine import GroupMixEngine
from core.mixer.layout import (
    GlobalGroup,
    LayoutView,
    LocalSection,
    ViewSettings,
)
from core.mixer.state import ChannelStateCache
from core.mixer.types import BusContext, BusType, Channel, ConnectionStatus, FloorMode, GroupKind
from infrastructure.metrics import LatencyTimer, record_group_move, record_reconcile
from ingestion.console_bridge import (
    AuxNameUpdate,
    ChannelUpdate,
    ConnectionUpdate,
    ConsoleBridge,
    ConsoleNotConnectedError,
    MeterUpdate,
    MixerUpdate,
)
from ingestion.layout_store import LEGACY_FILENAME, LayoutStore, layout_path_for

logger = logging.getLogger(__name__)

NO_HOST_LABEL = "Not configured"


class UpdatePublisher(Protocol):
    """Outbound channel to connected browsers."""

    def publish(self, message: dict[str, Any]) -> None:
        """Send one message to every client."""
        ...

    def queue_channel(self, channel: Channel) -> None:
        """Schedule a coalesced ``channel`` message."""
        ...


BridgeFactory = Callable[[MixerConfig], ConsoleBridge]


def _default_bridge(config: MixerConfig) -> ConsoleBridge:
    return ConsoleBridge(config.host, config.channels, config.aux_bus_ids)


class MixSession:
    """Server-side mixing session shared by every HTTP and WebSocket client.

    Args:
        config: Validated server configuration.
        publisher: Where state changes are broadcast.
        bridge_factory: Builds the console bridge; tests pass a fake.
    """

    def __init__(
        self,
        config: MixerConfig,
        publisher: UpdatePublisher,
        bridge_factory: BridgeFactory = _default_bridge,
    ) -> None:
        self.config = config
        self.publisher = publisher
        self.cache = ChannelStateCache(
            config.host or NO_HOST_LABEL, config.channels, config.aux_bus_ids
        )
        self.bridge = bridge_factory(config)
        self.layouts = self._open_layout(config.host)
        self.engine = GroupMixEngine(self.cache, self.layouts, self.bridge)
        self._loop: asyncio.AbstractEventLoop | None = None

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach to the serving loop and connect to the configured console."""
        self._loop = loop
        self.bridge.set_update_handler(self._from_bridge_thread)
        self.bridge.start()

    def stop(self) -> None:
        self.bridge.stop()

    def _from_bridge_thread(self, update: MixerUpdate) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.handle_update, update)

    def _open_layout(self, host: str | None) -> LayoutStore:
        data_dir = self.config.data_dir
        store = LayoutStore(
            layout_path_for(data_dir, host),
            self.config.channels,
            self.config.aux_bus_ids,
            fallback_path=data_dir / LEGACY_FILENAME,
        )
        store.load()
        return store

    def contexts(self) -> list[BusContext]:
        return [BusContext.main(), BusContext.gain()] + [
            BusContext.aux(bus_id) for bus_id in self.config.aux_bus_ids
        ]

    # ── Inbound console updates ─────────────────────────────────────────────

    def handle_update(self, update: MixerUpdate) -> None:
        """Apply one console update to the cache and engine, then broadcast."""
        if isinstance(update, ConnectionUpdate):
            self._on_connection(update.status)
        elif isinstance(update, AuxNameUpdate):
            aux = self.cache.update_aux_bus(update.bus_id, update.name)
            if aux is not None:
                self.publisher.publish({"type": "aux", "data": aux.to_dict()})
        elif isinstance(update, ChannelUpdate):
            self._on_channel(update)
        elif isinstance(update, MeterUpdate):
            if self.cache.set_meter(update.channel_id, update.pre, update.post_fader):
                self.publisher.publish(
                    {
                        "type": "meter",
                        "data": {
                            "id": update.channel_id,
                            "meterPre": update.pre,
                            "meterPostFader": update.post_fader,
                        },
                    }
                )

    def _on_connection(self, status: ConnectionStatus) -> None:
        self.cache.set_connection_status(status)
        self.publisher.publish({"type": "status", "data": {"connectionStatus": status.value}})
        if status is ConnectionStatus.CONNECTED:
            for ctx in self.contexts():
                self.engine.prime(ctx)
            self.publisher.publish({"type": "state", "data": self.cache.snapshot()})

    def _on_channel(self, update: ChannelUpdate) -> None:
        ctx = update.context
        patch: dict[str, Any] = {}
        if update.muted is not None:
            patch["muted"] = update.muted
        if update.solo is not None:
            patch["solo"] = update.solo
        if update.name is not None:
            patch["name"] = update.name

        channel: Channel | None = None
        if patch:
            channel = self.cache.update_channel(ctx, update.channel_id, **patch)
        if update.fader is not None:
            channel, outcome = self.engine.observe_fader(ctx, update.channel_id, update.fader)
            if outcome is not None:
                record_reconcile(origin="external", outcome=outcome.value)
        if channel is not None:
            self.publisher.queue_channel(channel)

        # Names are set on the main mix only; mirror them into every other view.
        if update.name is not None and ctx.bus_type is BusType.MAIN:
            for other in self.contexts()[1:]:
                mirrored = self.cache.update_channel(other, update.channel_id, name=update.name)
                if mirrored is not None:
                    self.publisher.queue_channel(mirrored)

    # ── Reads ───────────────────────────────────────────────────────────────

    def snapshot(self, ctx: BusContext) -> dict[str, Any]:
        return self.cache.snapshot(ctx)

    def layout_payload(self, ctx: BusContext) -> dict[str, Any]:
        """Layout shape returned by ``GET /api/layout`` for one view."""
        view = self.layouts.view(ctx)
        payload: dict[str, Any] = {}
        if ctx.is_aux:
            payload["sections"] = [s.to_dict() for s in view.sections]
        payload["globalGroups"] = [g.to_dict() for g in view.global_groups]
        payload["globalSettings"] = {gid: s.to_dict() for gid, s in view.global_settings.items()}
        payload["viewSettings"] = view.view_settings.to_dict()
        return payload

    # ── Layout edits ────────────────────────────────────────────────────────

    def update_layout(self, ctx: BusContext, payload: Mapping[str, Any]) -> None:
        """Replace any of sections, global groups, global settings or view settings.

        Global group edits affect every view, so ratio bookkeeping is
        re-synchronised across all bus contexts.
        """
        before: dict[BusContext, LayoutView] = {c: self.layouts.view(c) for c in self.contexts()}

        sections = payload.get("sections")
        if sections is not None and ctx.is_aux:
            self.layouts.set_aux_layout(ctx.bus_id, [LocalSection.from_dict(s) for s in sections])
        groups = payload.get("globalGroups")
        if groups is not None:
            self.layouts.set_global_groups([GlobalGroup.from_dict(g) for g in groups])
        settings = payload.get("globalSettings")
        if settings is not None:
            self.layouts.set_global_settings(ctx, settings)
        view_settings = payload.get("viewSettings")
        if view_settings is not None:
            self.layouts.set_view_settings(ctx, ViewSettings.from_dict(view_settings))

        for c, previous in before.items():
            self.engine.sync_layout(previous, self.layouts.view(c))

    def connect(self, host: str) -> None:
        """Switch to another console and its layout file."""
        host = host.strip()
        logger.info("Switching console host to %s", host)
        self.cache.set_host(host)
        self.layouts = self._open_layout(host)
        self.engine = GroupMixEngine(self.cache, self.layouts, self.bridge)
        self.bridge.set_host(host)
        self.publisher.publish({"type": "state", "data": self.cache.snapshot()})

    # ── Channel writes ──────────────────────────────────────────────────────

    def _require_connection(self) -> None:
        if not self.bridge.is_connected():
            raise ConsoleNotConnectedError(self.bridge.host)

    def set_fader(self, ctx: BusContext, channel_id: int, value: float) -> Channel | None:
        self._require_connection()
        channel = self.engine.set_channel_fader(ctx, channel_id, value)
        if channel is not None:
            record_reconcile(origin="direct", outcome="recaptured")
            self.publisher.queue_channel(channel)
        return channel

    def set_mute(self, ctx: BusContext, channel_id: int, muted: bool) -> Channel | None:
        if ctx.bus_type is BusType.GAIN:
            raise ValueError("Mute not supported for gain view")
        self._require_connection()
        channel = self.engine.set_channel_mute(ctx, channel_id, muted)
        if channel is not None:
            self.publisher.queue_channel(channel)
        return channel

    def set_solo(self, channel_id: int, solo: bool) -> Channel | None:
        self._require_connection()
        channel = self.engine.set_channel_solo(channel_id, solo)
        if channel is not None:
            self.publisher.queue_channel(channel)
        return channel

    # ── Group writes ────────────────────────────────────────────────────────

    def change_offset(
        self, ctx: BusContext, kind: GroupKind, group_id: str, offset_db: float
    ) -> dict[int, float]:
        self._require_connection()
        with LatencyTimer() as timer:
            updates = self.engine.change_offset(ctx, kind, group_id, offset_db)
        record_group_move(group_kind=kind.value, latency_seconds=timer.elapsed)
        for channel_id in updates:
            channel = self.cache.get_channel(ctx, channel_id)
            if channel is not None:
                self.publisher.queue_channel(channel)
        return updates

    def set_group_mode(
        self, ctx: BusContext, kind: GroupKind, group_id: str, mode: FloorMode
    ) -> bool:
        return self.engine.set_mode(ctx, kind, group_id, mode)

    def set_group_mute(
        self, ctx: BusContext, kind: GroupKind, group_id: str, muted: bool
    ) -> list[Channel]:
        if ctx.bus_type is BusType.GAIN:
            raise ValueError("Mute not supported for gain view")
        self._require_connection()
        channels = self.engine.set_group_mute(ctx, kind, group_id, muted)
        for channel in channels:
            self.publisher.queue_channel(channel)
        return channels

    def set_group_solo(self, kind: GroupKind, group_id: str, solo: bool) -> list[Channel]:
        self._require_connection()
        channels = self.engine.set_group_solo(kind, group_id, solo)
        for channel in channels:
            self.publisher.queue_channel(channel)
        return channels
