"""core/mixer/state.py — In-memory channel state cache.

One :class:`~core.mixer.types.Channel` record per channel id per bus context
(main, gain, and each aux send), plus aux bus names, the console
host label and connection status. This is the single read/write surface the
group engine and the HTTP layer use; the console bridge refreshes it.

Snapshot shape returned by :meth:`ChannelStateCache.snapshot`::

    {
        "host": "192.168.1.50",
        "connectionStatus": "connected",
        "bus": {"type": "main", "id": 0},
        "auxBuses": [{"id": 1, "name": "AUX 1", ...}, ...],
        "channels": [Channel.to_dict(), ...]
    }
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from core.mixer.types import AuxBus, BusContext, BusType, Channel, ConnectionStatus


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


_PATCHABLE = frozenset(
    {"fader", "fader_db", "muted", "solo", "name", "meter_pre", "meter_post_fader"}
)


class ChannelStateCache:
    """Latest known console state, keyed by ``(bus_context, channel_id)``.

    Args:
        host: Console host label shown to clients.
        channel_ids: Input channels exposed by this server.
        aux_bus_ids: Aux sends exposed by this server.
        clock: Returns an ISO-8601 timestamp; injectable for tests.
    """

    def __init__(
        self,
        host: str,
        channel_ids: Sequence[int],
        aux_bus_ids: Sequence[int],
        clock: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self.host = host
        self.connection_status = ConnectionStatus.DISCONNECTED
        self._clock = clock
        self._channel_ids = tuple(channel_ids)
        self._aux_bus_ids = tuple(aux_bus_ids)
        self._channels: dict[tuple[BusContext, int], Channel] = {}
        self._aux_buses: dict[int, AuxBus] = {}

        now = clock()
        contexts = [BusContext.main(), BusContext.gain()] + [
            BusContext.aux(bus_id) for bus_id in self._aux_bus_ids
        ]
        for ctx in contexts:
            for cid in self._channel_ids:
                self._channels[(ctx, cid)] = Channel(
                    id=cid,
                    label=f"CH {cid}",
                    bus_type=ctx.bus_type,
                    bus_id=ctx.bus_id,
                    last_updated_at=now,
                )
        for bus_id in self._aux_bus_ids:
            self._aux_buses[bus_id] = AuxBus(id=bus_id, name=f"AUX {bus_id}", last_updated_at=now)

    @property
    def channel_ids(self) -> tuple[int, ...]:
        return self._channel_ids

    @property
    def aux_bus_ids(self) -> tuple[int, ...]:
        return self._aux_bus_ids

    def has_context(self, ctx: BusContext) -> bool:
        if ctx.bus_type is BusType.AUX:
            return ctx.bus_id in self._aux_bus_ids
        return ctx.bus_id == 0

    # ── Reads ───────────────────────────────────────────────────────────────

    def get_channel(self, ctx: BusContext, channel_id: int) -> Channel | None:
        return self._channels.get((ctx, channel_id))

    def channels(self, ctx: BusContext) -> list[Channel]:
        """Channels of one view in id order."""
        records = (self._channels.get((ctx, cid)) for cid in sorted(self._channel_ids))
        return [channel for channel in records if channel is not None]

    def aux_buses(self) -> list[AuxBus]:
        return [self._aux_buses[k] for k in sorted(self._aux_buses)]

    def snapshot(self, ctx: BusContext | None = None) -> dict[str, Any]:
        ctx = ctx or BusContext.main()
        return {
            "host": self.host,
            "connectionStatus": self.connection_status.value,
            "bus": {"type": ctx.bus_type.value, "id": ctx.bus_id},
            "auxBuses": [aux.to_dict() for aux in self.aux_buses()],
            "channels": [channel.to_dict() for channel in self.channels(ctx)],
        }

    # ── Writes ──────────────────────────────────────────────────────────────

    def update_channel(self, ctx: BusContext, channel_id: int, **patch: Any) -> Channel | None:
        """Merge ``patch`` into one channel record.

        Only fields present in ``patch`` change; passing ``fader_db=None``
        explicitly clears the authoritative level. Returns None for unknown
        channels or contexts.
        """
        existing = self._channels.get((ctx, channel_id))
        if existing is None:
            return None
        unknown = set(patch) - _PATCHABLE
        if unknown:
            raise ValueError(f"Cannot patch channel fields: {sorted(unknown)}")
        updated = dataclasses.replace(existing, **patch, last_updated_at=self._clock())
        self._channels[(ctx, channel_id)] = updated
        return updated

    def set_meter(self, channel_id: int, pre: float, post_fader: float) -> bool:
        """Record the latest meter reading of one input in every view.

        Meters belong to the input, not to a bus, and do not bump
        ``last_updated_at``. Returns False for unknown channels.
        """
        if channel_id not in self._channel_ids:
            return False
        for key, channel in self._channels.items():
            if key[1] == channel_id:
                self._channels[key] = dataclasses.replace(
                    channel, meter_pre=pre, meter_post_fader=post_fader
                )
        return True

    def update_aux_bus(self, bus_id: int, name: str) -> AuxBus | None:
        if bus_id not in self._aux_buses:
            return None
        updated = AuxBus(id=bus_id, name=name, last_updated_at=self._clock())
        self._aux_buses[bus_id] = updated
        return updated

    def set_connection_status(self, status: ConnectionStatus) -> None:
        self.connection_status = status

    def set_host(self, host: str) -> None:
        self.host = host
