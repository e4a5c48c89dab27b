"""core/mixer/types.py — Value objects for console channel state and groups.

Hierarchy::

    BusContext (main 0 | gain 0 | aux 1..10)
    └── Channel (one record per channel id per bus context)

    GroupKey (bus_type, bus_id, kind, group_id)
    └── RatioMap entry per member channel

Keys are frozen dataclasses rather than concatenated strings so that a bus id
and a group id can never collide (``aux:1:local:2`` vs ``aux:12::``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class BusType(str, Enum):
    """Which mix a channel's values apply to."""

    MAIN = "main"
    GAIN = "gain"
    AUX = "aux"

    @property
    def has_view_master(self) -> bool:
        """True for buses carrying an implicit whole-view group."""
        return self is not BusType.AUX


class FloorMode(str, Enum):
    """How a group treats members sitting at the floor level."""

    DEFAULT = "default"
    IGNORE_INF = "ignore-inf"
    IGNORE_INF_SENDS = "ignore-inf-sends"


class GroupKind(str, Enum):
    """Group namespaces in the ratio store."""

    LOCAL = "local"
    GLOBAL = "global"
    VIEW = "view"


class FaderOrigin(str, Enum):
    """Where a fader-bearing event came from."""

    DIRECT = "direct"
    EXTERNAL = "external"
    PROGRAMMATIC = "programmatic"


class ConnectionStatus(str, Enum):
    """State of the console link as reported to clients."""

    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BusContext:
    """A ``(bus_type, bus_id)`` pair. Main and gain always use ``bus_id=0``."""

    bus_type: BusType
    bus_id: int = 0

    @classmethod
    def main(cls) -> BusContext:
        return cls(BusType.MAIN, 0)

    @classmethod
    def gain(cls) -> BusContext:
        return cls(BusType.GAIN, 0)

    @classmethod
    def aux(cls, bus_id: int) -> BusContext:
        return cls(BusType.AUX, bus_id)

    @property
    def is_aux(self) -> bool:
        return self.bus_type is BusType.AUX


@dataclass(frozen=True)
class GroupKey:
    """Ratio store namespace for one group in one bus context."""

    bus_type: BusType
    bus_id: int
    kind: GroupKind
    group_id: str

    @classmethod
    def for_context(cls, ctx: BusContext, kind: GroupKind, group_id: str) -> GroupKey:
        return cls(ctx.bus_type, ctx.bus_id, kind, group_id)

    @property
    def context(self) -> BusContext:
        return BusContext(self.bus_type, self.bus_id)


@dataclass(frozen=True)
class GroupRef:
    """A group a channel currently belongs to, with its live master and policy."""

    key: GroupKey
    master_db: float
    mode: FloorMode


@dataclass(frozen=True)
class GroupTarget:
    """Everything needed to move one group's master."""

    key: GroupKey
    member_ids: tuple[int, ...]
    master_db: float
    mode: FloorMode


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Channel:
    """Latest known state of one channel in one bus context.

    ``fader_db`` is the authoritative console level and is only populated
    once a confirmation carries it; optimistic local writes clear it.
    """

    id: int
    label: str
    bus_type: BusType
    bus_id: int
    fader: float = 0.0
    fader_db: float | None = None
    muted: bool | None = None
    solo: bool | None = None
    name: str | None = None
    meter_pre: float | None = None
    meter_post_fader: float | None = None
    last_updated_at: str = ""

    @property
    def context(self) -> BusContext:
        return BusContext(self.bus_type, self.bus_id)

    def to_dict(self) -> dict[str, object]:
        """Serialise to the camelCase shape the browser client reads."""
        return {
            "id": self.id,
            "label": self.label,
            "name": self.name,
            "busType": self.bus_type.value,
            "bus": self.bus_id,
            "fader": self.fader,
            "faderDb": self.fader_db,
            "muted": self.muted,
            "solo": self.solo,
            "meterPre": self.meter_pre,
            "meterPostFader": self.meter_post_fader,
            "lastUpdatedAt": self.last_updated_at,
        }


@dataclass(frozen=True)
class AuxBus:
    """Display name of one aux send, as reported by the console."""

    id: int
    name: str
    last_updated_at: str = ""

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name, "lastUpdatedAt": self.last_updated_at}


# ---------------------------------------------------------------------------
# Outbound command
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConsoleCommand:
    """A single write to forward to the console.

    ``kind`` is one of ``"fader"``, ``"mute"``, ``"solo"``. Gain-stage fader
    writes use ``kind="fader"`` with a gain bus context.
    """

    kind: str
    context: BusContext
    channel_id: int
    value: float | bool
