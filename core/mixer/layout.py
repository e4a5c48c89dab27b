"""core/mixer/layout.py — Virtual group layout model and normalization.

Persisted layout shape (camelCase, as stored on disk and sent to the browser)::

    {
        "version": 2,
        "aux": {"1": [LocalSection, ...], ...},
        "globalGroups": [GlobalGroup, ...],
        "globalSettings": {
            "master": {groupId: GroupSettings},
            "gain":   {groupId: GroupSettings},
            "aux":    {"1": {groupId: GroupSettings}, ...}
        },
        "viewSettings": {
            "master": ViewSettings,
            "gain":   ViewSettings,
            "aux":    {"1": ViewSettings, ...}
        }
    }

Every reader goes through the ``normalize_*`` helpers so that hand-edited or
stale files can never produce duplicate ids, unknown channels, or a missing
reserved section. Pure module, no I/O.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from core.mixer.types import BusContext, FloorMode

FAVORITES_ID = "favorites"
"""Pinned section. Always first, never carries an offset."""

OTHERS_ID = "others"
"""Residual section holding every channel not placed elsewhere. Always last."""

RESERVED_SECTION_IDS: frozenset[str] = frozenset({FAVORITES_ID, OTHERS_ID})

FAVORITES_NAME = "My Channels"
OTHERS_NAME = "Other"

VIEW_GROUP_ID = "all"
VIEW_GROUP_MODE = FloorMode.IGNORE_INF
DEFAULT_MODE = FloorMode.IGNORE_INF


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def normalize_mode(raw: Any) -> FloorMode:
    """Coerce a stored mode string, falling back to ``ignore-inf``."""
    if isinstance(raw, FloorMode):
        return raw
    try:
        return FloorMode(raw)
    except ValueError:
        return DEFAULT_MODE


def normalize_offset(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return 0.0
    if not math.isfinite(raw):
        return 0.0
    return float(raw)


def _clean_ids(raw: Any, allowed: set[int] | None = None) -> tuple[int, ...]:
    """Keep integer ids in first-seen order, dropping duplicates and unknowns."""
    if not isinstance(raw, (list, tuple)):
        return ()
    seen: list[int] = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        if allowed is not None and value not in allowed:
            continue
        if value not in seen:
            seen.append(value)
    return tuple(seen)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LocalSection:
    """An ordered channel grouping belonging to one aux bus."""

    id: str
    name: str
    channel_ids: tuple[int, ...] = ()
    offset_db: float = 0.0
    mode: FloorMode = DEFAULT_MODE
    enabled: bool = True

    @property
    def is_reserved(self) -> bool:
        return self.id in RESERVED_SECTION_IDS

    @property
    def is_pinned(self) -> bool:
        return self.id == FAVORITES_ID

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LocalSection:
        section_id = str(data.get("id") or "")
        return cls(
            id=section_id,
            name=str(data.get("name") or section_id),
            channel_ids=_clean_ids(data.get("channelIds")),
            offset_db=normalize_offset(data.get("offsetDb")),
            mode=normalize_mode(data.get("mode")),
            enabled=data.get("enabled") if isinstance(data.get("enabled"), bool) else True,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "channelIds": list(self.channel_ids),
            "offsetDb": self.offset_db,
            "mode": self.mode.value,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class GlobalGroup:
    """Channel membership shared across every bus context."""

    id: str
    name: str
    channel_ids: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GlobalGroup:
        group_id = str(data.get("id") or "")
        return cls(
            id=group_id,
            name=str(data.get("name") or group_id),
            channel_ids=_clean_ids(data.get("channelIds")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "channelIds": list(self.channel_ids)}


@dataclass(frozen=True)
class GroupSettings:
    """Per-bus-context state of a global group. Missing record = disabled."""

    offset_db: float = 0.0
    mode: FloorMode = DEFAULT_MODE
    enabled: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GroupSettings:
        enabled = data.get("enabled")
        return cls(
            offset_db=normalize_offset(data.get("offsetDb")),
            mode=normalize_mode(data.get("mode")),
            enabled=enabled if isinstance(enabled, bool) else False,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"offsetDb": self.offset_db, "mode": self.mode.value, "enabled": self.enabled}


@dataclass(frozen=True)
class MixOrderItem:
    """One slot of a view's mix order: a group (local/global) or a bare channel."""

    kind: str
    id: str | int
    group_type: str | None = None

    @property
    def dedupe_key(self) -> tuple[str, str | None, str | int]:
        return (self.kind, self.group_type, self.id)

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "group":
            return {"kind": "group", "groupType": self.group_type, "id": self.id}
        return {"kind": "channel", "id": self.id}


@dataclass(frozen=True)
class ViewSettings:
    offset_db: float = 0.0
    simple_controls: bool = False
    mix_order: tuple[MixOrderItem, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ViewSettings:
        data = data or {}
        simple = data.get("simpleControls")
        return cls(
            offset_db=normalize_offset(data.get("offsetDb")),
            simple_controls=simple if isinstance(simple, bool) else False,
            mix_order=normalize_mix_order(data.get("mixOrder")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "offsetDb": self.offset_db,
            "simpleControls": self.simple_controls,
            "mixOrder": [item.to_dict() for item in self.mix_order],
        }


@dataclass(frozen=True)
class LayoutView:
    """Everything the engine needs to know about groups in one bus context.

    Built by the layout store on every call; treated as read-only.
    """

    context: BusContext
    channel_ids: tuple[int, ...]
    sections: tuple[LocalSection, ...] = ()
    global_groups: tuple[GlobalGroup, ...] = ()
    global_settings: Mapping[str, GroupSettings] = field(default_factory=dict)
    view_settings: ViewSettings = ViewSettings()

    def section(self, section_id: str) -> LocalSection | None:
        return next((s for s in self.sections if s.id == section_id), None)

    def global_group(self, group_id: str) -> GlobalGroup | None:
        return next((g for g in self.global_groups if g.id == group_id), None)

    def settings_for(self, group_id: str) -> GroupSettings:
        return self.global_settings.get(group_id) or GroupSettings()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_sections(
    sections: Iterable[LocalSection], channel_ids: Sequence[int]
) -> tuple[LocalSection, ...]:
    """Return a well-formed section list for one aux bus.

    - first occurrence of a section id wins, empty ids are dropped
    - ``favorites`` first, custom sections in input order, ``others`` last
    - unknown channels and duplicates are dropped
    - a channel sits in at most one custom section (first wins)
    - ``others`` keeps its stored order, then receives every channel that is
      neither pinned nor in a custom section, in channel-id order
    """
    allowed = set(channel_ids)
    by_id: dict[str, LocalSection] = {}
    custom_order: list[str] = []
    for section in sections:
        if not section.id or section.id in by_id:
            continue
        by_id[section.id] = section
        if not section.is_reserved:
            custom_order.append(section.id)

    raw_favorites = by_id.get(FAVORITES_ID) or LocalSection(FAVORITES_ID, FAVORITES_NAME)
    favorites = LocalSection(
        id=FAVORITES_ID,
        name=FAVORITES_NAME,
        channel_ids=_clean_ids(list(raw_favorites.channel_ids), allowed),
        offset_db=0.0,
        mode=raw_favorites.mode,
        enabled=True,
    )

    placed: set[int] = set()
    customs: list[LocalSection] = []
    for section_id in custom_order:
        section = by_id[section_id]
        members = [
            cid for cid in _clean_ids(list(section.channel_ids), allowed) if cid not in placed
        ]
        placed.update(members)
        customs.append(
            LocalSection(
                id=section.id,
                name=section.name or section.id,
                channel_ids=tuple(members),
                offset_db=section.offset_db,
                mode=section.mode,
                enabled=section.enabled,
            )
        )

    raw_others = by_id.get(OTHERS_ID) or LocalSection(OTHERS_ID, OTHERS_NAME)
    excluded = placed | set(favorites.channel_ids)
    residual = [
        cid for cid in _clean_ids(list(raw_others.channel_ids), allowed) if cid not in excluded
    ]
    residual += [cid for cid in channel_ids if cid not in excluded and cid not in residual]
    others = LocalSection(
        id=OTHERS_ID,
        name=raw_others.name or OTHERS_NAME,
        channel_ids=tuple(residual),
        offset_db=raw_others.offset_db,
        mode=raw_others.mode,
        enabled=True,
    )

    return (favorites, *customs, others)


def normalize_global_groups(
    groups: Iterable[GlobalGroup], channel_ids: Sequence[int]
) -> tuple[GlobalGroup, ...]:
    allowed = set(channel_ids)
    by_id: dict[str, GlobalGroup] = {}
    for group in groups:
        if not group.id or group.id in by_id:
            continue
        by_id[group.id] = GlobalGroup(
            id=group.id,
            name=group.name or group.id,
            channel_ids=_clean_ids(list(group.channel_ids), allowed),
        )
    return tuple(by_id.values())


def normalize_settings(raw: Mapping[str, Any] | None) -> dict[str, GroupSettings]:
    settings: dict[str, GroupSettings] = {}
    for group_id, value in (raw or {}).items():
        if not group_id:
            continue
        if isinstance(value, GroupSettings):
            settings[group_id] = value
        elif isinstance(value, Mapping):
            settings[group_id] = GroupSettings.from_dict(value)
    return settings


def normalize_mix_order(raw: Any) -> tuple[MixOrderItem, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    items: list[MixOrderItem] = []
    seen: set[tuple[str, str | None, str | int]] = set()
    for entry in raw:
        item = _parse_mix_order_item(entry)
        if item is None or item.dedupe_key in seen:
            continue
        seen.add(item.dedupe_key)
        items.append(item)
    return tuple(items)


def _parse_mix_order_item(entry: Any) -> MixOrderItem | None:
    if isinstance(entry, MixOrderItem):
        return entry
    if not isinstance(entry, Mapping):
        return None
    kind = entry.get("kind")
    item_id = entry.get("id")
    if kind == "group":
        group_type = entry.get("groupType")
        if group_type in ("local", "global") and isinstance(item_id, str) and item_id:
            return MixOrderItem(kind="group", id=item_id, group_type=group_type)
        return None
    if kind == "channel" and isinstance(item_id, int) and not isinstance(item_id, bool):
        return MixOrderItem(kind="channel", id=item_id)
    return None

