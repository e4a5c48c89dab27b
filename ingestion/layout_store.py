"""ingestion/layout_store.py — JSON persistence for virtual group layouts.

One file per console host (``data/layout.{host}.json``) so that switching
consoles never mixes group definitions. A legacy single-file layout
(``data/layout.json``) is migrated on first load. All validation lives in
:mod:`core.mixer.layout`; this module only reads, writes and dispatches.

Side effects: reads and writes files under the configured data directory.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from core.mixer.layout import (
    GlobalGroup,
    GroupSettings,
    LayoutView,
    LocalSection,
    ViewSettings,
    normalize_global_groups,
    normalize_sections,
    normalize_settings,
)
from core.mixer.types import BusContext, BusType, FloorMode, GroupKey, GroupKind

logger = logging.getLogger(__name__)

LAYOUT_VERSION = 2
LEGACY_FILENAME = "layout.json"

_HOST_UNSAFE = re.compile(r"[^a-z0-9]+")


def sanitize_host(host: str | None) -> str:
    """Reduce a host name or address to a filename-safe slug.

    Example:
        >>> sanitize_host("192.168.1.50")
        '192-168-1-50'
    """
    normalized = (host or "").strip().lower()
    cleaned = _HOST_UNSAFE.sub("-", normalized).strip("-")
    return cleaned or "unknown"


def layout_path_for(data_dir: Path, host: str | None) -> Path:
    return data_dir / f"layout.{sanitize_host(host)}.json"


def _default_data() -> dict[str, Any]:
    return {
        "version": LAYOUT_VERSION,
        "aux": {},
        "globalGroups": [],
        "globalSettings": {"master": {}, "gain": {}, "aux": {}},
        "viewSettings": {
            "master": ViewSettings().to_dict(),
            "gain": ViewSettings().to_dict(),
            "aux": {},
        },
    }


def _slot(ctx: BusContext) -> str:
    """On-disk key for a main/gain context."""
    return "gain" if ctx.bus_type is BusType.GAIN else "master"


class LayoutStore:
    """JSON-backed storage for sections, global groups and view settings.

    Satisfies the :class:`~core.mixer.ports.LayoutSource` protocol.

    Args:
        path: Per-host layout file.
        channel_ids: Channels exposed by the server; anything else is dropped.
        aux_bus_ids: Aux sends that may carry sections and settings.
        fallback_path: Legacy layout file read when ``path`` is missing or invalid.
    """

    def __init__(
        self,
        path: Path,
        channel_ids: Sequence[int],
        aux_bus_ids: Sequence[int],
        fallback_path: Path | None = None,
    ) -> None:
        self.path = path
        self.fallback_path = fallback_path
        self._channel_ids = tuple(channel_ids)
        self._aux_bus_ids = tuple(aux_bus_ids)
        self._data: dict[str, Any] = _default_data()

    # ── Load / save ─────────────────────────────────────────────────────────

    def load(self) -> None:
        """Read the layout file, falling back to the legacy file, then defaults.

        Never raises on a missing or corrupt file; the problem is logged and
        the next save overwrites it.
        """
        parsed = self._read(self.path)
        if parsed is not None:
            self._data = parsed
            return

        if self.fallback_path is not None and self.fallback_path != self.path:
            fallback = self._read(self.fallback_path)
            if fallback is not None:
                logger.info("Migrating legacy layout %s → %s", self.fallback_path, self.path)
                self._data = fallback
                self.save()
                return

        self._data = _default_data()

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(self._data, f, indent=2)

    def _read(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            with open(path) as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable layout file %s: %s", path, exc)
            return None
        if not isinstance(raw, dict) or not isinstance(raw.get("aux"), dict):
            logger.warning("Ignoring layout file %s: missing 'aux' mapping", path)
            return None

        data = _default_data()
        data["aux"] = raw["aux"]
        if isinstance(raw.get("globalGroups"), list):
            data["globalGroups"] = raw["globalGroups"]
        if isinstance(raw.get("globalSettings"), dict):
            data["globalSettings"].update(raw["globalSettings"])
        if isinstance(raw.get("viewSettings"), dict):
            data["viewSettings"].update(raw["viewSettings"])
        return data

    # ── Reads ───────────────────────────────────────────────────────────────

    def aux_layout(self, bus_id: int) -> tuple[LocalSection, ...]:
        stored: list[Any] = []
        if bus_id in self._aux_bus_ids:
            stored = self._data["aux"].get(str(bus_id)) or []
        sections = [LocalSection.from_dict(s) for s in stored if isinstance(s, Mapping)]
        return normalize_sections(sections, self._channel_ids)

    def global_groups(self) -> tuple[GlobalGroup, ...]:
        stored = self._data.get("globalGroups") or []
        groups = [GlobalGroup.from_dict(g) for g in stored if isinstance(g, Mapping)]
        return normalize_global_groups(groups, self._channel_ids)

    def global_settings(self, ctx: BusContext) -> dict[str, GroupSettings]:
        slots = self._data["globalSettings"]
        if ctx.is_aux:
            raw = (slots.get("aux") or {}).get(str(ctx.bus_id))
        else:
            raw = slots.get(_slot(ctx))
        return normalize_settings(raw if isinstance(raw, Mapping) else None)

    def view_settings(self, ctx: BusContext) -> ViewSettings:
        slots = self._data["viewSettings"]
        if ctx.is_aux:
            raw = (slots.get("aux") or {}).get(str(ctx.bus_id))
        else:
            raw = slots.get(_slot(ctx))
        return ViewSettings.from_dict(raw if isinstance(raw, Mapping) else None)

    def view(self, ctx: BusContext) -> LayoutView:
        """Everything the group engine needs for one bus context."""
        return LayoutView(
            context=ctx,
            channel_ids=self._channel_ids,
            sections=self.aux_layout(ctx.bus_id) if ctx.is_aux else (),
            global_groups=self.global_groups(),
            global_settings=self.global_settings(ctx),
            view_settings=self.view_settings(ctx),
        )

    # ── Writes ──────────────────────────────────────────────────────────────

    def set_aux_layout(self, bus_id: int, sections: Iterable[LocalSection]) -> None:
        if bus_id not in self._aux_bus_ids:
            return
        normalized = normalize_sections(sections, self._channel_ids)
        self._data["aux"][str(bus_id)] = [s.to_dict() for s in normalized]
        self.save()

    def set_global_groups(self, groups: Iterable[GlobalGroup]) -> None:
        normalized = normalize_global_groups(groups, self._channel_ids)
        self._data["globalGroups"] = [g.to_dict() for g in normalized]
        self.save()

    def set_global_settings(self, ctx: BusContext, settings: Mapping[str, Any]) -> None:
        if ctx.is_aux and ctx.bus_id not in self._aux_bus_ids:
            return
        normalized = {gid: s.to_dict() for gid, s in normalize_settings(settings).items()}
        slots = self._data["globalSettings"]
        if ctx.is_aux:
            slots.setdefault("aux", {})[str(ctx.bus_id)] = normalized
        else:
            slots[_slot(ctx)] = normalized
        self.save()

    def set_view_settings(self, ctx: BusContext, settings: ViewSettings) -> None:
        if ctx.is_aux and ctx.bus_id not in self._aux_bus_ids:
            return
        slots = self._data["viewSettings"]
        if ctx.is_aux:
            slots.setdefault("aux", {})[str(ctx.bus_id)] = settings.to_dict()
        else:
            slots[_slot(ctx)] = settings.to_dict()
        self.save()

    # ── LayoutSource ────────────────────────────────────────────────────────

    def set_master(self, key: GroupKey, offset_db: float) -> None:
        """Persist a group's master offset, dispatching on the group kind."""
        self._update_group(key, offset_db=offset_db)

    def set_mode(self, key: GroupKey, mode: FloorMode) -> None:
        """Persist a group's floor policy. The view master's policy is fixed."""
        if key.kind is GroupKind.VIEW:
            return
        self._update_group(key, mode=mode)

    def _update_group(self, key: GroupKey, **changes: Any) -> None:
        ctx = key.context
        if key.kind is GroupKind.LOCAL:
            sections = [
                dataclasses.replace(s, **changes) if s.id == key.group_id and not s.is_pinned else s
                for s in self.aux_layout(ctx.bus_id)
            ]
            self.set_aux_layout(ctx.bus_id, sections)
        elif key.kind is GroupKind.GLOBAL:
            settings = self.global_settings(ctx)
            current = settings.get(key.group_id) or GroupSettings()
            settings[key.group_id] = dataclasses.replace(current, **changes)
            self.set_global_settings(ctx, settings)
        elif "offset_db" in changes:
            view = self.view_settings(ctx)
            self.set_view_settings(ctx, dataclasses.replace(view, offset_db=changes["offset_db"]))
