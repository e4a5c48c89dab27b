"""core/mixer/ratios.py — Per-group ratio bookkeeping.

A ratio is the fixed dB distance between a member channel and its group's
master::

    ratio = channel_db - master_db

It is captured once and reused on every later master move, so repeated moves
never accumulate rounding drift. Entries are only rewritten by a direct edit
(see :mod:`core.mixer.reconciler`) and only removed on floor exclusion,
membership removal, or group deletion.

Never persisted; rebuilt lazily after a restart.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from core.mixer.types import BusContext, GroupKey, GroupKind

logger = logging.getLogger(__name__)


class RatioStore:
    """In-memory ``GroupKey → {channel_id → ratio_db}`` map."""

    def __init__(self) -> None:
        self._ratios: dict[GroupKey, dict[int, float]] = {}

    def get(self, key: GroupKey, channel_id: int) -> float | None:
        return self._ratios.get(key, {}).get(channel_id)

    def has(self, key: GroupKey, channel_id: int) -> bool:
        return channel_id in self._ratios.get(key, {})

    def get_or_capture(
        self, key: GroupKey, channel_id: int, channel_db: float, master_db: float
    ) -> float:
        """Return the stored ratio, capturing ``channel_db - master_db`` on first use."""
        ratios = self._ratios.setdefault(key, {})
        if channel_id not in ratios:
            ratios[channel_id] = channel_db - master_db
        return ratios[channel_id]

    def set(self, key: GroupKey, channel_id: int, ratio_db: float) -> None:
        self._ratios.setdefault(key, {})[channel_id] = ratio_db

    def discard(self, key: GroupKey, channel_id: int) -> None:
        ratios = self._ratios.get(key)
        if ratios is None:
            return
        ratios.pop(channel_id, None)
        if not ratios:
            del self._ratios[key]

    def entries(self, key: GroupKey) -> dict[int, float]:
        """Return a copy of one group's ratios."""
        return dict(self._ratios.get(key, {}))

    def keys(self) -> list[GroupKey]:
        return list(self._ratios)

    # ── Structural invalidation ─────────────────────────────────────────────

    def clear_group(self, kind: GroupKind, group_id: str) -> int:
        """Drop a group's namespace in every bus context. Returns keys removed."""
        doomed = [k for k in self._ratios if k.kind is kind and k.group_id == group_id]
        for key in doomed:
            del self._ratios[key]
        if doomed:
            logger.debug(
                "RatioStore: cleared %s group %r (%d contexts)", kind.value, group_id, len(doomed)
            )
        return len(doomed)

    def clear_key(self, key: GroupKey) -> None:
        self._ratios.pop(key, None)

    def retain_members(self, key: GroupKey, member_ids: Iterable[int]) -> int:
        """Drop entries for channels that left the group. Returns entries removed."""
        ratios = self._ratios.get(key)
        if not ratios:
            return 0
        keep = set(member_ids)
        gone = [cid for cid in ratios if cid not in keep]
        for cid in gone:
            del ratios[cid]
        if not ratios:
            del self._ratios[key]
        return len(gone)

    def clear_context(self, ctx: BusContext) -> None:
        for key in [k for k in self._ratios if k.context == ctx]:
            del self._ratios[key]

    def clear(self) -> None:
        self._ratios.clear()

    def __len__(self) -> int:
        return sum(len(r) for r in self._ratios.values())
