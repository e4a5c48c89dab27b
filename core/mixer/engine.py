"""core/mixer/engine.py — Virtual group mixing engine.

:class:`GroupMixEngine` is the one object the orchestration layer talks to.
It owns the ratio store and the feedback suppressor, and routes every
channel write through the reconciler so ratio bookkeeping stays consistent
whatever the origin of a change.

Usage::

    engine = GroupMixEngine(cache, layout_store, bridge)
    engine.set_channel_fader(BusContext.aux(2), 5, 0.62)          # operator drag
    engine.observe_fader(BusContext.aux(2), 5, 0.61)              # console echo
    engine.change_offset(BusContext.aux(2), GroupKind.LOCAL, "drums", 4.0)

All methods are synchronous and must be called from a single thread (the
server's event loop).
"""

from __future__ import annotations

import logging

from core.mixer.applier import OffsetApplier
from core.mixer.floor_policy import should_ignore
from core.mixer.layout import VIEW_GROUP_ID, LayoutView
from core.mixer.levels import channel_level_db, clamp_fader
from core.mixer.membership import all_targets, lookup
from core.mixer.ports import CommandSink, LayoutSource
from core.mixer.ratios import RatioStore
from core.mixer.reconciler import ReconcileOutcome, UpdateReconciler
from core.mixer.state import ChannelStateCache
from core.mixer.suppressor import FeedbackSuppressor
from core.mixer.types import (
    BusContext,
    BusType,
    Channel,
    ConsoleCommand,
    FaderOrigin,
    FloorMode,
    GroupKey,
    GroupKind,
    GroupTarget,
)

logger = logging.getLogger(__name__)


class GroupMixEngine:
    """Channel writes, group master moves and ratio maintenance.

    Args:
        cache: Channel state cache shared with the HTTP layer and bridge.
        layouts: Group configuration source (persisted layout).
        commands: Outbound console command sink.
    """

    def __init__(
        self,
        cache: ChannelStateCache,
        layouts: LayoutSource,
        commands: CommandSink,
    ) -> None:
        self.cache = cache
        self.layouts = layouts
        self.commands = commands
        self.ratios = RatioStore()
        self.suppressor = FeedbackSuppressor()
        self.reconciler = UpdateReconciler(layouts.view, self.ratios, self.suppressor)
        self.applier = OffsetApplier(
            cache, layouts, self.ratios, self.suppressor, self.reconciler, commands
        )

    # ── Single-channel writes ───────────────────────────────────────────────

    def set_channel_fader(self, ctx: BusContext, channel_id: int, value: float) -> Channel | None:
        """Apply an operator fader move: cache, rebaseline groups, send."""
        fader = clamp_fader(value)
        channel = self.cache.update_channel(ctx, channel_id, fader=fader, fader_db=None)
        if channel is None:
            return None
        self.reconciler.on_fader_observed(ctx, channel_id, fader, FaderOrigin.DIRECT)
        self.commands.send(ConsoleCommand("fader", ctx, channel_id, fader))
        return channel

    def observe_fader(
        self,
        ctx: BusContext,
        channel_id: int,
        value: float,
        db: float | None = None,
    ) -> tuple[Channel | None, ReconcileOutcome | None]:
        """Apply a confirmation from the console (last write wins)."""
        fader = clamp_fader(value)
        patch: dict[str, float | None] = {"fader": fader}
        if db is not None:
            patch["fader_db"] = db
        channel = self.cache.update_channel(ctx, channel_id, **patch)
        if channel is None:
            return None, None
        outcome = self.reconciler.on_fader_observed(
            ctx, channel_id, fader, FaderOrigin.EXTERNAL, new_db=db
        )
        return channel, outcome

    def set_channel_mute(self, ctx: BusContext, channel_id: int, muted: bool) -> Channel | None:
        if ctx.bus_type is BusType.GAIN:
            raise ValueError("Mute is not available on the gain view")
        channel = self.cache.update_channel(ctx, channel_id, muted=muted)
        if channel is not None:
            self.commands.send(ConsoleCommand("mute", ctx, channel_id, muted))
        return channel

    def set_channel_solo(self, channel_id: int, solo: bool) -> Channel | None:
        ctx = BusContext.main()
        channel = self.cache.update_channel(ctx, channel_id, solo=solo)
        if channel is not None:
            self.commands.send(ConsoleCommand("solo", ctx, channel_id, solo))
        return channel

    # ── Group operations ────────────────────────────────────────────────────

    def change_offset(
        self, ctx: BusContext, kind: GroupKind, group_id: str, next_offset: float
    ) -> dict[int, float]:
        """Move a group master to ``next_offset`` dB.

        Unknown groups (and the pinned section) are a no-op, as is a move to
        the current master value.
        """
        target = lookup(kind, group_id, self.layouts.view(ctx))
        if target is None:
            logger.info("Ignoring offset change for unknown %s group %r", kind.value, group_id)
            return {}
        if next_offset == target.master_db:
            return {}
        return self.applier.apply_master_change(
            target.key, target.member_ids, target.master_db, next_offset, target.mode
        )

    def set_mode(self, ctx: BusContext, kind: GroupKind, group_id: str, mode: FloorMode) -> bool:
        """Change a group's floor policy. Returns False for unknown groups."""
        if kind is GroupKind.VIEW:
            return False
        target = lookup(kind, group_id, self.layouts.view(ctx))
        if target is None:
            return False
        self.layouts.set_mode(target.key, mode)
        self._discard_excluded(target.key, target.member_ids, mode)
        return True

    def set_group_mute(
        self, ctx: BusContext, kind: GroupKind, group_id: str, muted: bool
    ) -> list[Channel]:
        target = lookup(kind, group_id, self.layouts.view(ctx))
        if target is None:
            return []
        updated = [self.set_channel_mute(ctx, cid, muted) for cid in target.member_ids]
        return [channel for channel in updated if channel is not None]

    def set_group_solo(self, kind: GroupKind, group_id: str, solo: bool) -> list[Channel]:
        target = lookup(kind, group_id, self.layouts.view(BusContext.main()))
        if target is None:
            return []
        updated = [self.set_channel_solo(cid, solo) for cid in target.member_ids]
        return [channel for channel in updated if channel is not None]

    # ── Ratio maintenance ───────────────────────────────────────────────────

    def prime(self, ctx: BusContext) -> int:
        """Capture ratios for members seen for the first time. Returns entries added."""
        added = 0
        for target in all_targets(self.layouts.view(ctx)):
            for channel_id in target.member_ids:
                channel = self.cache.get_channel(ctx, channel_id)
                if channel is None or self.ratios.has(target.key, channel_id):
                    continue
                level_db = channel_level_db(channel.fader, channel.fader_db)
                if should_ignore(target.mode, ctx.bus_type, level_db):
                    continue
                self.ratios.get_or_capture(target.key, channel_id, level_db, target.master_db)
                added += 1
        return added

    def forget_group(self, kind: GroupKind, group_id: str) -> None:
        """Drop every ratio of a deleted group, in every bus context."""
        self.ratios.clear_group(kind, group_id)

    def sync_layout(self, before: LayoutView, after: LayoutView) -> None:
        """Invalidate ratios after a structural layout edit in one bus context.

        Deleted groups lose their namespace, removed members lose their entry,
        a group whose master or enabled flag was edited directly is
        re-anchored from current levels on its next move, and a policy change
        drops the members the new policy excludes.
        """
        for group in before.global_groups:
            if after.global_group(group.id) is None:
                self.forget_group(GroupKind.GLOBAL, group.id)

        old = _group_states(before)
        new = _group_states(after)
        for key, (previous, was_enabled) in old.items():
            if key not in new:
                self.ratios.clear_key(key)
                continue
            current, is_enabled = new[key]
            if was_enabled != is_enabled or current.master_db != previous.master_db:
                self.ratios.clear_key(key)
                continue
            self.ratios.retain_members(key, current.member_ids)
            if current.mode != previous.mode:
                self._discard_excluded(key, current.member_ids, current.mode)

    def _discard_excluded(
        self, key: GroupKey, member_ids: tuple[int, ...], mode: FloorMode
    ) -> None:
        ctx = key.context
        for channel_id in member_ids:
            channel = self.cache.get_channel(ctx, channel_id)
            if channel is None:
                continue
            if should_ignore(mode, ctx.bus_type, channel_level_db(channel.fader, channel.fader_db)):
                self.ratios.discard(key, channel_id)


def _group_states(layout: LayoutView) -> dict[GroupKey, tuple[GroupTarget, bool]]:
    """Every addressable group in a layout with its enabled flag."""
    states: dict[GroupKey, tuple[GroupTarget, bool]] = {}
    for section in layout.sections:
        target = lookup(GroupKind.LOCAL, section.id, layout)
        if target is not None:
            states[target.key] = (target, section.enabled)
    for group in layout.global_groups:
        target = lookup(GroupKind.GLOBAL, group.id, layout)
        if target is not None:
            states[target.key] = (target, layout.settings_for(group.id).enabled)
    target = lookup(GroupKind.VIEW, VIEW_GROUP_ID, layout)
    if target is not None:
        states[target.key] = (target, True)
    return states
