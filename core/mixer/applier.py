"""core/mixer/applier.py — Move a group master while preserving balance.

For each member of the group::

    ratio       = stored ratio, or (current_db - prev_master) on first use
    target_db   = ratio + next_master
    target      = clamp(db_to_fader(target_db), 0, 1)

Members excluded by the floor policy are skipped outright: no value change,
no ratio entry. Every write is marked in the feedback suppressor, applied to
the cache optimistically, reconciled as ``programmatic`` (which consumes the
marker) and sent to the console as its own command. Nothing is batched or
throttled here; rate limiting belongs to the transport. A command the
transport fails to deliver is logged and the move carries on: the local write
stands and the master is still persisted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from core.mixer.floor_policy import should_ignore
from core.mixer.levels import channel_level_db, clamp_fader, db_to_fader
from core.mixer.ports import CommandSink, LayoutSource
from core.mixer.ratios import RatioStore
from core.mixer.reconciler import UpdateReconciler
from core.mixer.state import ChannelStateCache
from core.mixer.suppressor import FeedbackSuppressor
from core.mixer.types import ConsoleCommand, FaderOrigin, FloorMode, GroupKey

logger = logging.getLogger(__name__)


class OffsetApplier:
    """Executes group master-offset changes against the channel cache."""

    def __init__(
        self,
        cache: ChannelStateCache,
        layouts: LayoutSource,
        ratios: RatioStore,
        suppressor: FeedbackSuppressor,
        reconciler: UpdateReconciler,
        commands: CommandSink,
    ) -> None:
        self._cache = cache
        self._layouts = layouts
        self._ratios = ratios
        self._suppressor = suppressor
        self._reconciler = reconciler
        self._commands = commands

    def apply_master_change(
        self,
        key: GroupKey,
        members: Iterable[int],
        prev_master: float,
        next_master: float,
        mode: FloorMode,
    ) -> dict[int, float]:
        """Shift every qualifying member by ``next_master - prev_master``.

        Returns:
            ``{channel_id: new_fader}`` for every member that moved. Empty when
            nothing qualifies; the new master is persisted either way.

        Raises:
            MarkerLeakError: If a suppression marker survived the call.
        """
        ctx = key.context
        updates: dict[int, float] = {}

        for channel_id in members:
            channel = self._cache.get_channel(ctx, channel_id)
            if channel is None:
                continue
            current_db = channel_level_db(channel.fader, channel.fader_db)
            if should_ignore(mode, ctx.bus_type, current_db):
                continue

            ratio = self._ratios.get_or_capture(key, channel_id, current_db, prev_master)
            target = clamp_fader(db_to_fader(ratio + next_master))

            self._suppressor.mark(ctx, channel_id)
            self._cache.update_channel(ctx, channel_id, fader=target, fader_db=None)
            self._reconciler.on_fader_observed(ctx, channel_id, target, FaderOrigin.PROGRAMMATIC)
            try:
                self._commands.send(ConsoleCommand("fader", ctx, channel_id, target))
            except ConnectionError as exc:
                logger.warning(
                    "Fader write for channel %d on %s:%d not delivered: %s",
                    channel_id,
                    ctx.bus_type.value,
                    ctx.bus_id,
                    exc,
                )
            updates[channel_id] = target

        self._layouts.set_master(key, next_master)
        self._suppressor.assert_drained()

        logger.debug(
            "Group %s/%s on %s:%d: %.2f → %.2f dB (%d members moved)",
            key.kind.value,
            key.group_id,
            key.bus_type.value,
            key.bus_id,
            prev_master,
            next_master,
            len(updates),
        )
        return updates
