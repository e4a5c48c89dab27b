"""core/mixer/reconciler.py — Single entry point for every fader event.

Per (channel, group) pair the ratio follows a small state machine::

    Uninitialized ──(first non-excluded observation)──→ Captured
    Captured ──(later unsuppressed direct/external observation)──→ Captured'
    Captured ──(floor exclusion | member removed | group deleted)──→ Deleted

A direct drag becomes the new baseline for every group the channel belongs
to. Group-driven writes arrive with a suppression marker and never touch the
baseline, so repeated master moves cannot accumulate drift.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from core.mixer.floor_policy import should_ignore
from core.mixer.layout import LayoutView
from core.mixer.levels import channel_level_db
from core.mixer.membership import resolve
from core.mixer.ratios import RatioStore
from core.mixer.suppressor import FeedbackSuppressor
from core.mixer.types import BusContext, FaderOrigin

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    SUPPRESSED = "suppressed"
    RECAPTURED = "recaptured"


class UpdateReconciler:
    """Recaptures ratios from observed fader values.

    Args:
        layouts: Returns the current layout for a bus context.
        ratios: Shared ratio store.
        suppressor: Shared feedback suppressor.
    """

    def __init__(
        self,
        layouts: Callable[[BusContext], LayoutView],
        ratios: RatioStore,
        suppressor: FeedbackSuppressor,
    ) -> None:
        self._layouts = layouts
        self._ratios = ratios
        self._suppressor = suppressor

    def on_fader_observed(
        self,
        ctx: BusContext,
        channel_id: int,
        new_fader: float,
        origin: FaderOrigin,
        new_db: float | None = None,
    ) -> ReconcileOutcome:
        """Reconcile one observed fader value.

        Args:
            ctx: Bus context the value applies to.
            channel_id: Channel that moved.
            new_fader: Normalized level in [0, 1].
            origin: Who produced the value.
            new_db: Authoritative console level, if the event carried one.
                Takes precedence over the mapped ``new_fader``.

        Returns:
            Whether the event was swallowed by a marker or recaptured.
        """
        if self._suppressor.consume(ctx, channel_id):
            return ReconcileOutcome.SUPPRESSED

        if origin is FaderOrigin.PROGRAMMATIC:
            logger.warning(
                "Programmatic write on %s:%d ch%d arrived without a marker",
                ctx.bus_type.value,
                ctx.bus_id,
                channel_id,
            )

        level_db = channel_level_db(new_fader, new_db)
        for ref in resolve(channel_id, self._layouts(ctx)):
            if should_ignore(ref.mode, ctx.bus_type, level_db):
                self._ratios.discard(ref.key, channel_id)
                continue
            self._ratios.set(ref.key, channel_id, level_db - ref.master_db)
        return ReconcileOutcome.RECAPTURED
