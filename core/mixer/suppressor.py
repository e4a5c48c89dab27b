"""core/mixer/suppressor.py — One-shot "skip next reconciliation" markers.

A group master move writes new fader values on behalf of the operator. Those
writes must not be read back as fresh direct edits: that would re-anchor
every *other* group the channel belongs to and corrupt their offsets.

The offset applier marks a channel right before it writes; the reconciler
consumes the mark on the very next observation of that channel. Set and
consume always happen in the same synchronous call chain, so a mark that
survives the chain is a programming error.
"""

from __future__ import annotations

from core.mixer.types import BusContext


class MarkerLeakError(RuntimeError):
    """Raised when a suppression marker outlives the call that set it.

    A leaked marker would silently swallow the operator's next real edit on
    that channel. This is never a recoverable runtime condition.
    """

    def __init__(self, pending: set[tuple[BusContext, int]]) -> None:
        self.pending = set(pending)
        channels = ", ".join(
            f"{ctx.bus_type.value}:{ctx.bus_id}/ch{cid}" for ctx, cid in sorted(
                pending, key=lambda item: (item[0].bus_type.value, item[0].bus_id, item[1])
            )
        )
        super().__init__(f"Unconsumed feedback suppression markers: {channels}")


class FeedbackSuppressor:
    """Set of pending ``(bus_context, channel_id)`` markers, each consumed once."""

    def __init__(self) -> None:
        self._pending: set[tuple[BusContext, int]] = set()

    def mark(self, ctx: BusContext, channel_id: int) -> None:
        self._pending.add((ctx, channel_id))

    def consume(self, ctx: BusContext, channel_id: int) -> bool:
        """Remove the marker if present. Returns True if one was consumed."""
        try:
            self._pending.remove((ctx, channel_id))
        except KeyError:
            return False
        return True

    def is_pending(self, ctx: BusContext, channel_id: int) -> bool:
        return (ctx, channel_id) in self._pending

    def assert_drained(self) -> None:
        """Raise :class:`MarkerLeakError` if any marker is still pending."""
        if self._pending:
            leaked = set(self._pending)
            self._pending.clear()
            raise MarkerLeakError(leaked)

    def __len__(self) -> int:
        return len(self._pending)
