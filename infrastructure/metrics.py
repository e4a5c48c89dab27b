"""Prometheus metrics for the mixer remote server.

Exposes mixing context in metrics so dashboards show how operators drive the
console, not just generic HTTP stats.

Metrics:
    mixremote_console_commands_total        Counter of outbound writes by kind (fader/mute/solo)
    mixremote_group_moves_total             Counter of group master moves by group kind
    mixremote_group_move_seconds            Histogram of master-move latency by group kind
    mixremote_reconciliations_total         Counter of fader observations by origin and outcome
    mixremote_console_connected             Gauge: 1 while the console link is up

Usage::

    from infrastructure.metrics import (
        record_command,
        record_group_move,
        record_reconcile,
        set_console_connected,
    )
"""

from __future__ import annotations

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_REGISTRY = CollectorRegistry()

console_commands_total = Counter(
    "mixremote_console_commands_total",
    "Outbound console writes by kind",
    ["kind", "bus_type"],
    registry=_REGISTRY,
)

group_moves_total = Counter(
    "mixremote_group_moves_total",
    "Group master moves by group kind",
    ["group_kind"],
    registry=_REGISTRY,
)

group_move_seconds = Histogram(
    "mixremote_group_move_seconds",
    "Time to apply one group master move in seconds",
    ["group_kind"],
    buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1],
    registry=_REGISTRY,
)

reconciliations_total = Counter(
    "mixremote_reconciliations_total",
    "Fader observations reconciled by origin and outcome",
    ["origin", "outcome"],
    registry=_REGISTRY,
)

console_connected = Gauge(
    "mixremote_console_connected",
    "1 while the console WebSocket is open, else 0",
    registry=_REGISTRY,
)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_command(*, kind: str, bus_type: str) -> None:
    """Increment the outbound command counter.

    Args:
        kind: ``"fader"``, ``"mute"`` or ``"solo"``.
        bus_type: ``"main"``, ``"gain"`` or ``"aux"``.
    """
    console_commands_total.labels(kind=kind, bus_type=bus_type).inc()


def record_group_move(*, group_kind: str, latency_seconds: float) -> None:
    """Record one applied group master move.

    Args:
        group_kind: ``"local"``, ``"global"`` or ``"view"``.
        latency_seconds: Wall-clock time spent applying the move.
    """
    group_moves_total.labels(group_kind=group_kind).inc()
    group_move_seconds.labels(group_kind=group_kind).observe(latency_seconds)


def record_reconcile(*, origin: str, outcome: str) -> None:
    reconciliations_total.labels(origin=origin, outcome=outcome).inc()


def set_console_connected(connected: bool) -> None:
    console_connected.set(1 if connected else 0)


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(_REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            updates = engine.change_offset(ctx, kind, group_id, 4.0)
        record_group_move(group_kind=kind.value, latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        self.elapsed = time.perf_counter() - self._start
