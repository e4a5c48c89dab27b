"""core/mixer/floor_policy.py — Floor participation rules.

==================  =========  =========  =========
mode                main       gain       aux send
==================  =========  =========  =========
default             moves      moves      moves
ignore-inf          excluded   excluded   excluded
ignore-inf-sends    moves      moves      excluded
==================  =========  =========  =========

"excluded" applies only while the channel sits at the floor. A send master
must not pull up a channel deliberately zeroed for that send, while the same
channel inside a main-bus group should still follow master moves.
"""

from __future__ import annotations

from core.mixer.levels import is_floor_db
from core.mixer.types import BusType, FloorMode


def should_ignore(mode: FloorMode, bus_type: BusType, channel_db: float) -> bool:
    """Return True if a channel at ``channel_db`` sits out of its group on this bus."""
    if mode is FloorMode.DEFAULT:
        return False
    if not is_floor_db(channel_db):
        return False
    if mode is FloorMode.IGNORE_INF:
        return True
    return bus_type is BusType.AUX
