"""core/mixer/levels.py — Normalized fader ↔ dB conversion.

Linear mapping over a 60 dB range::

    normalized 0.0  ⇔  -60 dB  (floor, stands in for -inf)
    normalized 1.0  ⇔    0 dB  (unity)

    db         = normalized * 60 - 60
    normalized = clamp((db + 60) / 60, 0, 1)

This is a simplification of the console's real fader taper.
"""

from __future__ import annotations

import math

FLOOR_DB: float = -60.0
UNITY_DB: float = 0.0
DB_RANGE: float = UNITY_DB - FLOOR_DB

FLOOR_EPSILON: float = 0.0001
"""Normalized values at or below this are the floor."""

FLOOR_EPSILON_DB: float = FLOOR_EPSILON * DB_RANGE


def clamp_fader(value: float) -> float:
    """Clamp a normalized level to [0, 1]. NaN collapses to the floor."""
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def clamp_db(value: float) -> float:
    if math.isnan(value):
        return FLOOR_DB
    return min(UNITY_DB, max(FLOOR_DB, value))


def fader_to_db(value: float) -> float:
    """Convert a normalized fader position to dB."""
    if math.isnan(value) or value <= FLOOR_EPSILON:
        return FLOOR_DB
    return clamp_fader(value) * DB_RANGE + FLOOR_DB


def db_to_fader(value: float) -> float:
    """Convert dB to a normalized fader position, clamped to [0, 1]."""
    return (clamp_db(value) - FLOOR_DB) / DB_RANGE


def is_floor_fader(value: float) -> bool:
    return math.isnan(value) or value <= FLOOR_EPSILON


def is_floor_db(value: float) -> bool:
    return math.isnan(value) or value <= FLOOR_DB + FLOOR_EPSILON_DB


def channel_level_db(fader: float, fader_db: float | None = None) -> float:
    """Level used for ratio math: the confirmed dB when known, else the mapped fader."""
    if fader_db is not None:
        return clamp_db(fader_db)
    return fader_to_db(fader)
