"""
Configuration dataclass and parsers for the mixer remote server.

Pure module: values arrive as strings from the environment edge
(``ingestion/settings.py``) and are validated here, so the same rules apply
to tests, CLI overrides and the running server.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

MAX_CHANNEL = 24
"""Input channels addressable on the console."""

AUX_BUS_IDS: tuple[int, ...] = tuple(range(1, 11))
"""Aux sends exposed to clients (AUX 1..10)."""

DEFAULT_CHANNELS: tuple[int, ...] = tuple(range(1, MAX_CHANNEL + 1))
DEFAULT_PORT = 3001
DEFAULT_DATA_DIR = Path("data")

_SINGLE = re.compile(r"^\d+$")
_RANGE = re.compile(r"^(\d+)-(\d+)$")


def parse_channel_list(raw: str | None) -> tuple[int, ...]:
    """
    Parse a channel selection such as ``"1-8,12,15-17"``.

    Parts are comma separated and trimmed; ranges may be written in either
    direction. Duplicates are removed and the result is sorted. An empty or
    missing value selects every channel.

    Raises:
        ValueError: On a malformed part or a channel outside 1..24.

    Example:
        >>> parse_channel_list("5-3,10")
        (3, 4, 5, 10)
    """
    if raw is None or not raw.strip():
        return DEFAULT_CHANNELS

    channels: set[int] = set()
    for part in (p.strip() for p in raw.split(",")):
        if not part:
            continue
        if _SINGLE.match(part):
            value = int(part)
            if not 1 <= value <= MAX_CHANNEL:
                raise ValueError(f"Channel {value} out of range (1-{MAX_CHANNEL}).")
            channels.add(value)
            continue

        match = _RANGE.match(part)
        if match is None:
            raise ValueError(f'Invalid channel range: "{part}".')
        start, end = int(match.group(1)), int(match.group(2))
        if not (1 <= start <= MAX_CHANNEL and 1 <= end <= MAX_CHANNEL):
            raise ValueError(f'Invalid channel range: "{part}".')
        low, high = sorted((start, end))
        channels.update(range(low, high + 1))

    return tuple(sorted(channels)) or DEFAULT_CHANNELS


@dataclass(frozen=True)
class MixerConfig:
    """
    Runtime configuration for the mixer remote server.

    Attributes:
        host: Console address to connect to at startup. ``None`` waits for
            ``POST /api/connect``.
        channels: Input channels exposed to clients, ascending.
        aux_bus_ids: Aux sends exposed to clients.
        data_dir: Directory holding persisted layout files.
        port: HTTP port for the uvicorn entry point.
    """

    host: str | None = None
    channels: tuple[int, ...] = DEFAULT_CHANNELS
    aux_bus_ids: tuple[int, ...] = AUX_BUS_IDS
    data_dir: Path = field(default=DEFAULT_DATA_DIR)
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.channels:
            raise ValueError("channels must not be empty")
        bad = [c for c in self.channels if not 1 <= c <= MAX_CHANNEL]
        if bad:
            raise ValueError(f"channels out of range (1-{MAX_CHANNEL}): {bad}")
        bad_aux = [a for a in self.aux_bus_ids if a not in AUX_BUS_IDS]
        if bad_aux:
            raise ValueError(f"aux_bus_ids out of range (1-10): {bad_aux}")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in 1..65535, got {self.port}")
