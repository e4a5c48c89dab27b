"""
Environment loading for the mixer remote server.

Reads ``UI24R_HOST``, ``UI24R_CHANNELS``, ``MIXER_DATA_DIR`` and ``PORT``
(from the process environment or a local ``.env`` file) and returns a
validated :class:`~core.config.MixerConfig`. Lives in ingestion/ because it
touches the environment (core/ must remain pure).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from core.config import DEFAULT_DATA_DIR, DEFAULT_PORT, MixerConfig, parse_channel_list


def load_config() -> MixerConfig:
    """
    Build the server configuration from the environment.

    Returns:
        A validated ``MixerConfig``.

    Raises:
        ValueError: If ``UI24R_CHANNELS`` or ``PORT`` is malformed.
    """
    load_dotenv()
    host = os.environ.get("UI24R_HOST", "").strip() or None
    channels = parse_channel_list(os.environ.get("UI24R_CHANNELS"))
    data_dir = Path(os.environ.get("MIXER_DATA_DIR", "").strip() or DEFAULT_DATA_DIR)

    raw_port = os.environ.get("PORT", "").strip()
    try:
        port = int(raw_port) if raw_port else DEFAULT_PORT
    except ValueError as exc:
        raise ValueError(f"PORT must be an integer, got {raw_port!r}") from exc

    return MixerConfig(host=host, channels=channels, data_dir=data_dir, port=port)
