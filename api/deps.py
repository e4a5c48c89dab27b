"""
FastAPI dependency providers.

Provides singletons for the server configuration, the WebSocket broadcaster
and the mixing session so they are created once and shared across requests,
plus the query/path parsers every mixer route uses.
"""

from fastapi import Depends, HTTPException, Query

from api.broadcast import Broadcaster
from core.config import MixerConfig
from core.mixer.types import BusContext
from ingestion.mix_session import MixSession
from ingestion.settings import load_config

_config: MixerConfig | None = None


def get_config() -> MixerConfig:
    """
    Return the cached server configuration.

    Read from the environment (and ``.env``) on first call.
    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = load_config()
    return _config


_broadcaster: Broadcaster | None = None


def get_broadcaster() -> Broadcaster:
    """Return the process-wide WebSocket broadcaster."""
    global _broadcaster  # noqa: PLW0603
    if _broadcaster is None:
        _broadcaster = Broadcaster()
    return _broadcaster


_session: MixSession | None = None


def get_session() -> MixSession:
    """
    Return the process-wide mixing session.

    Created on first call. The console link itself is started by the
    application lifespan, which attaches the session to the serving loop.
    """
    global _session  # noqa: PLW0603
    if _session is None:
        _session = MixSession(get_config(), get_broadcaster())
    return _session


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


def parse_bus(
    bus: str | None = Query(None, description="master | main | gain | aux"),
    bus_id: str | None = Query(None, alias="busId", description="Aux bus id (1-10)"),
    config: MixerConfig = Depends(get_config),
) -> BusContext:
    """
    Resolve the ``bus``/``busId`` query pair to a bus context.

    An unknown bus selects the main mix and an out-of-range aux id selects
    aux 1.
    """
    name = (bus or "").strip().lower()
    if name == "gain":
        return BusContext.gain()
    if name != "aux":
        return BusContext.main()
    try:
        aux_id = int(bus_id) if bus_id is not None else 1
    except ValueError:
        aux_id = 1
    if aux_id not in config.aux_bus_ids:
        aux_id = 1
    return BusContext.aux(aux_id)


def parse_channel_id(channel_id: str, config: MixerConfig = Depends(get_config)) -> int:
    """Validate the ``{channel_id}`` path segment against the exposed channels."""
    try:
        value = int(channel_id)
    except ValueError:
        value = None
    if value is None or value not in config.channels:
        raise HTTPException(status_code=400, detail="Invalid channel id")
    return value
