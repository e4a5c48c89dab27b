"""ingestion/console_bridge.py — WebSocket client for Ui-series mixing consoles.

This module is the I/O boundary between the server and the console.
All network calls live here; core/ stays pure.

Architecture
────────────
::

    Ui24R console
        │   WebSocket (ws://{host}/socket.io/1/websocket), text frames
        ▼
    ingestion/console_bridge.py (this module)
        │
        ├── ChannelUpdate / AuxNameUpdate / ConnectionUpdate  ← parsed frames
        ├── MeterUpdate                                       ← sampled VU2 frames
        └── ConsoleCommand                                    → SETD frames

Wire format
───────────
Every frame carries one or more newline-separated messages prefixed with
``3:::``. Channel index ``n`` and aux index ``a`` are zero-based on the wire::

    SETD^i.{n}.mix^{0..1}               main fader
    SETD^i.{n}.mute^{0|1}               main mute
    SETD^i.{n}.solo^{0|1}               solo
    SETD^i.{n}.aux.{a}.value^{0..1}     aux send level
    SETD^i.{n}.aux.{a}.mute^{0|1}       aux send mute
    SETD^hw.{n}.gain^{0..1}             preamp gain
    SETS^i.{n}.name^{text}              channel name
    SETS^a.{a}.name^{text}              aux bus name
    ALIVE                               keep-alive (client → console)

On connect the console dumps its full state as ordinary SETD/SETS messages.
Meters arrive continuously as ``VU2^{base64}``: an 8-byte header whose first
byte is the input count, then 6 bytes per input (pre, post, post-fader, gate,
comp out, comp meter) on a 0..240 scale. Meter frames are sampled at most
once per 50 ms and per-channel changes under 0.005 are dropped.

Connection model
────────────────
``ConsoleBridge`` keeps one long-lived connection on a daemon thread and
reconnects with exponential backoff (250 ms doubling to 5 s). Updates are
delivered to ``on_update`` *on the bridge thread*; callers that own an event
loop must hop back onto it themselves.

Error handling
──────────────
``ConsoleNotConnectedError`` (a ``ConnectionError``) is raised by
:meth:`ConsoleBridge.send` when no connection is open. The HTTP layer maps it
to 503.
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Union

import websocket

from core.mixer.types import BusContext, BusType, ConnectionStatus, ConsoleCommand
from infrastructure.metrics import record_command, set_console_connected

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FRAME_PREFIX: str = "3:::"
KEEPALIVE_MESSAGE: str = "ALIVE"
KEEPALIVE_INTERVAL: float = 1.0  # seconds
INITIAL_BACKOFF: float = 0.25  # seconds
MAX_BACKOFF: float = 5.0  # seconds
FADER_EPSILON: float = 0.0001
"""Inbound fader changes at or below this are treated as repeats."""

METER_PREFIX: str = "VU2^"
METER_INTERVAL: float = 0.05  # seconds
METER_EPSILON: float = 0.005
VU_HEADER_SIZE: int = 8
VU_INPUT_STRIDE: int = 6
VU_FULL_SCALE: float = 240.0


class ConsoleNotConnectedError(ConnectionError):
    """Raised when a command is sent while the console link is down."""

    def __init__(self, host: str) -> None:
        self.host = host
        super().__init__(f"Mixer is not connected ({host or 'no host configured'})")


# ---------------------------------------------------------------------------
# Update types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChannelUpdate:
    """A change to one channel in one bus context. ``None`` fields are unchanged."""

    context: BusContext
    channel_id: int
    fader: float | None = None
    muted: bool | None = None
    solo: bool | None = None
    name: str | None = None


@dataclass(frozen=True)
class AuxNameUpdate:
    bus_id: int
    name: str


@dataclass(frozen=True)
class ConnectionUpdate:
    status: ConnectionStatus


@dataclass(frozen=True)
class MeterUpdate:
    """Pre-fader and post-fader signal level of one input, each in [0, 1]."""

    channel_id: int
    pre: float
    post_fader: float


MixerUpdate = Union[ChannelUpdate, AuxNameUpdate, ConnectionUpdate, MeterUpdate]


# ---------------------------------------------------------------------------
# Wire codec
# ---------------------------------------------------------------------------


def _format_value(value: float | bool) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


def format_command(command: ConsoleCommand) -> str:
    """Serialise a command to a single ``3:::SETD`` frame.

    Raises:
        ValueError: For a command the console cannot express (e.g. mute on
            the gain stage, solo on an aux send).
    """
    ctx = command.context
    n = command.channel_id - 1
    value = _format_value(command.value)

    if command.kind == "fader":
        if ctx.bus_type is BusType.GAIN:
            path = f"hw.{n}.gain"
        elif ctx.bus_type is BusType.AUX:
            path = f"i.{n}.aux.{ctx.bus_id - 1}.value"
        else:
            path = f"i.{n}.mix"
    elif command.kind == "mute" and ctx.bus_type is not BusType.GAIN:
        path = f"i.{n}.aux.{ctx.bus_id - 1}.mute" if ctx.is_aux else f"i.{n}.mute"
    elif command.kind == "solo" and ctx.bus_type is BusType.MAIN:
        path = f"i.{n}.solo"
    else:
        raise ValueError(f"Unsupported console command: {command!r}")

    return f"{FRAME_PREFIX}SETD^{path}^{value}"


def split_frame(frame: str) -> list[tuple[str, str, str]]:
    """Split a text frame into ``(verb, path, value)`` triples.

    Lines that are not ``SETD``/``SETS`` messages are dropped.

    Example:
        >>> split_frame("3:::SETD^i.0.mix^0.5\\n3:::SETS^a.1.name^IEM")
        [('SETD', 'i.0.mix', '0.5'), ('SETS', 'a.1.name', 'IEM')]
    """
    messages: list[tuple[str, str, str]] = []
    for line in frame.splitlines():
        if line.startswith(FRAME_PREFIX):
            line = line[len(FRAME_PREFIX) :]
        parts = line.split("^", 2)
        if len(parts) != 3 or parts[0] not in ("SETD", "SETS"):
            continue
        messages.append((parts[0], parts[1], parts[2]))
    return messages


def _parse_float(raw: str) -> float | None:
    try:
        value = float(raw)
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return min(1.0, max(0.0, value))


def _parse_flag(raw: str) -> bool | None:
    value = _parse_float(raw)
    if value is None:
        return None
    return value >= 0.5


def decode_message(
    verb: str,
    path: str,
    raw: str,
    channel_ids: Sequence[int],
    aux_bus_ids: Sequence[int],
) -> MixerUpdate | None:
    """Translate one console message into an update, or None if irrelevant."""
    segments = path.split(".")

    if verb == "SETS" and len(segments) == 3 and segments[0] == "a" and segments[2] == "name":
        bus_id = _wire_index(segments[1])
        if bus_id is not None and bus_id in aux_bus_ids and raw:
            return AuxNameUpdate(bus_id=bus_id, name=raw)
        return None

    if len(segments) < 3 or segments[0] not in ("i", "hw"):
        return None
    channel_id = _wire_index(segments[1])
    if channel_id is None or channel_id not in channel_ids:
        return None

    if segments[0] == "hw":
        if segments[2:] == ["gain"]:
            return _level(BusContext.gain(), channel_id, raw)
        return None

    tail = segments[2:]
    if verb == "SETS":
        if tail == ["name"]:
            return ChannelUpdate(BusContext.main(), channel_id, name=raw)
        return None

    if tail == ["mix"]:
        return _level(BusContext.main(), channel_id, raw)
    if tail == ["mute"]:
        return _flag(BusContext.main(), channel_id, "muted", raw)
    if tail == ["solo"]:
        return _flag(BusContext.main(), channel_id, "solo", raw)
    if len(tail) == 3 and tail[0] == "aux":
        bus_id = _wire_index(tail[1])
        if bus_id is None or bus_id not in aux_bus_ids:
            return None
        ctx = BusContext.aux(bus_id)
        if tail[2] == "value":
            return _level(ctx, channel_id, raw)
        if tail[2] == "mute":
            return _flag(ctx, channel_id, "muted", raw)
    return None


def _wire_index(raw: str) -> int | None:
    """Zero-based wire index → one-based id."""
    if not raw.isdigit():
        return None
    return int(raw) + 1


def _level(ctx: BusContext, channel_id: int, raw: str) -> ChannelUpdate | None:
    fader = _parse_float(raw)
    if fader is None:
        return None
    return ChannelUpdate(ctx, channel_id, fader=fader)


def _flag(ctx: BusContext, channel_id: int, field_name: str, raw: str) -> ChannelUpdate | None:
    flag = _parse_flag(raw)
    if flag is None:
        return None
    return ChannelUpdate(ctx, channel_id, **{field_name: flag})


def meter_payload(frame: str) -> str | None:
    """Return the base64 body of the last ``VU2`` message in a frame, if any."""
    payload: str | None = None
    for line in frame.splitlines():
        if line.startswith(FRAME_PREFIX):
            line = line[len(FRAME_PREFIX) :]
        if line.startswith(METER_PREFIX):
            payload = line[len(METER_PREFIX) :]
    return payload


def decode_meters(payload: str, channel_ids: Sequence[int]) -> list[MeterUpdate]:
    """Decode one ``VU2`` body into per-input meter readings.

    Channels beyond the input count in the header, or beyond the end of a
    truncated payload, are skipped. Undecodable payloads yield nothing.

    Example:
        >>> body = base64.b64encode(bytes([2] + [0] * 7 + [240, 0, 120, 0, 0, 0]))
        >>> decode_meters(body.decode(), [1])
        [MeterUpdate(channel_id=1, pre=1.0, post_fader=0.5)]
    """
    try:
        data = base64.b64decode(payload)
    except (binascii.Error, ValueError):
        logger.debug("Undecodable VU2 payload (%d chars)", len(payload))
        return []
    if len(data) < VU_HEADER_SIZE:
        return []

    input_count = data[0]
    updates: list[MeterUpdate] = []
    for channel_id in channel_ids:
        index = channel_id - 1
        offset = VU_HEADER_SIZE + index * VU_INPUT_STRIDE
        if index >= input_count or offset + VU_INPUT_STRIDE > len(data):
            continue
        updates.append(
            MeterUpdate(
                channel_id=channel_id,
                pre=_meter_level(data[offset]),
                post_fader=_meter_level(data[offset + 2]),
            )
        )
    return updates


def _meter_level(raw: int) -> float:
    return min(1.0, max(0.0, raw / VU_FULL_SCALE))


# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------


class ChangeFilter:
    """Drops inbound updates that repeat the last value seen for a channel."""

    def __init__(self) -> None:
        self._last: dict[tuple[BusContext, int], dict[str, Any]] = {}
        self._aux_names: dict[int, str] = {}
        self._meters: dict[int, tuple[float, float]] = {}

    def reset(self) -> None:
        self._last.clear()
        self._aux_names.clear()
        self._meters.clear()

    def accept(self, update: MixerUpdate) -> bool:
        if isinstance(update, MeterUpdate):
            last = self._meters.get(update.channel_id)
            if (
                last is not None
                and abs(last[0] - update.pre) <= METER_EPSILON
                and abs(last[1] - update.post_fader) <= METER_EPSILON
            ):
                return False
            self._meters[update.channel_id] = (update.pre, update.post_fader)
            return True
        if isinstance(update, AuxNameUpdate):
            if self._aux_names.get(update.bus_id) == update.name:
                return False
            self._aux_names[update.bus_id] = update.name
            return True
        if not isinstance(update, ChannelUpdate):
            return True

        previous = self._last.setdefault((update.context, update.channel_id), {})
        changed = False
        if update.fader is not None:
            last_fader = previous.get("fader")
            if last_fader is None or abs(last_fader - update.fader) > FADER_EPSILON:
                changed = True
        for name in ("muted", "solo", "name"):
            value = getattr(update, name)
            if value is not None and previous.get(name) != value:
                changed = True
        if not changed:
            return False
        for name in ("fader", "muted", "solo", "name"):
            value = getattr(update, name)
            if value is not None:
                previous[name] = value
        return True


class MeterGate:
    """Lets at most one meter frame through per ``interval`` seconds."""

    def __init__(
        self, interval: float = METER_INTERVAL, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._interval = interval
        self._clock = clock
        self._last: float | None = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is not None and now - self._last < self._interval:
            return False
        self._last = now
        return True


# ---------------------------------------------------------------------------
# ConsoleBridge
# ---------------------------------------------------------------------------


class ConsoleBridge:
    """Long-lived WebSocket link to the console.

    Usage::

        bridge = ConsoleBridge("192.168.1.50", channel_ids, aux_bus_ids, on_update=handle)
        bridge.start()
        bridge.send(ConsoleCommand("fader", BusContext.aux(2), 5, 0.62))

    Satisfies the :class:`~core.mixer.ports.CommandSink` protocol.
    """

    def __init__(
        self,
        host: str | None,
        channel_ids: Sequence[int],
        aux_bus_ids: Sequence[int],
        on_update: Callable[[MixerUpdate], None] | None = None,
    ) -> None:
        self.host = host or ""
        self._channel_ids = tuple(channel_ids)
        self._aux_bus_ids = tuple(aux_bus_ids)
        self._on_update = on_update
        self._filter = ChangeFilter()
        self._meter_gate = MeterGate()
        self._status = ConnectionStatus.DISCONNECTED
        self._status_lock = threading.Lock()
        self._ws: websocket.WebSocketApp | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}/socket.io/1/websocket"

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    def set_update_handler(self, handler: Callable[[MixerUpdate], None] | None) -> None:
        self._on_update = handler

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the reader thread. No-op without a host or when already running."""
        if not self.host:
            self._emit_status(ConnectionStatus.DISCONNECTED)
            return
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="console-bridge", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Close the connection and wait for the reader thread to exit."""
        self._stop.set()
        ws = self._ws
        if ws is not None:
            ws.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        self._emit_status(ConnectionStatus.DISCONNECTED)

    def set_host(self, host: str) -> None:
        """Switch to another console: drop the current link and reconnect."""
        self.stop()
        self.host = host.strip()
        self._filter.reset()
        self.start()

    def _run(self) -> None:
        delay = INITIAL_BACKOFF
        self._emit_status(ConnectionStatus.RECONNECTING)
        while not self._stop.is_set():
            opened = threading.Event()
            self._ws = websocket.WebSocketApp(
                self.ws_url,
                on_open=lambda ws: self._on_open(ws, opened),
                on_message=self._on_message,
                on_error=self._on_error,
                on_close=self._on_close,
            )
            try:
                self._ws.run_forever()
            finally:
                self._ws = None
            if opened.is_set():
                delay = INITIAL_BACKOFF
            if self._stop.is_set():
                break
            self._emit_status(ConnectionStatus.RECONNECTING)
            logger.info("Reconnecting to console %s in %.2fs", self.host, delay)
            self._stop.wait(delay)
            delay = min(delay * 2, MAX_BACKOFF)

    # ── WebSocketApp callbacks (bridge thread) ──────────────────────────────

    def _on_open(self, ws: websocket.WebSocketApp, opened: threading.Event) -> None:
        opened.set()
        self._filter.reset()
        logger.info("Connected to console at %s", self.host)
        self._emit_status(ConnectionStatus.CONNECTED)
        threading.Thread(
            target=self._keepalive, args=(ws,), name="console-keepalive", daemon=True
        ).start()

    def _on_message(self, ws: websocket.WebSocketApp, message: str | bytes) -> None:
        if isinstance(message, bytes):
            return
        for verb, path, raw in split_frame(message):
            update = decode_message(verb, path, raw, self._channel_ids, self._aux_bus_ids)
            if update is not None and self._filter.accept(update):
                self._dispatch(update)
        payload = meter_payload(message)
        if payload is not None and self._meter_gate.ready():
            for meter in decode_meters(payload, self._channel_ids):
                if self._filter.accept(meter):
                    self._dispatch(meter)

    def _on_error(self, ws: websocket.WebSocketApp, error: Exception) -> None:
        logger.warning("Console connection error (%s): %s", self.host, error)

    def _on_close(self, ws: websocket.WebSocketApp, code: int | None, reason: str | None) -> None:
        logger.info("Console connection closed (%s): %s %s", self.host, code, reason or "")
        self._emit_status(ConnectionStatus.DISCONNECTED)

    def _keepalive(self, ws: websocket.WebSocketApp) -> None:
        while not self._stop.wait(KEEPALIVE_INTERVAL):
            if ws is not self._ws or not self.is_connected():
                return
            try:
                ws.send(FRAME_PREFIX + KEEPALIVE_MESSAGE)
            except websocket.WebSocketException as exc:
                logger.debug("Keep-alive failed: %s", exc)
                return

    # ── Outbound ────────────────────────────────────────────────────────────

    def send(self, command: ConsoleCommand) -> None:
        """Send one command without waiting for confirmation.

        Raises:
            ConsoleNotConnectedError: If the link is down.
            ValueError: If the console cannot express ``command``.
        """
        frame = format_command(command)
        ws = self._ws
        if ws is None or not self.is_connected():
            raise ConsoleNotConnectedError(self.host)
        try:
            ws.send(frame)
        except (websocket.WebSocketException, OSError) as exc:
            raise ConsoleNotConnectedError(self.host) from exc
        record_command(kind=command.kind, bus_type=command.context.bus_type.value)

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _emit_status(self, status: ConnectionStatus) -> None:
        with self._status_lock:
            if self._status is status:
                return
            self._status = status
        set_console_connected(status is ConnectionStatus.CONNECTED)
        self._dispatch(ConnectionUpdate(status))

    def _dispatch(self, update: MixerUpdate) -> None:
        handler = self._on_update
        if handler is None:
            return
        try:
            handler(update)
        except Exception:
            logger.exception("Update handler failed for %r", update)
