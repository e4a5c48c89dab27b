"""
Shared fixtures for the test suite.

Centralizes reusable test infrastructure so individual test files
don't need to repeat fake/override boilerplate.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from api.broadcast import Broadcaster
from api.deps import get_broadcaster, get_config, get_session
from api.main import app
from core.config import MixerConfig
from core.mixer.engine import GroupMixEngine
from core.mixer.layout import (
    GlobalGroup,
    GroupSettings,
    LayoutView,
    LocalSection,
    ViewSettings,
    normalize_global_groups,
    normalize_sections,
)
from core.mixer.levels import db_to_fader, fader_to_db
from core.mixer.state import ChannelStateCache
from core.mixer.types import BusContext, Channel, ConsoleCommand, FloorMode, GroupKey, GroupKind
from ingestion.console_bridge import ConsoleNotConnectedError, MixerUpdate, format_command
from ingestion.mix_session import MixSession

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CHANNELS: tuple[int, ...] = (1, 2, 3, 4)
"""Channels exposed in every test configuration."""

AUX_BUSES: tuple[int, ...] = (1, 2)

FROZEN_NOW = "2026-02-21T12:00:00+00:00"

AUX1 = BusContext.aux(1)
MAIN = BusContext.main()


# ---------------------------------------------------------------------------
# Level helpers
# ---------------------------------------------------------------------------


def set_level(cache: ChannelStateCache, ctx: BusContext, channel_id: int, db: float) -> None:
    """Place a channel at ``db`` as if the console had reported it."""
    cache.update_channel(ctx, channel_id, fader=db_to_fader(db))


def level_db(cache: ChannelStateCache, ctx: BusContext, channel_id: int) -> float:
    channel = cache.get_channel(ctx, channel_id)
    assert channel is not None
    return fader_to_db(channel.fader)


# ---------------------------------------------------------------------------
# Fake layout source
# ---------------------------------------------------------------------------


class FakeLayoutSource:
    """In-memory layout with the same normalization as the JSON store.

    Records every ``set_master`` / ``set_mode`` call for assertions.
    """

    def __init__(self, channel_ids: Iterable[int] = CHANNELS) -> None:
        self.channel_ids = tuple(channel_ids)
        self.sections: dict[int, list[LocalSection]] = {}
        self.global_groups: list[GlobalGroup] = []
        self.settings: dict[BusContext, dict[str, GroupSettings]] = {}
        self.view_settings: dict[BusContext, ViewSettings] = {}
        self.masters: list[tuple[GroupKey, float]] = []
        self.modes: list[tuple[GroupKey, FloorMode]] = []

    def add_section(
        self,
        bus_id: int,
        section_id: str,
        channel_ids: Iterable[int],
        offset_db: float = 0.0,
        mode: FloorMode = FloorMode.IGNORE_INF,
        enabled: bool = True,
    ) -> None:
        self.sections.setdefault(bus_id, []).append(
            LocalSection(section_id, section_id.title(), tuple(channel_ids), offset_db, mode, enabled)
        )

    def add_global(
        self,
        group_id: str,
        channel_ids: Iterable[int],
        settings: Mapping[BusContext, GroupSettings] | None = None,
    ) -> None:
        self.global_groups.append(GlobalGroup(group_id, group_id.title(), tuple(channel_ids)))
        for ctx, value in (settings or {}).items():
            self.settings.setdefault(ctx, {})[group_id] = value

    def remove_global(self, group_id: str) -> None:
        self.global_groups = [g for g in self.global_groups if g.id != group_id]

    def view(self, ctx: BusContext) -> LayoutView:
        sections = ()
        if ctx.is_aux:
            sections = normalize_sections(self.sections.get(ctx.bus_id, []), self.channel_ids)
        return LayoutView(
            context=ctx,
            channel_ids=self.channel_ids,
            sections=sections,
            global_groups=normalize_global_groups(self.global_groups, self.channel_ids),
            global_settings=dict(self.settings.get(ctx, {})),
            view_settings=self.view_settings.get(ctx, ViewSettings()),
        )

    def set_master(self, key: GroupKey, offset_db: float) -> None:
        self.masters.append((key, offset_db))
        self._update(key, offset_db=offset_db)

    def set_mode(self, key: GroupKey, mode: FloorMode) -> None:
        self.modes.append((key, mode))
        if key.kind is not GroupKind.VIEW:
            self._update(key, mode=mode)

    def _update(self, key: GroupKey, **changes: Any) -> None:
        ctx = key.context
        if key.kind is GroupKind.LOCAL:
            current = normalize_sections(self.sections.get(ctx.bus_id, []), self.channel_ids)
            self.sections[ctx.bus_id] = [
                dataclasses.replace(s, **changes) if s.id == key.group_id and not s.is_pinned else s
                for s in current
            ]
        elif key.kind is GroupKind.GLOBAL:
            slot = self.settings.setdefault(ctx, {})
            slot[key.group_id] = dataclasses.replace(
                slot.get(key.group_id) or GroupSettings(), **changes
            )
        else:
            current = self.view_settings.get(ctx, ViewSettings())
            self.view_settings[ctx] = dataclasses.replace(current, offset_db=changes["offset_db"])


# ---------------------------------------------------------------------------
# Fake console side
# ---------------------------------------------------------------------------


class RecordingSink:
    """Command sink that keeps every command it is handed."""

    def __init__(self) -> None:
        self.sent: list[ConsoleCommand] = []

    def send(self, command: ConsoleCommand) -> None:
        self.sent.append(command)


class DroppingSink(RecordingSink):
    """Raises ``ConnectionError`` for the ``fail_on``-th command (1-based)."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.calls = 0

    def send(self, command: ConsoleCommand) -> None:
        self.calls += 1
        if self.calls == self.fail_on:
            raise ConnectionError("link dropped")
        super().send(command)


class FakeBridge:
    """Stands in for ``ConsoleBridge``: no thread, no socket.

    Commands are still run through ``format_command`` so a test fails if
    the engine emits something the console could not express.
    """

    def __init__(self, host: str = "10.0.0.5", connected: bool = True) -> None:
        self.host = host
        self.connected = connected
        self.sent: list[ConsoleCommand] = []
        self.frames: list[str] = []
        self.handler: Any = None
        self.started = False
        self.stopped = False
        self.hosts: list[str] = []

    def set_update_handler(self, handler: Any) -> None:
        self.handler = handler

    def start(self) -> None:
        self.started = True

    def stop(self, timeout: float = 2.0) -> None:
        self.stopped = True

    def set_host(self, host: str) -> None:
        self.host = host
        self.hosts.append(host)

    def is_connected(self) -> bool:
        return self.connected

    def send(self, command: ConsoleCommand) -> None:
        if not self.connected:
            raise ConsoleNotConnectedError(self.host)
        self.frames.append(format_command(command))
        self.sent.append(command)

    def push(self, update: MixerUpdate) -> None:
        """Deliver an update the way the reader thread would."""
        self.handler(update)


class RecordingPublisher:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []
        self.channels: list[Channel] = []

    def publish(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    def queue_channel(self, channel: Channel) -> None:
        self.channels.append(channel)

    def types(self) -> list[str]:
        return [m["type"] for m in self.messages]


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def cache() -> ChannelStateCache:
    return ChannelStateCache("test-console", CHANNELS, AUX_BUSES, clock=lambda: FROZEN_NOW)


@pytest.fixture()
def layouts() -> FakeLayoutSource:
    return FakeLayoutSource()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def engine(cache: ChannelStateCache, layouts: FakeLayoutSource, sink: RecordingSink) -> GroupMixEngine:
    return GroupMixEngine(cache, layouts, sink)


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mixer_config(tmp_path: Path) -> MixerConfig:
    return MixerConfig(host="10.0.0.5", channels=CHANNELS, aux_bus_ids=AUX_BUSES, data_dir=tmp_path)


@pytest.fixture()
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def session(
    mixer_config: MixerConfig, publisher: RecordingPublisher, bridge: FakeBridge
) -> MixSession:
    return MixSession(mixer_config, publisher, bridge_factory=lambda _config: bridge)


# ---------------------------------------------------------------------------
# FastAPI test client fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def api_client(mixer_config: MixerConfig, session: MixSession):  # type: ignore[no-untyped-def]
    """FastAPI ``TestClient`` wired to a session with a fake console bridge.

    The session is reachable as ``client.session``.
    """
    broadcaster = Broadcaster()
    app.dependency_overrides[get_config] = lambda: mixer_config
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster

    with TestClient(app) as c:
        c.session = session  # type: ignore[attr-defined]
        yield c

    app.dependency_overrides.clear()
