"""Tests for ingestion/mix_session.py — console updates, writes and layout edits."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from conftest import AUX1, MAIN, FakeBridge, RecordingPublisher, level_db, set_level

from core.config import MixerConfig
from core.mixer.levels import db_to_fader
from core.mixer.types import BusContext, ConnectionStatus, FloorMode, GroupKey, GroupKind
from ingestion.console_bridge import (
    AuxNameUpdate,
    ChannelUpdate,
    ConnectionUpdate,
    ConsoleNotConnectedError,
    MeterUpdate,
)
from ingestion.mix_session import NO_HOST_LABEL, MixSession

DRUMS_LAYOUT = {
    "sections": [
        {"id": "drums", "name": "Drums", "channelIds": [1, 2], "offsetDb": 0.0, "mode": "default"}
    ]
}


class TestConstruction:
    def test_layout_file_is_per_host(self, session: MixSession, tmp_path: Path) -> None:
        assert session.layouts.path == tmp_path / "layout.10-0-0-5.json"

    def test_unconfigured_host_label(
        self, tmp_path: Path, publisher: RecordingPublisher, bridge: FakeBridge
    ) -> None:
        config = MixerConfig(host=None, channels=(1, 2), aux_bus_ids=(1,), data_dir=tmp_path)
        s = MixSession(config, publisher, bridge_factory=lambda _c: bridge)
        assert s.snapshot(MAIN)["host"] == NO_HOST_LABEL

    def test_contexts(self, session: MixSession) -> None:
        assert session.contexts() == [MAIN, BusContext.gain(), AUX1, BusContext.aux(2)]


class TestLifecycle:
    def test_bridge_updates_are_applied_on_the_loop(
        self, session: MixSession, bridge: FakeBridge
    ) -> None:
        loop = asyncio.new_event_loop()
        try:
            session.start(loop)
            assert bridge.started
            bridge.push(ChannelUpdate(MAIN, 1, fader=0.5))
            assert session.cache.get_channel(MAIN, 1).fader == 0.0
            loop.run_until_complete(asyncio.sleep(0))
            assert session.cache.get_channel(MAIN, 1).fader == 0.5
        finally:
            loop.close()
        session.stop()
        assert bridge.stopped


class TestConsoleUpdates:
    def test_fader_confirmation_updates_cache_and_ratios(
        self, session: MixSession, publisher: RecordingPublisher
    ) -> None:
        session.update_layout(AUX1, DRUMS_LAYOUT)
        session.handle_update(ChannelUpdate(AUX1, 1, fader=db_to_fader(-20.0)))

        key = GroupKey.for_context(AUX1, GroupKind.LOCAL, "drums")
        assert session.engine.ratios.get(key, 1) == pytest.approx(-20.0)
        assert publisher.channels[-1].id == 1

    def test_flags_patch_without_touching_fader(self, session: MixSession) -> None:
        session.cache.update_channel(MAIN, 2, fader=0.7)
        session.handle_update(ChannelUpdate(MAIN, 2, muted=True, solo=True))
        channel = session.cache.get_channel(MAIN, 2)
        assert channel.muted is True
        assert channel.solo is True
        assert channel.fader == 0.7

    def test_names_are_mirrored_to_every_view(
        self, session: MixSession, publisher: RecordingPublisher
    ) -> None:
        session.handle_update(ChannelUpdate(MAIN, 3, name="Snare"))
        for ctx in session.contexts():
            assert session.cache.get_channel(ctx, 3).name == "Snare"
        assert len(publisher.channels) == len(session.contexts())

    def test_aux_name(self, session: MixSession, publisher: RecordingPublisher) -> None:
        session.handle_update(AuxNameUpdate(2, "Drummer"))
        message = publisher.messages[-1]
        assert message["type"] == "aux"
        assert message["data"]["id"] == 2
        assert message["data"]["name"] == "Drummer"
        assert session.snapshot(MAIN)["auxBuses"][1]["name"] == "Drummer"

    def test_meter_reading_is_published(
        self, session: MixSession, publisher: RecordingPublisher
    ) -> None:
        session.handle_update(MeterUpdate(2, pre=0.7, post_fader=0.35))
        assert publisher.messages[-1] == {
            "type": "meter",
            "data": {"id": 2, "meterPre": 0.7, "meterPostFader": 0.35},
        }
        assert session.snapshot(AUX1)["channels"][1]["meterPre"] == 0.7

    def test_meter_for_unknown_channel_is_dropped(
        self, session: MixSession, publisher: RecordingPublisher
    ) -> None:
        session.handle_update(MeterUpdate(42, pre=0.7, post_fader=0.35))
        assert publisher.messages == []

    def test_connect_publishes_status_then_state(
        self, session: MixSession, publisher: RecordingPublisher
    ) -> None:
        session.handle_update(ConnectionUpdate(ConnectionStatus.CONNECTED))
        assert publisher.types() == ["status", "state"]
        assert publisher.messages[0]["data"] == {"connectionStatus": "connected"}
        assert session.cache.connection_status is ConnectionStatus.CONNECTED

    def test_connect_primes_ratios(self, session: MixSession) -> None:
        set_level(session.cache, MAIN, 1, -10.0)
        session.handle_update(ConnectionUpdate(ConnectionStatus.CONNECTED))
        key = GroupKey.for_context(MAIN, GroupKind.VIEW, "all")
        assert session.engine.ratios.get(key, 1) == pytest.approx(-10.0)

    def test_disconnect_only_publishes_status(
        self, session: MixSession, publisher: RecordingPublisher
    ) -> None:
        session.handle_update(ConnectionUpdate(ConnectionStatus.RECONNECTING))
        assert publisher.types() == ["status"]


class TestWrites:
    def test_set_fader_sends_and_broadcasts(
        self, session: MixSession, bridge: FakeBridge, publisher: RecordingPublisher
    ) -> None:
        session.set_fader(AUX1, 2, 0.25)
        assert bridge.frames == ["3:::SETD^i.1.aux.0.value^0.25"]
        assert publisher.channels[-1].fader == 0.25

    def test_writes_require_a_connection(self, session: MixSession, bridge: FakeBridge) -> None:
        bridge.connected = False
        with pytest.raises(ConsoleNotConnectedError):
            session.set_fader(MAIN, 1, 0.5)
        with pytest.raises(ConsoleNotConnectedError):
            session.change_offset(MAIN, GroupKind.VIEW, "all", 3.0)
        assert session.cache.get_channel(MAIN, 1).fader == 0.0

    def test_mute_on_gain_raises(self, session: MixSession) -> None:
        with pytest.raises(ValueError):
            session.set_mute(BusContext.gain(), 1, True)
        with pytest.raises(ValueError):
            session.set_group_mute(BusContext.gain(), GroupKind.VIEW, "all", True)

    def test_solo(self, session: MixSession, bridge: FakeBridge) -> None:
        session.set_solo(4, True)
        assert bridge.frames == ["3:::SETD^i.3.solo^1"]

    def test_change_offset_broadcasts_moved_channels(
        self, session: MixSession, publisher: RecordingPublisher
    ) -> None:
        session.update_layout(AUX1, DRUMS_LAYOUT)
        set_level(session.cache, AUX1, 1, -20.0)
        set_level(session.cache, AUX1, 2, -30.0)

        updates = session.change_offset(AUX1, GroupKind.LOCAL, "drums", 6.0)

        assert sorted(updates) == [1, 2]
        assert level_db(session.cache, AUX1, 2) == pytest.approx(-24.0)
        assert sorted(c.id for c in publisher.channels) == [1, 2]
        assert session.layouts.view(AUX1).section("drums").offset_db == 6.0

    def test_group_mode_and_mute(self, session: MixSession, bridge: FakeBridge) -> None:
        session.update_layout(AUX1, DRUMS_LAYOUT)
        assert session.set_group_mode(AUX1, GroupKind.LOCAL, "drums", FloorMode.IGNORE_INF)
        assert session.layouts.view(AUX1).section("drums").mode is FloorMode.IGNORE_INF

        channels = session.set_group_mute(AUX1, GroupKind.LOCAL, "drums", True)
        assert [c.id for c in channels] == [1, 2]
        assert bridge.frames == ["3:::SETD^i.0.aux.0.mute^1", "3:::SETD^i.1.aux.0.mute^1"]

    def test_group_solo(self, session: MixSession, bridge: FakeBridge) -> None:
        session.update_layout(MAIN, {"globalGroups": [{"id": "band", "name": "Band", "channelIds": [3]}]})
        session.set_group_solo(GroupKind.GLOBAL, "band", True)
        assert bridge.frames == ["3:::SETD^i.2.solo^1"]


class TestLayout:
    def test_layout_payload_sections_only_on_aux(self, session: MixSession) -> None:
        assert "sections" in session.layout_payload(AUX1)
        assert "sections" not in session.layout_payload(MAIN)

    def test_update_layout_persists(self, session: MixSession) -> None:
        session.update_layout(
            MAIN,
            {
                "globalGroups": [{"id": "band", "name": "Band", "channelIds": [1, 2]}],
                "globalSettings": {"band": {"offsetDb": 0.0, "mode": "default", "enabled": True}},
                "viewSettings": {"offsetDb": -3.0, "simpleControls": True, "mixOrder": []},
            },
        )
        saved = json.loads(session.layouts.path.read_text())
        assert saved["globalGroups"][0]["id"] == "band"
        assert saved["globalSettings"]["master"]["band"]["enabled"] is True
        assert saved["viewSettings"]["master"]["offsetDb"] == -3.0

        payload = session.layout_payload(MAIN)
        assert payload["globalSettings"]["band"]["mode"] == "default"
        assert payload["viewSettings"]["simpleControls"] is True

    def test_sections_ignored_on_main(self, session: MixSession) -> None:
        session.update_layout(MAIN, DRUMS_LAYOUT)
        assert session.layouts.view(AUX1).section("drums") is None

    def test_deleting_a_global_group_clears_its_ratios(self, session: MixSession) -> None:
        session.update_layout(
            AUX1,
            {
                "globalGroups": [{"id": "band", "name": "Band", "channelIds": [1]}],
                "globalSettings": {"band": {"enabled": True, "mode": "default"}},
            },
        )
        set_level(session.cache, AUX1, 1, -20.0)
        session.change_offset(AUX1, GroupKind.GLOBAL, "band", 3.0)
        assert session.engine.ratios.keys()

        session.update_layout(AUX1, {"globalGroups": []})

        assert [k for k in session.engine.ratios.keys() if k.group_id == "band"] == []

    def test_connect_switches_layout_file(
        self, session: MixSession, bridge: FakeBridge, publisher: RecordingPublisher, tmp_path: Path
    ) -> None:
        session.update_layout(AUX1, DRUMS_LAYOUT)
        session.connect(" 10.0.0.9 ")

        assert bridge.hosts == ["10.0.0.9"]
        assert session.layouts.path == tmp_path / "layout.10-0-0-9.json"
        assert session.layouts.view(AUX1).section("drums") is None
        assert session.snapshot(MAIN)["host"] == "10.0.0.9"
        assert publisher.types()[-1] == "state"
