"""Tests for core/mixer/layout.py — section and settings normalization."""

from __future__ import annotations

from core.mixer.layout import (
    FAVORITES_ID,
    OTHERS_ID,
    GlobalGroup,
    GroupSettings,
    LocalSection,
    ViewSettings,
    normalize_global_groups,
    normalize_mix_order,
    normalize_mode,
    normalize_offset,
    normalize_sections,
    normalize_settings,
)
from core.mixer.types import FloorMode

CHANNELS = (1, 2, 3, 4, 5, 6)


def _ids(sections: tuple[LocalSection, ...]) -> list[str]:
    return [s.id for s in sections]


class TestNormalizeSections:
    def test_empty_input_yields_reserved_sections(self) -> None:
        sections = normalize_sections([], CHANNELS)
        assert _ids(sections) == [FAVORITES_ID, OTHERS_ID]
        assert sections[0].channel_ids == ()
        assert sections[-1].channel_ids == CHANNELS

    def test_reserved_sections_are_placed_first_and_last(self) -> None:
        sections = normalize_sections(
            [
                LocalSection(OTHERS_ID, "Other"),
                LocalSection("drums", "Drums", (1, 2)),
                LocalSection(FAVORITES_ID, "Mine", (6,)),
                LocalSection("vox", "Vox", (3,)),
            ],
            CHANNELS,
        )
        assert _ids(sections) == [FAVORITES_ID, "drums", "vox", OTHERS_ID]

    def test_others_receives_every_unplaced_channel(self) -> None:
        sections = normalize_sections(
            [LocalSection(FAVORITES_ID, "", (6,)), LocalSection("drums", "Drums", (1, 2))],
            CHANNELS,
        )
        assert sections[-1].channel_ids == (3, 4, 5)

    def test_others_keeps_stored_order_first(self) -> None:
        sections = normalize_sections([LocalSection(OTHERS_ID, "Other", (5, 3))], CHANNELS)
        assert sections[-1].channel_ids == (5, 3, 1, 2, 4, 6)

    def test_channel_in_two_custom_sections_stays_in_first(self) -> None:
        sections = normalize_sections(
            [LocalSection("a", "A", (1, 2)), LocalSection("b", "B", (2, 3))], CHANNELS
        )
        assert sections[1].channel_ids == (1, 2)
        assert sections[2].channel_ids == (3,)

    def test_unknown_and_duplicate_channels_are_dropped(self) -> None:
        sections = normalize_sections([LocalSection("a", "A", (1, 1, 99, 2))], CHANNELS)
        assert sections[1].channel_ids == (1, 2)

    def test_duplicate_section_ids_keep_first(self) -> None:
        sections = normalize_sections(
            [LocalSection("a", "First", (1,)), LocalSection("a", "Second", (2,))], CHANNELS
        )
        assert [s.name for s in sections if s.id == "a"] == ["First"]

    def test_empty_section_id_is_dropped(self) -> None:
        sections = normalize_sections([LocalSection("", "Nameless", (1,))], CHANNELS)
        assert _ids(sections) == [FAVORITES_ID, OTHERS_ID]

    def test_favorites_never_carries_an_offset(self) -> None:
        sections = normalize_sections(
            [LocalSection(FAVORITES_ID, "Mine", (1,), offset_db=6.0, enabled=False)], CHANNELS
        )
        assert sections[0].offset_db == 0.0
        assert sections[0].enabled is True

    def test_pinned_channel_can_also_sit_in_a_custom_section(self) -> None:
        sections = normalize_sections(
            [LocalSection(FAVORITES_ID, "", (1,)), LocalSection("a", "A", (1, 2))], CHANNELS
        )
        assert sections[0].channel_ids == (1,)
        assert sections[1].channel_ids == (1, 2)
        assert 1 not in sections[-1].channel_ids


class TestSectionFromDict:
    def test_parses_camel_case(self) -> None:
        section = LocalSection.from_dict(
            {"id": "drums", "name": "Drums", "channelIds": [1, 2], "offsetDb": -3, "mode": "default"}
        )
        assert section.channel_ids == (1, 2)
        assert section.offset_db == -3.0
        assert section.mode is FloorMode.DEFAULT
        assert section.enabled is True

    def test_bad_fields_fall_back(self) -> None:
        section = LocalSection.from_dict(
            {"id": "x", "channelIds": "1,2", "offsetDb": "loud", "mode": "bogus", "enabled": "yes"}
        )
        assert section.name == "x"
        assert section.channel_ids == ()
        assert section.offset_db == 0.0
        assert section.mode is FloorMode.IGNORE_INF
        assert section.enabled is True

    def test_round_trips_through_dict(self) -> None:
        section = LocalSection("vox", "Vox", (3, 4), -2.5, FloorMode.IGNORE_INF_SENDS, False)
        assert LocalSection.from_dict(section.to_dict()) == section


class TestFieldCoercion:
    def test_normalize_mode_accepts_enum(self) -> None:
        assert normalize_mode(FloorMode.DEFAULT) is FloorMode.DEFAULT

    def test_normalize_mode_unknown_falls_back(self) -> None:
        assert normalize_mode(None) is FloorMode.IGNORE_INF

    def test_normalize_offset_rejects_bool_and_non_finite(self) -> None:
        assert normalize_offset(True) == 0.0
        assert normalize_offset(float("inf")) == 0.0
        assert normalize_offset(4) == 4.0


class TestGlobalGroupsAndSettings:
    def test_global_groups_dedupe_and_filter(self) -> None:
        groups = normalize_global_groups(
            [GlobalGroup("g", "G", (1, 99)), GlobalGroup("g", "Again", (2,)), GlobalGroup("", "x")],
            CHANNELS,
        )
        assert groups == (GlobalGroup("g", "G", (1,)),)

    def test_missing_settings_mean_disabled(self) -> None:
        assert GroupSettings().enabled is False

    def test_settings_parse_mappings_and_skip_junk(self) -> None:
        settings = normalize_settings(
            {"g": {"offsetDb": 2, "mode": "default", "enabled": True}, "h": 5, "": {}}
        )
        assert list(settings) == ["g"]
        assert settings["g"] == GroupSettings(2.0, FloorMode.DEFAULT, True)


class TestMixOrder:
    def test_keeps_valid_items_in_order(self) -> None:
        order = normalize_mix_order(
            [
                {"kind": "group", "groupType": "local", "id": "drums"},
                {"kind": "channel", "id": 3},
                {"kind": "group", "groupType": "global", "id": "drums"},
            ]
        )
        assert [item.to_dict() for item in order] == [
            {"kind": "group", "groupType": "local", "id": "drums"},
            {"kind": "channel", "id": 3},
            {"kind": "group", "groupType": "global", "id": "drums"},
        ]

    def test_drops_duplicates_and_invalid_items(self) -> None:
        order = normalize_mix_order(
            [
                {"kind": "channel", "id": 3},
                {"kind": "channel", "id": 3},
                {"kind": "channel", "id": "3"},
                {"kind": "group", "groupType": "view", "id": "all"},
                {"kind": "mystery"},
                "channel",
            ]
        )
        assert len(order) == 1

    def test_view_settings_defaults(self) -> None:
        settings = ViewSettings.from_dict(None)
        assert settings.offset_db == 0.0
        assert settings.simple_controls is False
        assert settings.mix_order == ()
