"""
Tests for core.config module.

These tests verify channel list parsing and MixerConfig validation.
"""

from pathlib import Path

import pytest

from core.config import (
    AUX_BUS_IDS,
    DEFAULT_CHANNELS,
    DEFAULT_PORT,
    MixerConfig,
    parse_channel_list,
)


class TestParseChannelList:
    """Test the ``UI24R_CHANNELS`` grammar."""

    def test_missing_value_selects_every_channel(self) -> None:
        assert parse_channel_list(None) == DEFAULT_CHANNELS
        assert len(DEFAULT_CHANNELS) == 24

    def test_blank_value_selects_every_channel(self) -> None:
        assert parse_channel_list("   ") == DEFAULT_CHANNELS

    def test_single_channels(self) -> None:
        assert parse_channel_list("3,1,2") == (1, 2, 3)

    def test_ranges_and_singles(self) -> None:
        assert parse_channel_list("1-4,12,15-17") == (1, 2, 3, 4, 12, 15, 16, 17)

    def test_reversed_range_is_accepted(self) -> None:
        assert parse_channel_list("5-3") == (3, 4, 5)

    def test_parts_are_trimmed(self) -> None:
        assert parse_channel_list(" 1 , 3-4 ") == (1, 3, 4)

    def test_duplicates_collapse(self) -> None:
        assert parse_channel_list("1-3,2,3") == (1, 2, 3)

    def test_empty_parts_are_skipped(self) -> None:
        assert parse_channel_list("1,,2,") == (1, 2)

    def test_channel_out_of_range_raises(self) -> None:
        with pytest.raises(ValueError, match=r"Channel 25 out of range \(1-24\)\."):
            parse_channel_list("25")

    def test_channel_zero_raises(self) -> None:
        with pytest.raises(ValueError, match="Channel 0 out of range"):
            parse_channel_list("0,1")

    def test_range_out_of_bounds_raises(self) -> None:
        with pytest.raises(ValueError, match='Invalid channel range: "20-30".'):
            parse_channel_list("20-30")

    def test_garbage_part_raises(self) -> None:
        with pytest.raises(ValueError, match='Invalid channel range: "abc".'):
            parse_channel_list("1,abc")

    def test_whitespace_inside_range_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid channel range"):
            parse_channel_list("1 - 4")


class TestMixerConfigValidation:
    """Test MixerConfig parameter validation."""

    def test_default_values(self) -> None:
        config = MixerConfig()
        assert config.host is None
        assert config.channels == DEFAULT_CHANNELS
        assert config.aux_bus_ids == AUX_BUS_IDS
        assert config.data_dir == Path("data")
        assert config.port == DEFAULT_PORT

    def test_empty_channels_raises(self) -> None:
        with pytest.raises(ValueError, match="channels must not be empty"):
            MixerConfig(channels=())

    def test_channel_out_of_range_raises(self) -> None:
        with pytest.raises(ValueError, match="channels out of range"):
            MixerConfig(channels=(1, 30))

    def test_unknown_aux_bus_raises(self) -> None:
        with pytest.raises(ValueError, match="aux_bus_ids out of range"):
            MixerConfig(aux_bus_ids=(1, 11))

    def test_bad_port_raises(self) -> None:
        with pytest.raises(ValueError, match="port must be in 1..65535"):
            MixerConfig(port=0)

    def test_config_is_frozen(self) -> None:
        config = MixerConfig()
        with pytest.raises(AttributeError):
            config.port = 8080  # type: ignore[misc]
