"""
api/schemas/mixer.py — Pydantic request/response models for the mixer endpoints.

Field names are snake_case in Python and camelCase on the wire (the browser
client's shape), via aliases.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from core.mixer.types import FloorMode


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Channel writes
# ---------------------------------------------------------------------------


class FaderRequest(BaseModel):
    """POST /api/channels/{id}/fader and /gain — normalized level, clamped to [0, 1]."""

    value: float = Field(..., description="Normalized level; 0 = -60 dB floor, 1 = 0 dB")


class MuteRequest(BaseModel):
    muted: bool = Field(..., description="True mutes the channel in the selected view")


class SoloRequest(BaseModel):
    solo: bool = Field(..., description="True solos the channel (main mix only)")


class ConnectRequest(BaseModel):
    """POST /api/connect — switch console host."""

    host: str = Field(..., min_length=1, description="Console IP address or host name")


# ---------------------------------------------------------------------------
# Group writes
# ---------------------------------------------------------------------------


class OffsetRequest(_CamelModel):
    offset_db: float = Field(..., alias="offsetDb", description="New group master offset in dB")


class OffsetResponse(BaseModel):
    updated: dict[int, float] = Field(
        default_factory=dict, description="New normalized fader per moved channel"
    )


class ModeRequest(BaseModel):
    mode: FloorMode = Field(..., description="default | ignore-inf | ignore-inf-sends")


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class LayoutSectionIn(_CamelModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    channel_ids: list[int] = Field(..., alias="channelIds")
    offset_db: float | None = Field(None, alias="offsetDb")
    mode: FloorMode | None = None
    enabled: bool | None = None


class GlobalGroupIn(_CamelModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    channel_ids: list[int] = Field(..., alias="channelIds")


class GroupSettingsIn(_CamelModel):
    offset_db: float | None = Field(None, alias="offsetDb")
    mode: FloorMode | None = None
    enabled: bool | None = None


class MixOrderGroupIn(_CamelModel):
    kind: Literal["group"]
    group_type: Literal["local", "global"] = Field(..., alias="groupType")
    id: str = Field(..., min_length=1)


class MixOrderChannelIn(_CamelModel):
    kind: Literal["channel"]
    id: int


MixOrderItemIn = Annotated[MixOrderGroupIn | MixOrderChannelIn, Field(discriminator="kind")]


class ViewSettingsIn(_CamelModel):
    offset_db: float | None = Field(None, alias="offsetDb")
    simple_controls: bool | None = Field(None, alias="simpleControls")
    mix_order: list[MixOrderItemIn] | None = Field(None, alias="mixOrder")


class LayoutUpdateRequest(_CamelModel):
    """PUT /api/layout — any subset of the layout; omitted parts are left alone."""

    sections: list[LayoutSectionIn] | None = Field(
        None, description="Aux views only; ignored on main/gain"
    )
    global_groups: list[GlobalGroupIn] | None = Field(None, alias="globalGroups")
    global_settings: dict[str, GroupSettingsIn] | None = Field(None, alias="globalSettings")
    view_settings: ViewSettingsIn | None = Field(None, alias="viewSettings")
