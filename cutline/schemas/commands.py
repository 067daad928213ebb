"""Timeline commands.

Every edit reaches the store as one of these models. They are plain data,
JSON-serialisable through the `type` discriminator, so a command log can be
stored and replayed.
"""

from typing import Annotated, Literal, Union

from pydantic import Field

from cutline.schemas.timeline import (
    CanvasSize,
    Clip,
    ClipKind,
    FrozenModel,
    MediaAsset,
    TextData,
    Transform,
    Transition,
)


class ClipChanges(FrozenModel):
    """Partial clip update. Only fields that were set are applied."""

    timeline_start: float | None = Field(default=None, ge=0)
    in_point: float | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, gt=0)
    track_id: int | None = None
    z_index: int | None = None
    transform: Transform | None = None
    label: str | None = None
    text_data: TextData | None = None
    transition: Transition | None = None
    volume: float | None = Field(default=None, ge=0, le=1)


class TrackChanges(FrozenModel):
    name: str | None = None
    is_muted: bool | None = None
    is_hidden: bool | None = None


class AddAsset(FrozenModel):
    type: Literal["add_asset"] = "add_asset"
    asset: MediaAsset


class AddClip(FrozenModel):
    type: Literal["add_clip"] = "add_clip"
    clip: Clip


class AddClipAuto(FrozenModel):
    type: Literal["add_clip_auto"] = "add_clip_auto"
    track_id: int
    duration: float = Field(gt=0)
    kind: ClipKind
    label: str = ""
    asset_id: str | None = None
    text_data: TextData | None = None
    clip_id: str | None = None  # filled by the store before logging


class UpdateClip(FrozenModel):
    type: Literal["update_clip"] = "update_clip"
    id: str
    changes: ClipChanges


class RemoveClip(FrozenModel):
    type: Literal["remove_clip"] = "remove_clip"
    id: str


class SetPlayhead(FrozenModel):
    type: Literal["set_playhead"] = "set_playhead"
    time: float


class TogglePlayback(FrozenModel):
    type: Literal["toggle_playback"] = "toggle_playback"


class SelectClip(FrozenModel):
    type: Literal["select_clip"] = "select_clip"
    id: str | None = None


class SetZoom(FrozenModel):
    type: Literal["set_zoom"] = "set_zoom"
    value: float


class UpdateTrack(FrozenModel):
    type: Literal["update_track"] = "update_track"
    id: int
    changes: TrackChanges


class SetCanvasSize(FrozenModel):
    type: Literal["set_canvas_size"] = "set_canvas_size"
    canvas_size: CanvasSize


Command = Annotated[
    Union[
        AddAsset,
        AddClip,
        AddClipAuto,
        UpdateClip,
        RemoveClip,
        SetPlayhead,
        TogglePlayback,
        SelectClip,
        SetZoom,
        UpdateTrack,
        SetCanvasSize,
    ],
    Field(discriminator="type"),
]
