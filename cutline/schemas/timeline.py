from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cutline.constants.timeline import DEFAULT_TIMELINE_DURATION_S, DEFAULT_ZOOM


class FrozenModel(BaseModel):
    """Immutable snapshot model. Changes go through model_copy(update=...)."""

    model_config = ConfigDict(frozen=True)


AssetKind = Literal["video", "audio", "image"]
TrackKind = Literal["video", "audio", "overlay"]
ClipKind = Literal["video", "audio", "image", "text"]
TextAlign = Literal["left", "center", "right"]
TransitionKind = Literal["fade", "slide", "zoom"]


class MediaAsset(FrozenModel):
    id: str
    source_locator: str  # URL or local path
    kind: AssetKind
    duration: float = Field(default=0.0, ge=0)
    display_name: str = ""
    has_audio: bool = True  # False when probing found no audio stream


class Track(FrozenModel):
    id: int
    kind: TrackKind
    name: str
    is_muted: bool = False
    is_hidden: bool = False


class Transform(FrozenModel):
    x: float = 0  # percent of canvas width, origin top-left
    y: float = 0  # percent of canvas height
    scale: float = 1.0
    rotation_degrees: float = 0
    opacity: float = Field(default=1.0, ge=0, le=1)


class TextData(FrozenModel):
    content: str = "Double Click to Edit"
    font_size_px: int = 40
    font_family: str = "Inter"
    color: str = "#ffffff"
    background_color: str = "transparent"
    align: TextAlign = "center"


class Transition(FrozenModel):
    in_duration_s: float = Field(default=0, ge=0)
    out_duration_s: float = Field(default=0, ge=0)
    kind: TransitionKind = "fade"  # only fade is rendered


class Clip(FrozenModel):
    id: str
    asset_id: str | None = None  # None for text clips
    track_id: int
    kind: ClipKind
    timeline_start: float = Field(default=0, ge=0)
    in_point: float = Field(default=0, ge=0)  # offset into the source
    duration: float = Field(gt=0)
    transform: Transform = Field(default_factory=Transform)
    z_index: int
    label: str = ""
    text_data: TextData | None = None
    transition: Transition = Field(default_factory=Transition)
    volume: float = Field(default=1.0, ge=0, le=1)

    @model_validator(mode="before")
    @classmethod
    def _default_z_index(cls, data: Any) -> Any:
        # Stacking order follows the track unless set explicitly
        if isinstance(data, dict) and data.get("z_index") is None and "track_id" in data:
            data = {**data, "z_index": data["track_id"]}
        return data

    @property
    def end(self) -> float:
        return self.timeline_start + self.duration

    def overlaps(self, start: float, end: float) -> bool:
        """Half-open interval intersection with [start, end)."""
        return self.timeline_start < end and self.end > start


class CanvasSize(FrozenModel):
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    label: str = "1080p"


def default_tracks() -> list[Track]:
    """Fixed track set, top row first."""
    return [
        Track(id=3, kind="overlay", name="Text/FX"),
        Track(id=2, kind="video", name="Layer 3"),
        Track(id=1, kind="video", name="Layer 2"),
        Track(id=0, kind="video", name="Layer 1"),
        Track(id=-1, kind="audio", name="Audio 1"),
    ]


class TimelineState(FrozenModel):
    """Single source of truth for the editor.

    `clips` keeps insertion order; the compiler relies on it to break
    z-index ties.
    """

    assets: dict[str, MediaAsset] = Field(default_factory=dict)
    tracks: list[Track] = Field(default_factory=default_tracks)
    clips: dict[str, Clip] = Field(default_factory=dict)
    total_duration: float = Field(default=DEFAULT_TIMELINE_DURATION_S, ge=0)
    playhead_time: float = Field(default=0, ge=0)
    is_playing: bool = False
    selected_clip_id: str | None = None
    pixels_per_second: float = DEFAULT_ZOOM
    canvas_size: CanvasSize = Field(default_factory=CanvasSize)

    def track(self, track_id: int) -> Track | None:
        for track in self.tracks:
            if track.id == track_id:
                return track
        return None

    def clips_on_track(self, track_id: int, exclude_id: str | None = None) -> list[Clip]:
        """Clips on a track sorted by timeline start."""
        clips = [
            c for c in self.clips.values()
            if c.track_id == track_id and c.id != exclude_id
        ]
        return sorted(clips, key=lambda c: c.timeline_start)

    @property
    def content_end(self) -> float:
        """End of the last clip, 0 for an empty timeline."""
        return max((c.end for c in self.clips.values()), default=0.0)
