from cutline.schemas.commands import (
    AddAsset,
    AddClip,
    AddClipAuto,
    ClipChanges,
    Command,
    RemoveClip,
    SelectClip,
    SetCanvasSize,
    SetPlayhead,
    SetZoom,
    TogglePlayback,
    TrackChanges,
    UpdateClip,
    UpdateTrack,
)
from cutline.schemas.export import ExportRequest, ExportResult
from cutline.schemas.graph import CompositionGraph, GraphInput, GraphNode
from cutline.schemas.timeline import (
    CanvasSize,
    Clip,
    MediaAsset,
    TextData,
    TimelineState,
    Track,
    Transform,
    Transition,
)

__all__ = [
    "MediaAsset",
    "Track",
    "Transform",
    "TextData",
    "Transition",
    "Clip",
    "CanvasSize",
    "TimelineState",
    "ClipChanges",
    "TrackChanges",
    "AddAsset",
    "AddClip",
    "AddClipAuto",
    "UpdateClip",
    "RemoveClip",
    "SetPlayhead",
    "TogglePlayback",
    "SelectClip",
    "SetZoom",
    "UpdateTrack",
    "SetCanvasSize",
    "Command",
    "CompositionGraph",
    "GraphInput",
    "GraphNode",
    "ExportRequest",
    "ExportResult",
]
