"""Timeline store.

`apply` is the pure reducer: (state, command) -> state. `TimelineStore`
wraps it with the current snapshot and an append-only command log so a
session can be replayed from its initial state.
"""

import logging
from typing import Iterable

from cutline.constants.timeline import MAX_ZOOM, MIN_ZOOM, TIMELINE_TAIL_MARGIN_S
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
    UpdateClip,
    UpdateTrack,
)
from cutline.schemas.timeline import CanvasSize, Clip, TextData, TimelineState
from cutline.services.ids import CounterIdGenerator, IdGenerator, UuidIdGenerator
from cutline.services.placement import find_slot

logger = logging.getLogger(__name__)


def create_initial_state(canvas_size: CanvasSize | None = None) -> TimelineState:
    """Empty timeline with the default track set."""
    if canvas_size is None:
        return TimelineState()
    return TimelineState(canvas_size=canvas_size)


def _extended_duration(total_duration: float, clip: Clip) -> float:
    return max(total_duration, clip.end + TIMELINE_TAIL_MARGIN_S)


def _apply_changes(clip: Clip, changes: ClipChanges) -> Clip:
    update = {
        name: getattr(changes, name)
        for name in changes.model_fields_set
        if getattr(changes, name) is not None
    }
    return clip.model_copy(update=update)


def _with_clip(state: TimelineState, clip: Clip, select: bool = False) -> TimelineState:
    clips = dict(state.clips)
    clips[clip.id] = clip
    update = {
        "clips": clips,
        "total_duration": _extended_duration(state.total_duration, clip),
    }
    if select:
        update["selected_clip_id"] = clip.id
    return state.model_copy(update=update)


def apply(state: TimelineState, command: Command, ids: IdGenerator | None = None) -> TimelineState:
    """Apply one command and return the next snapshot.

    Commands that reference unknown clips or tracks leave the state as is.
    """
    if isinstance(command, AddAsset):
        assets = dict(state.assets)
        assets[command.asset.id] = command.asset
        return state.model_copy(update={"assets": assets})

    if isinstance(command, AddClip):
        return _with_clip(state, command.clip, select=True)

    if isinstance(command, AddClipAuto):
        if state.track(command.track_id) is None:
            logger.warning(f"[STORE] add_clip_auto on unknown track {command.track_id}")
            return state
        start = find_slot(
            state.clips_on_track(command.track_id),
            command.duration,
            state.playhead_time,
        )
        clip_id = command.clip_id or (ids or UuidIdGenerator())()
        text_data = None
        if command.kind == "text":
            text_data = command.text_data or TextData()
        clip = Clip(
            id=clip_id,
            asset_id=command.asset_id,
            track_id=command.track_id,
            kind=command.kind,
            timeline_start=start,
            duration=command.duration,
            label=command.label,
            text_data=text_data,
        )
        return _with_clip(state, clip, select=True)

    if isinstance(command, UpdateClip):
        clip = state.clips.get(command.id)
        if clip is None:
            return state
        return _with_clip(state, _apply_changes(clip, command.changes))

    if isinstance(command, RemoveClip):
        if command.id not in state.clips:
            return state
        clips = {k: v for k, v in state.clips.items() if k != command.id}
        update = {"clips": clips}
        if state.selected_clip_id == command.id:
            update["selected_clip_id"] = None
        return state.model_copy(update=update)

    if isinstance(command, SetPlayhead):
        return state.model_copy(update={"playhead_time": max(0.0, command.time)})

    if isinstance(command, TogglePlayback):
        return state.model_copy(update={"is_playing": not state.is_playing})

    if isinstance(command, SelectClip):
        return state.model_copy(update={"selected_clip_id": command.id})

    if isinstance(command, SetZoom):
        zoom = max(MIN_ZOOM, min(MAX_ZOOM, command.value))
        return state.model_copy(update={"pixels_per_second": zoom})

    if isinstance(command, UpdateTrack):
        track = state.track(command.id)
        if track is None:
            return state
        update = {
            name: getattr(command.changes, name)
            for name in command.changes.model_fields_set
            if getattr(command.changes, name) is not None
        }
        tracks = [
            t.model_copy(update=update) if t.id == command.id else t
            for t in state.tracks
        ]
        return state.model_copy(update={"tracks": tracks})

    if isinstance(command, SetCanvasSize):
        return state.model_copy(update={"canvas_size": command.canvas_size})

    raise TypeError(f"Unsupported command: {type(command).__name__}")


def replay(commands: Iterable[Command], initial: TimelineState | None = None) -> TimelineState:
    """Fold a command log over an initial state."""
    state = initial if initial is not None else create_initial_state()
    for command in commands:
        state = apply(state, command)
    return state


class TimelineStore:
    """Holds the current snapshot and the log of applied commands.

    Snapshots are immutable, so readers can keep a reference to `state`
    while later commands are dispatched.
    """

    def __init__(
        self,
        initial_state: TimelineState | None = None,
        id_generator: IdGenerator | None = None,
    ):
        self._initial = initial_state if initial_state is not None else create_initial_state()
        self._state = self._initial
        self._ids = id_generator or CounterIdGenerator()
        self._log: list[Command] = []

    @property
    def state(self) -> TimelineState:
        return self._state

    @property
    def initial_state(self) -> TimelineState:
        return self._initial

    @property
    def log(self) -> list[Command]:
        return list(self._log)

    def snapshot(self) -> TimelineState:
        return self._state

    def new_clip_id(self) -> str:
        return self._ids()

    def dispatch(self, command: Command) -> TimelineState:
        # Generated ids are pinned on the command so replay reproduces them
        if isinstance(command, AddClipAuto) and command.clip_id is None:
            command = command.model_copy(update={"clip_id": self._ids()})

        self._state = apply(self._state, command, self._ids)
        self._log.append(command)
        logger.debug(f"[STORE] Applied {command.type} (log size={len(self._log)})")
        return self._state

    def replay(self) -> TimelineState:
        """Rebuild the current state from the initial state and the log."""
        return replay(self._log, self._initial)
