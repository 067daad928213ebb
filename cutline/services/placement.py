"""Placement resolver for clip insertion and interactive edits.

All functions are pure: they read a timeline snapshot and return proposed
changes, never a new state. Interactive callers pass the snapshot taken at
drag start together with the cumulative pointer delta (in seconds), so a
proposal can be recomputed on every pointer move without drift.
"""

import logging
from enum import Enum
from typing import Iterable

from cutline.constants.timeline import MIN_CLIP_DURATION_S, UNBOUNDED_SOURCE_DURATION_S
from cutline.schemas.commands import ClipChanges, UpdateClip
from cutline.schemas.timeline import Clip, TimelineState

logger = logging.getLogger(__name__)


class EditMode(str, Enum):
    """Interactive edit gestures."""

    MOVE = "move"
    TRIM_START = "trim_start"
    TRIM_END = "trim_end"


def find_slot(clips: Iterable[Clip], duration: float, preferred_start: float) -> float:
    """Earliest start >= preferred_start where [start, start+duration) is free.

    One left-to-right pass over the track's clips: every collision pushes
    the proposal to the colliding clip's end and the scan continues. This
    is minimal as long as the existing intervals do not overlap each other.
    """
    proposed = preferred_start
    for clip in sorted(clips, key=lambda c: c.timeline_start):
        if clip.overlaps(proposed, proposed + duration):
            proposed = clip.end
    return proposed


def track_id_for_row(state: TimelineState, row_index: int) -> int:
    """Map a pointer row to a track id, clamping to the available rows."""
    row = max(0, min(len(state.tracks) - 1, row_index))
    return state.tracks[row].id


def _is_free(state: TimelineState, track_id: int, start: float, end: float, exclude_id: str) -> bool:
    return not any(
        other.overlaps(start, end)
        for other in state.clips_on_track(track_id, exclude_id=exclude_id)
    )


def resolve_move(
    state: TimelineState,
    clip_id: str,
    delta_s: float,
    target_track_id: int | None = None,
) -> ClipChanges | None:
    """Propose a new start (and track) for a dragged clip.

    Neighbors the clip started ahead of clamp it backward to their end;
    neighbors it started behind clamp it forward so it ends at their start.
    A clamped position that is still invalid falls back to the drag-start
    position.
    """
    clip = state.clips.get(clip_id)
    if clip is None:
        return None

    track_id = clip.track_id if target_track_id is None else target_track_id
    if state.track(track_id) is None:
        track_id = clip.track_id

    original_start = clip.timeline_start
    proposed_start = max(0.0, original_start + delta_s)
    proposed_end = proposed_start + clip.duration

    valid_start = proposed_start
    for other in state.clips_on_track(track_id, exclude_id=clip.id):
        if not other.overlaps(proposed_start, proposed_end):
            continue
        if original_start < other.timeline_start:
            valid_start = min(valid_start, other.timeline_start - clip.duration)
        else:
            valid_start = max(valid_start, other.end)

    if valid_start < 0 or not _is_free(state, track_id, valid_start, valid_start + clip.duration, clip.id):
        logger.debug(
            f"[PLACEMENT] Move of {clip_id} to {valid_start:.3f}s on track {track_id} "
            f"rejected, keeping drag-start position"
        )
        valid_start = original_start
        track_id = clip.track_id

    return ClipChanges(timeline_start=valid_start, track_id=track_id, z_index=track_id)


def _source_length(state: TimelineState, clip: Clip) -> float:
    """Playable length of the clip's source."""
    if clip.kind in ("text", "image") or clip.asset_id is None:
        return UNBOUNDED_SOURCE_DURATION_S
    asset = state.assets.get(clip.asset_id)
    if asset is None:
        return clip.in_point + clip.duration
    return asset.duration


def resolve_trim_start(state: TimelineState, clip_id: str, delta_s: float) -> ClipChanges | None:
    """Move the left edge: in_point, duration and start shift together."""
    clip = state.clips.get(clip_id)
    if clip is None:
        return None

    start, duration, in_point = clip.timeline_start, clip.duration, clip.in_point

    new_in_point = in_point + delta_s
    new_duration = duration - delta_s
    if new_in_point < 0:
        new_in_point = 0.0
        new_duration = duration + in_point
    if new_duration < MIN_CLIP_DURATION_S:
        new_duration = MIN_CLIP_DURATION_S
        new_in_point = in_point + (duration - MIN_CLIP_DURATION_S)

    new_start = start + (new_in_point - in_point)

    # Neighbors are ordered by start; on an overlap-free track that is also end order
    previous = [c for c in state.clips_on_track(clip.track_id, exclude_id=clip.id) if c.timeline_start < start]
    if previous:
        previous_end = previous[-1].end
        if new_start < previous_end:
            diff = previous_end - new_start
            new_start = previous_end
            new_in_point += diff
            new_duration -= diff

    if new_start < 0:
        diff = -new_start
        new_start = 0.0
        new_in_point += diff
        new_duration -= diff

    return ClipChanges(
        in_point=max(0.0, new_in_point),
        duration=max(MIN_CLIP_DURATION_S, new_duration),
        timeline_start=max(0.0, new_start),
    )


def resolve_trim_end(state: TimelineState, clip_id: str, delta_s: float) -> ClipChanges | None:
    """Move the right edge: only the duration changes."""
    clip = state.clips.get(clip_id)
    if clip is None:
        return None

    start = clip.timeline_start
    max_length = _source_length(state, clip)

    new_duration = clip.duration + delta_s
    if clip.in_point + new_duration > max_length:
        new_duration = max_length - clip.in_point
    if new_duration < MIN_CLIP_DURATION_S:
        new_duration = MIN_CLIP_DURATION_S

    following = [
        c for c in state.clips_on_track(clip.track_id, exclude_id=clip.id)
        if c.timeline_start > start
    ]
    if following:
        next_start = following[0].timeline_start
        if start + new_duration > next_start:
            new_duration = next_start - start

    return ClipChanges(duration=new_duration)


def resolve_edit(
    state: TimelineState,
    clip_id: str,
    mode: EditMode,
    delta_s: float,
    target_track_id: int | None = None,
) -> UpdateClip | None:
    """Resolve one pointer frame of an interactive edit into a store command."""
    mode = EditMode(mode)
    if mode is EditMode.MOVE:
        changes = resolve_move(state, clip_id, delta_s, target_track_id)
    elif mode is EditMode.TRIM_START:
        changes = resolve_trim_start(state, clip_id, delta_s)
    else:
        changes = resolve_trim_end(state, clip_id, delta_s)

    if changes is None:
        return None
    return UpdateClip(id=clip_id, changes=changes)
