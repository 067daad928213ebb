"""Preview clock helpers.

The preview player drives the playhead from animation-frame ticks. Large
gaps between ticks (a backgrounded tab, a stalled frame) are clamped so the
playhead never jumps more than one short step at a time.
"""

from cutline.config import get_settings
from cutline.constants.timeline import PREVIEW_LOOKBEHIND_S, PREVIEW_PRELOAD_S
from cutline.schemas.timeline import Clip, TimelineState


def advance_playhead(state: TimelineState, elapsed_s: float, max_tick_s: float | None = None) -> TimelineState:
    """Advance the playhead by one tick while playing, wrapping to 0 at the end."""
    if not state.is_playing:
        return state

    if max_tick_s is None:
        max_tick_s = get_settings().preview_max_tick_s
    step = max(0.0, min(elapsed_s, max_tick_s))

    next_time = state.playhead_time + step
    if next_time >= state.total_duration:
        next_time = 0.0
    return state.model_copy(update={"playhead_time": next_time})


def active_clips(state: TimelineState) -> list[Clip]:
    """Clips near the playhead that the preview keeps mounted, bottom layer first."""
    window_start = state.playhead_time - PREVIEW_LOOKBEHIND_S
    window_end = state.playhead_time + PREVIEW_PRELOAD_S
    clips = [c for c in state.clips.values() if c.overlaps(window_start, window_end)]
    return sorted(clips, key=lambda c: c.z_index)


def visible_clips(state: TimelineState) -> list[Clip]:
    """Non-audio clips drawn at the current playhead, bottom layer first."""
    t = state.playhead_time
    hidden = {track.id for track in state.tracks if track.is_hidden}
    return [
        c for c in active_clips(state)
        if c.kind != "audio"
        and c.track_id not in hidden
        and c.timeline_start <= t < c.end
    ]
