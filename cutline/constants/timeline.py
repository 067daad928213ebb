"""Timeline engine constants (all times in seconds)."""

# Trailing margin kept past the last clip end.
TIMELINE_TAIL_MARGIN_S = 5.0

DEFAULT_TIMELINE_DURATION_S = 30.0

# Minimum clip length reachable through trimming.
MIN_CLIP_DURATION_S = 0.1

# Trim ceiling for sources without a native length (text, looped images).
UNBOUNDED_SOURCE_DURATION_S = 3600.0

# Zoom, in pixels per second.
MIN_ZOOM = 10.0
MAX_ZOOM = 200.0
DEFAULT_ZOOM = 50.0

# Programmatic insertion defaults
VIDEO_TRACK_ID = 1
IMAGE_TRACK_ID = 2
TEXT_TRACK_ID = 3
DEFAULT_IMAGE_DURATION_S = 5.0
DEFAULT_TEXT_DURATION_S = 5.0
# Durations assumed when a source cannot be probed.
FALLBACK_IMAGE_DURATION_S = 5.0
FALLBACK_MEDIA_DURATION_S = 10.0

# Preview window around the playhead for preloading clips.
PREVIEW_LOOKBEHIND_S = 1.0
PREVIEW_PRELOAD_S = 2.0
