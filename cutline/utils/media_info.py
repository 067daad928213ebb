"""Media source information utilities using FFprobe."""

import asyncio
import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

from cutline.config import get_settings
from cutline.constants.timeline import FALLBACK_IMAGE_DURATION_S, FALLBACK_MEDIA_DURATION_S

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
AUDIO_EXTENSIONS = {"mp3", "wav", "aac"}


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass
class MediaInfo:
    """What an asset needs to know about its source."""

    kind: str
    duration: float
    has_audio: bool = True
    probed: bool = False


def classify_extension(locator: str) -> str:
    """Asset kind from the locator's file extension, video when unknown."""
    path = urlparse(locator).path if "://" in locator else locator
    ext = PurePosixPath(path).suffix.lower().lstrip(".")
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    return "video"


def _run_ffprobe(locator: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        locator,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise RuntimeError(f"ffprobe not available: {e}")
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")


def probe_media(locator: str) -> MediaInfo:
    """
    Probe a local path or URL for kind, duration and audio presence.

    Images always get the default still duration. Sources that cannot be
    probed fall back to a fixed duration so they can still be placed.

    Args:
        locator: Local path or http(s) URL

    Returns:
        MediaInfo for the source
    """
    kind = classify_extension(locator)
    if kind == "image":
        return MediaInfo(kind="image", duration=FALLBACK_IMAGE_DURATION_S, has_audio=False)

    try:
        data = _run_ffprobe(locator, "-show_format", "-show_streams")
    except RuntimeError as e:
        logger.warning(f"[PROBE] Could not probe {locator}: {e}")
        return MediaInfo(kind=kind, duration=FALLBACK_MEDIA_DURATION_S)

    duration = FALLBACK_MEDIA_DURATION_S
    format_info = data.get("format", {})
    if "duration" in format_info:
        try:
            duration = float(format_info["duration"])
        except (TypeError, ValueError):
            logger.warning(f"[PROBE] Unreadable duration for {locator}: {format_info['duration']!r}")

    has_audio = any(
        stream.get("codec_type") == "audio" for stream in data.get("streams", [])
    )
    return MediaInfo(kind=kind, duration=duration, has_audio=has_audio, probed=True)


class FFprobeProber:
    """Async prober that runs ffprobe off the event loop."""

    async def probe(self, locator: str) -> MediaInfo:
        return await asyncio.to_thread(probe_media, locator)
