"""
Pytest fixtures for cutline tests.

CI/CD Note:
Tests that run the real ffmpeg binary are marked with @pytest.mark.requires_ffmpeg
Run `pytest -m "not requires_ffmpeg"` to skip these tests in CI.
"""

import shutil
import tempfile
from pathlib import Path

import pytest

from cutline.schemas.graph import CompositionGraph
from cutline.schemas.timeline import Clip, MediaAsset, TimelineState
from cutline.services.ids import CounterIdGenerator
from cutline.services.timeline_store import TimelineStore
from cutline.utils.media_info import MediaInfo


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring the ffmpeg binary (skipped when missing)"
    )


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None,
    reason="ffmpeg binary not available"
)


def make_clip(clip_id: str, start: float, duration: float, track_id: int = 0, **kwargs) -> Clip:
    """Build a clip with sensible defaults for tests."""
    kind = kwargs.pop("kind", "video")
    asset_id = kwargs.pop("asset_id", None if kind == "text" else "asset-1")
    return Clip(
        id=clip_id,
        asset_id=asset_id,
        track_id=track_id,
        kind=kind,
        timeline_start=start,
        duration=duration,
        **kwargs,
    )


def make_state(*clips: Clip, assets: list[MediaAsset] | None = None, **kwargs) -> TimelineState:
    """Timeline with the given clips (in order) and assets."""
    if assets is None:
        assets = [MediaAsset(id="asset-1", source_locator="/media/a.mp4", kind="video", duration=10)]
    return TimelineState(
        assets={a.id: a for a in assets},
        clips={c.id: c for c in clips},
        **kwargs,
    )


class FakeEncoder:
    """Encoder double that writes a fixed payload instead of running ffmpeg."""

    def __init__(self, payload: bytes = b"fake-mp4", error: Exception | None = None, write: bool = True):
        self.payload = payload
        self.error = error
        self.write = write
        self.graphs: list[CompositionGraph] = []

    async def encode(self, graph, output_path, on_progress=None, cancel_check=None):
        self.graphs.append(graph)
        if self.error is not None:
            raise self.error
        if on_progress:
            on_progress(50)
        if self.write:
            Path(output_path).write_bytes(self.payload)
        if on_progress:
            on_progress(100)
        return output_path


class FakeProber:
    """Prober double keyed by locator."""

    def __init__(self, infos: dict[str, MediaInfo] | None = None, default: MediaInfo | None = None):
        self.infos = infos or {}
        self.default = default or MediaInfo(kind="video", duration=10, has_audio=True, probed=True)
        self.calls: list[str] = []

    async def probe(self, locator: str) -> MediaInfo:
        self.calls.append(locator)
        return self.infos.get(locator, self.default)


@pytest.fixture
def store() -> TimelineStore:
    """Store with deterministic clip ids (clip-1, clip-2, ...)."""
    return TimelineStore(id_generator=CounterIdGenerator())


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="cutline_test_") as tmpdir:
        yield Path(tmpdir)
