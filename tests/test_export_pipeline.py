"""Tests for export orchestration.

The encoder is replaced by FakeEncoder and remote downloads go through an
httpx.MockTransport, so no network access or ffmpeg binary is needed except
for the smoke test marked requires_ffmpeg.
"""

import asyncio
import glob
import os
import tempfile

import httpx
import pytest

from cutline.config import Settings
from cutline.exceptions import (
    ArtifactMissingError,
    AssetResolutionError,
    EncodeFailedError,
    EncoderUnavailableError,
    ExportCancelledError,
    InvalidTimelineError,
)
from cutline.render.asset_fetcher import AssetFetcher
from cutline.render.encoder import FFmpegEncoder
from cutline.render.graph_compiler import compile_timeline
from cutline.render.pipeline import ExportOrchestrator, referenced_assets
from cutline.schemas.timeline import CanvasSize, MediaAsset, TextData

from conftest import FakeEncoder, make_clip, make_state, requires_ffmpeg

REMOTE_URL = "https://cdn.example.com/clip.mp4"
FONT_URL = "https://fonts.example.com/Inter-Bold.ttf"


def _settings(**overrides) -> Settings:
    values = {
        "export_work_dir_prefix": "cutline_test_export_",
        "text_font_path": "",
        "text_font_url": FONT_URL,
    }
    values.update(overrides)
    return Settings(**values)


def _mock_client(font_status: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == REMOTE_URL:
            return httpx.Response(200, content=b"remote-bytes")
        if url == FONT_URL:
            return httpx.Response(font_status, content=b"font-bytes")
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _orchestrator(encoder=None, client=None, **overrides) -> ExportOrchestrator:
    settings = _settings(**overrides)
    fetcher = AssetFetcher(settings, client=client or _mock_client())
    return ExportOrchestrator(encoder=encoder or FakeEncoder(), settings=settings, fetcher=fetcher)


class _SlowEncoder(FakeEncoder):
    """Encoder that blocks until cancelled."""

    def __init__(self, started: asyncio.Event):
        super().__init__()
        self.started = started

    async def encode(self, graph, output_path, on_progress=None, cancel_check=None):
        self.started.set()
        await asyncio.sleep(60)


def _leftover_work_dirs() -> list[str]:
    return glob.glob(os.path.join(tempfile.gettempdir(), "cutline_test_export_*"))


@pytest.fixture
def local_asset(temp_output_dir) -> MediaAsset:
    path = temp_output_dir / "local.mp4"
    path.write_bytes(b"local-bytes")
    return MediaAsset(id="local", source_locator=str(path), kind="video", duration=10)


class TestReferencedAssets:
    """Tests for asset collection."""

    def test_only_used_assets_in_first_use_order(self, local_asset):
        """Unused and missing assets are not collected."""
        unused = MediaAsset(id="unused", source_locator="/x.mp4", kind="video", duration=1)
        state = make_state(
            make_clip("a", 0, 2, asset_id="local"),
            make_clip("b", 2, 2, asset_id="gone"),
            make_clip("c", 4, 2, asset_id="local"),
            assets=[unused, local_asset],
        )
        assert [a.id for a in referenced_assets(state)] == ["local"]


class TestExportOrchestrator:
    """Tests for the export flow."""

    @pytest.mark.asyncio
    async def test_empty_timeline_exports(self):
        """Zero clips still produce an artifact of the timeline length."""
        encoder = FakeEncoder(payload=b"empty-mp4")
        result = await _orchestrator(encoder).export(make_state(assets=[]))

        assert result.data == b"empty-mp4"
        assert result.size == len(b"empty-mp4")
        assert result.content_type == "video/mp4"
        assert result.duration == 30
        assert result.warnings == []
        assert len(encoder.graphs[0].nodes) == 1

    @pytest.mark.asyncio
    async def test_progress_reported(self):
        """Progress is monotonic and ends at 100."""
        events = []
        await _orchestrator().export(make_state(assets=[]), on_progress=lambda p, s: events.append((p, s)))

        percents = [p for p, _ in events]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert events[-1][1] == "Complete"
        assert any(stage.startswith("Encoding") for _, stage in events)

    @pytest.mark.asyncio
    async def test_local_and_remote_assets(self, local_asset, temp_output_dir):
        """Local paths are used directly, remote ones downloaded into the work dir."""
        remote = MediaAsset(id="remote", source_locator=REMOTE_URL, kind="video", duration=10)
        state = make_state(
            make_clip("a", 0, 2, asset_id="local"),
            make_clip("b", 0, 2, asset_id="remote", track_id=1),
            assets=[local_asset, remote],
        )
        encoder = FakeEncoder()
        result = await _orchestrator(encoder, local_storage_path=str(temp_output_dir)).export(state)

        locators = {i.asset_id: i.locator for i in result.graph.inputs}
        assert locators["local"] == local_asset.source_locator
        assert os.path.basename(locators["remote"]) == "asset_1_remote.mp4"
        # Work dir is gone once the export returns
        assert not os.path.exists(locators["remote"])

    @pytest.mark.asyncio
    async def test_unresolvable_asset_is_dropped(self, local_asset, temp_output_dir):
        """A failing asset becomes a warning and its clip is left out."""
        broken = MediaAsset(id="broken", source_locator="https://cdn.example.com/404.mp4", kind="video", duration=5)
        state = make_state(
            make_clip("ok", 0, 2, asset_id="local"),
            make_clip("bad", 2, 2, asset_id="broken"),
            assets=[local_asset, broken],
        )
        result = await _orchestrator(local_storage_path=str(temp_output_dir)).export(state)

        assert [i.asset_id for i in result.graph.inputs] == ["local"]
        assert result.graph.nodes_for_clip("bad") == []
        assert len(result.warnings) == 1
        assert "broken" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_strict_resolution_fails(self):
        """Strict mode turns an unresolvable asset into an error."""
        missing = MediaAsset(id="missing", source_locator="/does/not/exist.mp4", kind="video", duration=5)
        state = make_state(make_clip("c", 0, 2, asset_id="missing"), assets=[missing])
        with pytest.raises(AssetResolutionError) as exc_info:
            await _orchestrator(strict_asset_resolution=True).export(state)

        assert exc_info.value.code == "ASSET_RESOLUTION_FAILED"
        assert exc_info.value.retryable is True
        assert exc_info.value.location.asset_id == "missing"

    @pytest.mark.asyncio
    async def test_font_downloaded_for_text(self):
        """Text clips get the downloaded font."""
        clip = make_clip("t", 0, 2, kind="text", track_id=3, text_data=TextData(content="Hello"))
        result = await _orchestrator().export(make_state(clip, assets=[]))

        params = result.graph.nodes_for_clip("t")[0].params
        assert params["fontfile"].endswith("font.ttf")
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_font_failure_is_not_fatal(self):
        """A font that cannot be fetched only adds a warning."""
        clip = make_clip("t", 0, 2, kind="text", track_id=3, text_data=TextData(content="Hello"))
        orchestrator = _orchestrator(client=_mock_client(font_status=500))
        result = await orchestrator.export(make_state(clip, assets=[]))

        assert result.data == b"fake-mp4"
        assert "fontfile" not in result.graph.nodes_for_clip("t")[0].params
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_local_font_path_wins(self, temp_output_dir):
        """A configured local font is used without downloading."""
        font = temp_output_dir / "custom.ttf"
        font.write_bytes(b"font")
        clip = make_clip("t", 0, 2, kind="text", track_id=3, text_data=TextData())
        orchestrator = _orchestrator(client=_mock_client(font_status=500), text_font_path=str(font))
        result = await orchestrator.export(make_state(clip, assets=[]))
        assert result.graph.nodes_for_clip("t")[0].params["fontfile"] == str(font)

    @pytest.mark.asyncio
    async def test_no_font_fetch_without_text(self):
        """Timelines without text never touch the font."""
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=b"x")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        await _orchestrator(client=client).export(make_state(assets=[]))
        assert requested == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error,code,retryable",
        [
            (EncoderUnavailableError("ffmpeg"), "ENCODER_UNAVAILABLE", True),
            (EncodeFailedError(1, "boom"), "ENCODE_FAILED", False),
        ],
    )
    async def test_encoder_errors_propagate(self, error, code, retryable):
        """Encoder failures keep their classification and clean up."""
        before = set(_leftover_work_dirs())
        with pytest.raises(type(error)) as exc_info:
            await _orchestrator(FakeEncoder(error=error)).export(make_state(assets=[]))

        assert exc_info.value.code == code
        assert exc_info.value.retryable is retryable
        assert set(_leftover_work_dirs()) == before

    @pytest.mark.asyncio
    async def test_missing_artifact(self):
        """An encoder that writes nothing is reported as a missing artifact."""
        with pytest.raises(ArtifactMissingError):
            await _orchestrator(FakeEncoder(write=False)).export(make_state(assets=[]))

    @pytest.mark.asyncio
    async def test_cancel_check_stops_before_encode(self):
        """A positive cancel check aborts before encoding."""
        encoder = FakeEncoder()
        with pytest.raises(ExportCancelledError):
            await _orchestrator(encoder).export(make_state(assets=[]), cancel_check=lambda: True)
        assert encoder.graphs == []

    @pytest.mark.asyncio
    async def test_async_cancel_check(self):
        """Cancel checks may be coroutines."""
        async def cancelled():
            return True

        with pytest.raises(ExportCancelledError):
            await _orchestrator().export(make_state(assets=[]), cancel_check=cancelled)

    @pytest.mark.asyncio
    async def test_task_cancellation(self):
        """Cancelling the export task leaves a cancelled task and no work dir."""
        started = asyncio.Event()

        before = set(_leftover_work_dirs())
        task = asyncio.create_task(_orchestrator(_SlowEncoder(started)).export(make_state(assets=[])))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()
        assert set(_leftover_work_dirs()) == before

    @pytest.mark.asyncio
    async def test_caller_timeout(self):
        """A timeout around the export is reported as a timeout."""
        before = set(_leftover_work_dirs())
        export = _orchestrator(_SlowEncoder(asyncio.Event())).export(make_state(assets=[]))
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(export, 0.2)
        assert set(_leftover_work_dirs()) == before

    @pytest.mark.asyncio
    async def test_zero_duration_rejected(self):
        """A timeline without length cannot be exported."""
        with pytest.raises(InvalidTimelineError):
            await _orchestrator().export(make_state(assets=[], total_duration=0))

    @pytest.mark.asyncio
    async def test_input_state_untouched(self, local_asset, temp_output_dir):
        """The caller's state is not modified by an export."""
        state = make_state(make_clip("a", 0, 2, asset_id="local"), assets=[local_asset])
        dumped = state.model_dump_json()
        await _orchestrator(local_storage_path=str(temp_output_dir)).export(state)
        assert state.model_dump_json() == dumped


class TestAssetFetcher:
    """Tests for asset resolution into the work dir."""

    @pytest.mark.asyncio
    async def test_download_stays_in_work_dir(self, temp_output_dir):
        """Path characters in an asset id cannot move the download target."""
        work_dir = temp_output_dir / "work"
        work_dir.mkdir()
        asset = MediaAsset(id="../escaped", source_locator=REMOTE_URL, kind="video", duration=5)
        fetched = await AssetFetcher(_settings(), client=_mock_client()).fetch_assets([asset], str(work_dir))

        path = fetched.paths["../escaped"]
        assert os.path.dirname(path) == str(work_dir)
        with open(path, "rb") as f:
            assert f.read() == b"remote-bytes"
        assert not (temp_output_dir / "escaped.mp4").exists()
        assert os.listdir(temp_output_dir) == ["work"]

    @pytest.mark.asyncio
    async def test_local_path_outside_storage_rejected(self, temp_output_dir):
        """Local files are only read from under local storage."""
        storage = temp_output_dir / "storage"
        storage.mkdir()
        inside = storage / "in.mp4"
        inside.write_bytes(b"in")
        outside = temp_output_dir / "out.mp4"
        outside.write_bytes(b"out")
        assets = [
            MediaAsset(id="in", source_locator=str(inside), kind="video", duration=5),
            MediaAsset(id="out", source_locator=str(outside), kind="video", duration=5),
            MediaAsset(id="sneaky", source_locator=str(storage / ".." / "out.mp4"), kind="video", duration=5),
        ]
        fetcher = AssetFetcher(_settings(local_storage_path=str(storage)), client=_mock_client())
        fetched = await fetcher.fetch_assets(assets, str(temp_output_dir))

        assert fetched.paths == {"in": str(inside)}
        assert set(fetched.failures) == {"out", "sneaky"}
        assert "outside storage" in fetched.failures["out"]


class TestFFmpegEncoder:
    """Tests for the ffmpeg encoder."""

    def test_build_command(self, local_asset):
        """Inputs, graph, maps and codecs end up in argv."""
        state = make_state(make_clip("a", 0, 2, asset_id="local"), assets=[local_asset])
        graph = compile_timeline(state)
        encoder = FFmpegEncoder(_settings(ffmpeg_path="/usr/bin/ffmpeg"))
        cmd = encoder.build_command(graph, "/tmp/out.mp4")

        assert cmd[:4] == ["/usr/bin/ffmpeg", "-y", "-i", local_asset.source_locator]
        assert cmd[cmd.index("-filter_complex") + 1] == graph.to_filter_complex()
        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        assert maps == [f"[{graph.video_output}]", "[aout]"]
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-t") + 1] == "30"
        assert cmd[-1] == "/tmp/out.mp4"

    def test_build_command_without_audio(self):
        """Silent graphs map only video and skip audio codec flags."""
        graph = compile_timeline(make_state(assets=[]))
        cmd = FFmpegEncoder(_settings()).build_command(graph, "/tmp/out.mp4")
        assert cmd.count("-map") == 1
        assert "-c:a" not in cmd

    @pytest.mark.asyncio
    async def test_missing_binary(self, temp_output_dir):
        """A missing ffmpeg is reported as encoder unavailable."""
        encoder = FFmpegEncoder(_settings(ffmpeg_path="/nonexistent/ffmpeg-binary"))
        with pytest.raises(EncoderUnavailableError) as exc_info:
            await encoder.encode(compile_timeline(make_state(assets=[])), str(temp_output_dir / "out.mp4"))
        assert exc_info.value.retryable is True

    @requires_ffmpeg
    @pytest.mark.requires_ffmpeg
    @pytest.mark.asyncio
    async def test_real_encode_of_empty_timeline(self):
        """ffmpeg renders a short blank timeline."""
        settings = _settings(render_preset="ultrafast")
        orchestrator = ExportOrchestrator(encoder=FFmpegEncoder(settings), settings=settings)
        state = make_state(assets=[], total_duration=1, canvas_size=CanvasSize(width=320, height=240))
        progress = []

        result = await orchestrator.export(state, on_progress=lambda p, s: progress.append(p))

        assert result.size > 0
        assert progress[-1] == 100
