"""Export orchestration.

Snapshot the timeline, resolve asset bytes and the text font into a work
directory, compile the composition graph, run the encoder and hand back the
artifact bytes. The work directory is removed on every exit path.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from typing import Any, Callable, Optional

from cutline.config import Settings, get_settings
from cutline.exceptions import (
    ArtifactMissingError,
    AssetResolutionError,
    ExportCancelledError,
    InvalidTimelineError,
)
from cutline.render.asset_fetcher import AssetFetcher
from cutline.render.encoder import Encoder, FFmpegEncoder, check_cancelled
from cutline.render.graph_compiler import compile_timeline
from cutline.schemas.export import ExportResult
from cutline.schemas.timeline import MediaAsset, TimelineState

logger = logging.getLogger(__name__)

StageCallback = Callable[[int, str], None]

OUTPUT_FILENAME = "export.mp4"


def referenced_assets(state: TimelineState) -> list[MediaAsset]:
    """Assets used by at least one clip, in first-use order."""
    seen: dict[str, MediaAsset] = {}
    for clip in state.clips.values():
        if clip.asset_id and clip.asset_id not in seen:
            asset = state.assets.get(clip.asset_id)
            if asset is not None:
                seen[asset.id] = asset
    return list(seen.values())


class ExportOrchestrator:
    """
    Runs one export end to end.

    Stages and the progress range they report:
    - 5: preparing
    - 10-30: fetching assets and font
    - 35: compiling graph
    - 40-95: encoding
    - 100: complete
    """

    def __init__(
        self,
        encoder: Encoder | None = None,
        settings: Settings | None = None,
        fetcher: AssetFetcher | None = None,
    ):
        self.settings = settings or get_settings()
        self.encoder = encoder or FFmpegEncoder(self.settings)
        self.fetcher = fetcher or AssetFetcher(self.settings)
        self._progress_callback: Optional[StageCallback] = None
        self._cancel_check: Optional[Callable[[], Any]] = None

    def _update_progress(self, progress: int, stage: str) -> None:
        """Forward export progress."""
        if self._progress_callback:
            self._progress_callback(progress, stage)

    async def _raise_if_cancelled(self) -> None:
        if await check_cancelled(self._cancel_check):
            raise ExportCancelledError()

    async def export(
        self,
        state: TimelineState,
        on_progress: Optional[StageCallback] = None,
        cancel_check: Optional[Callable[[], Any]] = None,
    ) -> ExportResult:
        """
        Export a timeline to an MP4 artifact.

        Args:
            state: Timeline snapshot to render
            on_progress: Optional callback receiving (percent, stage)
            cancel_check: Optional sync or async callable returning True to cancel

        Returns:
            ExportResult with the artifact bytes

        Raises:
            InvalidTimelineError: If the timeline has no positive duration
            AssetResolutionError: If strict resolution is on and an asset fails
            ExportCancelledError: If cancel_check reported a cancellation
            asyncio.CancelledError: If the export task itself was cancelled
            EncoderUnavailableError, EncodeFailedError, ArtifactMissingError:
                from the encode stage
        """
        self._progress_callback = on_progress
        self._cancel_check = cancel_check

        snapshot = state.model_copy(deep=True)
        if snapshot.total_duration <= 0:
            raise InvalidTimelineError("Timeline duration must be greater than 0")

        self._update_progress(5, "Preparing export")
        work_dir = tempfile.mkdtemp(prefix=self.settings.export_work_dir_prefix)
        logger.info(f"[EXPORT] Started: {len(snapshot.clips)} clips, {snapshot.total_duration}s, work_dir={work_dir}")

        try:
            return await self._run(snapshot, work_dir)
        except asyncio.CancelledError:
            logger.info("[EXPORT] Task cancelled")
            raise
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    async def _run(self, snapshot: TimelineState, work_dir: str) -> ExportResult:
        warnings: list[str] = []

        await self._raise_if_cancelled()
        self._update_progress(10, "Fetching assets")
        assets = referenced_assets(snapshot)
        fetched = await self.fetcher.fetch_assets(assets, work_dir)
        if fetched.failures:
            if self.settings.strict_asset_resolution:
                asset_id, reason = next(iter(fetched.failures.items()))
                raise AssetResolutionError(asset_id, reason)
            for asset_id, reason in fetched.failures.items():
                warnings.append(f"Asset {asset_id} skipped: {reason}")

        font_path = None
        if any(c.kind == "text" for c in snapshot.clips.values()):
            self._update_progress(25, "Fetching font")
            font_path = await self.fetcher.fetch_font(work_dir)
            if font_path is None:
                warnings.append("Text font unavailable, rendering text with the default font")
        self._update_progress(30, "Assets ready")

        await self._raise_if_cancelled()
        self._update_progress(35, "Compiling graph")
        graph = compile_timeline(
            snapshot,
            resolved_inputs=fetched.paths,
            font_path=font_path,
            fps=self.settings.render_fps,
        )

        output_path = os.path.join(work_dir, OUTPUT_FILENAME)
        self._update_progress(40, "Encoding")

        def on_encode_progress(pct: int) -> None:
            self._update_progress(40 + int(pct * 0.55), f"Encoding ({pct}%)")

        await self.encoder.encode(
            graph,
            output_path,
            on_progress=on_encode_progress,
            cancel_check=self._cancel_check,
        )

        if not os.path.exists(output_path):
            raise ArtifactMissingError(output_path)
        with open(output_path, "rb") as f:
            data = f.read()

        self._update_progress(100, "Complete")
        logger.info(f"[EXPORT] Complete: {len(data)} bytes, {len(warnings)} warnings")
        return ExportResult(
            data=data,
            size=len(data),
            duration=graph.duration,
            warnings=warnings,
            graph=graph,
        )
