"""Encoder collaborator.

The orchestrator only needs something that turns a CompositionGraph into a
file. `FFmpegEncoder` does that by running the ffmpeg binary with the graph
as -filter_complex and parsing `-progress pipe:1` output.
"""

import asyncio
import logging
import os
import shutil
from typing import Any, Callable, Optional, Protocol

from cutline.config import Settings, get_settings
from cutline.exceptions import (
    ArtifactMissingError,
    EncodeFailedError,
    EncoderUnavailableError,
    ExportCancelledError,
)
from cutline.schemas.graph import CompositionGraph, format_number

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
CancelCheck = Callable[[], Any]


class Encoder(Protocol):
    async def encode(
        self,
        graph: CompositionGraph,
        output_path: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_check: Optional[CancelCheck] = None,
    ) -> str: ...


async def check_cancelled(cancel_check: Optional[CancelCheck]) -> bool:
    """Evaluate a sync or async cancel check."""
    if cancel_check is None:
        return False
    result = cancel_check()
    if asyncio.iscoroutine(result):
        return await result
    return bool(result)


class FFmpegEncoder:
    """Runs ffmpeg as an asyncio subprocess."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.ffmpeg_path = self.settings.ffmpeg_path

    def build_command(self, graph: CompositionGraph, output_path: str) -> list[str]:
        """Full ffmpeg argv for a graph, without the progress flags."""
        s = self.settings
        cmd = [self.ffmpeg_path, "-y"]
        for graph_input in graph.inputs:
            cmd.extend(["-i", graph_input.locator])

        cmd.extend(["-filter_complex", graph.to_filter_complex()])
        cmd.extend(["-map", f"[{graph.video_output}]"])
        if graph.audio_output:
            cmd.extend(["-map", f"[{graph.audio_output}]"])

        cmd.extend([
            "-c:v", s.render_video_codec,
            "-preset", s.render_preset,
            "-crf", str(s.render_crf),
            "-r", str(graph.fps),
            "-pix_fmt", "yuv420p",
        ])
        if graph.audio_output:
            cmd.extend(["-c:a", s.render_audio_codec, "-b:a", s.render_audio_bitrate])

        cmd.extend([
            "-t", format_number(graph.duration),
            "-movflags", "+faststart",
            output_path,
        ])
        return cmd

    async def encode(
        self,
        graph: CompositionGraph,
        output_path: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_check: Optional[CancelCheck] = None,
    ) -> str:
        if shutil.which(self.ffmpeg_path) is None:
            raise EncoderUnavailableError(self.ffmpeg_path)

        cmd = self.build_command(graph, output_path)
        # Progress goes to stdout, placed before the output path
        cmd[-1:-1] = ["-progress", "pipe:1"]
        logger.info(f"[ENCODE] {len(graph.inputs)} inputs, {len(graph.nodes)} filters, duration={graph.duration}s")
        logger.debug(f"[ENCODE] filter_complex: {graph.to_filter_complex()}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise EncoderUnavailableError(self.ffmpeg_path, detail=str(e)) from e

        # stderr is drained alongside the progress stream
        stderr_task = asyncio.create_task(proc.stderr.read())
        cancelled = False
        try:
            last_reported_pct = -1
            async for raw_line in proc.stdout:
                if await check_cancelled(cancel_check):
                    cancelled = True
                    break
                line = raw_line.decode("utf-8", errors="replace").strip()
                if line.startswith("out_time_us="):
                    try:
                        time_s = int(line.split("=")[1]) / 1_000_000
                        pct = max(0, min(99, int(time_s / graph.duration * 100)))
                    except (ValueError, ZeroDivisionError):
                        continue
                    if pct > last_reported_pct and on_progress:
                        last_reported_pct = pct
                        on_progress(pct)
                elif line.startswith("progress=end"):
                    break
        except asyncio.CancelledError:
            self._kill(proc)
            stderr_task.cancel()
            await proc.wait()
            raise

        if cancelled:
            self._kill(proc)
            await proc.wait()
            stderr_task.cancel()
            logger.info("[ENCODE] Cancelled, ffmpeg killed")
            raise ExportCancelledError()

        stderr_output = await stderr_task
        await proc.wait()

        if proc.returncode != 0:
            stderr_text = stderr_output.decode("utf-8", errors="replace")
            logger.error(f"[ENCODE] ffmpeg failed ({proc.returncode}): {stderr_text[-2000:]}")
            raise EncodeFailedError(proc.returncode, stderr_text[-2000:])

        if not os.path.exists(output_path):
            raise ArtifactMissingError(output_path)

        if on_progress:
            on_progress(100)
        return output_path

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
