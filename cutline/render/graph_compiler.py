"""Composition graph compiler.

Turns an immutable TimelineState into a CompositionGraph: one input per
placed clip, per-clip processing chains, a running overlay fold on top of a
black canvas, drawtext for text clips and an audio mix.

Clips are folded in ascending z_index. The sort is stable, so clips with the
same z_index keep their insertion order from `state.clips`.
"""

import logging

from cutline.schemas.graph import CompositionGraph, GraphInput, GraphNode, format_number
from cutline.schemas.timeline import Clip, MediaAsset, TimelineState

logger = logging.getLogger(__name__)

BASE_LABEL = "base"
AUDIO_OUTPUT_LABEL = "aout"


def escape_drawtext(text: str) -> str:
    """Escape text for a drawtext `text` option.

    Backslashes and `%` are escaped for both option parsing and drawtext's
    own text expansion. Quotes are dropped and newlines flattened.
    """
    return (
        text.replace("\\", "\\\\\\\\")
        .replace("%", "\\\\%")
        .replace(":", "\\:")
        .replace("'", "")
        .replace("\n", " ")
    )


def ffmpeg_color(color: str) -> str:
    """CSS hex colors (#rrggbb) to FFmpeg form (0xrrggbb)."""
    return color.replace("#", "0x")


def enable_expr(start: float, end: float) -> str:
    return f"between(t,{format_number(start)},{format_number(end)})"


def text_x_expr(x_px: float, align: str) -> str:
    """Horizontal drawtext position for an anchor point and alignment."""
    x = format_number(x_px)
    if align == "left":
        return x
    if align == "right":
        return f"{x}-text_w"
    return f"{x}-(text_w/2)"


class GraphCompiler:
    """Builds one CompositionGraph. Use `compile_timeline` for the one-shot form."""

    def __init__(
        self,
        state: TimelineState,
        resolved_inputs: dict[str, str] | None = None,
        font_path: str | None = None,
        fps: int = 30,
    ):
        self.state = state
        self.resolved_inputs = resolved_inputs
        self.font_path = font_path
        self.fps = fps
        self.width = state.canvas_size.width
        self.height = state.canvas_size.height

        self._inputs: list[GraphInput] = []
        self._nodes: list[GraphNode] = []
        self._audio_labels: list[str] = []
        self._label_counter = 0

    def _label(self, prefix: str) -> str:
        label = f"{prefix}{self._label_counter}"
        self._label_counter += 1
        return label

    def _add(
        self,
        op: str,
        params: dict,
        inputs: list[str],
        prefix: str,
        clip: Clip | None = None,
    ) -> str:
        """Append a node with a fresh output label and return that label."""
        output = self._label(prefix)
        name = f"{clip.id}:{op}" if clip is not None else op
        self._nodes.append(
            GraphNode(
                name=name,
                op=op,
                params=params,
                inputs=inputs,
                outputs=[output],
                clip_id=clip.id if clip is not None else None,
            )
        )
        return output

    def _resolve_asset(self, clip: Clip) -> tuple[MediaAsset, str] | None:
        asset = self.state.assets.get(clip.asset_id) if clip.asset_id else None
        if asset is None:
            logger.info(f"[COMPILE] Clip {clip.id} references missing asset {clip.asset_id}, skipping")
            return None
        if self.resolved_inputs is None:
            return asset, asset.source_locator
        locator = self.resolved_inputs.get(asset.id)
        if locator is None:
            logger.info(f"[COMPILE] Asset {asset.id} for clip {clip.id} was not resolved, skipping")
            return None
        return asset, locator

    def _add_input(self, asset: MediaAsset, locator: str) -> GraphInput:
        graph_input = GraphInput(
            index=len(self._inputs),
            asset_id=asset.id,
            locator=locator,
            kind=asset.kind,
        )
        self._inputs.append(graph_input)
        return graph_input

    def _build_visual_chain(self, clip: Clip, source: str, is_image: bool) -> str:
        start = format_number(clip.timeline_start)
        if is_image:
            label = self._add("loop", {"loop": -1, "size": 1, "start": 0}, [source], "lp", clip)
            label = self._add("trim", {"start": 0, "end": clip.duration}, [label], "tr", clip)
        else:
            label = self._add(
                "trim",
                {"start": clip.in_point, "end": clip.in_point + clip.duration},
                [source],
                "tr",
                clip,
            )
        label = self._add("setpts", {"expr": f"PTS-STARTPTS+{start}/TB"}, [label], "pt", clip)

        transform = clip.transform
        scale = format_number(transform.scale)
        label = self._add("scale", {"w": f"iw*{scale}", "h": f"ih*{scale}"}, [label], "sc", clip)
        label = self._add("format", {"pix_fmts": "rgba"}, [label], "fm", clip)

        angle = f"{format_number(transform.rotation_degrees)}*PI/180"
        label = self._add(
            "rotate",
            {"angle": angle, "c": "none", "ow": f"rotw({angle})", "oh": f"roth({angle})"},
            [label],
            "ro",
            clip,
        )
        label = self._add("colorchannelmixer", {"aa": transform.opacity}, [label], "op", clip)

        transition = clip.transition
        if transition.kind == "fade" and transition.in_duration_s > 0:
            label = self._add(
                "fade",
                {"t": "in", "st": clip.timeline_start, "d": transition.in_duration_s, "alpha": 1},
                [label],
                "fi",
                clip,
            )
        if transition.kind == "fade" and transition.out_duration_s > 0:
            label = self._add(
                "fade",
                {
                    "t": "out",
                    "st": max(0.0, clip.end - transition.out_duration_s),
                    "d": transition.out_duration_s,
                    "alpha": 1,
                },
                [label],
                "fo",
                clip,
            )
        return label

    def _overlay(self, clip: Clip, current: str, layer: str) -> str:
        x = transform_px(clip.transform.x, self.width)
        y = transform_px(clip.transform.y, self.height)
        return self._add(
            "overlay",
            {
                "x": x,
                "y": y,
                "enable": enable_expr(clip.timeline_start, clip.end),
                "eof_action": "pass",
            },
            [current, layer],
            "ov",
            clip,
        )

    def _drawtext(self, clip: Clip, current: str) -> str:
        text = clip.text_data
        params: dict = {}
        if self.font_path:
            params["fontfile"] = self.font_path
        params["text"] = escape_drawtext(text.content)
        params["fontcolor"] = ffmpeg_color(text.color)
        params["fontsize"] = text.font_size_px
        params["x"] = text_x_expr(transform_px(clip.transform.x, self.width), text.align)
        params["y"] = format_number(transform_px(clip.transform.y, self.height))
        if text.background_color and text.background_color != "transparent":
            params["box"] = 1
            params["boxcolor"] = ffmpeg_color(text.background_color)
        params["enable"] = enable_expr(clip.timeline_start, clip.end)
        return self._add("drawtext", params, [current], "tx", clip)

    def _build_audio_chain(self, clip: Clip, source: str) -> None:
        delay_ms = int(round(clip.timeline_start * 1000))
        label = self._add(
            "atrim",
            {"start": clip.in_point, "end": clip.in_point + clip.duration},
            [source],
            "at",
            clip,
        )
        label = self._add("asetpts", {"expr": "PTS-STARTPTS"}, [label], "ap", clip)
        label = self._add("volume", {"volume": clip.volume}, [label], "vl", clip)
        label = self._add("adelay", {"delays": delay_ms, "all": 1}, [label], "ad", clip)
        self._audio_labels.append(label)

    def compile(self) -> CompositionGraph:
        state = self.state
        self._nodes.append(
            GraphNode(
                name="canvas",
                op="color",
                params={
                    "c": "black",
                    "s": f"{self.width}x{self.height}",
                    "r": self.fps,
                    "d": state.total_duration,
                },
                outputs=[BASE_LABEL],
            )
        )
        current = BASE_LABEL

        hidden = {t.id for t in state.tracks if t.is_hidden}
        muted = {t.id for t in state.tracks if t.is_muted}

        for clip in sorted(state.clips.values(), key=lambda c: c.z_index):
            track_hidden = clip.track_id in hidden
            track_muted = clip.track_id in muted

            if clip.kind == "text":
                if clip.text_data is None:
                    logger.info(f"[COMPILE] Text clip {clip.id} has no text data, skipping")
                    continue
                if not track_hidden:
                    current = self._drawtext(clip, current)
                continue

            wants_video = clip.kind in ("video", "image") and not track_hidden
            wants_audio = (
                clip.kind in ("video", "audio")
                and not track_muted
                and clip.volume > 0
            )
            if not wants_video and not wants_audio:
                continue

            resolved = self._resolve_asset(clip)
            if resolved is None:
                continue
            asset, locator = resolved

            is_image = clip.kind == "image" or asset.kind == "image"
            wants_audio = wants_audio and asset.has_audio and not is_image
            if not wants_video and not wants_audio:
                continue

            graph_input = self._add_input(asset, locator)
            if wants_video:
                layer = self._build_visual_chain(clip, graph_input.video, is_image)
                current = self._overlay(clip, current, layer)
            if wants_audio:
                self._build_audio_chain(clip, graph_input.audio)

        audio_output = None
        if self._audio_labels:
            self._nodes.append(
                GraphNode(
                    name="mix",
                    op="amix",
                    params={
                        "inputs": len(self._audio_labels),
                        "duration": "longest",
                        "normalize": 0,
                    },
                    inputs=list(self._audio_labels),
                    outputs=[AUDIO_OUTPUT_LABEL],
                )
            )
            audio_output = AUDIO_OUTPUT_LABEL

        graph = CompositionGraph(
            width=self.width,
            height=self.height,
            fps=self.fps,
            duration=state.total_duration,
            inputs=self._inputs,
            nodes=self._nodes,
            video_output=current,
            audio_output=audio_output,
        )
        logger.info(
            f"[COMPILE] {len(state.clips)} clips -> {len(graph.inputs)} inputs, "
            f"{len(graph.nodes)} nodes, audio={'yes' if graph.has_audio else 'no'}"
        )
        return graph


def transform_px(percent: float, extent: int) -> float:
    """Canvas percentage to pixels."""
    return percent / 100 * extent


def compile_timeline(
    state: TimelineState,
    resolved_inputs: dict[str, str] | None = None,
    font_path: str | None = None,
    fps: int = 30,
) -> CompositionGraph:
    """Compile a timeline snapshot into a composition graph."""
    return GraphCompiler(state, resolved_inputs, font_path, fps).compile()
