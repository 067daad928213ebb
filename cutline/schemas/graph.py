"""Composition graph produced by the compiler.

The graph is an ordered list of filter nodes wired together by stream
labels, in the shape FFmpeg's -filter_complex expects. It is plain data:
`model_dump_json()` is stable for identical timelines and
`to_filter_complex()` renders the FFmpeg form.
"""

from typing import Literal

from pydantic import BaseModel, Field

ParamValue = int | float | str


def format_number(value: float) -> str:
    """Render a number without float noise (1.0 -> "1", 0.1+0.2 -> "0.3")."""
    if isinstance(value, int):
        return str(value)
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


# Characters that must not appear unquoted inside a filter option value
_SPECIAL_CHARS = set(",;[]'\\ ")


def format_value(value: ParamValue) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return format_number(value)
    if any(ch in _SPECIAL_CHARS for ch in value):
        return f"'{value}'"
    return value


class GraphInput(BaseModel):
    """A source stream handed to the encoder as an input file."""

    index: int
    asset_id: str
    locator: str  # local path or URL the encoder reads
    kind: Literal["video", "audio", "image"]

    @property
    def video(self) -> str:
        return f"{self.index}:v"

    @property
    def audio(self) -> str:
        return f"{self.index}:a"


class GraphNode(BaseModel):
    """One filter with its input and output stream labels."""

    name: str
    op: str
    params: dict[str, ParamValue] = Field(default_factory=dict)
    inputs: list[str] = Field(default_factory=list)
    outputs: list[str] = Field(default_factory=list)
    clip_id: str | None = None  # clip that produced the node, None for canvas/mix

    def to_filter(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        args = ":".join(f"{key}={format_value(value)}" for key, value in self.params.items())
        body = f"{self.op}={args}" if args else self.op
        return f"{ins}{body}{outs}"


class CompositionGraph(BaseModel):
    """Ordered processing graph for one export."""

    width: int
    height: int
    fps: int
    duration: float
    inputs: list[GraphInput] = Field(default_factory=list)
    nodes: list[GraphNode] = Field(default_factory=list)
    video_output: str
    audio_output: str | None = None

    @property
    def has_audio(self) -> bool:
        return self.audio_output is not None

    def nodes_for_clip(self, clip_id: str) -> list[GraphNode]:
        return [node for node in self.nodes if node.clip_id == clip_id]

    def to_filter_complex(self) -> str:
        return ";".join(node.to_filter() for node in self.nodes)
