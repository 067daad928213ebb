from pydantic import BaseModel, Field

from cutline.schemas.graph import CompositionGraph
from cutline.schemas.timeline import TimelineState


class ExportRequest(BaseModel):
    state: TimelineState


class ExportResult(BaseModel):
    """Rendered artifact plus what went into it."""

    data: bytes
    content_type: str = "video/mp4"
    size: int
    duration: float
    warnings: list[str] = Field(default_factory=list)
    graph: CompositionGraph
