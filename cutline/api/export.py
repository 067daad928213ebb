"""Export API endpoint - renders a timeline snapshot and returns the MP4."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from cutline.render.pipeline import ExportOrchestrator
from cutline.schemas.envelope import ErrorResponse
from cutline.schemas.export import ExportRequest

router = APIRouter()
logger = logging.getLogger(__name__)


def get_orchestrator() -> ExportOrchestrator:
    return ExportOrchestrator()


Orchestrator = Annotated[ExportOrchestrator, Depends(get_orchestrator)]


@router.post(
    "/export",
    response_class=Response,
    responses={
        200: {"content": {"video/mp4": {}}},
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def export_timeline(request: ExportRequest, orchestrator: Orchestrator) -> Response:
    """
    Render the posted timeline state.

    Runs synchronously and returns the encoded bytes as an attachment.
    Failures are returned as a JSON error body by the app's exception handler.
    """
    result = await orchestrator.export(request.state)

    headers = {"Content-Disposition": 'attachment; filename="export.mp4"'}
    if result.warnings:
        headers["X-Export-Warnings"] = str(len(result.warnings))
        for warning in result.warnings:
            logger.warning(f"[EXPORT] {warning}")
    return Response(content=result.data, media_type=result.content_type, headers=headers)
