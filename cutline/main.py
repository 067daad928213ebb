import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cutline.api import export
from cutline.config import get_settings
from cutline.constants.error_codes import get_error_spec
from cutline.exceptions import CutlineError
from cutline.schemas.envelope import ErrorInfo, ErrorResponse

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, error: ErrorInfo) -> JSONResponse:
    body = ErrorResponse(error=error)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body.model_dump(exclude_none=True)),
    )


@app.exception_handler(CutlineError)
async def cutline_exception_handler(request: Request, exc: CutlineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[{exc.code}] {exc.message}")
    else:
        logger.info(f"[{exc.code}] {exc.message}")
    return _error_response(exc.status_code, exc.to_error_info())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request validation errors (422) in the error body format."""
    spec = get_error_spec("VALIDATION_ERROR")

    # Build a human-readable message from validation errors
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"

    error = ErrorInfo(
        code="VALIDATION_ERROR",
        message=message,
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return _error_response(422, error)


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    spec = get_error_spec("INTERNAL_ERROR")
    error = ErrorInfo(
        code="INTERNAL_ERROR",
        message="Internal server error",
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return _error_response(500, error)


# Routers
app.include_router(export.router, prefix="/api", tags=["export"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "version": settings.app_version}
