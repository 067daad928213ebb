"""Custom exceptions for the cutline engine.

Each exception carries a machine-readable code and an HTTP status so the
export transport can report failures in a structured way. Callers use the
code (and the retryable flag from the error code table) to tell a missing
encoder apart from a failed encode or a lost artifact.
"""

from cutline.constants.error_codes import get_error_spec, is_retryable
from cutline.schemas.envelope import ErrorInfo, ErrorLocation


class CutlineError(Exception):
    """Base exception for all cutline errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
        detail: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        self.detail = detail
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.code)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            detail=self.detail,
        )


# =============================================================================
# Validation Errors (400)
# =============================================================================


class InvalidTimelineError(CutlineError):
    """Timeline snapshot could not be accepted."""

    code = "INVALID_TIMELINE"
    status_code = 400
    message = "Invalid timeline state"


# =============================================================================
# Export Errors
# =============================================================================


class ExportError(CutlineError):
    """Base class for failures that abort an export."""

    code = "EXPORT_FAILED"
    status_code = 500
    message = "Export failed"


class EncoderUnavailableError(ExportError):
    """The encode backend could not be started."""

    code = "ENCODER_UNAVAILABLE"
    status_code = 503
    message = "Encoder is not available"

    def __init__(self, binary: str | None = None, detail: str | None = None):
        message = f"Encoder is not available: {binary}" if binary else self.message
        super().__init__(message, detail=detail)


class EncodeFailedError(ExportError):
    """The encoder ran and reported a failure."""

    code = "ENCODE_FAILED"
    status_code = 500
    message = "Encode failed"

    def __init__(self, returncode: int | None = None, stderr: str | None = None):
        message = self.message
        if returncode is not None:
            message = f"Encode failed with exit code {returncode}"
        super().__init__(message, detail=stderr)
        self.returncode = returncode


class ArtifactMissingError(ExportError):
    """The encoder reported success but produced no output."""

    code = "ARTIFACT_MISSING"
    status_code = 500
    message = "Encoded artifact is missing"

    def __init__(self, path: str | None = None):
        message = f"Encoded artifact is missing: {path}" if path else self.message
        super().__init__(message)


class AssetResolutionError(ExportError):
    """An asset's bytes could not be fetched."""

    code = "ASSET_RESOLUTION_FAILED"
    status_code = 502
    message = "Asset could not be resolved"

    def __init__(self, asset_id: str | None = None, reason: str | None = None):
        message = f"Asset could not be resolved: {asset_id}" if asset_id else self.message
        location = ErrorLocation(asset_id=asset_id) if asset_id else None
        super().__init__(message, location=location, detail=reason)


class ExportCancelledError(ExportError):
    """The export was cancelled by the caller."""

    code = "EXPORT_CANCELLED"
    status_code = 499
    message = "Export cancelled"
