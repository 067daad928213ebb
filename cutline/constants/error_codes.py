"""Error codes dictionary for the export API.

This is the single source of truth for all error codes and their
retryability. The engine itself never retries; the flags tell callers
whether retrying an export is worthwhile.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_fix: str
    parameters: dict[str, Any]


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Export errors
    # ==========================================================================
    "EXPORT_FAILED": {
        "retryable": False,
    },
    "ENCODER_UNAVAILABLE": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "suggested_fix": "Install ffmpeg or point FFMPEG_PATH at a working binary",
        "parameters": {"delay_ms": 5000},
    },
    "ENCODE_FAILED": {
        "retryable": False,
        "suggested_fix": "Inspect the encoder output; the timeline likely references an unreadable source",
    },
    "ARTIFACT_MISSING": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000},
    },
    "ASSET_RESOLUTION_FAILED": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "suggested_fix": "Check that every asset locator is reachable from the export host",
        "parameters": {"delay_ms": 2000},
    },
    "EXPORT_CANCELLED": {
        "retryable": False,
    },
    # ==========================================================================
    # Request errors
    # ==========================================================================
    "INVALID_TIMELINE": {
        "retryable": False,
    },
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000},
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable.

    Args:
        code: The error code

    Returns:
        True if the error is retryable
    """
    spec = get_error_spec(code)
    return spec.get("retryable", False)
