"""Error codes dictionary for the render API.

Single source of truth for every error code, its retryability and a
suggested fix. Used by the exception handlers to build error responses.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Definition of an error code."""

    label: str
    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors
    # ==========================================================================
    "VALIDATION_ERROR": {
        "label": "Invalid request",
        "retryable": False,
        "suggested_fix": "Check 'files', 'imageUrl', 'vibe' and 'subtitle' in the request body",
    },
    "ARTIFACT_NOT_FOUND": {
        "label": "Not found",
        "retryable": False,
        "suggested_fix": "Artifacts are removed when the next job starts. Please create a new video.",
    },
    # ==========================================================================
    # Pipeline stage errors
    # ==========================================================================
    "DOWNLOAD_FAILED": {
        "label": "Video creation failed",
        "retryable": True,
        "suggested_fix": "Verify the URLs are reachable and point at real media files",
    },
    "AUDIO_REPAIR_FAILED": {
        "label": "Video creation failed",
        "retryable": False,
        "suggested_fix": "Replace the corrupt audio file",
    },
    "AUDIO_MERGE_FAILED": {
        "label": "Video creation failed",
        "retryable": True,
    },
    "AUDIO_NORMALIZE_FAILED": {
        "label": "Video creation failed",
        "retryable": True,
    },
    "VIDEO_COMPOSE_FAILED": {
        "label": "Video creation failed",
        "retryable": True,
        "suggested_fix": "Try a background image with a common aspect ratio and color space",
    },
    "THUMBNAIL_FAILED": {
        "label": "Video creation failed",
        "retryable": True,
    },
    "DELIVERY_FAILED": {
        "label": "Video creation failed",
        "retryable": True,
        "suggested_fix": "Check the object storage bucket and credentials",
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "TRANSCODER_FAILED": {
        "label": "Media tool failed",
        "retryable": False,
    },
    "TRANSCODER_TIMEOUT": {
        "label": "Media tool timed out",
        "retryable": True,
    },
    "INTERNAL_ERROR": {
        "label": "Internal server error",
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error definition by code."""
    return ERROR_CODES.get(code, {"label": "Internal server error", "retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_spec(code).get("retryable", False)
