"""Custom exceptions for the lo-fi video backend.

Every pipeline stage raises its own subclass of LofiVideoError. The
exception handlers in ``lofi_video.main`` turn them into the JSON error body
``{"error": ..., "details": ..., "jobId": ...}``.
"""

from typing import Any

from lofi_video.constants.error_codes import get_error_spec, is_retryable


class LofiVideoError(Exception):
    """Base exception for all application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        job_id: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.job_id = job_id
        super().__init__(self.message)

    @property
    def label(self) -> str:
        return get_error_spec(self.code).get("label", "Internal server error")

    @property
    def retryable(self) -> bool:
        return is_retryable(self.code)

    def to_response(self) -> dict[str, Any]:
        """Build the JSON error body."""
        body: dict[str, Any] = {
            "error": self.label,
            "details": self.message,
            "jobId": self.job_id or "unknown",
        }
        suggested_fix = get_error_spec(self.code).get("suggested_fix")
        if suggested_fix:
            body["suggestedFix"] = suggested_fix
        return body


# =============================================================================
# Request Errors (400/404)
# =============================================================================


class ValidationError(LofiVideoError):
    """Malformed or missing request fields. Raised before a job is allocated."""

    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request"


class ArtifactNotFoundError(LofiVideoError):
    """A job artifact no longer exists in the scratch area."""

    code = "ARTIFACT_NOT_FOUND"
    status_code = 404
    message = "Artifact not found"

    def __init__(self, kind: str, job_id: str | None = None):
        super().__init__(
            f"{kind.capitalize()} may have been cleaned up. Please create a new video.",
            job_id=job_id,
        )
        self.kind = kind

    @property
    def label(self) -> str:
        return f"{self.kind.capitalize()} not found"


# =============================================================================
# Transcoder Errors
# =============================================================================


class TranscoderError(LofiVideoError):
    """The external media tool exited non-zero or could not be started."""

    code = "TRANSCODER_FAILED"
    message = "Media tool invocation failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        returncode: int | None = None,
        stderr: str = "",
        label: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
        self.step = label


class TranscoderTimeoutError(TranscoderError):
    """The external media tool exceeded its timeout and was killed."""

    code = "TRANSCODER_TIMEOUT"
    message = "Media tool invocation timed out"


# =============================================================================
# Pipeline Stage Errors (500)
# =============================================================================


class StageError(LofiVideoError):
    """Base class for job pipeline stage failures."""

    status_code = 500


class DownloadError(StageError):
    """Fetch failed, response was oversized, undersized or of the wrong type."""

    code = "DOWNLOAD_FAILED"
    message = "Failed to download file"


class RepairError(StageError):
    """Audio file is unusable even after permissive re-decode."""

    code = "AUDIO_REPAIR_FAILED"
    message = "Audio file is invalid/corrupt and could not be repaired"


class MergeError(StageError):
    """Concatenation of the repaired tracks failed."""

    code = "AUDIO_MERGE_FAILED"
    message = "Failed to merge audio files"


class NormalizeError(StageError):
    """All loudness normalization strategies failed."""

    code = "AUDIO_NORMALIZE_FAILED"
    message = "Failed to normalize audio"


class ComposeError(StageError):
    """Both the primary and the fallback video encode failed."""

    code = "VIDEO_COMPOSE_FAILED"
    message = "Failed to create video"


class ThumbnailError(StageError):
    """All thumbnail render tiers failed."""

    code = "THUMBNAIL_FAILED"
    message = "Failed to create thumbnail"


class DeliveryError(StageError):
    """Upload to object storage or local-serving setup failed."""

    code = "DELIVERY_FAILED"
    message = "Failed to deliver artifacts"
