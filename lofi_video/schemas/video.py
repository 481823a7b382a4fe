"""Request and response bodies for the /api/ffmpeg endpoints.

Request validation runs in ``mode="before"`` model validators so the checks
happen in a fixed order and each failure carries one human-readable message.
"""

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from lofi_video.config import get_settings

_HTTP_URL_RE = re.compile(r"^https?://.+", re.IGNORECASE)
_CAPTION_STRIP_RE = re.compile(r"['\"\\]")


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and bool(_HTTP_URL_RE.match(value))


def image_extension(url: str) -> str | None:
    """Lower-cased image extension of ``url`` (query string ignored), if allowed."""
    path = url.split("?", 1)[0]
    if "." not in path:
        return None
    ext = path.rsplit(".", 1)[-1].lower()
    if ext in get_settings().allowed_image_extensions:
        return ext
    return None


def sanitize_caption(text: str) -> str:
    """Trim and drop quote and backslash characters."""
    return _CAPTION_STRIP_RE.sub("", text.strip())


def _check_audio_files(files: Any) -> None:
    if not isinstance(files, list) or not files:
        raise ValueError("Please provide an array of audio file URLs in 'files'.")
    max_files = get_settings().max_audio_files
    if len(files) > max_files:
        raise ValueError(f"Maximum {max_files} audio files allowed.")
    if not all(_is_http_url(f) for f in files):
        raise ValueError("All files must be valid HTTP/HTTPS URLs.")


def _check_image_url(image_url: Any) -> None:
    if not _is_http_url(image_url):
        raise ValueError("Please provide a valid image URL in 'imageUrl'.")
    if image_extension(image_url) is None:
        supported = ", ".join(e.upper() for e in get_settings().allowed_image_extensions)
        raise ValueError(f"Unsupported image format. Supported: {supported}")


def _check_captions(vibe: Any, subtitle: Any) -> None:
    message = "Please provide non-empty 'vibe' and 'subtitle'."
    if not isinstance(vibe, str) or not isinstance(subtitle, str):
        raise ValueError(message)
    if not sanitize_caption(vibe) or not sanitize_caption(subtitle):
        raise ValueError(message)
    limit = get_settings().max_caption_length
    if len(sanitize_caption(vibe)) > limit or len(sanitize_caption(subtitle)) > limit:
        raise ValueError(f"Vibe and subtitle must be {limit} characters or less.")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Requests
# =============================================================================


class CreateVideoRequest(CamelModel):
    files: list[str]
    image_url: str
    vibe: str
    subtitle: str

    @model_validator(mode="before")
    @classmethod
    def check_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object.")
        _check_audio_files(data.get("files"))
        _check_image_url(data.get("imageUrl", data.get("image_url")))
        _check_captions(data.get("vibe"), data.get("subtitle"))
        return data

    @field_validator("vibe", "subtitle")
    @classmethod
    def strip_caption(cls, v: str) -> str:
        return sanitize_caption(v)

    @property
    def image_ext(self) -> str:
        return image_extension(self.image_url) or "jpg"


class FinalAudioRequest(CamelModel):
    files: list[str]

    @model_validator(mode="before")
    @classmethod
    def check_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object.")
        _check_audio_files(data.get("files"))
        return data


class ThumbnailRequest(CamelModel):
    image_url: str
    vibe: str
    subtitle: str

    @model_validator(mode="before")
    @classmethod
    def check_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object.")
        _check_image_url(data.get("imageUrl", data.get("image_url")))
        _check_captions(data.get("vibe"), data.get("subtitle"))
        return data

    @field_validator("vibe", "subtitle")
    @classmethod
    def strip_caption(cls, v: str) -> str:
        return sanitize_caption(v)

    @property
    def image_ext(self) -> str:
        return image_extension(self.image_url) or "jpg"


class FinalVideoRequest(CamelModel):
    audio_url: str
    image_url: str

    @model_validator(mode="before")
    @classmethod
    def check_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object.")
        if not _is_http_url(data.get("audioUrl", data.get("audio_url"))):
            raise ValueError("Please provide a valid audio URL in 'audioUrl'.")
        _check_image_url(data.get("imageUrl", data.get("image_url")))
        return data

    @property
    def image_ext(self) -> str:
        return image_extension(self.image_url) or "jpg"


# =============================================================================
# Responses
# =============================================================================


class CreateVideoResponse(CamelModel):
    success: bool = True
    message: str = "Video and thumbnail created successfully"
    video_url: str
    thumbnail_url: str
    video_size: str
    thumbnail_size: str
    job_id: str
    timestamp: datetime
    note: str | None = None


class FinalAudioResponse(CamelModel):
    success: bool = True
    message: str
    audio_url: str
    file_size: str
    job_id: str


class ThumbnailResponse(CamelModel):
    success: bool = True
    message: str = "Thumbnail created successfully"
    thumbnail_url: str
    file_size: str
    job_id: str
    timestamp: datetime


class FinalVideoResponse(CamelModel):
    success: bool = True
    message: str = "Video created successfully"
    video_url: str
    job_id: str
    size_mb: str = Field(alias="sizeMB")
    timestamp: datetime


class StorageInfoResponse(CamelModel):
    temp_directory_size: str
    temp_directory_size_bytes: int
    active_temp_directories: int
    temp_directory_path: str
    last_checked: datetime


class ErrorResponse(CamelModel):
    error: str
    details: str
    job_id: str = "unknown"
