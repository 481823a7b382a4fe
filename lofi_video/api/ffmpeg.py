"""Lo-fi video creation endpoints (mounted under /api/ffmpeg)."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

import pydantic
from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse

from lofi_video.api.deps import get_base_url, get_pipeline, get_workspace_manager
from lofi_video.config import get_settings
from lofi_video.exceptions import LofiVideoError, ValidationError
from lofi_video.render.audio_mixer import NORMALIZED_FILENAME
from lofi_video.render.media import format_kilobytes, format_megabytes
from lofi_video.render.pipeline import JobPipeline
from lofi_video.render.text_renderer import THUMBNAIL_FILENAME
from lofi_video.render.video_composer import VIDEO_FILENAME
from lofi_video.schemas.video import (
    CreateVideoRequest,
    CreateVideoResponse,
    ErrorResponse,
    FinalAudioRequest,
    FinalAudioResponse,
    FinalVideoRequest,
    FinalVideoResponse,
    StorageInfoResponse,
    ThumbnailRequest,
    ThumbnailResponse,
)
from lofi_video.services.workspace import WorkspaceManager

logger = logging.getLogger(__name__)
router = APIRouter()

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

LOCAL_DELIVERY_NOTE = (
    "Files are served from temporary storage and are removed when the next job starts. "
    "For production use, configure object storage (GCS_BUCKET_NAME / GCS_PROJECT_ID)."
)

JOB_ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def _validation_message(exc: pydantic.ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Request validation failed"
    first = errors[0]
    ctx_error = first.get("ctx", {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    loc = " -> ".join(str(x) for x in first.get("loc", []))
    msg = first.get("msg", "Validation error")
    return f"{loc}: {msg}" if loc else msg


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Request body must be valid JSON.") from e


def parse_body(model: type[ModelT], payload: Any) -> ModelT:
    """Validate a raw JSON payload, raising ValidationError (400) on failure."""
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        message = _validation_message(e)
        logger.warning(f"[VALIDATION] {model.__name__}: {message}")
        raise ValidationError(message) from e


def _attach_job_id(exc: LofiVideoError, job_id: str) -> LofiVideoError:
    if exc.job_id is None:
        exc.job_id = job_id
    return exc


# =============================================================================
# Create video
# =============================================================================


@router.get("/create-video")
async def describe_create_video() -> dict[str, Any]:
    """Usage document for POST /create-video."""
    settings = get_settings()
    return {
        "status": "API is working!",
        "message": f"{settings.app_name} is running",
        "endpoint": "POST /api/ffmpeg/create-video",
        "description": "Creates a video by merging audio files with background image and text overlay",
        "videoSpecs": {
            "resolution": f"{settings.video_width}x{settings.video_height} (Full HD)",
            "format": "MP4 with H.264 video and AAC audio",
            "features": "Automatic image cropping/scaling, subtle zoom effect, text overlay thumbnail",
        },
        "supportedImageFormats": [e.upper() for e in settings.allowed_image_extensions],
        "requiredPayload": {
            "files": ["array of audio file URLs"],
            "imageUrl": "background image URL (JPG/JPEG/PNG/GIF/BMP/WEBP)",
            "vibe": "main vibe text",
            "subtitle": "subtitle text",
        },
        "examplePayload": {
            "files": [
                "https://example.com/track1.mp3",
                "https://example.com/track2.mp3",
            ],
            "imageUrl": "https://example.com/background.png",
            "vibe": "Ocean Breeze",
            "subtitle": "Lo Fi Focus Mix",
        },
        "storageInfo": "GET /api/ffmpeg/storage-info for storage monitoring",
    }


@router.post(
    "/create-video",
    response_model=CreateVideoResponse,
    response_model_exclude_none=True,
    responses=JOB_ERROR_RESPONSES,
)
async def create_video(
    request: Request,
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
    pipeline: JobPipeline = Depends(get_pipeline),
    base_url: str = Depends(get_base_url),
) -> CreateVideoResponse:
    """Download audio tracks and an image, then render the video and thumbnail."""
    async with workspaces.exclusive():
        payload = await _read_json(request)
        body = parse_body(CreateVideoRequest, payload)
        job = workspaces.start_job()
        logger.info(f"[JOB] {job.job_id}: {len(body.files)} audio files, image .{body.image_ext}")
        try:
            result = await pipeline.create_video(body, job, base_url)
        except LofiVideoError as e:
            logger.error(f"[JOB] {job.job_id} failed: {e.message}")
            raise _attach_job_id(e, job.job_id)

    return CreateVideoResponse(
        video_url=result.delivery.video_url,
        thumbnail_url=result.delivery.thumbnail_url,
        video_size=result.video_size,
        thumbnail_size=result.thumbnail_size,
        job_id=result.job_id,
        timestamp=result.created_at,
        note=None if result.delivery.durable else LOCAL_DELIVERY_NOTE,
    )


# =============================================================================
# Single-artifact jobs
# =============================================================================


@router.post("/final-audio", response_model=FinalAudioResponse, responses=JOB_ERROR_RESPONSES)
@router.post("/finalaudio", response_model=FinalAudioResponse, include_in_schema=False)
async def create_final_audio(
    request: Request,
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
    pipeline: JobPipeline = Depends(get_pipeline),
    base_url: str = Depends(get_base_url),
) -> FinalAudioResponse:
    """Merge and normalize audio tracks without rendering a video."""
    async with workspaces.exclusive():
        payload = await _read_json(request)
        body = parse_body(FinalAudioRequest, payload)
        job = workspaces.start_job()
        try:
            result = await pipeline.create_audio(body, job, base_url)
        except LofiVideoError as e:
            logger.error(f"[JOB] {job.job_id} failed: {e.message}")
            raise _attach_job_id(e, job.job_id)

    return FinalAudioResponse(
        message=f"Merged and normalized {len(body.files)} audio files",
        audio_url=result.url,
        file_size=format_megabytes(result.asset.size_bytes),
        job_id=result.job_id,
    )


@router.post("/thumbnail-creator", response_model=ThumbnailResponse, responses=JOB_ERROR_RESPONSES)
async def create_thumbnail(
    request: Request,
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
    pipeline: JobPipeline = Depends(get_pipeline),
    base_url: str = Depends(get_base_url),
) -> ThumbnailResponse:
    """Render a captioned thumbnail from a background image."""
    async with workspaces.exclusive():
        payload = await _read_json(request)
        body = parse_body(ThumbnailRequest, payload)
        job = workspaces.start_job()
        try:
            result = await pipeline.create_thumbnail(body, job, base_url)
        except LofiVideoError as e:
            logger.error(f"[JOB] {job.job_id} failed: {e.message}")
            raise _attach_job_id(e, job.job_id)

    return ThumbnailResponse(
        thumbnail_url=result.url,
        file_size=format_kilobytes(result.asset.size_bytes),
        job_id=result.job_id,
        timestamp=result.created_at,
    )


@router.post("/final-video", response_model=FinalVideoResponse, responses=JOB_ERROR_RESPONSES)
async def create_final_video(
    request: Request,
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
    pipeline: JobPipeline = Depends(get_pipeline),
    base_url: str = Depends(get_base_url),
) -> FinalVideoResponse:
    """Compose a video from one already mixed audio file and an image."""
    async with workspaces.exclusive():
        payload = await _read_json(request)
        body = parse_body(FinalVideoRequest, payload)
        job = workspaces.start_job()
        try:
            result = await pipeline.create_video_from_audio(body, job, base_url)
        except LofiVideoError as e:
            logger.error(f"[JOB] {job.job_id} failed: {e.message}")
            raise _attach_job_id(e, job.job_id)

    return FinalVideoResponse(
        video_url=result.url,
        job_id=result.job_id,
        size_mb=format_megabytes(result.asset.size_bytes),
        timestamp=result.created_at,
    )


# =============================================================================
# Local delivery
# =============================================================================


@router.get("/download/video/{job_id}")
async def download_video(
    job_id: str,
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
) -> FileResponse:
    """Stream the rendered video. Range requests are handled by FileResponse."""
    path = workspaces.resolve(job_id, VIDEO_FILENAME, kind="video")
    return FileResponse(
        path=str(path),
        media_type="video/mp4",
        filename=f"video_{job_id}.mp4",
    )


@router.get("/download/thumbnail/{job_id}")
async def download_thumbnail(
    job_id: str,
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
) -> FileResponse:
    path = workspaces.resolve(job_id, THUMBNAIL_FILENAME, kind="thumbnail")
    return FileResponse(
        path=str(path),
        media_type="image/jpeg",
        filename=f"thumbnail_{job_id}.jpg",
        content_disposition_type="inline",
    )


@router.get("/download/audio/{job_id}")
async def download_audio(
    job_id: str,
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
) -> FileResponse:
    path = workspaces.resolve(job_id, NORMALIZED_FILENAME, kind="audio")
    return FileResponse(
        path=str(path),
        media_type="audio/mp4",
        filename=f"audio_{job_id}.m4a",
    )


@router.get("/storage-info", response_model=StorageInfoResponse)
async def storage_info(
    workspaces: WorkspaceManager = Depends(get_workspace_manager),
) -> StorageInfoResponse:
    """Current size of the scratch area."""
    info = workspaces.storage_info()
    return StorageInfoResponse(
        temp_directory_size=format_megabytes(info.total_bytes),
        temp_directory_size_bytes=info.total_bytes,
        active_temp_directories=info.active_dirs,
        temp_directory_path=str(info.root),
        last_checked=datetime.now(timezone.utc),
    )
