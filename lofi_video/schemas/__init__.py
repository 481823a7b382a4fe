from lofi_video.schemas.video import (
    CreateVideoRequest,
    CreateVideoResponse,
    FinalAudioRequest,
    FinalVideoRequest,
    ThumbnailRequest,
)

__all__ = [
    "CreateVideoRequest",
    "CreateVideoResponse",
    "FinalAudioRequest",
    "FinalVideoRequest",
    "ThumbnailRequest",
]
