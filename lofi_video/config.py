import json
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Lo-Fi Video Creator API"
    app_version: str = "1.0.0"
    git_hash: str = "unknown"  # Set via GIT_HASH env var at build time
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Public base URL used for local download links. Empty = derive from request.
    public_base_url: str = ""

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "*"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # Google Cloud Storage (durable delivery). Both empty = serve locally.
    gcs_bucket_name: str = ""
    gcs_project_id: str = ""

    # Scratch area for per-job workspaces
    scratch_root: str = str(Path(tempfile.gettempdir()) / "lofi-video")
    # "on_entry" wipes every workspace when a job starts,
    # "max_age" only removes workspaces older than workspace_max_age_s
    workspace_reclaim_policy: Literal["on_entry", "max_age"] = "on_entry"
    workspace_max_age_s: int = 3600

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Request limits
    max_audio_files: int = 20
    max_caption_length: int = 100
    allowed_image_extensions: list[str] = ["jpg", "jpeg", "png", "gif", "bmp", "webp"]

    # Download constraints
    min_download_bytes: int = 2048
    audio_max_download_bytes: int = 100 * 1024 * 1024
    audio_download_timeout_s: float = 60.0
    audio_accepted_content_types: list[str] = ["audio/", "octet-stream", "mpeg"]
    image_max_download_bytes: int = 25 * 1024 * 1024
    image_download_timeout_s: float = 90.0
    image_accepted_content_types: list[str] = ["image/"]

    # Intermediate PCM format
    audio_sample_rate: int = 44100
    audio_channels: int = 2
    min_repaired_audio_bytes: int = 4096
    silence_duration_s: float = 1.0

    # Loudness normalization (EBU R128 style)
    loudness_integrated_lufs: float = -16.0
    loudness_true_peak_dbtp: float = -1.5
    loudness_range_lu: float = 11.0
    dynaudnorm_filter: str = "dynaudnorm=f=150:g=15"
    fallback_gain: float = 1.3
    output_audio_bitrate: str = "128k"

    # Video
    video_width: int = 1920
    video_height: int = 1080
    video_fps: int = 30
    zoom_max: float = 1.10
    video_primary_preset: str = "slow"
    video_primary_crf: int = 18
    video_fallback_preset: str = "medium"
    video_fallback_crf: int = 23

    # Thumbnail
    thumbnail_font_file: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
    thumbnail_vibe_font_size: int = 92
    thumbnail_subtitle_font_size: int = 68
    thumbnail_jpeg_quality: int = 2

    # Tool invocation timeouts (seconds)
    timeout_probe_s: float = 30.0
    timeout_silence_s: float = 60.0
    timeout_repair_s: float = 5 * 60.0
    timeout_merge_s: float = 5 * 60.0
    timeout_loudnorm_s: float = 10 * 60.0
    timeout_dynaudnorm_s: float = 6 * 60.0
    timeout_gain_s: float = 4 * 60.0
    timeout_video_s: float = 10 * 60.0
    timeout_thumbnail_s: float = 60.0

    @property
    def object_store_configured(self) -> bool:
        return bool(self.gcs_bucket_name and self.gcs_project_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()
