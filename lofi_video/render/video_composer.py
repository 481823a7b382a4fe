"""Still-image + audio video composition.

The background image is scaled to fill the output frame, center-cropped,
and given a slow zoom so platforms do not treat the result as a frozen
frame. If that encode fails, a plain scale/crop encode with a faster preset
is used instead.
"""

import logging
from pathlib import Path

from lofi_video.config import get_settings
from lofi_video.exceptions import ComposeError, TranscoderError
from lofi_video.render.fallback import StrategiesExhausted, Strategy, run_with_fallbacks
from lofi_video.render.media import AssetRole, MediaAsset, format_megabytes
from lofi_video.render.transcoder import Transcoder
from lofi_video.utils.media_info import get_media_duration

logger = logging.getLogger(__name__)

VIDEO_FILENAME = "final_video.mp4"

# Per-frame zoom increment used when the audio duration cannot be probed
DEFAULT_ZOOM_STEP = 0.0005


def fill_frame_filter(width: int, height: int) -> str:
    """Scale to cover the frame, then center-crop to the exact size."""
    return f"scale={width}:{height}:force_original_aspect_ratio=increase,crop={width}:{height}"


def zoom_step_for(duration_ms: int | None, fps: int, zoom_max: float) -> float:
    """Per-frame zoom increment that reaches ``zoom_max`` at the end of the track."""
    if not duration_ms or duration_ms <= 0:
        return DEFAULT_ZOOM_STEP
    frames = max(1, int(duration_ms / 1000 * fps))
    return (zoom_max - 1.0) / frames


def zoompan_filter(width: int, height: int, fps: int, zoom_step: float, zoom_max: float) -> str:
    """Monotonic center zoom from 1.0 capped at ``zoom_max``."""
    return (
        f"zoompan=z='min(1+{zoom_step:.8f}*on,{zoom_max})'"
        ":x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
        f":d=1:s={width}x{height}:fps={fps}"
    )


class VideoComposer:
    """Pairs the background image with the normalized audio track."""

    def __init__(self, transcoder: Transcoder | None = None):
        self.settings = get_settings()
        self.transcoder = transcoder or Transcoder()

    def build_primary_args(
        self, image: MediaAsset, audio: MediaAsset, output_path: Path, zoom_step: float
    ) -> list[str]:
        s = self.settings
        video_filter = ",".join([
            fill_frame_filter(s.video_width, s.video_height),
            zoompan_filter(s.video_width, s.video_height, s.video_fps, zoom_step, s.zoom_max),
        ])
        return [
            "-loop", "1",
            "-framerate", str(s.video_fps),
            "-i", str(image.path),
            "-i", str(audio.path),
            "-vf", video_filter,
            "-c:v", "libx264",
            "-preset", s.video_primary_preset,
            "-crf", str(s.video_primary_crf),
            "-tune", "stillimage",
            "-c:a", "aac",
            "-b:a", s.output_audio_bitrate,
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-shortest",
            str(output_path),
        ]

    def build_fallback_args(self, image: MediaAsset, audio: MediaAsset, output_path: Path) -> list[str]:
        s = self.settings
        return [
            "-loop", "1",
            "-framerate", str(s.video_fps),
            "-i", str(image.path),
            "-i", str(audio.path),
            "-vf", fill_frame_filter(s.video_width, s.video_height),
            "-c:v", "libx264",
            "-preset", s.video_fallback_preset,
            "-crf", str(s.video_fallback_crf),
            "-tune", "stillimage",
            "-c:a", "copy",
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-shortest",
            str(output_path),
        ]

    def _probe_zoom_step(self, audio: MediaAsset) -> float:
        try:
            duration_ms = get_media_duration(str(audio.path), transcoder=self.transcoder)
        except TranscoderError as e:
            logger.warning(f"[VIDEO] Could not probe audio duration ({e}), using default zoom speed")
            return DEFAULT_ZOOM_STEP
        return zoom_step_for(duration_ms, self.settings.video_fps, self.settings.zoom_max)

    def _encode(self, args: list[str], output_path: Path, label: str) -> MediaAsset:
        self.transcoder.ffmpeg(args, timeout_s=self.settings.timeout_video_s, label=label)
        asset = MediaAsset.from_path(output_path, AssetRole.COMPOSED_VIDEO)
        if asset.size_bytes == 0:
            raise ComposeError(f"{label} produced an empty file")
        return asset

    def compose(
        self,
        image: MediaAsset,
        audio: MediaAsset,
        output_path: str | Path,
    ) -> MediaAsset:
        """
        Encode the video; output duration follows the audio (``-shortest``).

        Raises:
            ComposeError: if both the primary and fallback encodes fail
        """
        output_path = Path(output_path)
        zoom_step = self._probe_zoom_step(audio)
        strategies = [
            Strategy(
                "zoom (slow preset)",
                lambda: self._encode(
                    self.build_primary_args(image, audio, output_path, zoom_step),
                    output_path,
                    "Encode video",
                ),
            ),
            Strategy(
                "static (fast preset)",
                lambda: self._encode(
                    self.build_fallback_args(image, audio, output_path),
                    output_path,
                    "Encode video (fallback)",
                ),
            ),
        ]
        try:
            outcome = run_with_fallbacks(strategies, stage="VIDEO")
        except StrategiesExhausted as e:
            raise ComposeError(f"Failed to create video: {e}") from e

        logger.info(f"[VIDEO] Created with {outcome.strategy} ({format_megabytes(outcome.value.size_bytes)})")
        return outcome.value
