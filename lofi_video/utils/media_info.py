"""Media file information utilities using FFprobe."""

import json

from lofi_video.config import get_settings
from lofi_video.exceptions import TranscoderError
from lofi_video.render.transcoder import Transcoder


def _run_ffprobe(file_path: str, *args: str, transcoder: Transcoder | None = None) -> dict:
    """Run ffprobe and return parsed JSON."""
    transcoder = transcoder or Transcoder()
    result = transcoder.ffprobe(
        ["-print_format", "json", *args, str(file_path)],
        timeout_s=get_settings().timeout_probe_s,
        label="Probe media",
    )

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise TranscoderError(f"Failed to parse ffprobe output: {e}")


def get_media_duration(file_path: str, transcoder: Transcoder | None = None) -> int:
    """
    Get media file duration in milliseconds.

    Args:
        file_path: Path to media file
        transcoder: Optional tool wrapper (defaults to one built from settings)

    Returns:
        Duration in milliseconds

    Raises:
        TranscoderError: If ffprobe fails or duration not found
    """
    data = _run_ffprobe(file_path, "-show_format", transcoder=transcoder)
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise TranscoderError(f"Duration not found in: {file_path}")

    return int(float(format_info["duration"]) * 1000)

