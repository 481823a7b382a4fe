"""
Audio repair stage.

Third-party MP3s are not trusted to be well formed. Each one is decoded
with error concealment enabled and re-encoded to 16-bit PCM WAV at a fixed
sample rate and channel layout, so the concat step only ever sees uniform,
uncompressed input.
"""

import logging
from pathlib import Path

from lofi_video.config import get_settings
from lofi_video.exceptions import RepairError, TranscoderError
from lofi_video.render.media import AssetRole, MediaAsset, file_size
from lofi_video.render.transcoder import Transcoder

logger = logging.getLogger(__name__)


def pcm_output_args(sample_rate: int, channels: int) -> list[str]:
    """Encoder flags for the intermediate PCM format."""
    return ["-acodec", "pcm_s16le", "-ar", str(sample_rate), "-ac", str(channels)]


class MediaRepairer:
    """Re-decodes untrusted audio into the intermediate WAV format."""

    def __init__(self, transcoder: Transcoder | None = None):
        self.settings = get_settings()
        self.transcoder = transcoder or Transcoder()

    def repair(self, audio_path: str | Path, output_path: str | Path) -> MediaAsset:
        """
        Repair one audio file.

        Args:
            audio_path: Downloaded source file (any codec/container)
            output_path: Destination WAV path

        Returns:
            The repaired asset

        Raises:
            RepairError: input too small, decode failed, or output near-empty
        """
        audio_path = Path(audio_path)
        output_path = Path(output_path)

        input_size = file_size(audio_path)
        if input_size < self.settings.min_download_bytes:
            raise RepairError(f"Input too small ({input_size} bytes): {audio_path.name}")

        try:
            self.transcoder.ffmpeg(
                [
                    "-err_detect", "ignore_err",
                    "-i", str(audio_path),
                    "-vn",
                    *pcm_output_args(self.settings.audio_sample_rate, self.settings.audio_channels),
                    str(output_path),
                ],
                timeout_s=self.settings.timeout_repair_s,
                label=f"Repair {audio_path.name}",
            )
        except TranscoderError as e:
            raise RepairError(f"Could not decode {audio_path.name}: {e.message}") from e

        asset = MediaAsset.from_path(output_path, AssetRole.REPAIRED_AUDIO)
        if not asset.is_viable(self.settings.min_repaired_audio_bytes):
            raise RepairError(f"Repaired WAV too small ({asset.size_bytes} bytes): {output_path.name}")

        logger.info(f"[REPAIR] {audio_path.name} -> {output_path.name} OK")
        return asset
