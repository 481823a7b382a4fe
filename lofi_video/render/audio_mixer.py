"""
Audio concatenation and loudness normalization using FFmpeg.

This module handles:
- Building the ordered play-list (track, silence, track, ...)
- Generating the inter-track silence filler
- Re-encoding concat of the repaired WAV tracks
- Loudness normalization with cascading fallbacks:
  two-pass loudnorm -> dynaudnorm -> flat gain
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from lofi_video.config import get_settings
from lofi_video.exceptions import LofiVideoError, MergeError, NormalizeError, TranscoderError
from lofi_video.render.fallback import StrategiesExhausted, Strategy, run_with_fallbacks
from lofi_video.render.media import AssetRole, MediaAsset, format_megabytes
from lofi_video.render.media_repair import pcm_output_args
from lofi_video.render.transcoder import Transcoder

logger = logging.getLogger(__name__)

SILENCE_FILENAME = "silence.wav"
PLAYLIST_FILENAME = "list.txt"
MERGED_FILENAME = "merged.wav"
NORMALIZED_FILENAME = "final_audio.m4a"

# Keys printed by loudnorm's first pass that the second pass consumes
_LOUDNORM_STATS_KEYS = ("input_i", "input_tp", "input_lra", "input_thresh", "target_offset")
_JSON_BLOCK_RE = re.compile(r"\{[^{}]*\}", re.DOTALL)


@dataclass(frozen=True)
class PlaylistEntry:
    """One line of the concat play-list."""

    path: Path
    is_silence: bool = False


def build_playlist(tracks: list[Path], silence: Path) -> list[PlaylistEntry]:
    """Interleave ``silence`` between every pair of adjacent tracks.

    N tracks produce N track entries and N-1 silence entries, with no silence
    before the first or after the last track.
    """
    entries: list[PlaylistEntry] = []
    for i, track in enumerate(tracks):
        if i > 0:
            entries.append(PlaylistEntry(path=Path(silence), is_silence=True))
        entries.append(PlaylistEntry(path=Path(track)))
    return entries


def escape_concat_path(path: str | Path) -> str:
    """Quote a path for the concat demuxer (single quotes closed and escaped)."""
    return "'" + str(path).replace("'", "'\\''") + "'"


def render_playlist(entries: list[PlaylistEntry]) -> str:
    return "\n".join(f"file {escape_concat_path(entry.path)}" for entry in entries)


def parse_loudnorm_stats(stderr: str) -> dict[str, str]:
    """Extract the JSON block loudnorm prints at the end of a measuring pass."""
    blocks = _JSON_BLOCK_RE.findall(stderr)
    for block in reversed(blocks):
        try:
            data = json.loads(block)
        except json.JSONDecodeError:
            continue
        if all(key in data for key in _LOUDNORM_STATS_KEYS):
            return data
    raise NormalizeError("loudnorm measurement produced no statistics")


class AudioMixer:
    """
    FFmpeg-based play-list concatenation and loudness normalization.

    All intermediate files are written to ``output_dir`` (the job workspace).
    """

    def __init__(self, output_dir: str | Path, transcoder: Transcoder | None = None):
        self.output_dir = Path(output_dir)
        self.transcoder = transcoder or Transcoder()
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Concatenation
    # ------------------------------------------------------------------

    def generate_silence(self, output_path: str | Path | None = None) -> MediaAsset:
        """Generate the silence filler in the intermediate PCM format."""
        output_path = Path(output_path or self.output_dir / SILENCE_FILENAME)
        layout = "stereo" if self.settings.audio_channels == 2 else "mono"
        self.transcoder.ffmpeg(
            [
                "-f", "lavfi",
                "-i", f"anullsrc=r={self.settings.audio_sample_rate}:cl={layout}",
                "-t", str(self.settings.silence_duration_s),
                *pcm_output_args(self.settings.audio_sample_rate, self.settings.audio_channels),
                str(output_path),
            ],
            timeout_s=self.settings.timeout_silence_s,
            label="Create silence",
        )
        return MediaAsset.from_path(output_path, AssetRole.SILENCE_FILLER)

    def write_playlist(self, entries: list[PlaylistEntry], list_path: str | Path | None = None) -> Path:
        list_path = Path(list_path or self.output_dir / PLAYLIST_FILENAME)
        list_path.write_text(render_playlist(entries), encoding="utf-8")
        return list_path

    def concatenate(self, tracks: list[MediaAsset]) -> MediaAsset:
        """
        Merge repaired tracks into one WAV with silence between them.

        Raises:
            MergeError: if there are no tracks, the silence or concat
                invocation fails, or the merged file is near-empty
        """
        if not tracks:
            raise MergeError("No audio tracks to merge")

        merged_path = self.output_dir / MERGED_FILENAME
        try:
            silence = self.generate_silence()
            entries = build_playlist([t.path for t in tracks], silence.path)
            list_path = self.write_playlist(entries)
            logger.info(
                f"[MERGE] Play-list with {len(tracks)} tracks and "
                f"{sum(e.is_silence for e in entries)} silences"
            )
            # Re-encode rather than stream-copy so segment boundaries always line up
            self.transcoder.ffmpeg(
                [
                    "-f", "concat",
                    "-safe", "0",
                    "-i", str(list_path),
                    *pcm_output_args(self.settings.audio_sample_rate, self.settings.audio_channels),
                    str(merged_path),
                ],
                timeout_s=self.settings.timeout_merge_s,
                label="Merge audio",
            )
        except (TranscoderError, OSError) as e:
            logger.error(f"[MERGE] {e}")
            raise MergeError("Failed to merge audio files") from e

        merged = MediaAsset.from_path(merged_path, AssetRole.MERGED_AUDIO)
        if not merged.is_viable(self.settings.min_repaired_audio_bytes):
            raise MergeError(f"Merged audio is too small ({merged.size_bytes} bytes)")

        logger.info(f"[MERGE] Created {merged_path.name} ({format_megabytes(merged.size_bytes)})")
        return merged

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def _loudnorm_params(self) -> str:
        s = self.settings
        return f"I={s.loudness_integrated_lufs}:TP={s.loudness_true_peak_dbtp}:LRA={s.loudness_range_lu}"

    def _aac_output_args(self, output_path: Path) -> list[str]:
        return [
            "-c:a", "aac",
            "-b:a", self.settings.output_audio_bitrate,
            "-ar", str(self.settings.audio_sample_rate),
            str(output_path),
        ]

    def measure_loudness(self, audio_path: str | Path) -> dict[str, str]:
        """Run loudnorm in measuring mode and return its statistics."""
        result = self.transcoder.ffmpeg(
            [
                "-nostats",
                "-i", str(audio_path),
                "-af", f"loudnorm={self._loudnorm_params()}:print_format=json",
                "-f", "null",
                "-",
            ],
            timeout_s=self.settings.timeout_loudnorm_s,
            label="Measure loudness",
            loglevel="info",
        )
        return parse_loudnorm_stats(result.stderr)

    def _encode_filtered(
        self,
        merged: MediaAsset,
        output_path: Path,
        audio_filter: str,
        timeout_s: float,
        label: str,
    ) -> MediaAsset:
        self.transcoder.ffmpeg(
            ["-i", str(merged.path), "-af", audio_filter, *self._aac_output_args(output_path)],
            timeout_s=timeout_s,
            label=label,
        )
        asset = MediaAsset.from_path(output_path, AssetRole.NORMALIZED_AUDIO)
        if asset.size_bytes == 0:
            raise NormalizeError(f"{label} produced an empty file")
        return asset

    def _two_pass_loudnorm(self, merged: MediaAsset, output_path: Path) -> MediaAsset:
        stats = self.measure_loudness(merged.path)
        audio_filter = (
            f"loudnorm={self._loudnorm_params()}"
            f":measured_I={stats['input_i']}"
            f":measured_TP={stats['input_tp']}"
            f":measured_LRA={stats['input_lra']}"
            f":measured_thresh={stats['input_thresh']}"
            f":offset={stats['target_offset']}"
            ":linear=true:print_format=summary"
        )
        return self._encode_filtered(
            merged, output_path, audio_filter, self.settings.timeout_loudnorm_s, "Normalize (loudnorm)"
        )

    def _dynaudnorm(self, merged: MediaAsset, output_path: Path) -> MediaAsset:
        return self._encode_filtered(
            merged,
            output_path,
            self.settings.dynaudnorm_filter,
            self.settings.timeout_dynaudnorm_s,
            "Normalize (dynaudnorm)",
        )

    def _flat_gain(self, merged: MediaAsset, output_path: Path) -> MediaAsset:
        return self._encode_filtered(
            merged,
            output_path,
            f"volume={self.settings.fallback_gain}",
            self.settings.timeout_gain_s,
            "Normalize (volume)",
        )

    def normalize(self, merged: MediaAsset, output_path: str | Path | None = None) -> MediaAsset:
        """
        Normalize loudness, falling back to simpler filters on failure.

        Raises:
            NormalizeError: if loudnorm, dynaudnorm and flat gain all fail
        """
        output_path = Path(output_path or self.output_dir / NORMALIZED_FILENAME)
        strategies = [
            Strategy("loudnorm", lambda: self._two_pass_loudnorm(merged, output_path)),
            Strategy("dynaudnorm", lambda: self._dynaudnorm(merged, output_path)),
            Strategy("volume", lambda: self._flat_gain(merged, output_path)),
        ]
        try:
            outcome = run_with_fallbacks(
                strategies, stage="NORMALIZE", recoverable=(LofiVideoError, OSError, KeyError)
            )
        except StrategiesExhausted as e:
            raise NormalizeError(f"Failed to normalize audio: {e}") from e

        logger.info(
            f"[NORMALIZE] {outcome.strategy} OK ({format_megabytes(outcome.value.size_bytes)})"
        )
        return outcome.value

    def concatenate_and_normalize(self, tracks: list[MediaAsset]) -> MediaAsset:
        merged = self.concatenate(tracks)
        return self.normalize(merged)
