"""Thumbnail rendering with burned-in captions.

Features:
- Same fill/crop as the video so the thumbnail matches the first frame
- Two centered caption lines (vibe above center, subtitle below)
- Light text with a dark border for legibility on any background
- Fallbacks: bundled font -> platform default font -> no text
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from lofi_video.config import get_settings
from lofi_video.exceptions import ThumbnailError
from lofi_video.render.fallback import StrategiesExhausted, Strategy, run_with_fallbacks
from lofi_video.render.media import AssetRole, MediaAsset, format_kilobytes
from lofi_video.render.transcoder import Transcoder
from lofi_video.render.video_composer import fill_frame_filter

logger = logging.getLogger(__name__)

THUMBNAIL_FILENAME = "thumbnail.jpg"

# Order matters: backslashes first so later escapes are not doubled
_DRAWTEXT_ESCAPES = (
    ("\\", "\\\\"),
    (":", "\\:"),
    ("'", "'\\\\\\''"),
    ("[", "\\["),
    ("]", "\\]"),
    (",", "\\,"),
    (";", "\\;"),
)


def escape_drawtext(text: str) -> str:
    """Escape text for a single-quoted drawtext option value."""
    for char, replacement in _DRAWTEXT_ESCAPES:
        text = text.replace(char, replacement)
    return text


@dataclass
class TextStyle:
    """Text styling for one caption line."""

    font_size: int
    y_offset: int  # Relative to the vertical center; negative = above
    font_color: str = "white"
    outline_color: str = "black"
    outline_width: int = 2


class ThumbnailRenderer:
    """Renders the JPEG thumbnail for a job."""

    def __init__(self, transcoder: Transcoder | None = None):
        self.settings = get_settings()
        self.transcoder = transcoder or Transcoder()
        self.vibe_style = TextStyle(
            font_size=self.settings.thumbnail_vibe_font_size,
            y_offset=-80,
            outline_width=3,
        )
        self.subtitle_style = TextStyle(
            font_size=self.settings.thumbnail_subtitle_font_size,
            y_offset=40,
            outline_width=2,
        )

    def build_drawtext(self, text: str, style: TextStyle, font_file: Optional[str] = None) -> str:
        """Build one centered drawtext filter."""
        y_expr = f"(h-text_h)/2{style.y_offset:+d}"
        params = []
        if font_file:
            params.append(f"fontfile='{escape_drawtext(font_file)}'")
        params.extend([
            f"text='{escape_drawtext(text)}'",
            "expansion=none",
            f"fontsize={style.font_size}",
            f"fontcolor={style.font_color}",
            "x=(w-text_w)/2",
            f"y={y_expr}",
            f"borderw={style.outline_width}",
            f"bordercolor={style.outline_color}",
        ])
        return "drawtext=" + ":".join(params)

    def build_filter(
        self,
        vibe: Optional[str],
        subtitle: Optional[str],
        font_file: Optional[str] = None,
        with_text: bool = True,
    ) -> str:
        parts = [fill_frame_filter(self.settings.video_width, self.settings.video_height)]
        if with_text:
            if vibe:
                parts.append(self.build_drawtext(vibe, self.vibe_style, font_file))
            if subtitle:
                parts.append(self.build_drawtext(subtitle, self.subtitle_style, font_file))
        return ",".join(parts)

    def _render(self, image: MediaAsset, video_filter: str, output_path: Path, label: str) -> MediaAsset:
        self.transcoder.ffmpeg(
            [
                "-i", str(image.path),
                "-vf", video_filter,
                "-frames:v", "1",
                "-q:v", str(self.settings.thumbnail_jpeg_quality),
                str(output_path),
            ],
            timeout_s=self.settings.timeout_thumbnail_s,
            label=label,
        )
        asset = MediaAsset.from_path(output_path, AssetRole.THUMBNAIL_IMAGE)
        if asset.size_bytes == 0:
            raise ThumbnailError(f"{label} produced an empty file")
        return asset

    def render_thumbnail(
        self,
        image: MediaAsset,
        vibe: str,
        subtitle: str,
        output_path: str | Path,
    ) -> MediaAsset:
        """
        Render the thumbnail, degrading the text overlay on failure.

        Raises:
            ThumbnailError: if all three tiers fail
        """
        output_path = Path(output_path)
        font_file = self.settings.thumbnail_font_file
        strategies = [
            Strategy(
                "bundled font",
                lambda: self._render(
                    image, self.build_filter(vibe, subtitle, font_file), output_path, "Thumbnail"
                ),
            ),
            Strategy(
                "default font",
                lambda: self._render(
                    image, self.build_filter(vibe, subtitle), output_path, "Thumbnail (default font)"
                ),
            ),
            Strategy(
                "no text",
                lambda: self._render(
                    image,
                    self.build_filter(vibe, subtitle, with_text=False),
                    output_path,
                    "Thumbnail (no text)",
                ),
            ),
        ]
        try:
            outcome = run_with_fallbacks(strategies, stage="THUMBNAIL")
        except StrategiesExhausted as e:
            raise ThumbnailError(f"Failed to create thumbnail: {e}") from e

        logger.info(f"[THUMBNAIL] Created with {outcome.strategy} ({format_kilobytes(outcome.value.size_bytes)})")
        return outcome.value
