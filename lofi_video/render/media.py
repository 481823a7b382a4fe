"""Media asset bookkeeping shared by the render stages."""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class AssetRole(Enum):
    """Semantic role of a file inside a job workspace."""

    RAW_AUDIO = "raw-audio"
    REPAIRED_AUDIO = "repaired-audio"
    SILENCE_FILLER = "silence-filler"
    MERGED_AUDIO = "merged-audio"
    NORMALIZED_AUDIO = "normalized-audio"
    BACKGROUND_IMAGE = "background-image"
    COMPOSED_VIDEO = "composed-video"
    THUMBNAIL_IMAGE = "thumbnail-image"


@dataclass(frozen=True)
class MediaAsset:
    """A file on disk with a role and a size."""

    path: Path
    role: AssetRole
    size_bytes: int

    @classmethod
    def from_path(cls, path: str | Path, role: AssetRole) -> "MediaAsset":
        """Stat a file and wrap it. Missing files count as zero bytes."""
        path = Path(path)
        size = path.stat().st_size if path.exists() else 0
        return cls(path=path, role=role, size_bytes=size)

    def is_viable(self, min_bytes: int) -> bool:
        return self.size_bytes >= min_bytes


def file_size(path: str | Path) -> int:
    """Size of a file in bytes, 0 when it does not exist."""
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def format_megabytes(size_bytes: int) -> str:
    return f"{size_bytes / 1024 / 1024:.2f} MB"


def format_kilobytes(size_bytes: int) -> str:
    return f"{size_bytes / 1024:.2f} KB"
