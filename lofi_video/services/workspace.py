"""Per-job scratch workspaces.

Each job gets ``<scratch_root>/<job_id>/``. Nothing is cleaned up when a job
finishes: outputs stay downloadable until the next job starts and calls
``reclaim_all``. Jobs are serialized through ``job_lock`` so that reclamation
can never remove files an in-flight job is still using.
"""

import asyncio
import logging
import shutil
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from lofi_video.exceptions import ArtifactNotFoundError
from lofi_video.render.media import format_megabytes

logger = logging.getLogger(__name__)

ReclaimPolicy = Literal["on_entry", "max_age"]


@dataclass
class ReclaimReport:
    removed_dirs: int = 0
    freed_bytes: int = 0


@dataclass
class JobContext:
    """One request's identity and scratch directory."""

    job_id: str
    workspace: Path
    created_at: datetime


@dataclass
class StorageInfo:
    root: Path
    total_bytes: int
    active_dirs: int


def directory_size(path: Path) -> int:
    total = 0
    for entry in path.rglob("*"):
        try:
            if entry.is_file():
                total += entry.stat().st_size
        except OSError:
            continue
    return total


def is_job_id(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


class WorkspaceManager:
    """Allocates and reclaims job scratch directories."""

    def __init__(
        self,
        root: str | Path,
        policy: ReclaimPolicy = "on_entry",
        max_age_s: int = 3600,
    ):
        self.root = Path(root)
        self.policy = policy
        self.max_age_s = max_age_s
        self.job_lock = asyncio.Lock()

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def _workspace_dirs(self) -> list[Path]:
        if not self.root.exists():
            return []
        return [p for p in self.root.iterdir() if p.is_dir()]

    def _is_expired(self, path: Path, now: float) -> bool:
        if self.policy == "on_entry":
            return True
        try:
            return now - path.stat().st_mtime >= self.max_age_s
        except OSError:
            return True

    def reclaim_all(self) -> ReclaimReport:
        """Delete workspaces according to the reclamation policy.

        With the default ``on_entry`` policy every workspace is removed
        regardless of age or owner.
        """
        self.ensure_root()
        report = ReclaimReport()
        now = time.time()

        for path in self._workspace_dirs():
            if not self._is_expired(path, now):
                continue
            size = directory_size(path)
            try:
                shutil.rmtree(path)
            except OSError as e:
                logger.error(f"[CLEANUP] Failed to remove {path.name}: {e}")
                continue
            report.removed_dirs += 1
            report.freed_bytes += size
            logger.info(f"[CLEANUP] Removed workspace: {path.name}")

        if report.removed_dirs:
            logger.info(
                f"[CLEANUP] Cleaned {report.removed_dirs} dirs, freed {format_megabytes(report.freed_bytes)}"
            )
        else:
            logger.info("[CLEANUP] Scratch area is already empty")
        return report

    def allocate(self, job_id: str) -> Path:
        if not is_job_id(job_id):
            raise ValueError(f"Invalid job id: {job_id}")
        path = self.ensure_root() / job_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def start_job(self) -> JobContext:
        """Allocate a workspace for a new job with a fresh UUID."""
        job_id = str(uuid.uuid4())
        return JobContext(
            job_id=job_id,
            workspace=self.allocate(job_id),
            created_at=datetime.now(timezone.utc),
        )

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[ReclaimReport]:
        """Hold the job lock and reclaim the scratch area before yielding."""
        async with self.job_lock:
            report = await asyncio.to_thread(self.reclaim_all)
            yield report

    def path_for(self, job_id: str) -> Path:
        return self.root / job_id

    def resolve(self, job_id: str, filename: str, kind: str = "file") -> Path:
        """Locate an artifact for the download endpoints.

        Raises:
            ArtifactNotFoundError: unknown/invalid job id or missing file
        """
        if not is_job_id(job_id):
            raise ArtifactNotFoundError(kind, job_id=job_id)
        path = self.root / job_id / filename
        if not path.is_file():
            raise ArtifactNotFoundError(kind, job_id=job_id)
        return path

    def storage_info(self) -> StorageInfo:
        dirs = self._workspace_dirs()
        return StorageInfo(
            root=self.root,
            total_bytes=sum(directory_size(d) for d in dirs),
            active_dirs=len(dirs),
        )
