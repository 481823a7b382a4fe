"""Delivery of finished artifacts.

With an object store configured, artifacts are uploaded under a key
namespaced by job id and timestamp and the durable URLs are returned.
Otherwise the URLs point at this process's download endpoints, which stay
valid only until the next job reclaims the workspace.
"""

import logging
import time
from dataclasses import dataclass

from lofi_video.exceptions import DeliveryError
from lofi_video.render.media import MediaAsset
from lofi_video.services.storage_service import ObjectStore

logger = logging.getLogger(__name__)

DOWNLOAD_PREFIX = "/api/ffmpeg/download"


@dataclass(frozen=True)
class ArtifactKind:
    name: str
    key_prefix: str
    stem: str
    extension: str
    content_type: str


VIDEO = ArtifactKind("video", "videos", "final_video", ".mp4", "video/mp4")
THUMBNAIL = ArtifactKind("thumbnail", "videos", "thumbnail", ".jpg", "image/jpeg")
AUDIO = ArtifactKind("audio", "audio", "final_audio", ".m4a", "audio/mp4")


@dataclass
class DeliveryResult:
    """Either two durable URLs or two transient local URLs, never both."""

    durable: bool
    video_url: str
    thumbnail_url: str


def local_download_url(base_url: str, kind: ArtifactKind, job_id: str) -> str:
    return f"{base_url.rstrip('/')}{DOWNLOAD_PREFIX}/{kind.name}/{job_id}"


def object_key(kind: ArtifactKind, job_id: str, timestamp_ms: int) -> str:
    return f"{kind.key_prefix}/{job_id}/{kind.stem}_{timestamp_ms}{kind.extension}"


class DeliveryStage:
    """Hands artifacts to the object store or to the local download endpoints."""

    def __init__(self, object_store: ObjectStore | None = None):
        self.object_store = object_store

    @property
    def durable(self) -> bool:
        return self.object_store is not None

    def deliver_artifact(
        self,
        asset: MediaAsset,
        kind: ArtifactKind,
        job_id: str,
        base_url: str,
        timestamp_ms: int | None = None,
    ) -> str:
        """Deliver one artifact and return its URL.

        Raises:
            DeliveryError: if the upload fails
        """
        if self.object_store is None:
            return local_download_url(base_url, kind, job_id)

        key = object_key(kind, job_id, timestamp_ms or int(time.time() * 1000))
        try:
            return self.object_store.put(str(asset.path), key, kind.content_type)
        except Exception as e:
            logger.error(f"[DELIVERY] Upload of {key} failed: {e}")
            raise DeliveryError(f"Upload failed for {kind.name}: {e}", job_id=job_id) from e

    def deliver(
        self,
        video: MediaAsset,
        thumbnail: MediaAsset,
        job_id: str,
        base_url: str,
    ) -> DeliveryResult:
        timestamp_ms = int(time.time() * 1000)
        if self.durable:
            logger.info(f"[DELIVERY] Uploading video and thumbnail for job {job_id}")
        video_url = self.deliver_artifact(video, VIDEO, job_id, base_url, timestamp_ms)
        thumbnail_url = self.deliver_artifact(thumbnail, THUMBNAIL, job_id, base_url, timestamp_ms)
        if not self.durable:
            logger.info(f"[DELIVERY] Object store not configured, serving job {job_id} locally")
        return DeliveryResult(durable=self.durable, video_url=video_url, thumbnail_url=thumbnail_url)
