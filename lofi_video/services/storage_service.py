"""Durable object storage for finished artifacts.

Only used when a bucket is configured; otherwise artifacts are served
straight from the job workspace by the download endpoints.
"""

import logging
from typing import Protocol

from lofi_video.config import Settings, get_settings

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """put(local_path, key, content_type) -> durable URL"""

    def put(self, local_path: str, key: str, content_type: str) -> str: ...


class GCSObjectStore:
    """Google Cloud Storage bucket with public object URLs."""

    def __init__(self, bucket_name: str, project_id: str = "") -> None:
        from google.cloud import storage

        self._storage = storage
        self.bucket_name = bucket_name
        self.project_id = project_id
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def client(self):
        if self._client is None:
            if self.project_id:
                self._client = self._storage.Client(project=self.project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self.bucket_name)
        return self._bucket

    def get_public_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}"

    def put(self, local_path: str, key: str, content_type: str) -> str:
        """Upload a local file and return its public URL."""
        blob = self.bucket.blob(key)
        blob.upload_from_filename(local_path, content_type=content_type)
        url = self.get_public_url(key)
        logger.info(f"[GCS] Uploaded {key} -> {url}")
        return url


def get_object_store(settings: Settings | None = None) -> ObjectStore | None:
    """Return the configured object store, or None for local serving."""
    settings = settings or get_settings()
    if not settings.object_store_configured:
        return None
    return GCSObjectStore(settings.gcs_bucket_name, settings.gcs_project_id)
