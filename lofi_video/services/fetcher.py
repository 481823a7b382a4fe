"""Remote media download with size, type and sanity checks."""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import httpx

from lofi_video.config import Settings, get_settings
from lofi_video.exceptions import DownloadError
from lofi_video.render.media import AssetRole, MediaAsset, file_size, format_megabytes

logger = logging.getLogger(__name__)

_HTTP_URL_RE = re.compile(r"^https?://.+", re.IGNORECASE)


def is_http_url(value: object) -> bool:
    return isinstance(value, str) and bool(_HTTP_URL_RE.match(value))


@dataclass(frozen=True)
class FetchConstraints:
    """Limits applied to a single download."""

    max_bytes: int
    timeout_s: float
    min_bytes: int = 2048
    accepted_content_types: tuple[str, ...] = ()

    def accepts(self, content_type: str) -> bool:
        if not self.accepted_content_types:
            return True
        content_type = content_type.lower()
        return any(fragment in content_type for fragment in self.accepted_content_types)


def audio_constraints(settings: Settings | None = None) -> FetchConstraints:
    settings = settings or get_settings()
    return FetchConstraints(
        max_bytes=settings.audio_max_download_bytes,
        timeout_s=settings.audio_download_timeout_s,
        min_bytes=settings.min_download_bytes,
        accepted_content_types=tuple(settings.audio_accepted_content_types),
    )


def image_constraints(settings: Settings | None = None) -> FetchConstraints:
    settings = settings or get_settings()
    return FetchConstraints(
        max_bytes=settings.image_max_download_bytes,
        timeout_s=settings.image_download_timeout_s,
        min_bytes=settings.min_download_bytes,
        accepted_content_types=tuple(settings.image_accepted_content_types),
    )


class Fetcher:
    """Downloads one remote resource into a workspace file.

    Never retries; callers decide what a failure means for the job.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        chunk_size: int = 64 * 1024,
    ):
        self._transport = transport
        self._chunk_size = chunk_size

    async def fetch(
        self,
        url: str,
        destination: str | Path,
        constraints: FetchConstraints,
        role: AssetRole = AssetRole.RAW_AUDIO,
    ) -> MediaAsset:
        """
        Download ``url`` to ``destination``.

        Raises:
            DownloadError: bad scheme, HTTP error status, unexpected content
                type, oversized or undersized body, or timeout
        """
        destination = Path(destination)
        if not is_http_url(url):
            raise DownloadError(f"Not an HTTP/HTTPS URL: {url}")

        try:
            await asyncio.wait_for(
                self._download(url, destination, constraints),
                timeout=constraints.timeout_s,
            )
        except TimeoutError as e:
            destination.unlink(missing_ok=True)
            logger.error(f"[DOWNLOAD] Timed out after {constraints.timeout_s:.0f}s: {url}")
            raise DownloadError(f"Timed out after {constraints.timeout_s:.0f}s") from e
        except DownloadError as e:
            destination.unlink(missing_ok=True)
            logger.error(f"[DOWNLOAD] {url}: {e.message}")
            raise
        except httpx.HTTPError as e:
            destination.unlink(missing_ok=True)
            logger.error(f"[DOWNLOAD] {url}: {e}")
            raise DownloadError(f"Request failed: {e}") from e

        size = file_size(destination)
        if size < constraints.min_bytes:
            logger.error(f"[DOWNLOAD] {url}: only {size} bytes (minimum {constraints.min_bytes})")
            raise DownloadError(f"Downloaded file too small ({size} bytes)")

        logger.info(f"[DOWNLOAD] Saved {destination.name} ({format_megabytes(size)})")
        return MediaAsset(path=destination, role=role, size_bytes=size)

    async def _download(self, url: str, destination: Path, constraints: FetchConstraints) -> None:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=constraints.timeout_s,
            follow_redirects=True,
        ) as client:
            async with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise DownloadError(f"Request failed with status code {response.status_code}")

                content_type = response.headers.get("content-type", "")
                if not constraints.accepts(content_type):
                    raise DownloadError(f"Unexpected content-type: {content_type or 'none'}")

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > constraints.max_bytes:
                    raise DownloadError(f"File too large: {format_megabytes(int(declared))}")

                written = 0
                with open(destination, "wb") as f:
                    async for chunk in response.aiter_bytes(self._chunk_size):
                        written += len(chunk)
                        if written > constraints.max_bytes:
                            raise DownloadError(
                                f"File too large: exceeds {format_megabytes(constraints.max_bytes)}"
                            )
                        f.write(chunk)
