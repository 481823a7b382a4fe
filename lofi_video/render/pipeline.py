"""
Job pipeline for lo-fi video creation.

This module orchestrates one job inside its workspace:
1. Download audio tracks and the background image
2. Repair every audio track to the intermediate WAV format
3. Concatenate with silence and normalize loudness
4. Compose the video
5. Render the thumbnail
6. Deliver (object store or local download endpoints)

Stages run strictly in sequence; each blocking ffmpeg call is moved off the
event loop with asyncio.to_thread. Any stage error aborts the job.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from lofi_video.exceptions import DownloadError, RepairError
from lofi_video.render.audio_mixer import AudioMixer
from lofi_video.render.media import AssetRole, MediaAsset, format_kilobytes, format_megabytes
from lofi_video.render.media_repair import MediaRepairer
from lofi_video.render.text_renderer import THUMBNAIL_FILENAME, ThumbnailRenderer
from lofi_video.render.transcoder import Transcoder
from lofi_video.render.video_composer import VIDEO_FILENAME, VideoComposer
from lofi_video.schemas.video import (
    CreateVideoRequest,
    FinalAudioRequest,
    FinalVideoRequest,
    ThumbnailRequest,
)
from lofi_video.services.delivery import AUDIO, THUMBNAIL, VIDEO, DeliveryResult, DeliveryStage
from lofi_video.services.fetcher import Fetcher, audio_constraints, image_constraints
from lofi_video.services.workspace import JobContext

logger = logging.getLogger(__name__)


@dataclass
class VideoJobResult:
    job_id: str
    video: MediaAsset
    thumbnail: MediaAsset
    delivery: DeliveryResult
    created_at: datetime

    @property
    def video_size(self) -> str:
        return format_megabytes(self.video.size_bytes)

    @property
    def thumbnail_size(self) -> str:
        return format_kilobytes(self.thumbnail.size_bytes)


@dataclass
class ArtifactJobResult:
    """Result of the single-artifact jobs (audio-only, thumbnail-only, video-only)."""

    job_id: str
    asset: MediaAsset
    url: str
    durable: bool
    created_at: datetime


class JobPipeline:
    """Runs the stages of a job against one workspace."""

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        transcoder: Transcoder | None = None,
        delivery: DeliveryStage | None = None,
    ):
        self.fetcher = fetcher or Fetcher()
        self.transcoder = transcoder or Transcoder()
        self.delivery = delivery or DeliveryStage()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def download_audio(self, urls: list[str], job: JobContext) -> list[MediaAsset]:
        constraints = audio_constraints()
        assets: list[MediaAsset] = []
        for i, url in enumerate(urls):
            destination = job.workspace / f"audio_{i}.mp3"
            try:
                asset = await self.fetcher.fetch(url, destination, constraints, AssetRole.RAW_AUDIO)
            except DownloadError as e:
                raise DownloadError(
                    f"Audio file {i + 1} failed to download: {e.message}", job_id=job.job_id
                ) from e
            logger.info(f"[DOWNLOAD] Audio file {i + 1}/{len(urls)} downloaded successfully")
            assets.append(asset)
        return assets

    async def download_image(self, url: str, ext: str, job: JobContext) -> MediaAsset:
        destination = job.workspace / f"background.{ext}"
        try:
            asset = await self.fetcher.fetch(
                url, destination, image_constraints(), AssetRole.BACKGROUND_IMAGE
            )
        except DownloadError as e:
            raise DownloadError(
                f"Background image failed to download: {e.message}", job_id=job.job_id
            ) from e
        logger.info(f"[DOWNLOAD] Image downloaded successfully as {ext.upper()}")
        return asset

    async def repair_audio(self, assets: list[MediaAsset], job: JobContext) -> list[MediaAsset]:
        repairer = MediaRepairer(self.transcoder)
        repaired: list[MediaAsset] = []
        for i, asset in enumerate(assets):
            output = job.workspace / f"audio_{i}.wav"
            try:
                repaired.append(await asyncio.to_thread(repairer.repair, asset.path, output))
            except RepairError as e:
                logger.error(f"[REPAIR] {asset.path.name}: {e.message}")
                raise RepairError(
                    f"Audio file {i + 1} is invalid/corrupt and could not be repaired: {e.message}",
                    job_id=job.job_id,
                ) from e
        return repaired

    async def build_soundtrack(self, urls: list[str], job: JobContext) -> MediaAsset:
        """Download, repair, concatenate and normalize the audio tracks."""
        downloaded = await self.download_audio(urls, job)
        repaired = await self.repair_audio(downloaded, job)
        mixer = AudioMixer(job.workspace, self.transcoder)
        return await asyncio.to_thread(mixer.concatenate_and_normalize, repaired)

    async def compose_video(self, image: MediaAsset, audio: MediaAsset, job: JobContext) -> MediaAsset:
        composer = VideoComposer(self.transcoder)
        return await asyncio.to_thread(composer.compose, image, audio, job.workspace / VIDEO_FILENAME)

    async def render_thumbnail(
        self, image: MediaAsset, vibe: str, subtitle: str, job: JobContext
    ) -> MediaAsset:
        renderer = ThumbnailRenderer(self.transcoder)
        return await asyncio.to_thread(
            renderer.render_thumbnail, image, vibe, subtitle, job.workspace / THUMBNAIL_FILENAME
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_video(
        self, request: CreateVideoRequest, job: JobContext, base_url: str
    ) -> VideoJobResult:
        """Full job: audio tracks + image + captions -> video and thumbnail."""
        logger.info(f"[JOB] Starting video creation job {job.job_id} ({len(request.files)} audio files)")

        downloaded = await self.download_audio(request.files, job)
        image = await self.download_image(request.image_url, request.image_ext, job)
        repaired = await self.repair_audio(downloaded, job)

        mixer = AudioMixer(job.workspace, self.transcoder)
        soundtrack = await asyncio.to_thread(mixer.concatenate_and_normalize, repaired)

        video = await self.compose_video(image, soundtrack, job)
        # Thumbnail failure aborts the job: there is no video-only success response
        thumbnail = await self.render_thumbnail(image, request.vibe, request.subtitle, job)

        delivery = await asyncio.to_thread(
            self.delivery.deliver, video, thumbnail, job.job_id, base_url
        )
        logger.info(
            f"[JOB] {job.job_id} done: video {format_megabytes(video.size_bytes)}, "
            f"thumbnail {format_kilobytes(thumbnail.size_bytes)}"
        )
        return VideoJobResult(
            job_id=job.job_id,
            video=video,
            thumbnail=thumbnail,
            delivery=delivery,
            created_at=job.created_at,
        )

    async def create_audio(
        self, request: FinalAudioRequest, job: JobContext, base_url: str
    ) -> ArtifactJobResult:
        """Audio-only job: the normalized soundtrack without a video."""
        logger.info(f"[JOB] Starting audio job {job.job_id} ({len(request.files)} files)")
        soundtrack = await self.build_soundtrack(request.files, job)
        url = await asyncio.to_thread(
            self.delivery.deliver_artifact, soundtrack, AUDIO, job.job_id, base_url
        )
        return ArtifactJobResult(
            job_id=job.job_id,
            asset=soundtrack,
            url=url,
            durable=self.delivery.durable,
            created_at=job.created_at,
        )

    async def create_thumbnail(
        self, request: ThumbnailRequest, job: JobContext, base_url: str
    ) -> ArtifactJobResult:
        """Thumbnail-only job."""
        logger.info(f"[JOB] Starting thumbnail job {job.job_id}")
        image = await self.download_image(request.image_url, request.image_ext, job)
        thumbnail = await self.render_thumbnail(image, request.vibe, request.subtitle, job)
        url = await asyncio.to_thread(
            self.delivery.deliver_artifact, thumbnail, THUMBNAIL, job.job_id, base_url
        )
        return ArtifactJobResult(
            job_id=job.job_id,
            asset=thumbnail,
            url=url,
            durable=self.delivery.durable,
            created_at=job.created_at,
        )

    async def create_video_from_audio(
        self, request: FinalVideoRequest, job: JobContext, base_url: str
    ) -> ArtifactJobResult:
        """Video-only job from one already mixed audio file."""
        logger.info(f"[JOB] Starting final-video job {job.job_id}")
        audio_url_path = request.audio_url.split("?", 1)[0]
        audio_ext = audio_url_path.rsplit(".", 1)[-1].lower() if "." in audio_url_path else "m4a"
        if not audio_ext.isalnum() or len(audio_ext) > 5:
            audio_ext = "m4a"
        try:
            audio = await self.fetcher.fetch(
                request.audio_url,
                job.workspace / f"audio.{audio_ext}",
                audio_constraints(),
                AssetRole.NORMALIZED_AUDIO,
            )
        except DownloadError as e:
            raise DownloadError(f"Audio file failed to download: {e.message}", job_id=job.job_id) from e
        image = await self.download_image(request.image_url, request.image_ext, job)
        video = await self.compose_video(image, audio, job)
        url = await asyncio.to_thread(
            self.delivery.deliver_artifact, video, VIDEO, job.job_id, base_url
        )
        return ArtifactJobResult(
            job_id=job.job_id,
            asset=video,
            url=url,
            durable=self.delivery.durable,
            created_at=job.created_at,
        )
