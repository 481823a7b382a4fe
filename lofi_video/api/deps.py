from functools import lru_cache

from fastapi import Request

from lofi_video.config import get_settings
from lofi_video.render.pipeline import JobPipeline
from lofi_video.render.transcoder import Transcoder
from lofi_video.services.delivery import DeliveryStage
from lofi_video.services.fetcher import Fetcher
from lofi_video.services.storage_service import get_object_store
from lofi_video.services.workspace import WorkspaceManager


@lru_cache
def get_workspace_manager() -> WorkspaceManager:
    """Process-wide workspace manager; its lock serializes every job."""
    settings = get_settings()
    return WorkspaceManager(
        settings.scratch_root,
        policy=settings.workspace_reclaim_policy,
        max_age_s=settings.workspace_max_age_s,
    )


@lru_cache
def get_delivery_stage() -> DeliveryStage:
    return DeliveryStage(get_object_store())


def get_pipeline() -> JobPipeline:
    return JobPipeline(
        fetcher=Fetcher(),
        transcoder=Transcoder(),
        delivery=get_delivery_stage(),
    )


def get_base_url(request: Request) -> str:
    """Base URL for local download links."""
    configured = get_settings().public_base_url
    if configured:
        return configured.rstrip("/")
    return str(request.base_url).rstrip("/")
