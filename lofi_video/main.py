import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lofi_video.api import ffmpeg
from lofi_video.api.deps import get_workspace_manager
from lofi_video.config import get_settings
from lofi_video.exceptions import LofiVideoError

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    workspaces = get_workspace_manager()
    workspaces.ensure_root()
    logger.info(f"[STARTUP] Scratch area: {workspaces.root}")
    if not settings.object_store_configured:
        logger.info("[STARTUP] Object storage not configured, artifacts are served locally")
    yield
    # Shutdown: workspaces are left for the next job to reclaim
    logger.info("[SHUTDOWN] Server shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


@app.exception_handler(LofiVideoError)
async def lofi_video_exception_handler(request: Request, exc: LofiVideoError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[{exc.code}] {request.url.path}: {exc.message} (retryable={exc.retryable})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": message, "jobId": "unknown"},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "details": str(exc.detail), "jobId": "unknown"},
    )


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc), "jobId": "unknown"},
    )


# Routers
app.include_router(ffmpeg.router, prefix="/api/ffmpeg", tags=["ffmpeg"])


@app.get("/")
async def index() -> dict:
    return {
        "status": "online",
        "service": settings.app_name,
        "version": settings.app_version,
        "endpoints": {
            "createVideo": "POST /api/ffmpeg/create-video",
            "finalAudio": "POST /api/ffmpeg/final-audio",
            "thumbnail": "POST /api/ffmpeg/thumbnail-creator",
            "finalVideo": "POST /api/ffmpeg/final-video",
            "storageInfo": "GET /api/ffmpeg/storage-info",
            "apiDocs": "GET /api/ffmpeg/create-video",
        },
    }


@app.get("/health")
async def health_check() -> dict:
    return {
        "status": "healthy",
        "version": settings.app_version,
        "git_hash": settings.git_hash,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
    }
