"""
Tests for the /api/ffmpeg endpoints.

The pipeline runs for real against FakeTranscoder and an httpx.MockTransport
serving the remote media, so every stage and the delivery step are exercised
without ffmpeg or network access.

Run with: pytest tests/test_ffmpeg_api.py -v
"""

import re
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeTranscoder, filter_has
from lofi_video.api.deps import get_base_url, get_pipeline, get_workspace_manager
from lofi_video.main import app
from lofi_video.render.pipeline import JobPipeline
from lofi_video.services.delivery import DeliveryStage
from lofi_video.services.fetcher import Fetcher
from lofi_video.services.workspace import WorkspaceManager

MP3_BODY = b"\xff\xfb\x90\x64" * 2048
PNG_BODY = b"\x89PNG\r\n\x1a\n" * 1024
SIZE_RE = re.compile(r"^\d+(\.\d+)? (MB|KB)$")


def _payload(**overrides):
    payload = {
        "files": ["https://cdn.example.com/track1.mp3", "https://cdn.example.com/track2.mp3"],
        "imageUrl": "https://cdn.example.com/background.png",
        "vibe": "Ocean Breeze",
        "subtitle": "Lo Fi Focus Mix",
    }
    payload.update(overrides)
    return payload


class MediaServer:
    """Serves MP3s and PNGs; paths listed in ``missing`` return an HTML 404."""

    def __init__(self):
        self.requests: list[str] = []
        self.missing: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        if request.url.path in self.missing:
            return httpx.Response(
                404, text="<html><body>Not Found</body></html>", headers={"content-type": "text/html"}
            )
        if request.url.path.endswith(".mp3"):
            return httpx.Response(200, content=MP3_BODY, headers={"content-type": "audio/mpeg"})
        if request.url.path.endswith(".m4a"):
            return httpx.Response(200, content=MP3_BODY, headers={"content-type": "audio/mp4"})
        return httpx.Response(200, content=PNG_BODY, headers={"content-type": "image/png"})


@pytest.fixture
def media_server() -> MediaServer:
    return MediaServer()


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def workspaces(tmp_path: Path) -> WorkspaceManager:
    return WorkspaceManager(tmp_path / "scratch")


@pytest.fixture
def client(media_server, transcoder, workspaces):
    """FastAPI test client with local delivery and fake media tools."""
    pipeline = JobPipeline(
        fetcher=Fetcher(transport=httpx.MockTransport(media_server)),
        transcoder=transcoder,
        delivery=DeliveryStage(),
    )
    app.dependency_overrides[get_workspace_manager] = lambda: workspaces
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_base_url] = lambda: "http://testserver"
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# =============================================================================
# Create video
# =============================================================================


class TestCreateVideo:
    """End-to-end scenarios through POST /create-video."""

    def test_success_returns_urls_and_sizes(self, client, transcoder):
        response = client.post("/api/ffmpeg/create-video", json=_payload())

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is True
        assert data["videoUrl"]
        assert data["thumbnailUrl"]
        assert SIZE_RE.match(data["videoSize"])
        assert data["thumbnailSize"].endswith(" KB")
        assert SIZE_RE.match(data["thumbnailSize"])
        assert data["timestamp"]

        # 2 repairs, silence, concat, loudnorm x2, probe, video, thumbnail
        assert len(transcoder.calls_matching("ignore_err")) == 2
        assert len(transcoder.calls_matching("anullsrc")) == 1
        assert len(transcoder.calls_matching("libx264")) == 1
        assert len(transcoder.calls_matching("-frames:v")) == 1

    def test_too_many_files_rejected_before_download(self, client, media_server):
        files = [f"https://cdn.example.com/{i}.mp3" for i in range(21)]

        response = client.post("/api/ffmpeg/create-video", json=_payload(files=files))

        assert response.status_code == 400
        data = response.json()
        assert "20" in data["details"]
        assert data["error"] == "Invalid request"
        assert data["jobId"] == "unknown"
        assert media_server.requests == []

    def test_unsupported_image_rejected_before_download(self, client, media_server):
        response = client.post(
            "/api/ffmpeg/create-video", json=_payload(imageUrl="https://cdn.example.com/bg.tiff")
        )

        assert response.status_code == 400
        assert "Unsupported image format" in response.json()["details"]
        assert media_server.requests == []

    def test_invalid_json_rejected(self, client):
        response = client.post(
            "/api/ffmpeg/create-video",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400

    def test_failed_download_names_file_index(self, client, media_server):
        media_server.missing.add("/track2.mp3")

        response = client.post("/api/ffmpeg/create-video", json=_payload())

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Video creation failed"
        assert "Audio file 2" in data["details"]
        assert data["jobId"] != "unknown"

    def test_corrupt_audio_names_file_index(self, client, transcoder):
        transcoder.fail = lambda cmd: "ignore_err" in cmd and cmd[cmd.index("-i") + 1].endswith("audio_1.mp3")

        response = client.post("/api/ffmpeg/create-video", json=_payload())

        assert response.status_code == 500
        assert "Audio file 2 is invalid/corrupt" in response.json()["details"]

    def test_local_delivery_urls_are_downloadable(self, client):
        response = client.post("/api/ffmpeg/create-video", json=_payload())
        assert response.status_code == 200, response.text
        data = response.json()
        job_id = data["jobId"]

        assert data["videoUrl"] == f"http://testserver/api/ffmpeg/download/video/{job_id}"
        assert data["thumbnailUrl"] == f"http://testserver/api/ffmpeg/download/thumbnail/{job_id}"
        assert "object storage" in data["note"]

        video = client.get(f"/api/ffmpeg/download/video/{job_id}")
        assert video.status_code == 200
        assert video.headers["content-type"] == "video/mp4"
        assert video.headers["content-disposition"].startswith("attachment")
        assert f'video_{job_id}.mp4' in video.headers["content-disposition"]

        thumbnail = client.get(f"/api/ffmpeg/download/thumbnail/{job_id}")
        assert thumbnail.status_code == 200
        assert thumbnail.headers["content-type"] == "image/jpeg"
        assert thumbnail.headers["content-disposition"].startswith("inline")

    def test_video_download_supports_ranges(self, client):
        job_id = client.post("/api/ffmpeg/create-video", json=_payload()).json()["jobId"]

        response = client.get(
            f"/api/ffmpeg/download/video/{job_id}", headers={"Range": "bytes=0-99"}
        )

        assert response.status_code == 206
        assert len(response.content) == 100

    def test_thumbnail_failure_aborts_job(self, client, transcoder):
        transcoder.fail = lambda cmd: "-frames:v" in cmd

        response = client.post("/api/ffmpeg/create-video", json=_payload())

        assert response.status_code == 500
        assert "thumbnail" in response.json()["details"].lower()

    def test_normalization_fallback_is_invisible(self, client, transcoder):
        transcoder.fail = filter_has("loudnorm")

        response = client.post("/api/ffmpeg/create-video", json=_payload())

        assert response.status_code == 200, response.text
        assert transcoder.calls_matching("dynaudnorm")


class TestWorkspaceReclamation:
    """Outputs survive until the next job starts."""

    def test_next_job_reclaims_previous_outputs(self, client, workspaces):
        first = client.post("/api/ffmpeg/create-video", json=_payload()).json()["jobId"]
        assert client.get(f"/api/ffmpeg/download/video/{first}").status_code == 200

        second = client.post("/api/ffmpeg/create-video", json=_payload()).json()["jobId"]

        gone = client.get(f"/api/ffmpeg/download/video/{first}")
        assert gone.status_code == 404
        assert gone.json()["error"] == "Video not found"
        assert client.get(f"/api/ffmpeg/download/video/{second}").status_code == 200
        assert [p.name for p in workspaces.root.iterdir()] == [second]

    def test_no_previous_workspaces_when_validation_runs(self, client, workspaces, monkeypatch):
        client.post("/api/ffmpeg/create-video", json=_payload())
        observed: list[int] = []

        from lofi_video.api import ffmpeg as ffmpeg_api
        original_parse = ffmpeg_api.parse_body

        def spying_parse(model, payload):
            observed.append(len(list(workspaces.root.iterdir())))
            return original_parse(model, payload)

        monkeypatch.setattr(ffmpeg_api, "parse_body", spying_parse)
        client.post("/api/ffmpeg/create-video", json=_payload())

        assert observed == [0]

    def test_rejected_request_still_reclaims(self, client, workspaces):
        client.post("/api/ffmpeg/create-video", json=_payload())
        response = client.post("/api/ffmpeg/create-video", json=_payload(files=[]))

        assert response.status_code == 400
        assert list(workspaces.root.iterdir()) == []

    def test_unknown_job_id_returns_404(self, client):
        response = client.get("/api/ffmpeg/download/thumbnail/not-a-job")
        assert response.status_code == 404
        assert response.json()["error"] == "Thumbnail not found"


# =============================================================================
# Single-artifact jobs
# =============================================================================


class TestSingleArtifactJobs:

    def test_final_audio(self, client):
        response = client.post("/api/ffmpeg/final-audio", json={"files": _payload()["files"]})

        assert response.status_code == 200, response.text
        data = response.json()
        job_id = data["jobId"]
        assert data["audioUrl"] == f"http://testserver/api/ffmpeg/download/audio/{job_id}"
        assert SIZE_RE.match(data["fileSize"])

        audio = client.get(f"/api/ffmpeg/download/audio/{job_id}")
        assert audio.status_code == 200
        assert audio.headers["content-type"] == "audio/mp4"

    def test_final_audio_legacy_path(self, client):
        response = client.post("/api/ffmpeg/finalaudio", json={"files": _payload()["files"]})
        assert response.status_code == 200, response.text

    def test_thumbnail_creator(self, client, transcoder):
        response = client.post(
            "/api/ffmpeg/thumbnail-creator",
            json={"imageUrl": "https://cdn.example.com/bg.jpg", "vibe": "Night", "subtitle": "Drive"},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["message"] == "Thumbnail created successfully"
        assert data["fileSize"].endswith(" KB")
        assert transcoder.calls_matching("ignore_err") == []

    def test_final_video(self, client, transcoder):
        response = client.post(
            "/api/ffmpeg/final-video",
            json={
                "audioUrl": "https://cdn.example.com/mix.m4a",
                "imageUrl": "https://cdn.example.com/bg.png",
            },
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert SIZE_RE.match(data["sizeMB"])
        assert data["videoUrl"].endswith(f"/download/video/{data['jobId']}")
        assert transcoder.calls_matching("loudnorm") == []


# =============================================================================
# Info endpoints
# =============================================================================


class TestInfoEndpoints:

    def test_create_video_usage(self, client):
        data = client.get("/api/ffmpeg/create-video").json()
        assert data["endpoint"] == "POST /api/ffmpeg/create-video"
        assert "WEBP" in data["supportedImageFormats"]

    def test_storage_info(self, client):
        client.post("/api/ffmpeg/create-video", json=_payload())

        data = client.get("/api/ffmpeg/storage-info").json()

        assert data["activeTempDirectories"] == 1
        assert data["tempDirectorySizeBytes"] > 0
        assert data["tempDirectorySize"].endswith(" MB")
        assert data["lastChecked"]

    def test_index_and_health(self, client):
        index = client.get("/").json()
        assert index["status"] == "online"
        assert "createVideo" in index["endpoints"]

        health = client.get("/health").json()
        assert health["status"] == "healthy"
        assert health["uptime"] >= 0
