"""
Pytest fixtures for lofi_video tests.

Stage tests run against FakeTranscoder, which records every argument list
and writes a placeholder output file instead of invoking ffmpeg.

CI/CD Note:
Tests that need a real ffmpeg binary are marked with @pytest.mark.requires_ffmpeg
and skipped automatically when ffmpeg is not on PATH.
"""

import json
import shutil
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from lofi_video.render.media import AssetRole, MediaAsset
from lofi_video.render.transcoder import Transcoder

LOUDNORM_STATS = {
    "input_i": "-23.54",
    "input_tp": "-7.12",
    "input_lra": "4.30",
    "input_thresh": "-34.01",
    "output_i": "-16.02",
    "output_tp": "-1.50",
    "output_lra": "3.90",
    "output_thresh": "-26.40",
    "normalization_type": "dynamic",
    "target_offset": "0.02",
}

LOUDNORM_STDERR = (
    "[Parsed_loudnorm_0 @ 0x55d5c8c0] \n"
    + json.dumps(LOUDNORM_STATS, indent=1)
    + "\n"
)


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring the ffmpeg binary (skipped when missing)"
    )


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not available on PATH",
)


class FakeTranscoder(Transcoder):
    """Transcoder that never spawns a process.

    ``fail`` decides per command line whether the invocation exits non-zero.
    Successful ffmpeg calls write ``output_bytes`` bytes to the last argument
    unless it is ``-`` (null muxer).
    """

    def __init__(
        self,
        output_bytes: int = 8192,
        fail: Callable[[list[str]], bool] | None = None,
        probe_duration_s: float | None = 120.0,
    ):
        super().__init__(ffmpeg_path="ffmpeg", ffprobe_path="ffprobe")
        self.calls: list[list[str]] = []
        self.output_bytes = output_bytes
        self.fail = fail or (lambda cmd: False)
        self.probe_duration_s = probe_duration_s

    def _execute(self, cmd: list[str], timeout_s: float) -> subprocess.CompletedProcess:
        self.calls.append(cmd)
        if self.fail(cmd):
            return subprocess.CompletedProcess(cmd, 1, "", "Error: simulated failure")

        if cmd[0] == self.ffprobe_path:
            fmt = {} if self.probe_duration_s is None else {"duration": str(self.probe_duration_s)}
            return subprocess.CompletedProcess(cmd, 0, json.dumps({"format": fmt}), "")

        if any("print_format=json" in arg for arg in cmd):
            return subprocess.CompletedProcess(cmd, 0, "", LOUDNORM_STDERR)

        if cmd[-1] != "-":
            Path(cmd[-1]).write_bytes(b"\0" * self.output_bytes)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def calls_matching(self, fragment: str) -> list[list[str]]:
        return [cmd for cmd in self.calls if any(fragment in arg for arg in cmd)]


def command_has(fragment: str) -> Callable[[list[str]], bool]:
    """Failure predicate: fail every command with an argument containing ``fragment``."""
    return lambda cmd: any(fragment in arg for arg in cmd)


def filter_has(fragment: str) -> Callable[[list[str]], bool]:
    """Failure predicate: fail every command whose -af/-vf filter contains ``fragment``."""
    def _match(cmd: list[str]) -> bool:
        return any(
            flag in ("-af", "-vf") and fragment in value
            for flag, value in zip(cmd, cmd[1:])
        )
    return _match


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "job"
    path.mkdir()
    return path


@pytest.fixture
def make_asset(workspace: Path):
    """Create a file of ``size`` bytes in the workspace and wrap it."""
    def _make(name: str, role: AssetRole, size: int = 8192) -> MediaAsset:
        path = workspace / name
        path.write_bytes(b"\x01" * size)
        return MediaAsset.from_path(path, role)
    return _make
