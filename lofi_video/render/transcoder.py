"""
Thin wrapper around the ffmpeg / ffprobe command-line tools.

Every media operation in the pipeline goes through Transcoder:
- enforces a per-invocation timeout
- captures stdout/stderr
- maps a non-zero exit (or a timeout) to a typed TranscoderError
"""

import logging
import subprocess
import time
from dataclasses import dataclass

from lofi_video.config import get_settings
from lofi_video.exceptions import TranscoderError, TranscoderTimeoutError

logger = logging.getLogger(__name__)

# Keep error messages readable when ffmpeg dumps a long stderr
STDERR_TAIL_CHARS = 2000


@dataclass
class CommandResult:
    """Outcome of a finished tool invocation."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str
    elapsed_s: float


def _tail(text: str, limit: int = STDERR_TAIL_CHARS) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


class Transcoder:
    """Runs ffmpeg/ffprobe as blocking subprocesses."""

    def __init__(self, ffmpeg_path: str | None = None, ffprobe_path: str | None = None):
        settings = get_settings()
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path

    def ffmpeg(
        self,
        args: list[str],
        *,
        timeout_s: float,
        label: str,
        loglevel: str = "error",
    ) -> CommandResult:
        """Run ffmpeg with overwrite enabled and the banner suppressed."""
        cmd = [self.ffmpeg_path, "-y", "-hide_banner", "-loglevel", loglevel, *args]
        return self.run(cmd, timeout_s=timeout_s, label=label)

    def ffprobe(self, args: list[str], *, timeout_s: float, label: str) -> CommandResult:
        cmd = [self.ffprobe_path, "-v", "quiet", *args]
        return self.run(cmd, timeout_s=timeout_s, label=label)

    def run(self, cmd: list[str], *, timeout_s: float, label: str) -> CommandResult:
        """Execute a command, raising TranscoderError on failure."""
        logger.info(f"[FFMPEG] {label}: {' '.join(cmd)}")
        started = time.monotonic()
        try:
            result = self._execute(cmd, timeout_s)
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode("utf-8", errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
            logger.error(f"[FFMPEG] {label} timed out after {timeout_s:.0f}s")
            raise TranscoderTimeoutError(
                f"{label} timed out after {timeout_s:.0f}s",
                stderr=stderr,
                label=label,
            ) from e
        except OSError as e:
            logger.error(f"[FFMPEG] {label} could not start {cmd[0]}: {e}")
            raise TranscoderError(f"{label}: could not start {cmd[0]}: {e}", label=label) from e

        elapsed = time.monotonic() - started
        if result.returncode != 0:
            logger.error(f"[FFMPEG] {label} failed (exit {result.returncode}) stderr:\n{result.stderr}")
            raise TranscoderError(
                f"{label} failed (exit {result.returncode}): {_tail(result.stderr)}",
                returncode=result.returncode,
                stderr=result.stderr,
                label=label,
            )

        logger.info(f"[FFMPEG] {label} completed in {elapsed:.1f}s")
        return CommandResult(
            args=cmd,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            elapsed_s=elapsed,
        )

    def _execute(self, cmd: list[str], timeout_s: float) -> subprocess.CompletedProcess:
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout_s,
        )
