"""
Tests for still-image video composition.

Test cases:
1. Fill/crop and zoom filter strings
2. Zoom speed derived from the audio duration
3. Primary encode flags
4. Fallback encode on primary failure
5. Both encodes failing
"""

import pytest

from conftest import FakeTranscoder, filter_has
from lofi_video.exceptions import ComposeError
from lofi_video.render.media import AssetRole
from lofi_video.render.video_composer import (
    DEFAULT_ZOOM_STEP,
    VIDEO_FILENAME,
    VideoComposer,
    fill_frame_filter,
    zoom_step_for,
    zoompan_filter,
)


@pytest.fixture
def inputs(make_asset):
    image = make_asset("background.png", AssetRole.BACKGROUND_IMAGE)
    audio = make_asset("final_audio.m4a", AssetRole.NORMALIZED_AUDIO)
    return image, audio


def _arg(cmd: list[str], flag: str) -> str:
    return cmd[cmd.index(flag) + 1]


class TestFilters:

    def test_fill_frame_covers_then_crops(self):
        assert fill_frame_filter(1920, 1080) == (
            "scale=1920:1080:force_original_aspect_ratio=increase,crop=1920:1080"
        )

    def test_zoompan_is_capped(self):
        f = zoompan_filter(1920, 1080, 30, 0.0005, 1.1)
        assert f.startswith("zoompan=z='min(1+0.00050000*on,1.1)'")
        assert ":s=1920x1080:fps=30" in f

    def test_zoom_step_reaches_cap_at_end_of_track(self):
        step = zoom_step_for(100_000, 30, 1.1)
        assert step * 3000 == pytest.approx(0.1)

    @pytest.mark.parametrize("duration_ms", [None, 0, -5])
    def test_zoom_step_default_without_duration(self, duration_ms):
        assert zoom_step_for(duration_ms, 30, 1.1) == DEFAULT_ZOOM_STEP


class TestVideoComposer:
    """Test encode invocations and the fallback."""

    def test_primary_encode(self, inputs, workspace):
        transcoder = FakeTranscoder(probe_duration_s=60.0)
        image, audio = inputs

        video = VideoComposer(transcoder).compose(image, audio, workspace / VIDEO_FILENAME)

        assert video.role == AssetRole.COMPOSED_VIDEO
        assert video.path == workspace / VIDEO_FILENAME
        probe, encode = transcoder.calls
        assert probe[0] == "ffprobe"
        assert _arg(encode, "-loop") == "1"
        assert _arg(encode, "-c:v") == "libx264"
        assert _arg(encode, "-preset") == "slow"
        assert _arg(encode, "-crf") == "18"
        assert _arg(encode, "-tune") == "stillimage"
        assert _arg(encode, "-c:a") == "aac"
        assert _arg(encode, "-pix_fmt") == "yuv420p"
        assert _arg(encode, "-movflags") == "+faststart"
        assert "-shortest" in encode
        assert "zoompan" in _arg(encode, "-vf")
        # 60s at 30fps -> 1800 frames to reach 1.10
        assert f"{0.1 / 1800:.8f}" in _arg(encode, "-vf")

    def test_falls_back_to_static_encode(self, inputs, workspace):
        transcoder = FakeTranscoder(fail=filter_has("zoompan"))
        image, audio = inputs

        video = VideoComposer(transcoder).compose(image, audio, workspace / VIDEO_FILENAME)

        assert video.size_bytes > 0
        fallback = transcoder.calls[-1]
        assert _arg(fallback, "-preset") == "medium"
        assert _arg(fallback, "-crf") == "23"
        assert _arg(fallback, "-c:a") == "copy"
        assert "zoompan" not in _arg(fallback, "-vf")
        assert "-shortest" in fallback

    def test_both_encodes_failing_raises(self, inputs, workspace):
        transcoder = FakeTranscoder(fail=lambda cmd: "libx264" in cmd)
        image, audio = inputs

        with pytest.raises(ComposeError, match="Failed to create video"):
            VideoComposer(transcoder).compose(image, audio, workspace / VIDEO_FILENAME)

    def test_probe_failure_uses_default_zoom(self, inputs, workspace):
        transcoder = FakeTranscoder(fail=lambda cmd: cmd[0] == "ffprobe")
        image, audio = inputs

        VideoComposer(transcoder).compose(image, audio, workspace / VIDEO_FILENAME)

        encode = transcoder.calls[-1]
        assert f"{DEFAULT_ZOOM_STEP:.8f}" in _arg(encode, "-vf")
