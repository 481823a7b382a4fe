"""Tests for the audio repair stage."""

import pytest

from conftest import FakeTranscoder, command_has
from lofi_video.exceptions import RepairError
from lofi_video.render.media import AssetRole
from lofi_video.render.media_repair import MediaRepairer


class TestMediaRepairer:

    def test_repair_decodes_permissively_to_pcm(self, make_asset, workspace):
        transcoder = FakeTranscoder()
        source = make_asset("audio_0.mp3", AssetRole.RAW_AUDIO)
        output = workspace / "audio_0.wav"

        asset = MediaRepairer(transcoder).repair(source.path, output)

        assert asset.role == AssetRole.REPAIRED_AUDIO
        assert asset.path == output
        cmd = transcoder.calls[0]
        assert cmd[cmd.index("-err_detect") + 1] == "ignore_err"
        assert cmd[cmd.index("-acodec") + 1] == "pcm_s16le"
        assert cmd[cmd.index("-ar") + 1] == "44100"
        assert cmd[cmd.index("-ac") + 1] == "2"
        assert "-vn" in cmd

    def test_rejects_undersized_input_without_invoking_ffmpeg(self, make_asset, workspace):
        transcoder = FakeTranscoder()
        source = make_asset("audio_0.mp3", AssetRole.RAW_AUDIO, size=2047)

        with pytest.raises(RepairError, match="too small"):
            MediaRepairer(transcoder).repair(source.path, workspace / "audio_0.wav")
        assert transcoder.calls == []

    def test_rejects_near_empty_output(self, make_asset, workspace):
        transcoder = FakeTranscoder(output_bytes=4095)
        source = make_asset("audio_0.mp3", AssetRole.RAW_AUDIO)

        with pytest.raises(RepairError, match="Repaired WAV too small"):
            MediaRepairer(transcoder).repair(source.path, workspace / "audio_0.wav")

    def test_decode_failure_raises_repair_error(self, make_asset, workspace):
        transcoder = FakeTranscoder(fail=command_has("ignore_err"))
        source = make_asset("audio_0.mp3", AssetRole.RAW_AUDIO)

        with pytest.raises(RepairError, match="Could not decode audio_0.mp3"):
            MediaRepairer(transcoder).repair(source.path, workspace / "audio_0.wav")

    def test_missing_input_counts_as_empty(self, workspace):
        with pytest.raises(RepairError, match=r"\(0 bytes\)"):
            MediaRepairer(FakeTranscoder()).repair(workspace / "missing.mp3", workspace / "out.wav")
