from lofi_video.render.audio_mixer import AudioMixer
from lofi_video.render.media import AssetRole, MediaAsset
from lofi_video.render.media_repair import MediaRepairer
from lofi_video.render.transcoder import Transcoder

__all__ = [
    "AssetRole",
    "AudioMixer",
    "MediaAsset",
    "MediaRepairer",
    "Transcoder",
]
