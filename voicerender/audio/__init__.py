"""Audio decoding, stitching, mastering and measurement components.

This package turns synthesized chunk audio into one mastered, measured render.
"""

from .codec import AudioCodecError, decode_audio, encode_audio, pcm16_to_wav
from .assembler import AudioAssembler, StitchedAudio
from .loudness import integrated_loudness, true_peak_db
from .mastering import AudioMastering
from .diagnostics import detect_join_spikes, render_diagnostics

__all__ = [
    "AudioAssembler",
    "AudioCodecError",
    "AudioMastering",
    "StitchedAudio",
    "decode_audio",
    "detect_join_spikes",
    "encode_audio",
    "integrated_loudness",
    "pcm16_to_wav",
    "render_diagnostics",
    "true_peak_db",
]
