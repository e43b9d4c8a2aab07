"""Audio byte codecs backed by libsndfile.

Responsibilities:
- Wrap raw provider PCM16 into WAV bytes.
- Decode stored audio bytes into float sample frames.
- Encode mastered audio into the configured export container.
"""

from __future__ import annotations

import io

import numpy as np
import soundfile as sf

_EXPORT_FORMATS: dict[str, tuple[str, str]] = {
    "wav": ("WAV", "PCM_16"),
    "flac": ("FLAC", "PCM_16"),
    "mp3": ("MP3", "MPEG_LAYER_III"),
}
_MP3_MAX_KBPS = 320
_MP3_MIN_KBPS = 32


class AudioCodecError(RuntimeError):
    """Raised when audio bytes cannot be decoded or encoded."""


def pcm16_to_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap little-endian 16-bit PCM bytes into a WAV container."""

    usable = len(pcm) - len(pcm) % (2 * channels)
    samples = np.frombuffer(pcm[:usable], dtype="<i2").reshape(-1, channels)
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


def decode_audio(data: bytes) -> tuple[np.ndarray, int]:
    """Decode audio bytes into `(frames, channels)` float64 samples and a sample rate.

    Raises:
        AudioCodecError: If the bytes are not a readable audio container.
    """

    if not data:
        raise AudioCodecError("Audio payload is empty.")
    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float64", always_2d=True)
    except RuntimeError as exc:
        raise AudioCodecError(f"Unreadable audio payload: {exc}") from exc
    return samples, int(sample_rate)


def encode_audio(
    samples: np.ndarray,
    sample_rate: int,
    export_format: str,
    bitrate_kbps: int | None = None,
) -> bytes:
    """Encode float samples into WAV, FLAC or MP3 bytes.

    Raises:
        AudioCodecError: If the format is unsupported or encoding fails.
    """

    target = _EXPORT_FORMATS.get(export_format)
    if target is None:
        supported = ", ".join(sorted(_EXPORT_FORMATS))
        raise AudioCodecError(f"Unsupported export format `{export_format}`; use one of: {supported}.")
    container, subtype = target

    options: dict[str, object] = {}
    if export_format == "mp3" and bitrate_kbps is not None:
        clamped = min(_MP3_MAX_KBPS, max(_MP3_MIN_KBPS, bitrate_kbps))
        options["compression_level"] = (_MP3_MAX_KBPS - clamped) / float(_MP3_MAX_KBPS - _MP3_MIN_KBPS)
        options["bitrate_mode"] = "CONSTANT"

    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    buffer = io.BytesIO()
    try:
        sf.write(buffer, clipped, sample_rate, format=container, subtype=subtype, **options)
    except (RuntimeError, TypeError, ValueError) as exc:
        raise AudioCodecError(f"Failed to encode `{export_format}` audio: {exc}") from exc
    return buffer.getvalue()
