"""Chunk audio stitching.

Responsibilities:
- Resample and channel-fold chunk audio to one output format.
- Concatenate chunks strictly by index with equal-power crossfades.
- Report join positions for post-mastering spike detection.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import gcd

import numpy as np
from scipy.signal import resample_poly

from ..models.settings import StitchingSettings
from .codec import decode_audio


@dataclass(frozen=True, slots=True)
class StitchedAudio:
    """Stitched render audio.

    Attributes:
        samples: `(frames, channels)` float samples.
        sample_rate: Output sample rate.
        join_positions_ms: Center of every former chunk join in milliseconds.
    """

    samples: np.ndarray
    sample_rate: int
    join_positions_ms: tuple[float, ...]

    @property
    def duration_sec(self) -> float:
        """Return stitched duration in seconds."""

        return self.samples.shape[0] / float(self.sample_rate)


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Resample `(frames, channels)` samples with a polyphase filter."""

    if source_rate == target_rate or samples.shape[0] == 0:
        return samples
    divisor = gcd(source_rate, target_rate)
    return resample_poly(samples, target_rate // divisor, source_rate // divisor, axis=0)


def fold_channels(samples: np.ndarray, mono: bool) -> np.ndarray:
    """Fold samples to one channel, or to two channels when `mono` is off."""

    if mono:
        return samples.mean(axis=1, keepdims=True)
    if samples.shape[1] == 1:
        return np.repeat(samples, 2, axis=1)
    return samples[:, :2]


class AudioAssembler:
    """Stitch ordered chunk audio into one buffer."""

    def __init__(self, settings: StitchingSettings) -> None:
        """Initialize assembler with output format and crossfade length."""

        self._settings = settings

    def prepare(self, audio: bytes) -> np.ndarray:
        """Decode one chunk and convert it to the output format."""

        samples, sample_rate = decode_audio(audio)
        converted = resample(samples, sample_rate, self._settings.sample_rate)
        return fold_channels(converted, self._settings.mono)

    def stitch(self, chunk_audio: list[bytes]) -> StitchedAudio:
        """Concatenate chunk audio in list order with crossfades at every join.

        Raises:
            ValueError: If no chunk audio is given.
        """

        if not chunk_audio:
            raise ValueError("Cannot stitch an empty chunk list.")

        sample_rate = self._settings.sample_rate
        fade_frames = int(round(self._settings.crossfade_ms * sample_rate / 1000.0))
        output = self.prepare(chunk_audio[0])
        joins: list[float] = []
        for audio in chunk_audio[1:]:
            following = self.prepare(audio)
            overlap = min(fade_frames, output.shape[0], following.shape[0])
            if overlap <= 0:
                joins.append(output.shape[0] * 1000.0 / sample_rate)
                output = np.concatenate([output, following], axis=0)
                continue
            fade_out, fade_in = self.equal_power_curves(overlap)
            blended = (
                output[-overlap:] * fade_out[:, np.newaxis]
                + following[:overlap] * fade_in[:, np.newaxis]
            )
            joins.append((output.shape[0] - overlap / 2.0) * 1000.0 / sample_rate)
            output = np.concatenate([output[:-overlap], blended, following[overlap:]], axis=0)
        return StitchedAudio(
            samples=output,
            sample_rate=sample_rate,
            join_positions_ms=tuple(round(position, 1) for position in joins),
        )

    @staticmethod
    def equal_power_curves(frames: int) -> tuple[np.ndarray, np.ndarray]:
        """Return cosine fade-out and sine fade-in curves of equal power."""

        phase = np.linspace(0.0, np.pi / 2.0, frames)
        return np.cos(phase), np.sin(phase)
