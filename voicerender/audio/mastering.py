"""Mastering chain for stitched render audio.

Responsibilities:
- Apply high-pass, de-esser, compressor and loudness stages in fixed order.
- Honor each stage toggle independently.
- Hold integrated loudness on target under a lookahead true-peak limiter.
"""

from __future__ import annotations

import numpy as np
from scipy.ndimage import minimum_filter1d, uniform_filter1d
from scipy.signal import butter, lfilter, sosfilt

from ..models.settings import MasteringSettings
from .loudness import SILENCE_LUFS, frame_true_peaks, integrated_loudness, true_peak_db


class AudioMastering:
    """Deterministic mastering chain driven by `MasteringSettings`."""

    _DEESSER_Q = 2.0
    _DEESSER_MAX_CUT_DB = 6.0
    _COMPRESSOR_BLOCK_SECONDS = 0.001
    _LIMITER_WINDOW_SECONDS = 0.001
    _LIMITER_MARGIN_DB = 0.1
    _MAX_LIMITER_PASSES = 4
    _LOUDNESS_TOLERANCE_LU = 0.1
    _MAX_LOUDNESS_PASSES = 16
    _MAX_MAKEUP_DB = 24.0

    def __init__(self, settings: MasteringSettings) -> None:
        """Initialize the chain with mastering settings."""

        self._settings = settings

    def process(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Run every enabled stage in order and return new samples."""

        settings = self._settings
        if not settings.enable or samples.shape[0] == 0:
            return samples
        processed = np.asarray(samples, dtype=np.float64)
        if settings.highpass_enable:
            processed = self.highpass(processed, sample_rate)
        if settings.deesser_enable and settings.deesser_amount > 0:
            processed = self.deess(processed, sample_rate)
        if settings.compressor_enable:
            processed = self.compress(processed, sample_rate)
        if settings.loudness_enable:
            processed = self.normalize_loudness(processed, sample_rate)
        return processed

    def highpass(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Remove rumble below the configured cutoff with a 2nd-order Butterworth."""

        sos = butter(2, self._settings.highpass_hz, btype="highpass", fs=sample_rate, output="sos")
        return sosfilt(sos, samples, axis=0)

    def deess(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Cut the sibilance band with a peaking filter scaled by `deesser_amount`."""

        center = min(self._settings.deesser_hz, 0.45 * sample_rate)
        gain_db = -self._settings.deesser_amount * self._DEESSER_MAX_CUT_DB
        amplitude = 10.0 ** (gain_db / 40.0)
        omega = 2.0 * np.pi * center / sample_rate
        alpha = np.sin(omega) / (2.0 * self._DEESSER_Q)
        cos_omega = np.cos(omega)
        b = np.array([1 + alpha * amplitude, -2.0 * cos_omega, 1 - alpha * amplitude])
        a = np.array([1 + alpha / amplitude, -2.0 * cos_omega, 1 - alpha / amplitude])
        return lfilter(b / a[0], a / a[0], samples, axis=0)

    def compress(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Apply feed-forward RMS compression with attack/release smoothing and makeup gain."""

        settings = self._settings
        block = max(1, int(round(self._COMPRESSOR_BLOCK_SECONDS * sample_rate)))
        frame_count = samples.shape[0]
        block_count = -(-frame_count // block)
        padded = np.zeros((block_count * block, samples.shape[1]))
        padded[:frame_count] = samples
        power = np.mean(padded.reshape(block_count, block, -1) ** 2, axis=(1, 2))
        level_db = 10.0 * np.log10(np.maximum(power, 1e-12))

        over = np.maximum(level_db - settings.compressor_threshold_db, 0.0)
        target_reduction = over * (1.0 - 1.0 / settings.compressor_ratio)
        block_seconds = block / float(sample_rate)
        attack = np.exp(-block_seconds / (settings.compressor_attack_ms / 1000.0))
        release = np.exp(-block_seconds / (settings.compressor_release_ms / 1000.0))

        reduction = np.empty(block_count)
        current = 0.0
        for index, wanted in enumerate(target_reduction):
            coefficient = attack if wanted > current else release
            current = coefficient * current + (1.0 - coefficient) * wanted
            reduction[index] = current

        gain_db = settings.compressor_gain_db - np.repeat(reduction, block)[:frame_count]
        return samples * (10.0 ** (gain_db / 20.0))[:, np.newaxis]

    def normalize_loudness(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Gain to the target loudness under a true-peak limiter.

        Limiting only lowers loudness, and the limited loudness never falls as the
        gain rises, so the gain is found by bisection between the plain gain to
        target and `_MAX_MAKEUP_DB` above it.
        """

        target = self._settings.target_lufs
        ceiling = self._settings.true_peak_db - self._LIMITER_MARGIN_DB
        loudness = integrated_loudness(samples, sample_rate)
        if loudness <= SILENCE_LUFS:
            return samples

        low = target - loudness
        high = low + self._MAX_MAKEUP_DB
        best = self._gain_and_limit(samples, sample_rate, low, ceiling)
        best_error = abs(integrated_loudness(best, sample_rate) - target)
        for _ in range(self._MAX_LOUDNESS_PASSES):
            if best_error <= self._LOUDNESS_TOLERANCE_LU:
                break
            middle = (low + high) / 2.0
            candidate = self._gain_and_limit(samples, sample_rate, middle, ceiling)
            error = integrated_loudness(candidate, sample_rate) - target
            if abs(error) < best_error:
                best, best_error = candidate, abs(error)
            if error < 0:
                low = middle
            else:
                high = middle

        peak = true_peak_db(best)
        if peak > self._settings.true_peak_db:
            best = best * 10.0 ** ((ceiling - peak) / 20.0)
        return best

    def _gain_and_limit(
        self,
        samples: np.ndarray,
        sample_rate: int,
        gain_db: float,
        ceiling_db: float,
    ) -> np.ndarray:
        processed = samples * 10.0 ** (gain_db / 20.0)
        for _ in range(self._MAX_LIMITER_PASSES):
            limited = self.limit(processed, sample_rate, ceiling_db)
            if limited is processed:
                break
            processed = limited
        return processed

    def limit(self, samples: np.ndarray, sample_rate: int, ceiling_db: float) -> np.ndarray:
        """Apply a lookahead limiter so no 4x oversampled peak exceeds `ceiling_db`.

        Returns `samples` itself when nothing exceeds the ceiling.
        """

        ceiling = 10.0 ** (ceiling_db / 20.0)
        peaks = frame_true_peaks(samples)
        if peaks.size == 0 or float(np.max(peaks)) <= ceiling:
            return samples
        required = np.minimum(1.0, ceiling / np.maximum(peaks, 1e-12))
        window = max(1, int(round(self._LIMITER_WINDOW_SECONDS * sample_rate)))
        # The held minimum spans both smoothing windows, so the gain reaches its
        # floor before a peak and releases only after it.
        held = minimum_filter1d(required, size=2 * window + 1, mode="nearest")
        smoothed = uniform_filter1d(held, size=window, mode="nearest")
        gain = np.minimum(smoothed, required)
        return samples * gain[:, np.newaxis]
