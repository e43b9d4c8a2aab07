"""ITU-R BS.1770 loudness and true-peak measurement.

Responsibilities:
- K-weight audio at any sample rate.
- Measure gated integrated loudness in LUFS.
- Measure true peak with 4x oversampling.
"""

from __future__ import annotations

import numpy as np
from scipy.signal import lfilter, resample_poly

SILENCE_LUFS = -70.0
SILENCE_PEAK_DB = -120.0

_SHELF_GAIN_DB = 3.999843853973347
_SHELF_Q = 0.7071752369554196
_SHELF_HZ = 1681.974450955533
_HIGHPASS_Q = 0.5003270373238773
_HIGHPASS_HZ = 38.13547087602444

_BLOCK_SECONDS = 0.4
_STEP_SECONDS = 0.1
_ABSOLUTE_GATE_LUFS = -70.0
_RELATIVE_GATE_LU = -10.0
_TRUE_PEAK_OVERSAMPLING = 4


def _shelf_coefficients(sample_rate: int) -> tuple[np.ndarray, np.ndarray]:
    gain = 10.0 ** (_SHELF_GAIN_DB / 40.0)
    omega = 2.0 * np.pi * _SHELF_HZ / sample_rate
    alpha = np.sin(omega) / (2.0 * _SHELF_Q)
    cos_omega = np.cos(omega)
    root = 2.0 * np.sqrt(gain) * alpha
    b = np.array(
        [
            gain * ((gain + 1) + (gain - 1) * cos_omega + root),
            -2.0 * gain * ((gain - 1) + (gain + 1) * cos_omega),
            gain * ((gain + 1) + (gain - 1) * cos_omega - root),
        ]
    )
    a = np.array(
        [
            (gain + 1) - (gain - 1) * cos_omega + root,
            2.0 * ((gain - 1) - (gain + 1) * cos_omega),
            (gain + 1) - (gain - 1) * cos_omega - root,
        ]
    )
    return b / a[0], a / a[0]


def _highpass_coefficients(sample_rate: int) -> tuple[np.ndarray, np.ndarray]:
    omega = 2.0 * np.pi * _HIGHPASS_HZ / sample_rate
    alpha = np.sin(omega) / (2.0 * _HIGHPASS_Q)
    cos_omega = np.cos(omega)
    b = np.array([(1 + cos_omega) / 2.0, -(1 + cos_omega), (1 + cos_omega) / 2.0])
    a = np.array([1 + alpha, -2.0 * cos_omega, 1 - alpha])
    return b / a[0], a / a[0]


def k_weight(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    """Apply the two-stage K-weighting filter along the frame axis."""

    shelf_b, shelf_a = _shelf_coefficients(sample_rate)
    highpass_b, highpass_a = _highpass_coefficients(sample_rate)
    shelved = lfilter(shelf_b, shelf_a, samples, axis=0)
    return lfilter(highpass_b, highpass_a, shelved, axis=0)


def _as_frames(samples: np.ndarray) -> np.ndarray:
    array = np.asarray(samples, dtype=np.float64)
    if array.ndim == 1:
        return array[:, np.newaxis]
    return array


def integrated_loudness(samples: np.ndarray, sample_rate: int) -> float:
    """Return gated integrated loudness in LUFS, floored at `SILENCE_LUFS`.

    Audio shorter than one gating block is measured as a single block.
    """

    frames = _as_frames(samples)
    if frames.shape[0] == 0:
        return SILENCE_LUFS
    weighted = k_weight(frames, sample_rate)

    block = int(round(_BLOCK_SECONDS * sample_rate))
    step = int(round(_STEP_SECONDS * sample_rate))
    if weighted.shape[0] <= block:
        powers = np.mean(weighted**2, axis=0, keepdims=True)
    else:
        starts = range(0, weighted.shape[0] - block + 1, step)
        powers = np.array([np.mean(weighted[start : start + block] ** 2, axis=0) for start in starts])

    block_loudness = -0.691 + 10.0 * np.log10(np.maximum(powers.sum(axis=1), 1e-20))
    gated = powers[block_loudness > _ABSOLUTE_GATE_LUFS]
    if gated.shape[0] == 0:
        return SILENCE_LUFS
    relative_gate = -0.691 + 10.0 * np.log10(gated.mean(axis=0).sum()) + _RELATIVE_GATE_LU
    gated = powers[(block_loudness > _ABSOLUTE_GATE_LUFS) & (block_loudness > relative_gate)]
    if gated.shape[0] == 0:
        return SILENCE_LUFS
    loudness = -0.691 + 10.0 * np.log10(gated.mean(axis=0).sum())
    return float(max(loudness, SILENCE_LUFS))


def frame_true_peaks(samples: np.ndarray) -> np.ndarray:
    """Return the linear true peak of every frame across channels.

    A frame's peak covers its own sample and the 4x oversampled points up to
    the next frame.
    """

    frames = _as_frames(samples)
    count = frames.shape[0]
    if count == 0:
        return np.zeros(0)
    oversampled = resample_poly(frames, _TRUE_PEAK_OVERSAMPLING, 1, axis=0)
    oversampled = oversampled[: count * _TRUE_PEAK_OVERSAMPLING]
    between = np.abs(oversampled).reshape(count, _TRUE_PEAK_OVERSAMPLING, -1).max(axis=(1, 2))
    return np.maximum(between, np.max(np.abs(frames), axis=1))


def true_peak_db(samples: np.ndarray) -> float:
    """Return the 4x oversampled peak level in dBTP, floored at `SILENCE_PEAK_DB`."""

    peaks = frame_true_peaks(samples)
    if peaks.size == 0:
        return SILENCE_PEAK_DB
    peak = float(np.max(peaks))
    if peak <= 0.0:
        return SILENCE_PEAK_DB
    return max(20.0 * float(np.log10(peak)), SILENCE_PEAK_DB)
