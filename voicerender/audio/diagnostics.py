"""Post-mastering render diagnostics.

Responsibilities:
- Combine markup statistics with measured audio duration, loudness and true peak.
- Flag energy spikes at former chunk joins.
"""

from __future__ import annotations

import numpy as np

from ..models.datatypes import Diagnostics, JoinSpike
from ..models.settings import TuningSettings
from ..text.annotate import break_histogram
from ..text.markup import break_durations_ms, count_inline_markers, count_words
from .loudness import integrated_loudness, true_peak_db

SPIKE_WINDOW_MS = 20.0
SPIKE_CONTEXT_MS = 100.0
SPIKE_THRESHOLD_DB = 6.0


def _rms(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples**2)))


def detect_join_spikes(
    samples: np.ndarray,
    sample_rate: int,
    join_positions_ms: tuple[float, ...],
    threshold_db: float = SPIKE_THRESHOLD_DB,
) -> tuple[JoinSpike, ...]:
    """Return joins whose 20 ms RMS exceeds the surrounding 100 ms by `threshold_db`."""

    mono = samples.mean(axis=1) if samples.ndim == 2 else samples
    half_window = int(SPIKE_WINDOW_MS / 2000.0 * sample_rate)
    context = int(SPIKE_CONTEXT_MS / 1000.0 * sample_rate)
    spikes: list[JoinSpike] = []
    for position_ms in join_positions_ms:
        center = int(position_ms / 1000.0 * sample_rate)
        window_start = max(0, center - half_window)
        window_end = min(mono.shape[0], center + half_window)
        window_rms = _rms(mono[window_start:window_end])
        surrounding = np.concatenate(
            [mono[max(0, window_start - context) : window_start], mono[window_end : window_end + context]]
        )
        surrounding_rms = _rms(surrounding)
        if window_rms <= 0.0 or surrounding_rms <= 0.0:
            continue
        db = 20.0 * np.log10(window_rms / surrounding_rms)
        if db > threshold_db:
            spikes.append(JoinSpike(pos_ms=int(round(position_ms)), db=round(float(db), 1)))
    return tuple(spikes)


def render_diagnostics(
    markup: str,
    samples: np.ndarray,
    sample_rate: int,
    join_positions_ms: tuple[float, ...],
    settings: TuningSettings,
) -> Diagnostics:
    """Measure mastered audio against the markup it was rendered from."""

    duration = samples.shape[0] / float(sample_rate) if sample_rate > 0 else 0.0
    words = count_words(markup)
    tags = count_inline_markers(markup)
    return Diagnostics(
        wpm=round(words / duration * 60.0, 1) if duration > 0 else 0.0,
        tag_density=round(tags / words * 10.0, 2) if words else 0.0,
        break_histogram=break_histogram(break_durations_ms(markup), settings.markup.break_ms),
        duration_sec=round(duration, 2),
        lufs=round(integrated_loudness(samples, sample_rate), 2),
        true_peak_db=round(true_peak_db(samples), 2),
        join_spikes=detect_join_spikes(samples, sample_rate, join_positions_ms),
    )
