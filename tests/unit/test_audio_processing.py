"""Unit tests for audio codecs, stitching, loudness, mastering and diagnostics."""

from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from voicerender.audio.assembler import AudioAssembler, fold_channels, resample
from voicerender.audio.codec import AudioCodecError, decode_audio, encode_audio
from voicerender.audio.diagnostics import detect_join_spikes, render_diagnostics
from voicerender.audio.loudness import (
    SILENCE_LUFS,
    SILENCE_PEAK_DB,
    integrated_loudness,
    true_peak_db,
)
from voicerender.audio.mastering import AudioMastering
from voicerender.models.settings import MasteringSettings, StitchingSettings, TuningSettings


def _sine(
    seconds: float,
    frequency: float,
    amplitude: float,
    sample_rate: int = 44100,
) -> np.ndarray:
    """Return a `(frames, 1)` sine signal."""

    times = np.arange(int(seconds * sample_rate)) / float(sample_rate)
    return (amplitude * np.sin(2.0 * np.pi * frequency * times))[:, np.newaxis]


def test_decode_audio_rejects_empty_and_garbage_payloads() -> None:
    """Unreadable payloads should raise codec errors."""

    with pytest.raises(AudioCodecError):
        decode_audio(b"")
    with pytest.raises(AudioCodecError):
        decode_audio(b"definitely not audio")


def test_encode_audio_round_trips_lossless_formats() -> None:
    """WAV and FLAC exports should decode back to the same frame count and rate."""

    samples = _sine(0.5, 440.0, 0.5)

    for export_format in ("wav", "flac"):
        decoded, sample_rate = decode_audio(encode_audio(samples, 44100, export_format))
        assert sample_rate == 44100
        assert decoded.shape == samples.shape
        assert np.max(np.abs(decoded - samples)) < 1e-3


def test_encode_audio_rejects_unknown_format() -> None:
    """Unsupported export formats should fail with a codec error."""

    with pytest.raises(AudioCodecError):
        encode_audio(_sine(0.1, 440.0, 0.5), 44100, "aac")


def test_stitch_crossfades_chunks_and_reports_join_centers(
    tone_wav: Callable[..., bytes],
) -> None:
    """Two one-second chunks overlap by the crossfade; the join sits at the overlap center."""

    assembler = AudioAssembler(StitchingSettings(crossfade_ms=120, sample_rate=44100))

    stitched = assembler.stitch([tone_wav(seconds=1.0), tone_wav(seconds=1.0)])

    overlap = round(0.12 * 44100)
    assert stitched.samples.shape == (2 * 44100 - overlap, 1)
    assert stitched.join_positions_ms == (940.0,)
    assert stitched.duration_sec == pytest.approx((2 * 44100 - overlap) / 44100)


def test_stitch_resamples_to_output_rate(tone_wav: Callable[..., bytes]) -> None:
    """Chunks at another rate are resampled before concatenation."""

    assembler = AudioAssembler(StitchingSettings(crossfade_ms=0, sample_rate=44100))

    stitched = assembler.stitch([tone_wav(seconds=0.5, sample_rate=22050)])

    assert stitched.sample_rate == 44100
    assert stitched.samples.shape == (22050, 1)
    assert stitched.join_positions_ms == ()


def test_stitch_requires_chunks() -> None:
    """Stitching nothing is an error."""

    with pytest.raises(ValueError):
        AudioAssembler(StitchingSettings()).stitch([])


def test_equal_power_curves_preserve_power() -> None:
    """Fade curves should sum to unit power at every point."""

    fade_out, fade_in = AudioAssembler.equal_power_curves(256)

    assert np.allclose(fade_out**2 + fade_in**2, 1.0)
    assert fade_out[0] == pytest.approx(1.0)
    assert fade_in[-1] == pytest.approx(1.0)


def test_channel_folding_and_resampling_helpers() -> None:
    """Stereo folds to mono by averaging; mono widens to two channels."""

    stereo = np.column_stack([np.ones(10), np.zeros(10)])

    assert np.allclose(fold_channels(stereo, mono=True), 0.5)
    assert fold_channels(np.ones((10, 1)), mono=False).shape == (10, 2)
    assert resample(np.ones((100, 1)), 22050, 44100).shape == (200, 1)


def test_integrated_loudness_of_reference_sine() -> None:
    """A -20 dBFS 1 kHz sine should measure close to -23 LUFS."""

    loudness = integrated_loudness(_sine(3.0, 1000.0, 0.1, 48000), 48000)

    assert loudness == pytest.approx(-23.0, abs=0.5)


def test_loudness_and_peak_floors_for_silence() -> None:
    """Silence should report the floor values instead of negative infinity."""

    silence = np.zeros((44100, 1))

    assert integrated_loudness(silence, 44100) == SILENCE_LUFS
    assert true_peak_db(silence) == SILENCE_PEAK_DB


def test_true_peak_of_half_scale_sine() -> None:
    """A half-scale sine peaks near -6 dBTP."""

    assert true_peak_db(_sine(1.0, 440.0, 0.5)) == pytest.approx(-6.02, abs=0.1)


def test_mastering_meets_loudness_and_true_peak_contract_for_steady_tone() -> None:
    """A quiet tone is brought to the target loudness under the peak ceiling."""

    settings = MasteringSettings()

    mastered = AudioMastering(settings).process(_sine(4.0, 440.0, 0.05), 44100)

    assert integrated_loudness(mastered, 44100) == pytest.approx(settings.target_lufs, abs=0.5)
    assert true_peak_db(mastered) <= settings.true_peak_db


def test_mastering_limits_bursts_under_true_peak_ceiling() -> None:
    """Loud bursts over a quiet bed are limited while loudness stays on target."""

    sample_rate = 44100
    signal = _sine(6.0, 440.0, 0.05, sample_rate)
    burst = _sine(0.005, 1000.0, 0.9, sample_rate)
    for start in range(0, signal.shape[0] - burst.shape[0], sample_rate // 2):
        signal[start : start + burst.shape[0]] += burst
    settings = MasteringSettings()

    mastered = AudioMastering(settings).process(signal, sample_rate)

    assert integrated_loudness(mastered, sample_rate) == pytest.approx(
        settings.target_lufs, abs=0.5
    )
    assert true_peak_db(mastered) <= settings.true_peak_db


def _speech_like(seconds: float, sample_rate: int = 44100) -> np.ndarray:
    """Return a voiced pulse-train signal with syllable envelopes and word gaps."""

    times = np.arange(int(seconds * sample_rate)) / float(sample_rate)
    pitch = 140.0 * (1.0 + 0.05 * np.sin(2.0 * np.pi * 0.5 * times))
    phase = 2.0 * np.pi * np.cumsum(pitch) / sample_rate
    voiced = sum(np.cos(harmonic * phase) / harmonic for harmonic in range(1, 25))
    envelope = np.sin(np.pi * 4.0 * times) ** 2
    envelope[(times % 1.0) > 0.8] = 0.0
    return (0.02 * voiced * envelope)[:, np.newaxis]


def test_mastering_reaches_target_for_speech_like_peaks() -> None:
    """Audio whose peaks sit far above its loudness still lands on target under the ceiling."""

    sample_rate = 44100
    signal = _speech_like(6.0, sample_rate)
    settings = MasteringSettings()

    mastered = AudioMastering(settings).process(signal, sample_rate)

    assert true_peak_db(signal) - integrated_loudness(signal, sample_rate) > 14.0
    assert integrated_loudness(mastered, sample_rate) == pytest.approx(
        settings.target_lufs, abs=0.5
    )
    assert true_peak_db(mastered) <= settings.true_peak_db


def test_limiter_holds_true_peaks_under_ceiling() -> None:
    """Limiting leaves quiet material alone and pulls oversampled peaks under the ceiling."""

    mastering = AudioMastering(MasteringSettings())
    quiet = _sine(0.5, 440.0, 0.1)
    loud = _sine(0.5, 5000.0, 1.0)

    assert mastering.limit(quiet, 44100, -1.0) is quiet
    limited = mastering.limit(loud, 44100, -1.1)
    assert true_peak_db(limited) <= -1.0
    assert true_peak_db(limited) > -3.0


def test_mastering_disabled_returns_input_unchanged() -> None:
    """With the chain disabled the samples pass through untouched."""

    samples = _sine(0.5, 440.0, 0.3)

    processed = AudioMastering(MasteringSettings(enable=False)).process(samples, 44100)

    assert processed is samples


def test_detect_join_spikes_flags_loud_joins_only() -> None:
    """Joins louder than their surroundings are flagged; steady joins are not."""

    sample_rate = 44100
    signal = _sine(1.0, 440.0, 0.01, sample_rate)
    center = sample_rate // 2
    signal[center - 200 : center + 200] = 0.5

    spikes = detect_join_spikes(signal, sample_rate, (500.0, 250.0))

    assert [spike.pos_ms for spike in spikes] == [500]
    assert spikes[0].db > 6.0


def test_render_diagnostics_measures_duration_and_pace() -> None:
    """Diagnostics combine markup counts with measured audio."""

    samples = _sine(2.0, 440.0, 0.2)
    markup = '<speak>One two three four. <break time="0.4s"/> Five six.</speak>'

    diagnostics = render_diagnostics(markup, samples, 44100, (), TuningSettings())

    assert diagnostics.duration_sec == 2.0
    assert diagnostics.wpm == 180.0
    assert diagnostics.break_histogram.sentence == 1
    assert diagnostics.join_spikes == ()
    assert diagnostics.true_peak_db < 0
