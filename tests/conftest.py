"""Shared pytest fixtures for the full VoiceRender test suite."""

from __future__ import annotations

import threading
from typing import Callable

import numpy as np
import pytest

from voicerender.audio.codec import pcm16_to_wav
from voicerender.config import RenderConfig
from voicerender.models.settings import TuningSettings
from voicerender.tts.client import ProviderError
from voicerender.tts.synthesizer import SynthesisRequest


def make_tone_wav(
    seconds: float = 1.0,
    frequency: float = 220.0,
    amplitude: float = 0.3,
    sample_rate: int = 44100,
) -> bytes:
    """Return a mono PCM16 WAV sine tone."""

    frames = int(seconds * sample_rate)
    times = np.arange(frames) / float(sample_rate)
    samples = amplitude * np.sin(2.0 * np.pi * frequency * times)
    pcm = (samples * 32767.0).astype("<i2").tobytes()
    return pcm16_to_wav(pcm, sample_rate)


class ScriptedSynthesizer:
    """Synthesizer test double that records requests and replays scripted failures."""

    def __init__(
        self,
        failures: list[ProviderError] | None = None,
        *,
        always_fail: ProviderError | None = None,
        seconds: float = 1.0,
    ) -> None:
        """Initialize with failures consumed in call order."""

        self.requests: list[SynthesisRequest] = []
        self._failures = list(failures or [])
        self._always_fail = always_fail
        self._seconds = seconds
        self._lock = threading.Lock()

    @property
    def calls(self) -> int:
        """Return the number of synthesize calls seen so far."""

        return len(self.requests)

    def synthesize(self, request: SynthesisRequest) -> bytes:
        """Record the request, then fail or return a tone at the requested rate."""

        with self._lock:
            self.requests.append(request)
            failure = self._failures.pop(0) if self._failures else self._always_fail
        if failure is not None:
            raise failure
        return make_tone_wav(seconds=self._seconds, sample_rate=request.sample_rate)


class RecordingSleep:
    """Async sleep replacement that records requested delays without waiting."""

    def __init__(self) -> None:
        """Initialize empty call storage."""

        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        """Record one delay."""

        self.calls.append(seconds)


@pytest.fixture
def tone_wav() -> Callable[..., bytes]:
    """Provide the sine-tone WAV factory."""

    return make_tone_wav


@pytest.fixture
def scripted_synthesizer() -> type[ScriptedSynthesizer]:
    """Provide the scripted synthesizer class for per-test construction."""

    return ScriptedSynthesizer


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a sleep double that never blocks."""

    return RecordingSleep()


@pytest.fixture
def fast_config() -> RenderConfig:
    """Provide runtime config without inter-batch delays."""

    return RenderConfig(batch_delay_seconds=0.0)


@pytest.fixture
def wav_settings() -> TuningSettings:
    """Provide default tuning settings exporting WAV."""

    return TuningSettings().with_export(format="wav")


@pytest.fixture
def sample_script() -> str:
    """Provide a short multi-paragraph narration script."""

    return (
        "Welcome to the evening session. Tonight we slow everything down.\n\n"
        "Take a breath and notice the room around you. The light is soft, "
        "the air is still, and the day is finally behind us.\n\n"
        "Moving on, let's talk about attention. It shapes what we hear and what we remember."
    )
