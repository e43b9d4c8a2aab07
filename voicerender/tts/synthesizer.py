"""Chunk synthesizer interfaces and provider-backed implementation.

Responsibilities:
- Define the protocol the orchestrator uses for chunk-level speech synthesis.
- Translate synthesis requests into provider HTTP calls returning WAV bytes.
- Perturb non-deterministic voice parameters for retry attempts.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import random
from typing import Any, Protocol

from ..audio.codec import AudioCodecError, decode_audio, pcm16_to_wav
from ..models.settings import VoiceSettings
from .capabilities import resolve_capability
from .client import ProviderError, SpeechClient

VOICE_JITTER = 0.025


@dataclass(frozen=True, slots=True)
class SynthesisRequest:
    """One chunk synthesis call.

    Attributes:
        chunk_index: Render-order chunk index.
        content_hash: Chunk content hash used as the cache key.
        text: Chunk markup already restricted to the target model.
        voice: Voice parameters for this attempt.
        sample_rate: Requested PCM sample rate.
        previous_context: Plain text spoken before this chunk.
        next_context: Plain text spoken after this chunk.
    """

    chunk_index: int
    content_hash: str
    text: str
    voice: VoiceSettings
    sample_rate: int
    previous_context: str | None = None
    next_context: str | None = None


class SpeechSynthesizer(Protocol):
    """Protocol for speech provider implementations."""

    def synthesize(self, request: SynthesisRequest) -> bytes:
        """Synthesize one chunk and return WAV bytes."""


def voice_settings_payload(voice: VoiceSettings) -> dict[str, Any]:
    """Return the provider `voice_settings` object for a voice."""

    return {
        "stability": voice.stability,
        "similarity_boost": voice.similarity_boost,
        "style": voice.style,
        "use_speaker_boost": voice.speaker_boost,
    }


def jitter_voice(
    voice: VoiceSettings,
    rng: random.Random,
    amount: float = VOICE_JITTER,
) -> VoiceSettings:
    """Return voice settings with stability and style nudged by at most `amount`.

    Similarity boost and speaker boost are left unchanged.
    """

    def nudge(value: float) -> float:
        return min(1.0, max(0.0, value + rng.uniform(-amount, amount)))

    return replace(voice, stability=nudge(voice.stability), style=nudge(voice.style))


class ProviderSpeechSynthesizer:
    """Provider-backed synthesizer returning WAV-wrapped PCM audio."""

    def __init__(self, client: SpeechClient) -> None:
        """Initialize synthesizer with a configured HTTP client."""

        self.client = client

    def synthesize(self, request: SynthesisRequest) -> bytes:
        """Synthesize one chunk and return WAV bytes.

        Raises:
            ProviderError: If the request fails or the audio is unreadable.
        """

        capability = resolve_capability(request.voice.model_id)
        pcm = self.client.synthesize(
            text=request.text,
            voice_id=request.voice.voice_id,
            model_id=request.voice.model_id,
            voice_settings=voice_settings_payload(request.voice),
            sample_rate=request.sample_rate,
            enable_ssml_parsing=capability.supports_ssml or capability.supports_audio_tags,
            seed=request.voice.seed,
            previous_text=request.previous_context if capability.supports_context else None,
            next_text=request.next_context if capability.supports_context else None,
        )
        wav = pcm16_to_wav(pcm, request.sample_rate)
        try:
            samples, _ = decode_audio(wav)
        except AudioCodecError as exc:
            raise ProviderError(
                f"Provider audio for chunk {request.chunk_index} is unreadable.",
                failure_kind="invalid_response",
            ) from exc
        if samples.shape[0] == 0:
            raise ProviderError(
                f"Provider audio for chunk {request.chunk_index} has no samples.",
                failure_kind="invalid_response",
            )
        return wav
