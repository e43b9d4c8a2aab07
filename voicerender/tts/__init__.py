"""Speech provider abstractions.

This package contains model capability profiles, the provider HTTP client and
the synthesizer interfaces used by the synthesis orchestrator.
"""

from .capabilities import ModelCapability, resolve_capability, rewrite_for_model
from .client import ProviderError, SpeechClient
from .synthesizer import ProviderSpeechSynthesizer, SpeechSynthesizer, SynthesisRequest

__all__ = [
    "ModelCapability",
    "ProviderError",
    "ProviderSpeechSynthesizer",
    "SpeechClient",
    "SpeechSynthesizer",
    "SynthesisRequest",
    "resolve_capability",
    "rewrite_for_model",
]
