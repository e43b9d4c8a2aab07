"""Speech model capability profiles.

Responsibilities:
- Describe which markup subset each provider model accepts.
- Resolve unknown model ids to the default profile.
- Rewrite chunk markup for a target model immediately before dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..text.markup import (
    clamp_breaks,
    repair_punctuation,
    strip_pacing_markup,
    unwrap_elements,
    unwrap_root,
    wrap_root,
)

DEFAULT_MODEL_ID = "eleven_multilingual_v2"


@dataclass(frozen=True, slots=True)
class ModelCapability:
    """Markup capability profile for one provider model.

    Attributes:
        model_id: Provider model identifier.
        supports_ssml: Whether markup elements are parsed at all.
        supports_prosody: Whether `<prosody>` is rendered.
        supports_breaks: Whether `<break>` is rendered.
        supports_emphasis: Whether `<emphasis>` is rendered.
        supports_audio_tags: Whether inline cue tokens such as `[laughs]` are rendered.
        supports_context: Whether previous/next context hints are accepted.
        max_break_ms: Longest break the model honors.
    """

    model_id: str
    supports_ssml: bool
    supports_prosody: bool
    supports_breaks: bool
    supports_emphasis: bool
    supports_audio_tags: bool
    supports_context: bool
    max_break_ms: int

    @property
    def bare_cue(self) -> bool:
        """Return whether the model relies on punctuation and cue tokens only."""

        return not self.supports_ssml

    def supported_elements(self) -> frozenset[str]:
        """Return markup element names this model accepts."""

        if not self.supports_ssml:
            return frozenset()
        names = {"speak"}
        if self.supports_breaks:
            names.add("break")
        if self.supports_prosody:
            names.add("prosody")
        if self.supports_emphasis:
            names.add("emphasis")
        return frozenset(names)


MODEL_CAPABILITIES: dict[str, ModelCapability] = {
    "eleven_multilingual_v2": ModelCapability(
        model_id="eleven_multilingual_v2",
        supports_ssml=True,
        supports_prosody=True,
        supports_breaks=True,
        supports_emphasis=True,
        supports_audio_tags=False,
        supports_context=True,
        max_break_ms=2200,
    ),
    "eleven_monolingual_v1": ModelCapability(
        model_id="eleven_monolingual_v1",
        supports_ssml=True,
        supports_prosody=False,
        supports_breaks=True,
        supports_emphasis=False,
        supports_audio_tags=False,
        supports_context=True,
        max_break_ms=2200,
    ),
    "eleven_turbo_v2": ModelCapability(
        model_id="eleven_turbo_v2",
        supports_ssml=True,
        supports_prosody=False,
        supports_breaks=True,
        supports_emphasis=False,
        supports_audio_tags=False,
        supports_context=True,
        max_break_ms=2000,
    ),
    "eleven_turbo_v2_5": ModelCapability(
        model_id="eleven_turbo_v2_5",
        supports_ssml=True,
        supports_prosody=False,
        supports_breaks=True,
        supports_emphasis=False,
        supports_audio_tags=False,
        supports_context=True,
        max_break_ms=2000,
    ),
    "eleven_v3": ModelCapability(
        model_id="eleven_v3",
        supports_ssml=False,
        supports_prosody=False,
        supports_breaks=False,
        supports_emphasis=False,
        supports_audio_tags=True,
        supports_context=False,
        max_break_ms=0,
    ),
}


def resolve_capability(model_id: str | None) -> ModelCapability:
    """Return the capability profile for a model id, defaulting for unknown ids."""

    if model_id is not None and model_id in MODEL_CAPABILITIES:
        return MODEL_CAPABILITIES[model_id]
    return MODEL_CAPABILITIES[DEFAULT_MODEL_ID]


def rewrite_for_model(markup: str, capability: ModelCapability) -> str:
    """Restrict chunk markup to what the target model accepts.

    Pure and capability-parameterized; applied right before a chunk is sent.
    """

    if capability.bare_cue:
        return repair_punctuation(strip_pacing_markup(markup))

    unsupported = {"prosody", "emphasis", "break"} - capability.supported_elements()
    body = unwrap_elements(unwrap_root(markup), frozenset(unsupported))
    if capability.supports_breaks:
        body = clamp_breaks(body, capability.max_break_ms)
    return wrap_root(body)
