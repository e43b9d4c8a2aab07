"""Emotional and ambient cue token injection.

Responsibilities:
- Insert emotional cues into sentences matching configured placement triggers.
- Insert ambient cues into paragraphs matching configured context triggers.
- Cap cue tokens per paragraph and validate cue tokens against the allow-list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import random
import re
from typing import TYPE_CHECKING, Callable

from .markup import CUE_PATTERN, count_words
from .rules import VoiceRules

if TYPE_CHECKING:
    from ..tts.capabilities import ModelCapability

_SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?])((?:<break[^<>]*/>)?[ \t]+)")
_INTRO_PATTERN = re.compile(r"^((?:Well|So|Now|Actually|You know),?\s+)")

RandomFactory = Callable[[str], random.Random]


class CueInjector:
    """Insert cue tokens for models that render audio cue tags."""

    def __init__(self, rules: VoiceRules, capability: ModelCapability) -> None:
        """Initialize injector with cue tables and target capability."""

        self._rules = rules
        self._capability = capability

    def inject(self, markup: str, rng_for: RandomFactory) -> str:
        """Return markup with cue tokens inserted paragraph by paragraph.

        Args:
            markup: Sanitized markup; each text line is one paragraph.
            rng_for: Returns the random source for a sentence. The ambient draw
                of a paragraph is keyed by its first sentence.
        """

        tags = self._rules.audio_tags
        if not self._capability.supports_audio_tags:
            return markup
        if not (tags.enable_emotional_tags or tags.enable_sound_effects):
            return markup
        return "\n".join(
            self._inject_paragraph(line, rng_for) if count_words(line) else line
            for line in markup.split("\n")
        )

    def _inject_paragraph(self, paragraph: str, rng_for: RandomFactory) -> str:
        tags = self._rules.audio_tags
        budget = max(0, tags.max_tags_per_chunk - len(CUE_PATTERN.findall(paragraph)))
        originals = _SENTENCE_SPLIT_PATTERN.split(paragraph)
        pieces = list(originals)

        if tags.enable_sound_effects and budget > 0:
            rng = rng_for(f"ambient:{originals[0]}")
            if rng.random() < tags.sound_effect_probability:
                effect = self._select_ambient(paragraph, rng)
                if effect is not None:
                    pieces[0] = f"{effect} {pieces[0]}"
                    budget -= 1

        if tags.enable_emotional_tags:
            for index in range(0, len(pieces), 2):
                if budget <= 0:
                    break
                rng = rng_for(originals[index])
                if rng.random() >= tags.tag_probability:
                    continue
                cue = self._select_emotional(originals[index], rng)
                if cue is None:
                    continue
                pieces[index] = self._insert(pieces[index], cue)
                budget -= 1
        return "".join(pieces)

    def _select_emotional(self, sentence: str, rng: random.Random) -> str | None:
        tags = self._rules.audio_tags
        for emotion, triggers in tags.placement_triggers.items():
            options = tags.emotional_tags.get(emotion)
            if not options:
                continue
            for trigger in triggers:
                if re.search(rf"\b{re.escape(trigger)}\b", sentence, re.IGNORECASE):
                    return rng.choice(options)
        return None

    def _select_ambient(self, paragraph: str, rng: random.Random) -> str | None:
        tags = self._rules.audio_tags
        for context, triggers in tags.ambient_triggers.items():
            options = tags.ambient_effects.get(context)
            if not options:
                continue
            for trigger in triggers:
                if re.search(rf"\b{re.escape(trigger)}\b", paragraph, re.IGNORECASE):
                    return rng.choice(options)
        return None

    @staticmethod
    def _insert(sentence: str, cue: str) -> str:
        intro = _INTRO_PATTERN.match(sentence)
        if intro:
            return f"{intro.group(1)}{cue} {sentence[intro.end():]}"
        return f"{cue} {sentence}"


def limit_cues(markup: str, max_cues: int) -> str:
    """Remove cue tokens beyond `max_cues`, keeping the earliest ones."""

    seen = 0

    def keep(match: re.Match[str]) -> str:
        nonlocal seen
        seen += 1
        return match.group(0) if seen <= max_cues else ""

    limited = CUE_PATTERN.sub(keep, markup)
    if seen <= max_cues:
        return markup
    return re.sub(r"[ \t]{2,}", " ", limited).strip()


@dataclass(frozen=True, slots=True)
class CueReport:
    """Cue token validation result."""

    valid_tags: tuple[str, ...] = field(default_factory=tuple)
    invalid_tags: tuple[str, ...] = field(default_factory=tuple)
    warnings: tuple[str, ...] = field(default_factory=tuple)


def validate_cue_tags(text: str, rules: VoiceRules) -> CueReport:
    """Split cue tokens into supported and unsupported ones."""

    allowed = {cue.lower() for cue in rules.audio_tags.allowed_cues()}
    found = CUE_PATTERN.findall(text)
    valid = tuple(tag for tag in found if tag.lower() in allowed)
    invalid = tuple(tag for tag in found if tag.lower() not in allowed)
    warnings: list[str] = []
    if invalid:
        warnings.append(f"Unsupported cue tags: {', '.join(invalid)}")
    words = count_words(text)
    if words and len(found) / words > 0.1:
        warnings.append("High cue tag density may affect speech naturalness")
    return CueReport(valid_tags=valid, invalid_tags=invalid, warnings=tuple(warnings))
