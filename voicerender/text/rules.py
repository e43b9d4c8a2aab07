"""Voice styling rules passed explicitly into every annotation stage.

Responsibilities:
- Describe pacing, emphasis, guardrail, punctuation and conversational-realism rules.
- Provide speech-pattern vocabularies and audio cue tag tables.
- Parse partial mappings (from YAML) over built-in defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class PacingRules:
    """Speaking pace parameters.

    Attributes:
        wpm: Base words per minute used for duration estimates.
        reflective_rate_delta_pct: Rate change applied to reflective phrases.
    """

    wpm: int = 145
    reflective_rate_delta_pct: int = -8


@dataclass(frozen=True, slots=True)
class EmphasisRules:
    """Emphasis markup switches and caps."""

    use_ssml: bool = True
    use_prosody: bool = True
    use_emphasis_tags: bool = False
    caps_max_per_clause: int = 1


@dataclass(frozen=True, slots=True)
class GuardrailRules:
    """Pauses guaranteed at chunk edges."""

    start_with_micro_pause: bool = True
    end_with_short_pause: bool = True


@dataclass(frozen=True, slots=True)
class PunctuationRules:
    """End-of-line punctuation tweaks applied during macro insertion."""

    avoid_trailing_em_dash: bool = True
    avoid_ellipsis_line_start: bool = True
    drop_final_period_when_pause_follows: bool = False


@dataclass(frozen=True, slots=True)
class ConversationalRules:
    """Per-occurrence probabilities for conversational realism transforms."""

    you_guys_ratio: float = 0.35
    verbal_hesitation_ratio: float = 0.25
    run_on_sentence_ratio: float = 0.30
    all_caps_frequency: float = 0.15
    vocabulary_substitution_ratio: float = 0.30
    avoid_repetitive_negation: bool = True
    mystical_vocabulary: bool = True


@dataclass(frozen=True, slots=True)
class SpeechPatterns:
    """Vocabularies used by the conversational realism transforms."""

    hesitation_cues: tuple[str, ...] = ("yeah", "like", "so yeah", "it's like", "I mean")
    emphasis_words: tuple[str, ...] = (
        "power",
        "energy",
        "truth",
        "clarity",
        "space",
        "move",
        "feel",
        "see",
        "know",
        "trust",
    )
    vocabulary_replacements: Mapping[str, str] = field(
        default_factory=lambda: {
            "connection": "currents",
            "moment": "portal",
            "change": "transmission",
            "insight": "revelation",
            "feeling": "resonance",
            "understanding": "clarity",
        }
    )
    connectors: tuple[str, ...] = ("and", "but", "so", "like", "yeah")
    reflective_phrases: tuple[str, ...] = (
        "take a breath",
        "sit with that",
        "let that sink in",
        "think about it",
    )


def _default_emotional_tags() -> dict[str, tuple[str, ...]]:
    return {
        "laughter": ("[laughs]", "[giggles]", "[chuckles]"),
        "whispers": ("[whispers]",),
        "breaths": ("[sighs]", "[exhales]"),
        "curiosity": ("[curious]", "[thoughtful]"),
        "excitement": ("[excited]",),
        "mystery": ("[mysterious]",),
        "emphasis": ("[emphasizes]",),
    }


def _default_ambient_effects() -> dict[str, tuple[str, ...]]:
    return {
        "mystical": ("[soft wind]", "[gentle chimes]", "[crystal resonance]"),
        "nature": ("[flowing water]", "[soft wind]"),
        "spiritual": ("[bell rings softly]", "[candle flickers]"),
    }


def _default_ambient_triggers() -> dict[str, tuple[str, ...]]:
    return {
        "mystical": ("energy", "spiritual", "universe", "cosmic", "divine", "sacred"),
        "nature": ("earth", "water", "wind", "fire", "nature"),
        "spiritual": ("meditation", "prayer", "blessing", "ritual", "ceremony"),
    }


def _default_placement_triggers() -> dict[str, tuple[str, ...]]:
    return {
        "whispers": ("secret", "quietly", "between us"),
        "curiosity": ("wonder", "curious", "what if"),
        "excitement": ("amazing", "incredible", "finally"),
        "mystery": ("hidden", "unknown", "mystery"),
        "laughter": ("funny", "joke", "ridiculous"),
    }


@dataclass(frozen=True, slots=True)
class AudioTagRules:
    """Emotional and ambient cue tag tables and insertion probabilities.

    Attributes:
        enable_emotional_tags: Whether sentence-level emotional cues are inserted.
        enable_sound_effects: Whether paragraph-level ambient cues are inserted.
        emotional_tags: Cue tokens per emotion.
        ambient_effects: Cue tokens per ambient context.
        placement_triggers: Trigger words that select an emotion for a sentence.
        ambient_triggers: Trigger words that select an ambient context for a paragraph.
        tag_probability: Per-sentence emotional cue probability.
        sound_effect_probability: Per-paragraph ambient cue probability.
        max_tags_per_chunk: Cap on cue tokens per paragraph and per chunk.
    """

    enable_emotional_tags: bool = True
    enable_sound_effects: bool = False
    emotional_tags: Mapping[str, tuple[str, ...]] = field(default_factory=_default_emotional_tags)
    ambient_effects: Mapping[str, tuple[str, ...]] = field(
        default_factory=_default_ambient_effects
    )
    placement_triggers: Mapping[str, tuple[str, ...]] = field(
        default_factory=_default_placement_triggers
    )
    ambient_triggers: Mapping[str, tuple[str, ...]] = field(
        default_factory=_default_ambient_triggers
    )
    tag_probability: float = 0.3
    sound_effect_probability: float = 0.2
    max_tags_per_chunk: int = 2

    def allowed_cues(self) -> frozenset[str]:
        """Return every configured cue token, brackets included."""

        cues: set[str] = set()
        for table in (self.emotional_tags, self.ambient_effects):
            for options in table.values():
                cues.update(options)
        return frozenset(cues)


_DEFAULT_TRANSITIONS = (
    "now here's where",
    "but here's what",
    "but this is the moment",
    "let's move on",
    "moving on",
    "on the other hand",
    "meanwhile",
    "which brings us to",
)


@dataclass(frozen=True, slots=True)
class VoiceRules:
    """Complete styling rules for the annotation pipeline and chunker."""

    pacing: PacingRules = field(default_factory=PacingRules)
    emphasis: EmphasisRules = field(default_factory=EmphasisRules)
    guardrails: GuardrailRules = field(default_factory=GuardrailRules)
    punctuation: PunctuationRules = field(default_factory=PunctuationRules)
    break_clamp_ms: int = 2200
    conversational: ConversationalRules = field(default_factory=ConversationalRules)
    speech_patterns: SpeechPatterns = field(default_factory=SpeechPatterns)
    audio_tags: AudioTagRules = field(default_factory=AudioTagRules)
    transition_phrases: tuple[str, ...] = _DEFAULT_TRANSITIONS

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> VoiceRules:
        """Parse a partial rules mapping over built-in defaults.

        Raises:
            ValueError: If a section or field is unknown or has the wrong shape.
        """

        values: dict[str, Any] = {}
        for key, value in payload.items():
            name = str(key)
            section_type = _SECTION_TYPES.get(name)
            if section_type is not None:
                if not isinstance(value, Mapping):
                    raise ValueError(f"Rules section `{name}` must be a mapping.")
                values[name] = _build_rules_section(name, section_type, value)
            elif name == "break_clamp_ms":
                if isinstance(value, bool) or not isinstance(value, int) or value < 100:
                    raise ValueError("`break_clamp_ms` must be an integer >= 100.")
                values[name] = value
            elif name == "transition_phrases":
                values[name] = _string_tuple(name, value)
            else:
                raise ValueError(f"Unknown rules section `{name}`.")
        return cls(**values)


_SECTION_TYPES: dict[str, type] = {
    "pacing": PacingRules,
    "emphasis": EmphasisRules,
    "guardrails": GuardrailRules,
    "punctuation": PunctuationRules,
    "conversational": ConversationalRules,
    "speech_patterns": SpeechPatterns,
    "audio_tags": AudioTagRules,
}


def _string_tuple(name: str, value: object) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"`{name}` must be a list of strings.")
    return tuple(str(item) for item in value)


def _build_rules_section(name: str, section_type: type, payload: Mapping[str, object]) -> object:
    """Build one rules section, converting YAML lists into tuples."""

    defaults = section_type()
    known = {item.name: getattr(defaults, item.name) for item in fields(section_type)}
    values: dict[str, object] = {}
    for key, value in payload.items():
        field_name = str(key)
        if field_name not in known:
            raise ValueError(f"Unknown rules field `{name}.{field_name}`.")
        default = known[field_name]
        if isinstance(default, tuple):
            values[field_name] = _string_tuple(f"{name}.{field_name}", value)
        elif isinstance(default, Mapping):
            if not isinstance(value, Mapping):
                raise ValueError(f"`{name}.{field_name}` must be a mapping.")
            values[field_name] = {
                str(inner_key): (
                    _string_tuple(f"{name}.{field_name}.{inner_key}", inner_value)
                    if isinstance(inner_value, (list, tuple))
                    else str(inner_value)
                )
                for inner_key, inner_value in value.items()
            }
        elif isinstance(default, bool):
            if not isinstance(value, bool):
                raise ValueError(f"`{name}.{field_name}` must be a boolean.")
            values[field_name] = value
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"`{name}.{field_name}` must be a number.")
            if isinstance(default, float) and not 0.0 <= float(value) <= 1.0:
                raise ValueError(f"`{name}.{field_name}` must be between 0 and 1.")
            values[field_name] = type(default)(value)
    return section_type(**values)
