"""Conversational realism transforms.

Responsibilities:
- Apply bounded-probability stylistic transforms to text outside markup.
- Draw every decision from injected per-sentence random sources so callers control
  determinism and an edit to one sentence never re-rolls another.
- Report realism metrics for diagnostics and tests.
"""

from __future__ import annotations

from dataclasses import dataclass
import random
import re

from .cues import RandomFactory
from .markup import map_text_segments
from .rules import VoiceRules

_YOU_PATTERN = re.compile(r"\byou\b(?!\s+guys\b)", re.IGNORECASE)
_YOU_BLOCKERS = re.compile(r"\b(?:if|when|because|that)\s*$", re.IGNORECASE)
_CLAUSE_COMMA_PATTERN = re.compile(r",(?= [^\n])")
_SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?])[ \t]+")
_NEGATION_START = re.compile(r"^it's not\b", re.IGNORECASE)
_MAX_COMBINED_WORDS = 8


class ConversationalRealism:
    """Apply conversational realism transforms governed by configured ratios."""

    def __init__(self, rules: VoiceRules) -> None:
        """Initialize transforms with styling rules."""

        self._rules = rules

    def apply(self, text: str, rng_for: RandomFactory) -> str:
        """Return text with every enabled transform applied in fixed order.

        Args:
            text: Normalized text; each line is transformed independently.
            rng_for: Returns the random source for a sentence. Sentence-level
                transforms draw from `rng_for(sentence)`; a sentence combination
                draws from `rng_for` of the two joined sentences.
        """

        if not text or not text.strip():
            return text

        lines: list[str] = []
        for line in text.split("\n"):
            originals = _SENTENCE_SPLIT_PATTERN.split(line)
            sentences = [
                self._transform_sentence(sentence, rng_for(sentence)) for sentence in originals
            ]
            combined = self._combine_sentences(originals, sentences, rng_for)
            lines.append(self._deduplicate_negation(combined))
        return "\n".join(lines)

    def _transform_sentence(self, sentence: str, rng: random.Random) -> str:
        processed = map_text_segments(sentence, lambda segment: self._address(segment, rng))
        processed = map_text_segments(processed, lambda segment: self._caps(segment, rng))
        processed = map_text_segments(processed, lambda segment: self._hesitate(segment, rng))
        return map_text_segments(processed, lambda segment: self._vocabulary(segment, rng))

    def _address(self, text: str, rng: random.Random) -> str:
        ratio = self._rules.conversational.you_guys_ratio

        def replace(match: re.Match[str]) -> str:
            if _YOU_BLOCKERS.search(text[max(0, match.start() - 20) : match.start()]):
                return match.group(0)
            if rng.random() >= ratio:
                return match.group(0)
            return f"{match.group(0)} guys"

        return _YOU_PATTERN.sub(replace, text)

    def _caps(self, text: str, rng: random.Random) -> str:
        words = self._rules.speech_patterns.emphasis_words
        if not words:
            return text
        frequency = self._rules.conversational.all_caps_frequency
        pattern = re.compile(
            r"\b(?:" + "|".join(re.escape(word) for word in words) + r")\b", re.IGNORECASE
        )
        return pattern.sub(
            lambda match: match.group(0).upper() if rng.random() < frequency else match.group(0),
            text,
        )

    def _hesitate(self, text: str, rng: random.Random) -> str:
        cues = self._rules.speech_patterns.hesitation_cues
        if not cues:
            return text
        ratio = self._rules.conversational.verbal_hesitation_ratio

        def insert(match: re.Match[str]) -> str:
            if rng.random() >= ratio:
                return match.group(0)
            return f", {rng.choice(cues)},"

        return _CLAUSE_COMMA_PATTERN.sub(insert, text)

    def _combine_sentences(
        self,
        originals: list[str],
        sentences: list[str],
        rng_for: RandomFactory,
    ) -> str:
        connectors = self._rules.speech_patterns.connectors
        if len(sentences) < 2 or not connectors:
            return " ".join(sentences)

        ratio = self._rules.conversational.run_on_sentence_ratio
        combined: list[str] = []
        index = 0
        while index < len(sentences):
            current = sentences[index]
            following = sentences[index + 1] if index + 1 < len(sentences) else None
            if following is not None and self._can_combine(current, following):
                rng = rng_for(f"{originals[index]}\n{originals[index + 1]}")
                if rng.random() < ratio:
                    connector = rng.choice(connectors)
                    combined.append(f"{current[:-1]} {connector} {_lower_first(following)}")
                    index += 2
                    continue
            combined.append(current)
            index += 1
        return " ".join(combined)

    @staticmethod
    def _can_combine(first: str, second: str) -> bool:
        if "<" in first or "<" in second:
            return False
        if not first.endswith(".") or first.endswith(".."):
            return False
        if any(mark in first + second for mark in "?!"):
            return False
        if not second[:1].isupper():
            return False
        return (
            len(first.split()) <= _MAX_COMBINED_WORDS
            and len(second.split()) <= _MAX_COMBINED_WORDS
        )

    def _vocabulary(self, text: str, rng: random.Random) -> str:
        if not self._rules.conversational.mystical_vocabulary:
            return text
        replacements = self._rules.speech_patterns.vocabulary_replacements
        if not replacements:
            return text
        ratio = self._rules.conversational.vocabulary_substitution_ratio
        pattern = re.compile(
            r"\b(?:" + "|".join(re.escape(word) for word in replacements) + r")\b",
            re.IGNORECASE,
        )

        def substitute(match: re.Match[str]) -> str:
            if rng.random() >= ratio:
                return match.group(0)
            replacement = replacements[match.group(0).lower()]
            if match.group(0)[:1].isupper():
                return replacement[:1].upper() + replacement[1:]
            return replacement

        return pattern.sub(substitute, text)

    def _deduplicate_negation(self, line: str) -> str:
        if not self._rules.conversational.avoid_repetitive_negation:
            return line
        sentences = _SENTENCE_SPLIT_PATTERN.split(line)
        if len(sentences) < 2:
            return line
        output: list[str] = []
        previous_negation = False
        for sentence in sentences:
            is_negation = bool(_NEGATION_START.match(sentence))
            if is_negation and previous_negation:
                output.append(_NEGATION_START.sub("This isn't", sentence))
            else:
                output.append(sentence)
            previous_negation = is_negation
        return " ".join(output)


def _lower_first(sentence: str) -> str:
    first_word = sentence.split(" ", 1)[0]
    if first_word == "I" or first_word.startswith("I'") or first_word.isupper():
        return sentence
    return sentence[:1].lower() + sentence[1:]


@dataclass(frozen=True, slots=True)
class RealismReport:
    """Conversational realism metrics for one text."""

    you_guys_ratio: float
    all_caps_count: int
    hesitation_cues: int
    run_on_sentences: int
    vocabulary_words: int
    repetitive_patterns: int


def analyze_conversational_realism(text: str, rules: VoiceRules | None = None) -> RealismReport:
    """Measure realism features present in a text."""

    active_rules = rules or VoiceRules()
    you_total = len(re.findall(r"\byou\b", text, re.IGNORECASE))
    you_guys = len(re.findall(r"\byou guys\b", text, re.IGNORECASE))
    cues = active_rules.speech_patterns.hesitation_cues
    hesitation = 0
    if cues:
        hesitation = len(
            re.findall(
                r"\b(?:" + "|".join(re.escape(cue) for cue in cues) + r")\b", text, re.IGNORECASE
            )
        )
    sentences = [part for part in re.split(r"[.!?]+", text) if part.strip()]
    vocabulary = tuple(active_rules.speech_patterns.vocabulary_replacements.values())
    vocabulary_words = 0
    if vocabulary:
        vocabulary_words = len(
            re.findall(
                r"\b(?:" + "|".join(re.escape(word) for word in vocabulary) + r")\b",
                text,
                re.IGNORECASE,
            )
        )
    return RealismReport(
        you_guys_ratio=you_guys / you_total if you_total else 0.0,
        all_caps_count=len(re.findall(r"\b[A-Z]{2,}\b", text)),
        hesitation_cues=hesitation,
        run_on_sentences=sum(1 for sentence in sentences if len(sentence.split()) > 15),
        vocabulary_words=vocabulary_words,
        repetitive_patterns=len(re.findall(r"(?:it's not [^.!?]+[.!?]\s*){2,}", text, re.I)),
    )
