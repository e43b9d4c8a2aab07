"""Fixed-order annotation pipeline from raw script to markup document.

Responsibilities:
- Run normalize, conversational realism, macros, markup conversion, sanitization
  and cue injection in order.
- Enforce the configured tag density per sentence.
- Produce markup diagnostics and validation warnings.
- Derive content-keyed random sources so identical input yields identical markup
  and an edit to one sentence only changes that sentence.
"""

from __future__ import annotations

import hashlib
import math
import random
import re

from ..errors import PipelineStageError
from ..models.datatypes import AnnotationResult, BreakHistogram, MarkupDiagnostics
from ..models.settings import BreakTimings, TuningSettings
from ..tts.capabilities import ModelCapability, resolve_capability
from .conversational import ConversationalRealism
from .cues import CueInjector, RandomFactory
from .macros import MacroProcessor
from .markup import (
    BREAK_PATTERN,
    CUE_PATTERN,
    MarkupConverter,
    break_durations_ms,
    count_inline_markers,
    count_words,
    estimate_spoken_seconds,
    strip_markup,
)
from .normalizer import TextNormalizer
from .rules import VoiceRules
from .sanitizer import MarkupSanitizer

_OPEN_CONTAINER_PATTERN = re.compile(r"<(prosody|emphasis)\b[^<>/]*>")
_ANY_CONTAINER_PATTERN = re.compile(r"<(/?)(prosody|emphasis)\b[^<>]*?(/?)>")
_SENTENCE_END_PATTERN = re.compile(
    r"[.!?]+[\"')\]»]*(?=<break|\s|$)(?:<break[^<>]*/>|\s)*"
)


def content_rng_factory(seed_material: str) -> RandomFactory:
    """Return a factory seeding one random source per text unit.

    The seed is `sha256(seed_material + unit)`, so a sentence always gets the
    same random stream for the same settings, wherever it appears.
    """

    def factory(unit: str) -> random.Random:
        digest = hashlib.sha256(f"{seed_material}{unit}".encode("utf-8")).digest()
        return random.Random(int.from_bytes(digest[:8], "big"))

    return factory


class AnnotationPipeline:
    """Convert a raw script into a validated markup document."""

    def __init__(
        self,
        settings: TuningSettings,
        rules: VoiceRules,
        capability: ModelCapability | None = None,
    ) -> None:
        """Initialize stages for the configured voice model."""

        self._settings = settings
        self._rules = rules
        self._capability = capability or resolve_capability(settings.voice.model_id)
        self._normalizer = TextNormalizer()
        self._realism = ConversationalRealism(rules)
        self._macros = MacroProcessor(rules, settings.markup.break_ms)
        self._converter = MarkupConverter(rules, self._capability, settings.markup)
        self._sanitizer = MarkupSanitizer(rules, self._capability)
        self._cues = CueInjector(rules, self._capability)

    @property
    def capability(self) -> ModelCapability:
        """Return the capability profile used by this pipeline."""

        return self._capability

    def annotate(self, script: str, rng_for: RandomFactory | None = None) -> AnnotationResult:
        """Run every annotation stage over a script.

        Args:
            script: Raw script text; never mutated.
            rng_for: Random source per sentence; defaults to content-seeded sources.

        Raises:
            PipelineStageError: If the script has no speakable text.
        """

        normalized = self._normalizer.normalize(script)
        paragraphs = [
            re.sub(r"\s*\n\s*", " ", paragraph).strip()
            for paragraph in re.split(r"\n{2,}", normalized)
            if paragraph.strip()
        ]
        if not paragraphs:
            raise PipelineStageError(
                stage="markup",
                detail="Script contains no speakable text.",
                hint="Provide a script with at least one word.",
            )

        random_for = rng_for or content_rng_factory("")
        conversational = "\n\n".join(
            self._realism.apply(paragraph, random_for) for paragraph in paragraphs
        )
        markup_emphasis = self._capability.supports_prosody or self._capability.supports_emphasis
        with_macros = self._macros.apply(conversational, markup_emphasis=markup_emphasis)
        markup = self._converter.convert(with_macros)
        markup = self._sanitizer.sanitize(markup)
        markup = self._cues.inject(markup, lambda sentence: random_for(f"cue:{sentence}"))
        markup = enforce_tag_density(markup, self._settings.markup.tag_density_max_per_10_words)

        if not strip_markup(markup):
            raise PipelineStageError(
                stage="markup",
                detail="Script contains no speakable text after sanitization.",
                hint="Remove metadata-only content from the script.",
            )

        return AnnotationResult(
            markup=markup,
            diagnostics=markup_diagnostics(markup, self._settings, self._rules),
            normalized="\n\n".join(paragraphs),
            conversational=conversational,
            with_macros=with_macros,
            warnings=tuple(validate_markup(markup)),
        )


def enforce_tag_density(markup: str, max_per_10_words: float) -> str:
    """Reduce inline markers so each sentence stays within the density cap.

    Cue tokens go first, then prosody/emphasis containers are unwrapped, then the
    shortest breaks are removed. A sentence keeps the breaks that follow it, and
    break-only lines count with the sentence above. Every sentence is reduced on
    its own, so the document as a whole also stays within the cap.
    """

    reduced = "".join(
        _reduce_markers(unit, math.floor(max_per_10_words * count_words(unit) / 10.0 + 1e-9))
        for unit in _sentence_units(markup)
    )
    kept = [re.sub(r"[ \t]{2,}", " ", line).strip() for line in reduced.split("\n")]
    return "\n".join(line for line in kept if line)


def _sentence_units(markup: str) -> list[str]:
    """Split markup after sentence punctuation that sits outside any container."""

    units: list[str] = []
    start = 0
    depth = 0
    containers = iter(_ANY_CONTAINER_PATTERN.finditer(markup))
    container = next(containers, None)
    for match in _SENTENCE_END_PATTERN.finditer(markup):
        while container is not None and container.end() <= match.start():
            if not container.group(3):
                depth = max(0, depth + (-1 if container.group(1) else 1))
            container = next(containers, None)
        if depth > 0:
            continue
        units.append(markup[start : match.end()])
        start = match.end()
    units.append(markup[start:])

    merged: list[str] = []
    for unit in units:
        if merged and not count_words(unit):
            merged[-1] += unit
        else:
            merged.append(unit)
    if len(merged) > 1 and not count_words(merged[0]):
        merged[1] = merged[0] + merged[1]
        del merged[0]
    return merged


def _reduce_markers(text: str, allowed: int) -> str:
    reduced = text
    while count_inline_markers(reduced) > allowed:
        cues = list(CUE_PATTERN.finditer(reduced))
        if cues:
            last = cues[-1]
            reduced = reduced[: last.start()] + reduced[last.end() :]
            continue
        containers = list(_OPEN_CONTAINER_PATTERN.finditer(reduced))
        if containers:
            reduced = _unwrap_container(reduced, containers[-1])
            continue
        breaks = list(BREAK_PATTERN.finditer(reduced))
        if not breaks:
            break
        durations = [sum(break_durations_ms(match.group(0))) for match in breaks]
        shortest = breaks[durations.index(min(durations))]
        reduced = reduced[: shortest.start()] + reduced[shortest.end() :]
    return reduced


def _unwrap_container(text: str, opening: re.Match[str]) -> str:
    """Remove one container opening tag and its matching closing tag."""

    depth = 0
    for match in _ANY_CONTAINER_PATTERN.finditer(text, opening.end()):
        if match.group(3):
            continue
        if not match.group(1):
            depth += 1
            continue
        if depth == 0:
            return (
                text[: opening.start()]
                + text[opening.end() : match.start()]
                + text[match.end() :]
            )
        depth -= 1
    return text[: opening.start()] + text[opening.end() :]


def break_histogram(durations_ms: list[float], break_ms: BreakTimings) -> BreakHistogram:
    """Bucket break durations by punctuation class with a 50 ms tolerance."""

    counts = {"comma": 0, "clause": 0, "sentence": 0, "paragraph": 0}
    for duration in durations_ms:
        if duration <= break_ms.comma + 50:
            counts["comma"] += 1
        elif duration <= break_ms.clause + 50:
            counts["clause"] += 1
        elif duration <= break_ms.sentence + 50:
            counts["sentence"] += 1
        else:
            counts["paragraph"] += 1
    return BreakHistogram(**counts)


def markup_diagnostics(
    markup: str,
    settings: TuningSettings,
    rules: VoiceRules,
) -> MarkupDiagnostics:
    """Measure text and tag statistics of a markup document."""

    plain = strip_markup(markup)
    words = count_words(markup)
    total_tags = count_inline_markers(markup)
    rate = settings.markup.default_rate
    return MarkupDiagnostics(
        wpm=float(round(rules.pacing.wpm * rate)),
        tag_density=round(total_tags / words * 10.0, 2) if words else 0.0,
        break_histogram=break_histogram(break_durations_ms(markup), settings.markup.break_ms),
        estimated_duration_sec=round(estimate_spoken_seconds(markup, rules.pacing.wpm, rate), 1),
        words=words,
        sentences=len([part for part in re.split(r"[.!?]+", plain) if part.strip()]),
        paragraphs=sum(1 for line in markup.split("\n") if count_words(line)),
        characters=len(plain),
        total_tags=total_tags,
        prosody_tags=len(re.findall(r"<prosody\b", markup)),
        break_tags=len(BREAK_PATTERN.findall(markup)),
        emphasis_tags=len(re.findall(r"<emphasis\b", markup)),
    )


def validate_markup(markup: str) -> list[str]:
    """Return warnings for unbalanced tags, nested prosody and high density."""

    warnings: list[str] = []
    for name in ("speak", "prosody", "emphasis"):
        opened = len(re.findall(rf"<{name}\b[^<>]*(?<!/)>", markup))
        closed = len(re.findall(rf"</{name}\s*>", markup))
        if opened != closed:
            warnings.append(f"Mismatched <{name}> tags detected")
    if re.search(r"<prosody\b[^<>]*>(?:(?!</prosody>).)*<prosody\b", markup, re.DOTALL):
        warnings.append("Nested prosody tags detected - may cause issues")
    words = count_words(markup)
    density = count_inline_markers(markup) / words * 10.0 if words else 0.0
    if density > 2.0:
        warnings.append(
            f"High tag density ({density:.1f} tags per 10 words) - may affect naturalness"
        )
    return warnings
