"""Model-aware markup sanitization.

Responsibilities:
- Remove metadata words, JSON and hashtag artifacts and stray bracket content.
- Preserve allow-listed cue tokens.
- Remove markup the target model class cannot render.
- Repair break syntax without adding a root wrapper.
- Stay idempotent: already-compatible input is returned unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re

from ..tts.capabilities import ModelCapability
from .markup import (
    CUE_PATTERN,
    TAG_PATTERN,
    repair_break_syntax,
    repair_punctuation,
    strip_pacing_markup,
)
from .rules import VoiceRules

_METADATA_WORDS = ("end", "start", "begin", "finish", "complete", "done", "stop")
_FORBIDDEN_ENDINGS = (
    "end",
    "stop",
    "finish",
    "complete",
    "done",
    "over",
    "out",
    "null",
    "undefined",
    "error",
    "debug",
    "test",
    "sample",
)
_TRAILING_MARKUP = r"(?=(?:\s|<[^<>]*>)*$)"
_FORBIDDEN_TAIL_PATTERN = re.compile(
    r"[ \t]+\b(?:" + "|".join(_FORBIDDEN_ENDINGS) + r")\b" + _TRAILING_MARKUP,
    re.IGNORECASE,
)
_JSON_PATTERN = re.compile(r"\{[^{}]*\}")
_HASHTAG_WORD_PATTERN = re.compile(r"\bhashtag\s+\w+\b", re.IGNORECASE)
_HASHTAG_PATTERN = re.compile(r"#\w+")
_META_PATTERN = re.compile(r"\bmeta\b(?!\s+\w)", re.IGNORECASE)
_PLACEHOLDER_PATTERN = re.compile("\x00(\\d+)\x00")
_ELEMENT_NAME_PATTERN = re.compile(r"</?([A-Za-z][\w:%-]*)")


class MarkupSanitizer:
    """Sanitize markup for one target model class."""

    def __init__(self, rules: VoiceRules, capability: ModelCapability) -> None:
        """Initialize sanitizer with cue allow-list and model capability."""

        self._rules = rules
        self._capability = capability
        self._allowed_cues = {cue.lower() for cue in rules.audio_tags.allowed_cues()}

    def sanitize(self, markup: str) -> str:
        """Return sanitized markup; compatible input is returned byte-identical."""

        if not markup or not markup.strip():
            return markup

        protected, cues = self._protect_cues(markup)
        cleaned = _JSON_PATTERN.sub("", protected)
        cleaned = _HASHTAG_WORD_PATTERN.sub("", cleaned)
        cleaned = _HASHTAG_PATTERN.sub("", cleaned)
        cleaned = _META_PATTERN.sub("", cleaned)
        cleaned = CUE_PATTERN.sub("", cleaned)
        cleaned = self._remove_unsupported_elements(cleaned)

        if self._capability.bare_cue:
            cleaned = repair_punctuation(strip_pacing_markup(cleaned))
            if cleaned and cleaned[-1].isalnum():
                cleaned = f"{cleaned}."
        else:
            cleaned = repair_break_syntax(cleaned)

        cleaned = self._remove_forbidden_tail(cleaned)
        cleaned = self._tidy_spacing(cleaned)
        return self._restore_cues(cleaned, cues)

    def _protect_cues(self, markup: str) -> tuple[str, list[str]]:
        cues: list[str] = []

        def protect(match: re.Match[str]) -> str:
            if match.group(0).lower() not in self._allowed_cues:
                return match.group(0)
            cues.append(match.group(0))
            return f"\x00{len(cues) - 1}\x00"

        return CUE_PATTERN.sub(protect, markup), cues

    @staticmethod
    def _restore_cues(text: str, cues: list[str]) -> str:
        return _PLACEHOLDER_PATTERN.sub(lambda match: cues[int(match.group(1))], text)

    def _remove_unsupported_elements(self, markup: str) -> str:
        supported = self._capability.supported_elements()

        def filter_tag(match: re.Match[str]) -> str:
            name_match = _ELEMENT_NAME_PATTERN.match(match.group(0))
            name = name_match.group(1).lower() if name_match else ""
            if name in supported:
                return match.group(0)
            return ""

        return TAG_PATTERN.sub(filter_tag, markup)

    @staticmethod
    def _remove_forbidden_tail(markup: str) -> str:
        cleaned = markup
        while True:
            updated = _FORBIDDEN_TAIL_PATTERN.sub("", cleaned, count=1)
            if updated == cleaned:
                return cleaned
            cleaned = updated

    @staticmethod
    def _tidy_spacing(markup: str) -> str:
        tidy = re.sub(r"[ \t]{2,}", " ", markup)
        tidy = re.sub(r"[ \t]+$", "", tidy, flags=re.MULTILINE)
        tidy = re.sub(r"\n{3,}", "\n\n", tidy)
        return tidy.strip()


@dataclass(frozen=True, slots=True)
class ArtifactReport:
    """Potential spoken artifacts found in a text."""

    metadata_words: tuple[str, ...] = field(default_factory=tuple)
    suspicious_endings: tuple[str, ...] = field(default_factory=tuple)
    orphaned_tags: tuple[str, ...] = field(default_factory=tuple)
    recommendations: tuple[str, ...] = field(default_factory=tuple)


def analyze_tts_artifacts(text: str) -> ArtifactReport:
    """Report metadata words, suspicious endings and orphaned tags."""

    metadata_words = tuple(
        word for word in _METADATA_WORDS if re.search(rf"\b{word}\b", text, re.IGNORECASE)
    )
    suspicious: tuple[str, ...] = ()
    ending = re.search(r"\b(\w+)\W*$", TAG_PATTERN.sub("", text))
    if ending and ending.group(1).lower() in _METADATA_WORDS:
        suspicious = (ending.group(1).lower(),)
    orphaned = tuple(
        match.group(0)
        for match in TAG_PATTERN.finditer(text)
        if not re.match(r"</?(?:speak|break|prosody|emphasis)\b", match.group(0))
    )

    recommendations: list[str] = []
    if metadata_words:
        recommendations.append(f"Consider removing metadata words: {', '.join(metadata_words)}")
    if suspicious:
        recommendations.append(f"Text ends with suspicious word: {', '.join(suspicious)}")
    if orphaned:
        recommendations.append(f"Remove orphaned tags: {', '.join(orphaned)}")
    return ArtifactReport(
        metadata_words=metadata_words,
        suspicious_endings=suspicious,
        orphaned_tags=orphaned,
        recommendations=tuple(recommendations),
    )
