"""Pause and emphasis macro insertion.

Responsibilities:
- Map punctuation to pause macros using the configured pause table.
- Detect ALL-CAPS and markdown emphasis, capped per clause.
- Wrap reflective phrases in rate macros and apply end-of-line punctuation tweaks.
- Estimate spoken duration of macro text.
"""

from __future__ import annotations

import re

from ..models.settings import BreakTimings
from .rules import VoiceRules

_PAUSE_CLASS_BY_PUNCTUATION = {
    ",": "comma",
    ";": "clause",
    ":": "clause",
    ".": "sentence",
    "?": "sentence",
    "!": "paragraph",
    "...": "paragraph",
}
_PUNCTUATION_PATTERN = re.compile(r"(\.\.\.|[,;:.!?])(?=[ \t]|\n(?!\n))")
_DASH_PATTERN = re.compile(r"[ \t]*--[ \t]*")
_PARAGRAPH_PATTERN = re.compile(r"\n{2,}")
_CAPS_PATTERN = re.compile(r"\b[A-Z]{2,}\b")
_CLAUSE_SPLIT_PATTERN = re.compile(r"([,;:.!?]+)")
_PAUSE_MACRO_PATTERN = re.compile(r"<pause:(\d+)>")
_MACRO_TAG_PATTERN = re.compile(r"<[^<>]+>")


class MacroProcessor:
    """Insert pause, emphasis and rate macros into normalized text."""

    def __init__(self, rules: VoiceRules, break_ms: BreakTimings) -> None:
        """Initialize processor with styling rules and pause timing table."""

        self._rules = rules
        self._break_ms = break_ms

    def apply(self, text: str, markup_emphasis: bool = True) -> str:
        """Return text with macros inserted.

        Args:
            text: Normalized text, paragraphs separated by blank lines.
            markup_emphasis: Whether ALL-CAPS and markdown emphasis become macros.
        """

        if not text or not text.strip():
            return ""

        processed = self._apply_line_start_tweaks(text)
        if markup_emphasis:
            processed = self._apply_caps_emphasis(processed)
            processed = self._apply_markdown_emphasis(processed)
        processed = self._apply_pauses(processed)
        processed = self._apply_reflective_rate(processed)
        return self._apply_line_end_tweaks(processed)

    def pause_macro(self, pause_class: str) -> str:
        """Return the pause macro for a punctuation class."""

        return f"<pause:{self._break_ms.for_class(pause_class)}>"

    def _apply_line_start_tweaks(self, text: str) -> str:
        processed = text
        if self._rules.punctuation.avoid_trailing_em_dash:
            processed = re.sub(r"[ \t]*--[ \t]*$", "", processed, flags=re.MULTILINE)
        if self._rules.punctuation.avoid_ellipsis_line_start:
            processed = re.sub(r"^[ \t]*\.\.\.[ \t]*", "", processed, flags=re.MULTILINE)
        return processed

    def _apply_caps_emphasis(self, text: str) -> str:
        cap = self._rules.emphasis.caps_max_per_clause
        pieces = _CLAUSE_SPLIT_PATTERN.split(text)
        for index in range(0, len(pieces), 2):
            count = 0

            def emphasize(match: re.Match[str]) -> str:
                nonlocal count
                count += 1
                word = match.group(0).lower()
                if count <= cap:
                    return f"<emphasis:strong>{word}</emphasis>"
                return word

            pieces[index] = _CAPS_PATTERN.sub(emphasize, pieces[index])
        return "".join(pieces)

    @staticmethod
    def _apply_markdown_emphasis(text: str) -> str:
        processed = re.sub(r"\*\*([^*\n]+)\*\*", r"<emphasis:moderate>\1</emphasis>", text)
        return re.sub(r"\*([^*\n]+)\*", r"<emphasis:reduced>\1</emphasis>", processed)

    def _apply_pauses(self, text: str) -> str:
        processed = _PUNCTUATION_PATTERN.sub(
            lambda match: match.group(1)
            + self.pause_macro(_PAUSE_CLASS_BY_PUNCTUATION[match.group(1)]),
            text,
        )
        processed = _DASH_PATTERN.sub(f" {self.pause_macro('sentence')} ", processed)
        return _PARAGRAPH_PATTERN.sub(f"\n{self.pause_macro('paragraph')}\n", processed)

    def _apply_reflective_rate(self, text: str) -> str:
        phrases = self._rules.speech_patterns.reflective_phrases
        if not phrases:
            return text
        rate = 100 + self._rules.pacing.reflective_rate_delta_pct
        alternatives = "|".join(re.escape(phrase) for phrase in phrases)
        pattern = re.compile(rf"\b({alternatives})\b", re.IGNORECASE)
        return pattern.sub(lambda match: f"<rate:{rate}%>{match.group(1)}</rate>", text)

    def _apply_line_end_tweaks(self, text: str) -> str:
        if not self._rules.punctuation.drop_final_period_when_pause_follows:
            return text
        return re.sub(r"(?<!\.)\.(<pause:\d+>)[ \t]*$", r"\1", text, flags=re.MULTILINE)


def estimate_duration(text_with_macros: str, rules: VoiceRules) -> float:
    """Estimate spoken seconds of macro text, rounded to 0.1 s."""

    clean = re.sub(r"\s+", " ", _MACRO_TAG_PATTERN.sub("", text_with_macros)).strip()
    words = len(clean.split()) if clean else 0
    base_seconds = words / rules.pacing.wpm * 60.0
    pause_seconds = sum(int(value) for value in _PAUSE_MACRO_PATTERN.findall(text_with_macros))
    return round(base_seconds + pause_seconds / 1000.0, 1)
