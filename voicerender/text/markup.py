"""Markup conversion and shared markup helpers.

Responsibilities:
- Resolve pause, emphasis and rate macros into the speech markup dialect.
- Repair malformed break syntax, merge adjacent breaks and balance containers.
- Provide depth scanning, stripping and counting helpers for later stages.
"""

from __future__ import annotations

import html
import re
from typing import TYPE_CHECKING, Callable

from ..parsing import format_seconds, parse_time_to_ms

if TYPE_CHECKING:
    from ..models.settings import MarkupSettings
    from ..tts.capabilities import ModelCapability
    from .rules import VoiceRules

MIN_BREAK_MS = 100

TAG_PATTERN = re.compile(r"</?[A-Za-z][\w:%-]*(?:\s[^<>]*?)?/?>")
BREAK_PATTERN = re.compile(r'<break\s+time="([^"]*)"\s*/>')
CUE_PATTERN = re.compile(r"\[[^\[\]\n]+\]")
_CONTAINER_PATTERN = re.compile(r"<(/?)(prosody|emphasis)\b[^<>]*?(/?)>")
_BREAK_RUN_PATTERN = re.compile(
    r'<break\s+time="[^"]*"\s*/>(?:[ \t]*<break\s+time="[^"]*"\s*/>)+'
)
_PAUSE_MACRO_PATTERN = re.compile(r"<pause:(\d+)>")
_EMPHASIS_MACRO_PATTERN = re.compile(r"<emphasis:(strong|moderate|reduced)>(.*?)</emphasis>")
_RATE_MACRO_PATTERN = re.compile(r"<rate:(\d+)%>(.*?)</rate>")
_LEFTOVER_MACRO_PATTERN = re.compile(r"</?(?:pause|rate|emphasis):[^<>]*>|</rate>")
_SPEAK_PATTERN = re.compile(r"</?speak\b[^<>]*>")
_ENTITY_PATTERN = re.compile(r"&(?!(?:amp|lt|gt|quot|apos|#\d+);)")
_EMPHASIS_VOLUME = {"strong": "+3dB", "moderate": "+1.5dB", "reduced": "-1.5dB"}


def map_text_segments(text: str, transform: Callable[[str], str]) -> str:
    """Apply `transform` to text outside markup tags, leaving tags untouched."""

    parts: list[str] = []
    cursor = 0
    for match in TAG_PATTERN.finditer(text):
        parts.append(transform(text[cursor : match.start()]))
        parts.append(match.group(0))
        cursor = match.end()
    parts.append(transform(text[cursor:]))
    return "".join(parts)


def unwrap_root(markup: str) -> str:
    """Remove every `<speak>` element tag and trim the remaining body."""

    return _SPEAK_PATTERN.sub("", markup).strip()


def wrap_root(body: str) -> str:
    """Wrap a body in exactly one `<speak>` root element."""

    return f"<speak>{unwrap_root(body)}</speak>"


def strip_markup(markup: str) -> str:
    """Return spoken plain text with tags and cue tokens removed."""

    without_tags = TAG_PATTERN.sub(" ", markup)
    without_cues = CUE_PATTERN.sub(" ", without_tags)
    return re.sub(r"\s+", " ", html.unescape(without_cues)).strip()


def count_words(markup: str) -> int:
    """Count spoken words in a markup document."""

    plain = strip_markup(markup)
    if not plain:
        return 0
    return len(plain.split())


def break_durations_ms(markup: str) -> list[float]:
    """Return every well-formed break duration in document order."""

    durations: list[float] = []
    for match in BREAK_PATTERN.finditer(markup):
        parsed = parse_time_to_ms(match.group(1))
        if parsed is not None:
            durations.append(parsed)
    return durations


def count_inline_markers(markup: str) -> int:
    """Count breaks, container openings and cue tokens; the root is excluded."""

    total = len(BREAK_PATTERN.findall(markup))
    total += sum(
        1
        for match in _CONTAINER_PATTERN.finditer(markup)
        if not match.group(1) and not match.group(3)
    )
    total += len(CUE_PATTERN.findall(markup))
    return total


def depth_at(markup: str, offset: int) -> int:
    """Return open-element nesting depth just before `offset`."""

    depth = 0
    for match in TAG_PATTERN.finditer(markup, 0, offset):
        if match.end() > offset:
            break
        depth += _depth_delta(match.group(0))
    return max(depth, 0)


def _depth_delta(tag: str) -> int:
    if tag.startswith("</"):
        return -1
    if tag.endswith("/>"):
        return 0
    return 1


def format_break(milliseconds: float) -> str:
    """Render one self-closing break element."""

    return f'<break time="{format_seconds(milliseconds)}"/>'


def clamp_break_ms(milliseconds: float, max_ms: float) -> float:
    """Clamp a pause into `[MIN_BREAK_MS, max_ms]`."""

    return max(float(MIN_BREAK_MS), min(float(milliseconds), float(max_ms)))


def repair_break_syntax(markup: str) -> str:
    """Fix double-slash and non-self-closing breaks and normalize invalid times.

    Millisecond times become seconds; unparseable times become `0.5s`. Already
    valid breaks are left byte-identical.
    """

    repaired = re.sub(r"<break\b([^<>]*?)/{2,}\s*>", r"<break\1/>", markup)
    repaired = re.sub(r"</break\s*>", "", repaired)
    repaired = re.sub(r"<break\b([^<>/]*?)\s*(?<!/)>", r"<break\1/>", repaired)

    def normalize_time(match: re.Match[str]) -> str:
        value = match.group(1)
        parsed = parse_time_to_ms(value)
        if parsed is None:
            return '<break time="0.5s"/>'
        if value.strip().endswith("ms"):
            return format_break(parsed)
        return match.group(0)

    repaired = BREAK_PATTERN.sub(normalize_time, repaired)
    return re.sub(r"<break(?![^<>]*\btime=)[^<>]*/>", '<break time="0.5s"/>', repaired)


def merge_adjacent_breaks(markup: str, max_ms: float) -> str:
    """Merge breaks separated only by spaces into one summed, clamped break."""

    def merge(match: re.Match[str]) -> str:
        total = sum(break_durations_ms(match.group(0)))
        return format_break(clamp_break_ms(total, max_ms))

    return _BREAK_RUN_PATTERN.sub(merge, markup)


def clamp_breaks(markup: str, max_ms: float) -> str:
    """Clamp every break into `[MIN_BREAK_MS, max_ms]`, leaving in-range breaks unchanged."""

    def clamp(match: re.Match[str]) -> str:
        parsed = parse_time_to_ms(match.group(1))
        if parsed is None:
            return match.group(0)
        clamped = clamp_break_ms(parsed, max_ms)
        if clamped == parsed:
            return match.group(0)
        return format_break(clamped)

    return BREAK_PATTERN.sub(clamp, markup)


def unwrap_elements(markup: str, names: frozenset[str]) -> str:
    """Remove opening and closing tags of the named elements, keeping content."""

    if not names:
        return markup
    alternatives = "|".join(sorted(re.escape(name) for name in names))
    return re.sub(rf"</?(?:{alternatives})\b[^<>]*>", "", markup)


def balance_containers(markup: str) -> str:
    """Drop orphan closing tags, close unclosed containers and remove empty ones."""

    output: list[str] = []
    stack: list[str] = []
    cursor = 0
    for match in _CONTAINER_PATTERN.finditer(markup):
        output.append(markup[cursor : match.start()])
        cursor = match.end()
        closing, name, self_closing = match.group(1), match.group(2), match.group(3)
        if self_closing:
            continue
        if not closing:
            stack.append(name)
            output.append(match.group(0))
            continue
        if name in stack:
            while stack:
                open_name = stack.pop()
                output.append(f"</{open_name}>")
                if open_name == name:
                    break
    output.append(markup[cursor:])
    while stack:
        output.append(f"</{stack.pop()}>")
    balanced = "".join(output)
    empty = re.compile(r"<(prosody|emphasis)\b[^<>]*>\s*</\1>")
    while empty.search(balanced):
        balanced = empty.sub("", balanced)
    return balanced


def escape_stray_brackets(markup: str) -> str:
    """Escape `<`, `>` and bare `&` that are not part of a tag."""

    def escape(segment: str) -> str:
        escaped = _ENTITY_PATTERN.sub("&amp;", segment)
        return escaped.replace("<", "&lt;").replace(">", "&gt;")

    return map_text_segments(markup, escape)


def collapse_whitespace(markup: str) -> str:
    """Collapse runs of spaces while preserving paragraph newlines."""

    collapsed = re.sub(r"[ \t]+", " ", markup)
    collapsed = re.sub(r" *\n *", "\n", collapsed)
    collapsed = re.sub(r"\n{2,}", "\n", collapsed)
    return collapsed.strip()


def strip_pacing_markup(markup: str) -> str:
    """Remove every element tag and macro, keeping text and cue tokens."""

    stripped = _LEFTOVER_MACRO_PATTERN.sub("", markup)
    stripped = TAG_PATTERN.sub("", stripped)
    return html.unescape(stripped)


def repair_punctuation(text: str) -> str:
    """Repair punctuation clusters and spacing left behind by tag removal."""

    repaired = re.sub(r",{2,}", ",", text)
    repaired = re.sub(r"\.{4,}", "...", repaired)
    repaired = re.sub(r"!{2,}", "!", repaired)
    repaired = re.sub(r"\?{2,}", "?", repaired)
    repaired = re.sub(r",\s*\.(?!\.)", ".", repaired)
    repaired = re.sub(r"(?<!\.)\.\s*,", ".", repaired)
    repaired = re.sub(r"[ \t]+([,.!?;:])", r"\1", repaired)
    repaired = re.sub(r"([,!?;:])(?=[A-Za-z])", r"\1 ", repaired)
    repaired = re.sub(r"(?<=[a-z])\.(?=[A-Z])", ". ", repaired)
    repaired = re.sub(r"[ \t]{2,}", " ", repaired)
    repaired = re.sub(r"[ \t]+$", "", repaired, flags=re.MULTILINE)
    repaired = re.sub(r"^[ \t]+", "", repaired, flags=re.MULTILINE)
    repaired = re.sub(r"\n{2,}", "\n", repaired)
    return repaired.strip()


class MarkupConverter:
    """Resolve macros into the markup dialect supported by a target model."""

    def __init__(
        self,
        rules: VoiceRules,
        capability: ModelCapability,
        markup_settings: MarkupSettings,
    ) -> None:
        """Initialize converter with styling rules and model capability."""

        self._rules = rules
        self._capability = capability
        self._markup_settings = markup_settings
        self._max_break_ms = min(rules.break_clamp_ms, capability.max_break_ms)

    @property
    def max_break_ms(self) -> int:
        """Return the effective upper bound for one break."""

        return self._max_break_ms

    def convert(self, text: str) -> str:
        """Convert macro text into a balanced markup document with one root."""

        if not text or not text.strip():
            return ""

        converted = _SPEAK_PATTERN.sub("", text)
        converted = escape_stray_brackets(converted)
        converted = _PAUSE_MACRO_PATTERN.sub(
            lambda match: format_break(clamp_break_ms(int(match.group(1)), self._max_break_ms)),
            converted,
        )
        converted = _EMPHASIS_MACRO_PATTERN.sub(self._resolve_emphasis, converted)
        converted = _RATE_MACRO_PATTERN.sub(self._resolve_rate, converted)
        converted = _LEFTOVER_MACRO_PATTERN.sub("", converted)
        converted = repair_break_syntax(converted)
        converted = clamp_breaks(converted, self._max_break_ms)
        converted = merge_adjacent_breaks(converted, self._max_break_ms)
        converted = balance_containers(converted)
        converted = collapse_whitespace(converted)
        return wrap_root(converted)

    def _prosody_enabled(self) -> bool:
        return self._rules.emphasis.use_prosody and self._capability.supports_prosody

    def _resolve_emphasis(self, match: re.Match[str]) -> str:
        level, content = match.group(1), match.group(2)
        if self._rules.emphasis.use_emphasis_tags and self._capability.supports_emphasis:
            return f'<emphasis level="{level}">{content}</emphasis>'
        if self._prosody_enabled():
            return f'<prosody volume="{_EMPHASIS_VOLUME[level]}">{content}</prosody>'
        return content

    def _resolve_rate(self, match: re.Match[str]) -> str:
        rate, content = match.group(1), match.group(2)
        if self._prosody_enabled():
            return f'<prosody rate="{rate}%">{content}</prosody>'
        return content


def estimate_spoken_seconds(markup: str, wpm: float, rate: float) -> float:
    """Estimate spoken seconds: words at `wpm x rate` plus summed break time."""

    words = count_words(markup)
    speech_seconds = words / (wpm * rate) * 60.0 if words else 0.0
    return speech_seconds + sum(break_durations_ms(markup)) / 1000.0
