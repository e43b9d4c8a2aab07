"""Unit tests for text normalization, macro insertion and markup helpers."""

from __future__ import annotations

from voicerender.models.settings import BreakTimings, TuningSettings
from voicerender.text.macros import MacroProcessor, estimate_duration
from voicerender.text.markup import (
    MarkupConverter,
    balance_containers,
    clamp_breaks,
    count_inline_markers,
    depth_at,
    merge_adjacent_breaks,
    repair_break_syntax,
    strip_markup,
    wrap_root,
)
from voicerender.text.normalizer import TextNormalizer, is_valid_normalized_text
from voicerender.text.rules import VoiceRules
from voicerender.tts.capabilities import resolve_capability


def test_normalizer_canonicalizes_quotes_dashes_and_ellipses() -> None:
    """Curly quotes, em dashes and ellipsis characters should become ASCII forms."""

    normalized = TextNormalizer().normalize("“Hello” — it’s late…")

    assert normalized == "\"Hello\" -- it's late..."
    assert is_valid_normalized_text(normalized)


def test_normalizer_collapses_whitespace_and_keeps_paragraphs() -> None:
    """Space runs collapse and more than one blank line becomes a single paragraph break."""

    normalized = TextNormalizer().normalize("  One   two.\r\n\r\n\r\n\r\nThree\tfour.  ")

    assert normalized == "One two.\n\nThree four."


def test_normalizer_returns_empty_string_for_blank_input() -> None:
    """Whitespace-only input should normalize to an empty string."""

    assert TextNormalizer().normalize(" \n\t ") == ""
    assert not is_valid_normalized_text("")


def test_normalizer_is_deterministic() -> None:
    """Normalizing normalized text again should be a no-op."""

    normalizer = TextNormalizer()
    once = normalizer.normalize("Wait.... what–now?")

    assert normalizer.normalize(once) == once


def test_macro_processor_maps_punctuation_to_pause_classes() -> None:
    """Commas and sentence ends inside a line should receive class pause macros."""

    processor = MacroProcessor(VoiceRules(), BreakTimings())

    result = processor.apply("Hello, world. Next one!")

    assert result == "Hello,<pause:140> world.<pause:420> Next one!"


def test_macro_processor_inserts_paragraph_pause_between_paragraphs() -> None:
    """Blank-line paragraph gaps should become a paragraph pause on its own line."""

    processor = MacroProcessor(VoiceRules(), BreakTimings())

    assert processor.apply("One.\n\nTwo.") == "One.\n<pause:800>\nTwo."


def test_macro_processor_caps_emphasis_per_clause() -> None:
    """Only the first ALL-CAPS word per clause becomes a strong emphasis macro."""

    processor = MacroProcessor(VoiceRules(), BreakTimings())

    result = processor.apply("This is REALLY VERY big.")

    assert result == "This is <emphasis:strong>really</emphasis> very big."


def test_macro_processor_wraps_reflective_phrases_in_rate_macro() -> None:
    """Reflective phrases should be slowed by the configured rate delta."""

    processor = MacroProcessor(VoiceRules(), BreakTimings())

    assert processor.apply("Take a breath now.") == "<rate:92%>Take a breath</rate> now."


def test_estimate_duration_adds_pause_time() -> None:
    """Duration estimate is words at the base pace plus pause macro milliseconds."""

    assert estimate_duration("one two three<pause:500>", VoiceRules()) == 1.7


def test_repair_break_syntax_fixes_double_slash_and_milliseconds() -> None:
    """Malformed self-closing breaks and millisecond times should be repaired."""

    assert repair_break_syntax('<break time="0.5s"//>') == '<break time="0.5s"/>'
    assert repair_break_syntax('<break time="300ms"//>') == '<break time="0.3s"/>'
    assert repair_break_syntax('<break time="soon"/>') == '<break time="0.5s"/>'


def test_repair_break_syntax_leaves_valid_breaks_identical() -> None:
    """Already valid break elements should be returned byte-identical."""

    markup = 'Hello <break time="0.4s"/> world.'

    assert repair_break_syntax(markup) == markup


def test_merge_and_clamp_breaks() -> None:
    """Adjacent breaks merge into one summed pause and long pauses are clamped."""

    merged = merge_adjacent_breaks('a <break time="0.2s"/> <break time="0.3s"/> b', 2200)
    clamped = clamp_breaks('a <break time="5s"/> b', 2200)

    assert merged == 'a <break time="0.5s"/> b'
    assert clamped == 'a <break time="2.2s"/> b'


def test_balance_containers_closes_and_drops_orphans() -> None:
    """Unclosed containers are closed, orphan closers dropped and empty ones removed."""

    assert balance_containers('<prosody rate="90%">hi') == '<prosody rate="90%">hi</prosody>'
    assert balance_containers("</emphasis>hi") == "hi"
    assert balance_containers('x <prosody rate="90%"> </prosody>y') == "x y"


def test_depth_at_tracks_open_containers() -> None:
    """Depth counts open elements and ignores self-closing breaks."""

    markup = '<prosody rate="90%">slow <break time="0.2s"/> words</prosody> after'

    assert depth_at(markup, 0) == 0
    assert depth_at(markup, markup.index("slow")) == 1
    assert depth_at(markup, markup.index("words")) == 1
    assert depth_at(markup, markup.index("after")) == 0


def test_wrap_root_is_idempotent() -> None:
    """Wrapping twice should still produce exactly one root element."""

    assert wrap_root(wrap_root("Hello.")) == "<speak>Hello.</speak>"


def test_markup_converter_resolves_macros_for_prosody_model() -> None:
    """Macros should become breaks and prosody containers inside one root."""

    settings = TuningSettings()
    converter = MarkupConverter(
        VoiceRules(), resolve_capability("eleven_multilingual_v2"), settings.markup
    )

    markup = converter.convert(
        "Hello,<pause:140> <emphasis:strong>really</emphasis> nice.<pause:5000> End"
    )

    assert markup == (
        '<speak>Hello,<break time="0.1s"/> <prosody volume="+3dB">really</prosody> '
        'nice.<break time="2.2s"/> End</speak>'
    )
    assert strip_markup(markup) == "Hello, really nice. End"
    assert count_inline_markers(markup) == 3


def test_markup_converter_drops_prosody_for_breaks_only_model() -> None:
    """Models without prosody support keep emphasized words as plain text."""

    settings = TuningSettings()
    converter = MarkupConverter(VoiceRules(), resolve_capability("eleven_turbo_v2"), settings.markup)

    markup = converter.convert("Very <emphasis:strong>big</emphasis> <rate:92%>news</rate>.")

    assert markup == "<speak>Very big news.</speak>"


def test_markup_converter_escapes_stray_brackets() -> None:
    """Literal angle brackets and ampersands in text must be escaped."""

    settings = TuningSettings()
    converter = MarkupConverter(
        VoiceRules(), resolve_capability("eleven_multilingual_v2"), settings.markup
    )

    markup = converter.convert("Salt & pepper, 3 < 4.")

    assert markup == "<speak>Salt &amp; pepper, 3 &lt; 4.</speak>"
