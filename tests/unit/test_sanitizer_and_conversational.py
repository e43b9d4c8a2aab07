"""Unit tests for markup sanitization, cue handling and conversational realism."""

from __future__ import annotations

import random
import re

from voicerender.text.annotate import content_rng_factory
from voicerender.text.conversational import (
    ConversationalRealism,
    analyze_conversational_realism,
)
from voicerender.text.cues import CueInjector, limit_cues, validate_cue_tags
from voicerender.text.rules import AudioTagRules, ConversationalRules, VoiceRules
from voicerender.text.sanitizer import MarkupSanitizer, analyze_tts_artifacts
from voicerender.tts.capabilities import resolve_capability


def _quiet_rules(**conversational: float) -> VoiceRules:
    """Return rules with every realism ratio off except the given overrides."""

    values = {
        "you_guys_ratio": 0.0,
        "verbal_hesitation_ratio": 0.0,
        "run_on_sentence_ratio": 0.0,
        "all_caps_frequency": 0.0,
        "vocabulary_substitution_ratio": 0.0,
    }
    values.update(conversational)
    return VoiceRules(conversational=ConversationalRules(**values))


def test_sanitizer_repairs_double_slash_break_and_is_idempotent() -> None:
    """A `//>` break is repaired once; sanitizing the result again changes nothing."""

    sanitizer = MarkupSanitizer(VoiceRules(), resolve_capability("eleven_multilingual_v2"))
    raw = '<speak>Hello world. <break time="0.5s"//> Next sentence.</speak>'

    once = sanitizer.sanitize(raw)

    assert once == '<speak>Hello world. <break time="0.5s"/> Next sentence.</speak>'
    assert sanitizer.sanitize(once) == once


def test_sanitizer_returns_compatible_markup_unchanged() -> None:
    """Already compatible markup should be returned byte-identical."""

    sanitizer = MarkupSanitizer(VoiceRules(), resolve_capability("eleven_multilingual_v2"))
    markup = '<speak>Calm <prosody rate="92%">and slow</prosody>. <break time="0.4s"/> Yes.</speak>'

    assert sanitizer.sanitize(markup) == markup


def test_sanitizer_removes_metadata_artifacts_and_forbidden_tail() -> None:
    """JSON fragments, hashtags and trailing metadata words should not be spoken."""

    sanitizer = MarkupSanitizer(VoiceRules(), resolve_capability("eleven_multilingual_v2"))

    cleaned = sanitizer.sanitize('<speak>The story ends here {"id": 3} #outro. done</speak>')

    assert "{" not in cleaned
    assert "#" not in cleaned
    assert cleaned.endswith("here .</speak>") or cleaned.endswith("here.</speak>")
    assert "done" not in cleaned


def test_sanitizer_strips_elements_for_cue_only_model_and_keeps_allowed_cues() -> None:
    """Cue-only models get plain text with allow-listed cue tokens preserved."""

    sanitizer = MarkupSanitizer(VoiceRules(), resolve_capability("eleven_v3"))

    cleaned = sanitizer.sanitize(
        '<speak>Hello <break time="0.5s"/> there [laughs] friend [unknown cue].</speak>'
    )

    assert cleaned == "Hello there [laughs] friend."


def test_analyze_tts_artifacts_reports_metadata_and_orphans() -> None:
    """Artifact analysis should list metadata words, suspicious endings and stray tags."""

    report = analyze_tts_artifacts("We begin now <voice>and finish</voice> done")

    assert "begin" in report.metadata_words
    assert report.suspicious_endings == ("done",)
    assert "<voice>" in report.orphaned_tags
    assert report.recommendations


def test_cue_injector_inserts_trigger_matched_cue_for_cue_model() -> None:
    """Sentences with placement triggers should receive a matching emotional cue."""

    rules = VoiceRules(audio_tags=AudioTagRules(tag_probability=1.0))
    injector = CueInjector(rules, resolve_capability("eleven_v3"))

    injected = injector.inject("That was so funny. Nothing else.", lambda _: random.Random(1))

    assert injected.split(" ", 1)[0] in {"[laughs]", "[giggles]", "[chuckles]"}
    assert injected.endswith("Nothing else.")


def test_cue_injector_is_noop_for_markup_models() -> None:
    """Models without cue support never receive cue tokens."""

    rules = VoiceRules(audio_tags=AudioTagRules(tag_probability=1.0))
    injector = CueInjector(rules, resolve_capability("eleven_multilingual_v2"))

    text = "<speak>That was so funny.</speak>"

    assert injector.inject(text, lambda _: random.Random(1)) == text


def test_limit_cues_keeps_earliest_tokens() -> None:
    """Cue tokens past the cap are removed in document order."""

    assert limit_cues("[sighs] a [laughs] b [curious] c", 2) == "[sighs] a [laughs] b c"


def test_validate_cue_tags_flags_unknown_tokens() -> None:
    """Unknown cue tokens should be reported as invalid with a warning."""

    report = validate_cue_tags("Hello [laughs] and [dances] away.", VoiceRules())

    assert report.valid_tags == ("[laughs]",)
    assert report.invalid_tags == ("[dances]",)
    assert report.warnings


def test_realism_with_zero_ratios_leaves_text_unchanged() -> None:
    """All probability ratios at zero should make the transforms a no-op."""

    realism = ConversationalRealism(_quiet_rules())
    text = "You know the moment. It changes the feeling, and you see it."

    assert realism.apply(text, lambda _: random.Random(3)) == text


def test_realism_is_deterministic_for_a_seed() -> None:
    """The same random seed should always produce the same transformed text."""

    realism = ConversationalRealism(VoiceRules())
    text = "You feel the energy. It is a moment of change, and you know it."

    assert realism.apply(text, content_rng_factory("11")) == realism.apply(
        text, content_rng_factory("11")
    )


def test_direct_address_respects_blocking_context() -> None:
    """`you` after a blocking conjunction stays unchanged even at ratio 1."""

    realism = ConversationalRealism(_quiet_rules(you_guys_ratio=1.0))
    fixed = lambda _: random.Random(0)

    assert realism.apply("Thank you for coming.", fixed) == "Thank you guys for coming."
    assert realism.apply("Tell me if you agree.", fixed) == "Tell me if you agree."


def test_direct_address_ratio_is_bounded_statistically() -> None:
    """Converted occurrences should track the configured ratio over many draws."""

    realism = ConversationalRealism(_quiet_rules(you_guys_ratio=0.35))
    text = " ".join(["Thank you."] * 400)
    rng = random.Random(7)

    transformed = realism.apply(text, lambda _: rng)
    report = analyze_conversational_realism(transformed)

    assert 0.25 <= report.you_guys_ratio <= 0.45


def test_repetitive_negation_is_rephrased() -> None:
    """A second consecutive `It's not` sentence should be rephrased."""

    realism = ConversationalRealism(_quiet_rules())

    assert (
        realism.apply("It's not easy. It's not fast.", lambda _: random.Random(0))
        == "It's not easy. This isn't fast."
    )


def test_editing_one_sentence_leaves_other_sentences_untouched() -> None:
    """Each sentence draws from its own source, so an edit never re-rolls a neighbor."""

    realism = ConversationalRealism(VoiceRules())
    sentences = [f"You see step {index} clearly, and you know it matters." for index in range(20)]
    edited = list(sentences)
    edited[10] = "You see this step clearly, and you know it counts."
    rng_for = content_rng_factory("settings")

    original_out = re.split(r"(?<=[.!?]) ", realism.apply(" ".join(sentences), rng_for))
    edited_out = re.split(r"(?<=[.!?]) ", realism.apply(" ".join(edited), rng_for))

    assert len(original_out) == len(edited_out) == 20
    assert [
        index for index, (before, after) in enumerate(zip(original_out, edited_out))
        if before != after
    ] == [10]


def test_cue_injection_draws_per_sentence() -> None:
    """A sentence keeps its cue decision when a neighbor changes."""

    rules = VoiceRules(audio_tags=AudioTagRules(tag_probability=0.5, max_tags_per_chunk=50))
    injector = CueInjector(rules, resolve_capability("eleven_v3"))
    rng_for = content_rng_factory("cues")
    sentences = [f"That joke number {index} was funny." for index in range(12)]
    edited = list(sentences)
    edited[6] = "That joke was strange."

    original_out = injector.inject(" ".join(sentences), rng_for).split(". ")
    edited_out = injector.inject(" ".join(edited), rng_for).split(". ")

    assert len(original_out) == len(edited_out) == 12
    assert all(
        before == after
        for index, (before, after) in enumerate(zip(original_out, edited_out))
        if index != 6
    )
