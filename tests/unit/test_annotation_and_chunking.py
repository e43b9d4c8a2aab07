"""Unit tests for the annotation pipeline, semantic chunker and content hashing."""

from __future__ import annotations

import pytest

from voicerender.cache.hashing import (
    chunk_content_hash,
    script_hash,
    settings_hash,
    synthesis_settings_subset,
)
from voicerender.errors import PipelineStageError
from voicerender.models.settings import TuningSettings
from voicerender.text.annotate import (
    AnnotationPipeline,
    enforce_tag_density,
    content_rng_factory,
    validate_markup,
)
from voicerender.text.chunking import SemanticChunker
from voicerender.text.markup import count_inline_markers, count_words, depth_at, unwrap_root
from voicerender.text.rules import VoiceRules


def _long_script(sentences: int = 40) -> str:
    """Build a multi-paragraph script with predictable sentence lengths."""

    lines = [
        f"Sentence number {index} walks slowly through the quiet garden at dusk."
        for index in range(sentences)
    ]
    paragraphs = [" ".join(lines[start : start + 8]) for start in range(0, len(lines), 8)]
    return "\n\n".join(paragraphs)


def _chunk(markup: str, settings: TuningSettings | None = None):
    """Chunk markup with default rules."""

    active = settings or TuningSettings()
    return SemanticChunker(active, VoiceRules()).chunk(markup)


def test_annotation_is_deterministic_for_identical_input(sample_script: str) -> None:
    """The same script and settings should always produce the same markup."""

    settings = TuningSettings()
    pipeline = AnnotationPipeline(settings, VoiceRules())
    seed = settings_hash(settings)

    first = pipeline.annotate(sample_script, content_rng_factory(seed))
    second = pipeline.annotate(sample_script, content_rng_factory(seed))

    assert first.markup == second.markup


def test_annotation_produces_single_root_within_density(sample_script: str) -> None:
    """Markup should have exactly one root and respect the tag density cap."""

    result = AnnotationPipeline(TuningSettings(), VoiceRules()).annotate(sample_script)

    assert result.markup.startswith("<speak>")
    assert result.markup.endswith("</speak>")
    assert result.markup.count("<speak>") == 1
    assert result.diagnostics.tag_density <= 1.0
    assert result.diagnostics.paragraphs >= 3
    assert result.diagnostics.words == count_words(result.markup)
    assert not [warning for warning in result.warnings if "Mismatched" in warning]


def test_annotation_for_cue_model_has_no_markup_elements(sample_script: str) -> None:
    """Cue-only models should receive plain text without any element tags."""

    settings = TuningSettings().with_voice(model_id="eleven_v3")

    result = AnnotationPipeline(settings, VoiceRules()).annotate(sample_script)

    assert "<" not in result.markup


def test_annotation_rejects_script_without_speakable_text() -> None:
    """Whitespace-only scripts should fail at the markup stage."""

    with pytest.raises(PipelineStageError) as error:
        AnnotationPipeline(TuningSettings(), VoiceRules()).annotate("   \n\n  ")

    assert error.value.stage == "markup"


def test_enforce_tag_density_drops_shortest_breaks_first() -> None:
    """Paragraphs over the density cap lose their shortest breaks."""

    markup = (
        'one <break time="0.1s"/> two <break time="0.4s"/> three four five '
        'six seven eight nine ten <break time="0.2s"/> eleven'
    )

    reduced = enforce_tag_density(markup, 1.0)

    assert count_inline_markers(reduced) == 1
    assert '<break time="0.4s"/>' in reduced


def test_enforce_tag_density_is_applied_per_sentence() -> None:
    """A short sentence loses its own markers; its longer neighbor keeps its break."""

    markup = (
        'Alpha beta gamma delta epsilon zeta eta theta iota kappa.<break time="0.5s"/> '
        'Tiny.<break time="0.5s"/>'
    )

    reduced = enforce_tag_density(markup, 1.0)

    assert reduced == (
        'Alpha beta gamma delta epsilon zeta eta theta iota kappa.<break time="0.5s"/> Tiny.'
    )


def test_enforce_tag_density_never_splits_inside_a_container() -> None:
    """Sentence ends inside an open container stay in one unit with the text after it."""

    markup = (
        '<prosody rate="92%">Take a breath. Slowly now.</prosody> '
        'one two three four five six seven eight.<break time="0.4s"/>'
    )

    reduced = enforce_tag_density(markup, 1.0)

    assert "<prosody" not in reduced
    assert "</prosody>" not in reduced
    assert reduced.startswith("Take a breath. Slowly now.")
    assert reduced.endswith('eight.<break time="0.4s"/>')


def test_validate_markup_reports_mismatched_tags() -> None:
    """Unbalanced containers should produce a warning."""

    warnings = validate_markup('<speak><prosody rate="90%">hello</speak>')

    assert "Mismatched <prosody> tags detected" in warnings


def test_three_sentence_script_yields_one_chunk() -> None:
    """A short script well under the target duration should form a single chunk."""

    settings = TuningSettings()
    annotation = AnnotationPipeline(settings, VoiceRules()).annotate(
        "Hello there friend. This is a short script. It has three sentences."
    )

    result = _chunk(annotation.markup, settings)

    assert result.stats.total_chunks == 1
    assert result.chunks[0].index == 0
    assert result.chunks[0].markup_body.startswith("<speak>")
    assert result.chunks[0].previous_context is None


def test_chunk_durations_stay_within_bound_and_boundaries_at_depth_zero() -> None:
    """Every chunk respects the hard duration limit and ends outside any element."""

    settings = TuningSettings().with_chunking(max_sec=20)
    annotation = AnnotationPipeline(settings, VoiceRules()).annotate(_long_script())

    result = _chunk(annotation.markup, settings)
    document = unwrap_root(annotation.markup)

    assert result.stats.total_chunks > 1
    assert [chunk.index for chunk in result.chunks] == list(range(result.stats.total_chunks))
    assert all(chunk.estimated_duration_sec <= 20 * 1.2 for chunk in result.chunks)
    assert all(depth_at(document, boundary) == 0 for boundary in result.boundaries)
    assert list(result.boundaries) == sorted(result.boundaries)


def test_oversized_single_sentence_is_split() -> None:
    """A sentence longer than the target is cut at word gaps into bounded pieces."""

    settings = TuningSettings().with_chunking(max_sec=10, min_chars=0)
    words = " ".join(f"word{index}" for index in range(80))

    result = _chunk(f"<speak>{words}.</speak>", settings)

    assert result.stats.total_chunks > 1
    assert all(chunk.estimated_duration_sec <= 12 for chunk in result.chunks)
    assert " ".join(chunk.plain_text_body for chunk in result.chunks) == f"{words}."


def test_oversized_sentence_inside_a_container_is_unwrapped_and_split() -> None:
    """A container longer than the target loses its tags so its sentence can be cut."""

    settings = TuningSettings().with_chunking(max_sec=10, min_chars=0)
    words = " ".join(f"word{index}" for index in range(80))

    result = _chunk(f'<speak><prosody rate="92%">{words}.</prosody></speak>', settings)

    assert result.stats.total_chunks > 1
    assert all(chunk.estimated_duration_sec <= 12 for chunk in result.chunks)
    assert all("prosody" not in chunk.markup_body for chunk in result.chunks)
    assert " ".join(chunk.plain_text_body for chunk in result.chunks) == f"{words}."
    assert any("longer than the target duration" in warning for warning in result.warnings)


def test_empty_document_yields_empty_result() -> None:
    """Documents without words produce no chunks."""

    result = _chunk("<speak></speak>")

    assert result.chunks == ()
    assert result.boundaries == ()
    assert result.stats.total_chunks == 0


def test_document_without_sentence_punctuation_is_one_chunk() -> None:
    """Text without any sentence terminator still forms one chunk."""

    result = _chunk("<speak>hello there my friend</speak>")

    assert result.stats.total_chunks == 1
    assert any("no sentence boundary" in warning for warning in result.warnings)


def test_paragraphs_force_boundaries_and_context_is_attached() -> None:
    """Paragraph breaks close chunks once the floor is met; neighbors become context."""

    settings = TuningSettings().with_chunking(min_chars=0)

    result = _chunk("<speak>First paragraph here.\nSecond paragraph here.</speak>", settings)

    assert result.stats.total_chunks == 2
    first, second = result.chunks
    assert first.markup_body == (
        '<speak><break time="0.1s"/> First paragraph here. <break time="0.4s"/></speak>'
    )
    assert second.markup_body.startswith('<speak><break time="0.3s"/> Second')
    assert first.next_context == "Second paragraph here."
    assert second.previous_context == "First paragraph here."
    assert first.plain_text_body == "First paragraph here."


def test_transition_phrase_and_direct_address_force_boundaries() -> None:
    """Narrative transitions and direct address start new chunks."""

    settings = TuningSettings().with_chunking(min_chars=0)

    transition = _chunk("<speak>Intro sentence. Moving on, a new topic.</speak>", settings)
    address = _chunk("<speak>The weather changed. You can feel it.</speak>", settings)

    assert transition.stats.total_chunks == 2
    assert address.stats.total_chunks == 2


def test_min_chars_floor_prevents_forced_split() -> None:
    """Forced boundaries are ignored while the current chunk is below the floor."""

    result = _chunk("<speak>First paragraph here.\nSecond paragraph here.</speak>")

    assert result.stats.total_chunks == 1


def test_breaks_inside_containers_never_become_boundaries() -> None:
    """Sentence punctuation inside an open container does not end a sentence."""

    settings = TuningSettings().with_chunking(min_chars=0)
    markup = '<speak><prosody rate="92%">Slow part. You hear it.</prosody> After.</speak>'

    result = _chunk(markup, settings)
    document = unwrap_root(markup)

    assert all(depth_at(document, boundary) == 0 for boundary in result.boundaries)
    assert result.chunks[0].markup_body.count("<prosody") == result.chunks[0].markup_body.count(
        "</prosody>"
    )


def test_editing_one_paragraph_changes_exactly_one_chunk_hash() -> None:
    """Changing one middle paragraph invalidates only that chunk's content hash."""

    settings = TuningSettings().with_chunking(min_chars=0)
    original = _chunk("<speak>Alpha part one.\nBeta part two.\nGamma part three.</speak>", settings)
    edited = _chunk("<speak>Alpha part one.\nBeta part edited.\nGamma part three.</speak>", settings)

    original_hashes = [chunk.content_hash for chunk in original.chunks]
    edited_hashes = [chunk.content_hash for chunk in edited.chunks]

    assert len(original_hashes) == len(edited_hashes) == 3
    assert original_hashes[0] == edited_hashes[0]
    assert original_hashes[1] != edited_hashes[1]
    assert original_hashes[2] == edited_hashes[2]


def test_chunk_hash_depends_on_audio_affecting_settings() -> None:
    """Voice and sample-rate changes alter the hash; mastering changes do not."""

    base = TuningSettings()
    body = "<speak>Hello.</speak>"

    base_hash = chunk_content_hash(body, synthesis_settings_subset(base))
    voice_hash = chunk_content_hash(
        body, synthesis_settings_subset(base.with_voice(stability=0.3))
    )
    rate_hash = chunk_content_hash(
        body, synthesis_settings_subset(base.with_stitching(sample_rate=22050))
    )
    mastering_hash = chunk_content_hash(
        body, synthesis_settings_subset(base.with_mastering(target_lufs=-16.0))
    )

    assert len({base_hash, voice_hash, rate_hash}) == 3
    assert mastering_hash == base_hash


def test_script_and_settings_hashes() -> None:
    """Script hashes ignore whitespace runs; any settings change alters the settings hash."""

    assert script_hash("Hello   world.\n") == script_hash("Hello world.")
    assert settings_hash(TuningSettings()) == settings_hash(TuningSettings())
    assert settings_hash(TuningSettings()) != settings_hash(
        TuningSettings().with_export(format="wav")
    )


def test_chunking_params_are_recorded() -> None:
    """Chunker parameters should include sizing and pacing values."""

    params = SemanticChunker(TuningSettings(), VoiceRules()).chunking_params()

    assert params["target_seconds"] == 35.0
    assert params["wpm"] == 145
    assert params["model_id"] == "eleven_multilingual_v2"


def test_editing_one_sentence_of_a_long_paragraph_changes_one_chunk_hash() -> None:
    """Annotating and chunking an edited script re-hashes only the chunk holding the edit."""

    settings = TuningSettings()
    rules = VoiceRules()
    sentences = [
        f"Now, you know that step {index} matters, and it is short." for index in range(30)
    ]

    def chunk_hashes(middle: str) -> list[str]:
        script = " ".join(sentences[:15] + [middle] + sentences[16:])
        pipeline = AnnotationPipeline(settings, rules)
        annotation = pipeline.annotate(script, content_rng_factory(settings_hash(settings)))
        chunks = SemanticChunker(settings, rules, pipeline.capability).chunk(annotation.markup)
        return [chunk.content_hash for chunk in chunks.chunks]

    original = chunk_hashes("Then the fifteenth step is the quiet one we keep.")
    edited = chunk_hashes("Then the fifteenth step is the quiet one we hold.")

    assert len(original) == len(edited) >= 3
    changed = [
        index for index, (before, after) in enumerate(zip(original, edited)) if before != after
    ]
    assert len(changed) == 1
