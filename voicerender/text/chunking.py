"""Duration-aware semantic chunking of markup documents.

Responsibilities:
- Split a markup document into sentences without ever splitting inside an open element.
- Greedily pack sentences into chunks under duration and character bounds.
- Force boundaries at paragraphs, narrative transitions and direct address.
- Attach neighbor context, edge pauses and content hashes to every chunk.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any

from ..cache.hashing import chunk_content_hash, synthesis_settings_subset
from ..models.datatypes import Chunk, ChunkingResult, ChunkingStats
from ..models.settings import TuningSettings
from ..tts.capabilities import ModelCapability, resolve_capability
from .cues import limit_cues
from .markup import (
    BREAK_PATTERN,
    TAG_PATTERN,
    clamp_break_ms,
    count_words,
    estimate_spoken_seconds,
    format_break,
    merge_adjacent_breaks,
    strip_markup,
    unwrap_root,
    wrap_root,
)
from .rules import VoiceRules


@dataclass(slots=True)
class _Sentence:
    """Sentence span in the unwrapped document."""

    start: int
    end: int
    paragraph_after: bool = False


def _depth_delta(tag: str) -> int:
    if tag.startswith("</"):
        return -1
    if tag.endswith("/>"):
        return 0
    return 1


class SemanticChunker:
    """Create bounded, markup-safe chunks from an annotated document."""

    _HARD_LIMIT_RATIO = 1.2
    _SHORT_CHUNK_SECONDS = 5.0
    _HIGH_CHUNK_COUNT = 20
    _SENTENCE_CLOSERS = "\"')]»"
    _SENTENCE_OPENERS = "\"'["
    _COMMON_ABBREVIATIONS = frozenset(
        {
            "mr.",
            "mrs.",
            "ms.",
            "dr.",
            "prof.",
            "sr.",
            "jr.",
            "st.",
            "etc.",
            "e.g.",
            "i.e.",
            "vs.",
            "no.",
        }
    )
    _DIRECT_ADDRESS_PATTERN = re.compile(r"^(?:and\s+)?(?:you|your|listen|here)\b", re.IGNORECASE)
    _CLAUSE_CUT_PATTERN = re.compile(r"[,;:](?:<break[^<>]*/>)?[ \t]$")
    _CONTAINER_TAG_PATTERN = re.compile(r"<(/?)(prosody|emphasis)\b[^<>]*?(/?)>")

    def __init__(
        self,
        settings: TuningSettings,
        rules: VoiceRules,
        capability: ModelCapability | None = None,
    ) -> None:
        """Initialize chunker with sizing settings, pacing rules and model capability."""

        self._settings = settings
        self._rules = rules
        self._capability = capability or resolve_capability(settings.voice.model_id)
        self._target = float(settings.chunking.max_sec)
        self._wpm = float(rules.pacing.wpm)
        self._rate = float(settings.markup.default_rate)
        self._max_break_ms = min(rules.break_clamp_ms, self._capability.max_break_ms)
        self._settings_subset = synthesis_settings_subset(settings)

    def chunking_params(self) -> dict[str, Any]:
        """Return the parameters recorded in the manifest."""

        chunking = self._settings.chunking
        return {
            "target_seconds": chunking.max_sec,
            "max_chars": chunking.max_chars,
            "min_chars": chunking.min_chars,
            "overlap_ms": chunking.overlap_ms,
            "context_sentences": chunking.context_sentences,
            "wpm": self._rules.pacing.wpm,
            "rate": self._settings.markup.default_rate,
            "model_id": self._capability.model_id,
        }

    def chunk(self, markup: str) -> ChunkingResult:
        """Split a markup document into ordered chunks.

        Empty input yields an empty result; a document without sentence-ending
        punctuation yields a single chunk.
        """

        document, unwrapped = self._unwrap_long_containers(unwrap_root(markup))
        if not count_words(document):
            return ChunkingResult(
                chunks=(),
                boundaries=(),
                stats=ChunkingStats(
                    total_chunks=0, average_chars=0.0, total_duration_sec=0.0, overlap_ratio=0.0
                ),
            )

        sentences: list[_Sentence] = []
        for sentence in self._split_sentences(document):
            sentences.extend(self._split_oversized(document, sentence))
        groups = self._group(document, sentences)

        chunks: list[Chunk] = []
        boundaries: list[int] = []
        sentence_index = 0
        for group_index, group in enumerate(groups):
            first_index = sentence_index
            sentence_index += len(group)
            body = document[group[0].start : group[-1].end].strip()
            chunks.append(
                self._build_chunk(
                    index=group_index,
                    body=body,
                    is_first=group_index == 0,
                    is_last=group_index == len(groups) - 1,
                    previous_context=self._context(document, sentences, first_index, before=True),
                    next_context=self._context(document, sentences, sentence_index, before=False),
                )
            )
            boundaries.append(group[-1].end)

        return ChunkingResult(
            chunks=tuple(chunks),
            boundaries=tuple(boundaries),
            stats=self._stats(chunks),
            warnings=tuple(self._warnings(chunks, unwrapped)),
        )

    def _estimate(self, markup: str) -> float:
        return estimate_spoken_seconds(markup, self._wpm, self._rate)

    def _unwrap_long_containers(self, document: str) -> tuple[str, int]:
        """Drop container tags whose content alone runs longer than the target.

        Sentences are only cut outside containers, so such an element could never
        be split into bounded chunks. Returns the document and the number of
        elements removed.
        """

        unwrapped = document
        removed = 0
        while True:
            span = self._find_long_container(unwrapped)
            if span is None:
                return unwrapped, removed
            opening, closing = span
            unwrapped = (
                unwrapped[: opening.start()]
                + unwrapped[opening.end() : closing.start()]
                + unwrapped[closing.end() :]
            )
            removed += 1

    def _find_long_container(self, document: str) -> tuple[re.Match[str], re.Match[str]] | None:
        openings: list[re.Match[str]] = []
        for match in self._CONTAINER_TAG_PATTERN.finditer(document):
            if match.group(3):
                continue
            if not match.group(1):
                openings.append(match)
                continue
            if not openings:
                continue
            opening = openings.pop()
            if self._estimate(document[opening.end() : match.start()]) > self._target:
                return opening, match
        return None

    def _edge_allowance_seconds(self) -> float:
        if not self._capability.supports_breaks:
            return 0.0
        guardrails = self._rules.guardrails
        break_ms = self._settings.markup.break_ms
        total = float(self._settings.chunking.overlap_ms)
        if guardrails.start_with_micro_pause:
            total += clamp_break_ms(break_ms.comma, self._max_break_ms)
        if guardrails.end_with_short_pause:
            total += clamp_break_ms(break_ms.clause, self._max_break_ms)
        return total / 1000.0

    def _split_sentences(self, document: str) -> list[_Sentence]:
        """Split at sentence punctuation and newlines seen at nesting depth zero."""

        sentences: list[_Sentence] = []
        length = len(document)
        start = 0
        depth = 0
        index = 0
        while index < length:
            character = document[index]
            if character == "<":
                match = TAG_PATTERN.match(document, index)
                if match is not None:
                    depth = max(0, depth + _depth_delta(match.group(0)))
                    index = match.end()
                    continue
            elif character == "\n" and depth == 0:
                if self._append(sentences, document, start, index):
                    start = index + 1
                if sentences:
                    sentences[-1].paragraph_after = True
            elif character in ".!?" and depth == 0:
                end = self._sentence_end(document, index)
                if end is not None:
                    if self._append(sentences, document, start, end):
                        start = end
                    index = max(end, index + 1)
                    continue
            index += 1
        self._append(sentences, document, start, length)
        return sentences

    @staticmethod
    def _append(sentences: list[_Sentence], document: str, start: int, end: int) -> bool:
        """Record a sentence span; word-less spans join the previous sentence.

        Returns whether the span was consumed.
        """

        piece = document[start:end]
        if not piece.strip():
            return True
        if count_words(piece):
            sentences.append(_Sentence(start=start, end=end))
            return True
        if sentences:
            sentences[-1].end = end
            return True
        return False

    def _sentence_end(self, document: str, index: int) -> int | None:
        """Return the end offset of a sentence closed at `index`, or `None`."""

        length = len(document)
        if document[index] == "." and self._is_non_terminal_period(document, index):
            return None

        cursor = index + 1
        while cursor < length and (
            document[cursor] in ".!?" or document[cursor] in self._SENTENCE_CLOSERS
        ):
            cursor += 1
        while True:
            while cursor < length and document[cursor] in " \t":
                cursor += 1
            match = TAG_PATTERN.match(document, cursor) if cursor < length else None
            if match is not None and BREAK_PATTERN.fullmatch(match.group(0)):
                cursor = match.end()
                continue
            break

        if cursor >= length:
            return length
        following = document[cursor]
        if following == "\n" or following.isupper() or following.isdigit():
            return cursor
        if following in self._SENTENCE_OPENERS:
            return cursor
        if following == "<":
            match = TAG_PATTERN.match(document, cursor)
            if match is not None and _depth_delta(match.group(0)) == 1:
                return cursor
        return None

    def _is_non_terminal_period(self, document: str, index: int) -> bool:
        if 0 < index < len(document) - 1:
            if document[index - 1].isdigit() and document[index + 1].isdigit():
                return True
        start = index
        while start > 0 and (document[start - 1].isalpha() or document[start - 1] == "."):
            start -= 1
        return document[start : index + 1].lower() in self._COMMON_ABBREVIATIONS

    def _split_oversized(self, document: str, sentence: _Sentence) -> list[_Sentence]:
        """Split a sentence longer than the target at depth-zero word gaps."""

        if self._estimate(document[sentence.start : sentence.end]) <= self._target:
            return [sentence]

        cuts: list[int] = []
        depth = 0
        index = sentence.start
        while index < sentence.end:
            if document[index] == "<":
                match = TAG_PATTERN.match(document, index)
                if match is not None:
                    depth = max(0, depth + _depth_delta(match.group(0)))
                    index = match.end()
                    continue
            if document[index] in " \t" and depth == 0:
                cuts.append(index + 1)
            index += 1

        pieces: list[_Sentence] = []
        piece_start = sentence.start
        last_cut: int | None = None
        last_clause_cut: int | None = None
        for cut in cuts:
            if last_cut is not None and self._estimate(document[piece_start:cut]) > self._target:
                chosen = last_clause_cut if last_clause_cut is not None else last_cut
                pieces.append(_Sentence(start=piece_start, end=chosen))
                piece_start = chosen
                last_cut = None
                last_clause_cut = None
                if cut <= piece_start:
                    continue
            last_cut = cut
            if self._CLAUSE_CUT_PATTERN.search(document[max(piece_start, cut - 40) : cut]):
                last_clause_cut = cut
        pieces.append(
            _Sentence(start=piece_start, end=sentence.end, paragraph_after=sentence.paragraph_after)
        )
        return [piece for piece in pieces if count_words(document[piece.start : piece.end])]

    def _group(self, document: str, sentences: list[_Sentence]) -> list[list[_Sentence]]:
        """Greedily pack sentences under duration and character bounds."""

        chunking = self._settings.chunking
        allowance = self._edge_allowance_seconds()
        groups: list[list[_Sentence]] = []
        current: list[_Sentence] = []
        for sentence in sentences:
            if current:
                candidate = document[current[0].start : sentence.end]
                current_text = document[current[0].start : current[-1].end]
                candidate_seconds = self._estimate(candidate) + allowance
                candidate_chars = len(strip_markup(candidate))
                meets_floor = len(strip_markup(current_text)) >= chunking.min_chars
                forced = (
                    current[-1].paragraph_after
                    or self._contains_transition(document, sentence)
                    or self._opens_with_direct_address(document, sentence)
                )
                exceeds = candidate_seconds > self._target or candidate_chars > chunking.max_chars
                hard_limit = candidate_seconds > self._target * self._HARD_LIMIT_RATIO
                if hard_limit or (meets_floor and (forced or exceeds)):
                    groups.append(current)
                    current = []
            current.append(sentence)
        if current:
            groups.append(current)
        return groups

    def _contains_transition(self, document: str, sentence: _Sentence) -> bool:
        plain = strip_markup(document[sentence.start : sentence.end]).lower()
        return any(phrase.lower() in plain for phrase in self._rules.transition_phrases)

    def _opens_with_direct_address(self, document: str, sentence: _Sentence) -> bool:
        plain = strip_markup(document[sentence.start : sentence.end])
        return bool(self._DIRECT_ADDRESS_PATTERN.match(plain))

    def _context(
        self,
        document: str,
        sentences: list[_Sentence],
        index: int,
        *,
        before: bool,
    ) -> str | None:
        count = self._settings.chunking.context_sentences
        if count <= 0:
            return None
        if before:
            selected = sentences[max(0, index - count) : index]
        else:
            selected = sentences[index : index + count]
        text = " ".join(strip_markup(document[item.start : item.end]) for item in selected)
        return text or None

    def _build_chunk(
        self,
        *,
        index: int,
        body: str,
        is_first: bool,
        is_last: bool,
        previous_context: str | None,
        next_context: str | None,
    ) -> Chunk:
        markup_body = self._apply_edges(body, is_first=is_first, is_last=is_last)
        if self._capability.supports_audio_tags:
            markup_body = limit_cues(markup_body, self._rules.audio_tags.max_tags_per_chunk)
        if self._capability.supports_ssml:
            markup_body = wrap_root(markup_body)
        plain = strip_markup(markup_body)
        return Chunk(
            index=index,
            markup_body=markup_body,
            plain_text_body=plain,
            estimated_duration_sec=round(self._estimate(markup_body), 2),
            char_count=len(plain),
            content_hash=chunk_content_hash(markup_body, self._settings_subset),
            previous_context=previous_context,
            next_context=next_context,
        )

    def _apply_edges(self, body: str, *, is_first: bool, is_last: bool) -> str:
        """Add guardrail pauses and half-overlap pauses at interior edges."""

        if not self._capability.supports_breaks:
            return body
        guardrails = self._rules.guardrails
        break_ms = self._settings.markup.break_ms
        half_overlap = self._settings.chunking.overlap_ms / 2.0

        lead_ms = 0.0 if is_first else half_overlap
        if guardrails.start_with_micro_pause and not body.startswith("<break"):
            lead_ms += break_ms.comma
        trail_ms = 0.0 if is_last else half_overlap
        if guardrails.end_with_short_pause and not body.endswith("/>"):
            trail_ms += break_ms.clause

        edged = body
        if lead_ms > 0:
            edged = f"{format_break(clamp_break_ms(lead_ms, self._max_break_ms))} {edged}"
        if trail_ms > 0:
            edged = f"{edged} {format_break(clamp_break_ms(trail_ms, self._max_break_ms))}"
        return merge_adjacent_breaks(edged, self._max_break_ms)

    def _stats(self, chunks: list[Chunk]) -> ChunkingStats:
        total_duration = sum(chunk.estimated_duration_sec for chunk in chunks)
        overlap_seconds = self._settings.chunking.overlap_ms / 1000.0 * max(0, len(chunks) - 1)
        return ChunkingStats(
            total_chunks=len(chunks),
            average_chars=round(sum(chunk.char_count for chunk in chunks) / len(chunks), 1),
            total_duration_sec=round(total_duration, 2),
            overlap_ratio=round(overlap_seconds / total_duration, 4) if total_duration else 0.0,
        )

    def _warnings(self, chunks: list[Chunk], unwrapped: int = 0) -> list[str]:
        warnings: list[str] = []
        if unwrapped:
            warnings.append(
                f"Removed {unwrapped} prosody/emphasis element(s) longer than the target duration"
            )
        limit = self._target * self._HARD_LIMIT_RATIO
        for chunk in chunks:
            if chunk.estimated_duration_sec > limit:
                warnings.append(
                    f"Chunk {chunk.index} exceeds target duration: "
                    f"{chunk.estimated_duration_sec:.1f}s (target: {self._target:g}s)"
                )
            if chunk.char_count == 0:
                warnings.append(f"Chunk {chunk.index} is empty")
            elif len(chunks) > 1 and chunk.estimated_duration_sec < self._SHORT_CHUNK_SECONDS:
                warnings.append(
                    f"Chunk {chunk.index} is very short: {chunk.estimated_duration_sec:.1f}s"
                )
            if not re.search(r"[.!?]", chunk.plain_text_body):
                warnings.append(f"Chunk {chunk.index} has no sentence boundary")
        if len(chunks) > self._HIGH_CHUNK_COUNT:
            warnings.append(
                f"High chunk count ({len(chunks)}); consider a longer target duration"
            )
        return warnings
