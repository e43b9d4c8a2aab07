"""Core datatypes shared across VoiceRender modules.

Responsibilities:
- Represent immutable records exchanged between pipeline stages.
- Provide explicit typing and plain-mapping serialization for persisted artifacts.

Key types:
- `Chunk`, `Manifest`, `ChunkingStats`, `ChunkingResult`, `BreakHistogram`,
  `MarkupDiagnostics`, `AnnotationResult`, `JoinSpike`, `Diagnostics`, `RenderStep`,
  `RenderStatus` and `StartRenderResult`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class Chunk:
    """A bounded, independently synthesizable segment of the annotated document.

    Attributes:
        index: 0-based render order.
        markup_body: Markup sent to the provider.
        plain_text_body: Markup-stripped spoken text.
        estimated_duration_sec: Estimated spoken duration including pauses.
        char_count: Markup-stripped character count.
        content_hash: Hash of markup body and audio-affecting settings subset.
        previous_context: Plain text of preceding sentences, never synthesized.
        next_context: Plain text of following sentences, never synthesized.
    """

    index: int
    markup_body: str
    plain_text_body: str
    estimated_duration_sec: float
    char_count: int
    content_hash: str
    previous_context: str | None = None
    next_context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize chunk fields to a plain mapping."""

        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Chunk:
        """Parse a chunk from a plain mapping."""

        return cls(
            index=int(payload["index"]),
            markup_body=str(payload["markup_body"]),
            plain_text_body=str(payload["plain_text_body"]),
            estimated_duration_sec=float(payload["estimated_duration_sec"]),
            char_count=int(payload["char_count"]),
            content_hash=str(payload["content_hash"]),
            previous_context=payload.get("previous_context"),
            next_context=payload.get("next_context"),
        )


@dataclass(frozen=True, slots=True)
class Manifest:
    """Durable, hashable description of one render request.

    Attributes:
        script_hash: Hash of the whitespace-collapsed raw script.
        settings_hash: Hash of the canonical tuning settings.
        chunking_params: Parameters used by the chunker.
        chunks: Ordered chunks.
    """

    script_hash: str
    settings_hash: str
    chunking_params: Mapping[str, Any]
    chunks: tuple[Chunk, ...]

    def to_dict(self) -> dict[str, Any]:
        """Serialize manifest to a plain mapping."""

        return {
            "script_hash": self.script_hash,
            "settings_hash": self.settings_hash,
            "chunking_params": dict(self.chunking_params),
            "chunks": [chunk.to_dict() for chunk in self.chunks],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Manifest:
        """Parse a manifest from a plain mapping."""

        return cls(
            script_hash=str(payload["script_hash"]),
            settings_hash=str(payload["settings_hash"]),
            chunking_params=dict(payload.get("chunking_params", {})),
            chunks=tuple(Chunk.from_dict(item) for item in payload.get("chunks", [])),
        )


@dataclass(frozen=True, slots=True)
class ChunkingStats:
    """Aggregate chunking statistics."""

    total_chunks: int
    average_chars: float
    total_duration_sec: float
    overlap_ratio: float


@dataclass(frozen=True, slots=True)
class ChunkingResult:
    """Chunker output.

    Attributes:
        chunks: Ordered chunks.
        boundaries: Character offsets of chunk ends in the unwrapped document.
        stats: Aggregate statistics.
        warnings: Human-readable quality warnings.
    """

    chunks: tuple[Chunk, ...]
    boundaries: tuple[int, ...]
    stats: ChunkingStats
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class BreakHistogram:
    """Counts of break elements bucketed by punctuation class."""

    comma: int = 0
    clause: int = 0
    sentence: int = 0
    paragraph: int = 0

    def to_dict(self) -> dict[str, int]:
        """Serialize bucket counts to a plain mapping."""

        return asdict(self)


@dataclass(frozen=True, slots=True)
class MarkupDiagnostics:
    """Text-level measurements of an annotated markup document."""

    wpm: float
    tag_density: float
    break_histogram: BreakHistogram
    estimated_duration_sec: float
    words: int
    sentences: int
    paragraphs: int
    characters: int
    total_tags: int
    prosody_tags: int
    break_tags: int
    emphasis_tags: int


@dataclass(frozen=True, slots=True)
class JoinSpike:
    """Energy spike detected at a former chunk join."""

    pos_ms: int
    db: float


@dataclass(frozen=True, slots=True)
class Diagnostics:
    """Read-only measurement of mastered audio.

    Attributes:
        wpm: Spoken words per minute.
        tag_density: Inline markers per 10 words.
        break_histogram: Break counts bucketed by punctuation class.
        duration_sec: Total mastered duration.
        lufs: Integrated loudness.
        true_peak_db: True peak in dBTP.
        join_spikes: Join points louder than their surroundings.
    """

    wpm: float
    tag_density: float
    break_histogram: BreakHistogram
    duration_sec: float
    lufs: float
    true_peak_db: float
    join_spikes: tuple[JoinSpike, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialize diagnostics to a plain mapping."""

        return {
            "wpm": self.wpm,
            "tag_density": self.tag_density,
            "break_histogram": self.break_histogram.to_dict(),
            "duration_sec": self.duration_sec,
            "lufs": self.lufs,
            "true_peak_db": self.true_peak_db,
            "join_spikes": [asdict(spike) for spike in self.join_spikes],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Diagnostics:
        """Parse diagnostics from a plain mapping."""

        return cls(
            wpm=float(payload["wpm"]),
            tag_density=float(payload["tag_density"]),
            break_histogram=BreakHistogram(**payload.get("break_histogram", {})),
            duration_sec=float(payload["duration_sec"]),
            lufs=float(payload["lufs"]),
            true_peak_db=float(payload["true_peak_db"]),
            join_spikes=tuple(
                JoinSpike(pos_ms=int(item["pos_ms"]), db=float(item["db"]))
                for item in payload.get("join_spikes", [])
            ),
        )


@dataclass(frozen=True, slots=True)
class RenderStep:
    """Progress of one tracked render step."""

    name: str
    ok: bool = False
    done: int | None = None
    total: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize step progress, omitting unset counters."""

        payload: dict[str, Any] = {"name": self.name, "ok": self.ok}
        if self.done is not None:
            payload["done"] = self.done
        if self.total is not None:
            payload["total"] = self.total
        return payload


@dataclass(frozen=True, slots=True)
class RenderStatus:
    """Point-in-time snapshot of a render job.

    Attributes:
        render_id: Render identifier.
        state: One of `queued`, `running`, `done`, `failed`.
        progress_total: Total chunk count.
        progress_done: Synthesized chunk count.
        steps: Ordered step progress records.
        started_at: ISO-8601 UTC creation timestamp.
        updated_at: ISO-8601 UTC last-update timestamp.
        error: Human-readable failure cause once `failed`.
        final_audio_ref: Storage reference to mastered audio once `done`.
        diagnostics: Post-mastering diagnostics once `done`.
    """

    render_id: str
    state: str
    progress_total: int
    progress_done: int
    steps: tuple[RenderStep, ...]
    started_at: str
    updated_at: str
    error: str | None = None
    final_audio_ref: str | None = None
    diagnostics: Diagnostics | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize status to the persisted `status.json` shape."""

        return {
            "render_id": self.render_id,
            "state": self.state,
            "progress": {"total": self.progress_total, "done": self.progress_done},
            "steps": [step.to_dict() for step in self.steps],
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "error": self.error,
            "final_audio_ref": self.final_audio_ref,
            "diagnostics": self.diagnostics.to_dict() if self.diagnostics else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> RenderStatus:
        """Parse a persisted status mapping."""

        progress = payload.get("progress", {})
        diagnostics_payload = payload.get("diagnostics")
        return cls(
            render_id=str(payload["render_id"]),
            state=str(payload["state"]),
            progress_total=int(progress.get("total", 0)),
            progress_done=int(progress.get("done", 0)),
            steps=tuple(
                RenderStep(
                    name=str(item["name"]),
                    ok=bool(item.get("ok", False)),
                    done=item.get("done"),
                    total=item.get("total"),
                )
                for item in payload.get("steps", [])
            ),
            started_at=str(payload.get("started_at", "")),
            updated_at=str(payload.get("updated_at", "")),
            error=payload.get("error"),
            final_audio_ref=payload.get("final_audio_ref"),
            diagnostics=(
                Diagnostics.from_dict(diagnostics_payload)
                if isinstance(diagnostics_payload, Mapping)
                else None
            ),
        )


@dataclass(frozen=True, slots=True)
class StartRenderResult:
    """Synchronous result of starting a render."""

    render_id: str
    script_hash: str
    settings_hash: str
    chunks: int
    estimated_duration: float
    markup_tags: int
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the `{render_id, hashes, stats, warnings}` response shape."""

        return {
            "render_id": self.render_id,
            "hashes": {"script_hash": self.script_hash, "settings_hash": self.settings_hash},
            "stats": {
                "chunks": self.chunks,
                "estimated_duration": self.estimated_duration,
                "markup_tags": self.markup_tags,
            },
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True, slots=True)
class AnnotationResult:
    """Annotation pipeline output with intermediate stages kept for inspection.

    Attributes:
        markup: Final balanced markup document.
        diagnostics: Text-level markup measurements.
        normalized: Output of the normalize step.
        conversational: Output of the conversational realism step.
        with_macros: Output of the macro insertion step.
        warnings: Markup validation warnings.
    """

    markup: str
    diagnostics: MarkupDiagnostics
    normalized: str
    conversational: str
    with_macros: str
    warnings: tuple[str, ...] = field(default_factory=tuple)
