"""Typed immutable tuning settings for one render.

Responsibilities:
- Hold voice, markup timing, chunking, stitching, mastering and export parameters.
- Validate field ranges with actionable error messages.
- Provide field-level setters that return new validated values.
- Serialize to and parse from plain mappings for hashing and YAML loading.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Mapping

SUPPORTED_EXPORT_FORMATS = ("wav", "mp3", "flac")
SUPPORTED_SAMPLE_RATES = (44100, 22050)


def _check_range(name: str, value: float, low: float, high: float) -> None:
    """Raise `ValueError` when a numeric field falls outside `[low, high]`."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"`{name}` must be a number.")
    if value < low or value > high:
        raise ValueError(f"`{name}` must be between {low:g} and {high:g}, got {value:g}.")


def _check_bool(name: str, value: object) -> None:
    """Raise `ValueError` when a flag is not a boolean."""

    if not isinstance(value, bool):
        raise ValueError(f"`{name}` must be a boolean.")


@dataclass(frozen=True, slots=True)
class VoiceSettings:
    """Voice parameters forwarded to the speech provider.

    Attributes:
        voice_id: Provider voice identifier.
        model_id: Provider model identifier.
        stability: Voice stability in `0..1`.
        similarity_boost: Similarity boost in `0..1`.
        style: Style exaggeration in `0..1`.
        speaker_boost: Whether speaker boost is enabled.
        seed: Optional deterministic provider seed.
    """

    voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    model_id: str = "eleven_multilingual_v2"
    stability: float = 0.58
    similarity_boost: float = 0.85
    style: float = 0.22
    speaker_boost: bool = True
    seed: int | None = 12345

    def validate(self) -> None:
        """Validate voice parameter ranges."""

        if not isinstance(self.voice_id, str) or not self.voice_id.strip():
            raise ValueError("`voice.voice_id` must be a non-empty string.")
        if not isinstance(self.model_id, str) or not self.model_id.strip():
            raise ValueError("`voice.model_id` must be a non-empty string.")
        _check_range("voice.stability", self.stability, 0.0, 1.0)
        _check_range("voice.similarity_boost", self.similarity_boost, 0.0, 1.0)
        _check_range("voice.style", self.style, 0.0, 1.0)
        _check_bool("voice.speaker_boost", self.speaker_boost)
        if self.seed is not None:
            if isinstance(self.seed, bool) or not isinstance(self.seed, int) or self.seed < 0:
                raise ValueError("`voice.seed` must be a non-negative integer or null.")


@dataclass(frozen=True, slots=True)
class BreakTimings:
    """Pause duration per punctuation class, in milliseconds."""

    comma: int = 140
    clause: int = 240
    sentence: int = 420
    paragraph: int = 800

    def for_class(self, pause_class: str) -> int:
        """Return the pause duration configured for a punctuation class."""

        return int(getattr(self, pause_class))


@dataclass(frozen=True, slots=True)
class MarkupSettings:
    """Markup timing and density parameters.

    Attributes:
        tag_density_max_per_10_words: Upper bound for inline markers per 10 spoken words.
        break_ms: Pause duration table per punctuation class.
        default_rate: Speaking-rate multiplier used for duration estimates.
        default_pitch_st: Default pitch offset in semitones.
    """

    tag_density_max_per_10_words: float = 1.0
    break_ms: BreakTimings = field(default_factory=BreakTimings)
    default_rate: float = 0.98
    default_pitch_st: float = -0.5

    def validate(self) -> None:
        """Validate markup parameter ranges."""

        _check_range(
            "markup.tag_density_max_per_10_words", self.tag_density_max_per_10_words, 0.0, 5.0
        )
        _check_range("markup.break_ms.comma", self.break_ms.comma, 0, 2000)
        _check_range("markup.break_ms.clause", self.break_ms.clause, 0, 2000)
        _check_range("markup.break_ms.sentence", self.break_ms.sentence, 0, 2000)
        _check_range("markup.break_ms.paragraph", self.break_ms.paragraph, 0, 3000)
        _check_range("markup.default_rate", self.default_rate, 0.5, 2.0)
        _check_range("markup.default_pitch_st", self.default_pitch_st, -12.0, 12.0)


@dataclass(frozen=True, slots=True)
class ChunkingSettings:
    """Chunk sizing parameters."""

    max_sec: float = 35.0
    overlap_ms: int = 300
    context_sentences: int = 2
    max_chars: int = 1800
    min_chars: int = 120

    def validate(self) -> None:
        """Validate chunking parameter ranges."""

        _check_range("chunking.max_sec", self.max_sec, 10, 60)
        _check_range("chunking.overlap_ms", self.overlap_ms, 0, 1000)
        _check_range("chunking.context_sentences", self.context_sentences, 0, 5)
        _check_range("chunking.max_chars", self.max_chars, 200, 5000)
        _check_range("chunking.min_chars", self.min_chars, 0, self.max_chars)


@dataclass(frozen=True, slots=True)
class StitchingSettings:
    """Chunk stitching parameters."""

    crossfade_ms: int = 120
    sample_rate: int = 44100
    mono: bool = True

    def validate(self) -> None:
        """Validate stitching parameter ranges."""

        _check_range("stitching.crossfade_ms", self.crossfade_ms, 0, 500)
        if self.sample_rate not in SUPPORTED_SAMPLE_RATES:
            raise ValueError("`stitching.sample_rate` must be 44100 or 22050.")
        _check_bool("stitching.mono", self.mono)


@dataclass(frozen=True, slots=True)
class MasteringSettings:
    """Mastering chain parameters; each stage is independently toggleable."""

    enable: bool = True
    highpass_enable: bool = True
    highpass_hz: float = 85.0
    deesser_enable: bool = True
    deesser_hz: float = 6500.0
    deesser_amount: float = 0.5
    compressor_enable: bool = True
    compressor_ratio: float = 2.0
    compressor_attack_ms: float = 25.0
    compressor_release_ms: float = 120.0
    compressor_gain_db: float = 1.5
    compressor_threshold_db: float = -18.0
    loudness_enable: bool = True
    target_lufs: float = -14.0
    true_peak_db: float = -1.0

    def validate(self) -> None:
        """Validate mastering parameter ranges."""

        for flag in (
            "enable",
            "highpass_enable",
            "deesser_enable",
            "compressor_enable",
            "loudness_enable",
        ):
            _check_bool(f"mastering.{flag}", getattr(self, flag))
        _check_range("mastering.highpass_hz", self.highpass_hz, 20, 200)
        _check_range("mastering.deesser_hz", self.deesser_hz, 3000, 10000)
        _check_range("mastering.deesser_amount", self.deesser_amount, 0.0, 1.0)
        _check_range("mastering.compressor_ratio", self.compressor_ratio, 1, 10)
        _check_range("mastering.compressor_attack_ms", self.compressor_attack_ms, 1, 100)
        _check_range("mastering.compressor_release_ms", self.compressor_release_ms, 10, 1000)
        _check_range("mastering.compressor_gain_db", self.compressor_gain_db, -10, 10)
        _check_range("mastering.compressor_threshold_db", self.compressor_threshold_db, -60, 0)
        _check_range("mastering.target_lufs", self.target_lufs, -30, -6)
        _check_range("mastering.true_peak_db", self.true_peak_db, -3, 0)


@dataclass(frozen=True, slots=True)
class ExportSettings:
    """Final audio export parameters."""

    format: str = "mp3"
    bitrate_kbps: int = 224

    def validate(self) -> None:
        """Validate export parameter ranges."""

        if self.format not in SUPPORTED_EXPORT_FORMATS:
            supported = ", ".join(SUPPORTED_EXPORT_FORMATS)
            raise ValueError(f"`export.format` must be one of: {supported}.")
        _check_range("export.bitrate_kbps", self.bitrate_kbps, 64, 320)


_SECTION_TYPES: dict[str, type] = {
    "voice": VoiceSettings,
    "markup": MarkupSettings,
    "chunking": ChunkingSettings,
    "stitching": StitchingSettings,
    "mastering": MasteringSettings,
    "export": ExportSettings,
}


@dataclass(frozen=True, slots=True)
class TuningSettings:
    """Complete immutable tuning settings for one render.

    A changed settings value always yields a new settings hash and therefore a
    new cache namespace for any field that reaches the provider.
    """

    voice: VoiceSettings = field(default_factory=VoiceSettings)
    markup: MarkupSettings = field(default_factory=MarkupSettings)
    chunking: ChunkingSettings = field(default_factory=ChunkingSettings)
    stitching: StitchingSettings = field(default_factory=StitchingSettings)
    mastering: MasteringSettings = field(default_factory=MasteringSettings)
    export: ExportSettings = field(default_factory=ExportSettings)

    def validate(self) -> TuningSettings:
        """Validate every section and return `self` for chaining."""

        self.voice.validate()
        self.markup.validate()
        self.chunking.validate()
        self.stitching.validate()
        self.mastering.validate()
        self.export.validate()
        return self

    def with_voice(self, **changes: Any) -> TuningSettings:
        """Return settings with updated voice fields."""

        return replace(self, voice=replace(self.voice, **changes)).validate()

    def with_markup(self, **changes: Any) -> TuningSettings:
        """Return settings with updated markup fields."""

        return replace(self, markup=replace(self.markup, **changes)).validate()

    def with_break_ms(self, **changes: int) -> TuningSettings:
        """Return settings with updated pause timings."""

        break_ms = replace(self.markup.break_ms, **changes)
        return self.with_markup(break_ms=break_ms)

    def with_chunking(self, **changes: Any) -> TuningSettings:
        """Return settings with updated chunking fields."""

        return replace(self, chunking=replace(self.chunking, **changes)).validate()

    def with_stitching(self, **changes: Any) -> TuningSettings:
        """Return settings with updated stitching fields."""

        return replace(self, stitching=replace(self.stitching, **changes)).validate()

    def with_mastering(self, **changes: Any) -> TuningSettings:
        """Return settings with updated mastering fields."""

        return replace(self, mastering=replace(self.mastering, **changes)).validate()

    def with_export(self, **changes: Any) -> TuningSettings:
        """Return settings with updated export fields."""

        return replace(self, export=replace(self.export, **changes)).validate()

    def as_dict(self) -> dict[str, Any]:
        """Return a plain nested mapping suitable for canonical JSON hashing."""

        return asdict(self)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> TuningSettings:
        """Parse a partial nested mapping over the default preset.

        Raises:
            ValueError: If a section or field name is unknown or a value is out of range.
        """

        sections: dict[str, object] = {}
        for section_name, section_payload in payload.items():
            section_type = _SECTION_TYPES.get(str(section_name))
            if section_type is None:
                allowed = ", ".join(sorted(_SECTION_TYPES))
                raise ValueError(
                    f"Unknown settings section `{section_name}`; allowed sections: {allowed}."
                )
            if not isinstance(section_payload, Mapping):
                raise ValueError(f"Settings section `{section_name}` must be a mapping.")
            sections[str(section_name)] = _build_section(
                str(section_name), section_type, section_payload
            )
        return cls(**sections).validate()


def _build_section(name: str, section_type: type, payload: Mapping[str, object]) -> object:
    """Build one settings section from a partial mapping."""

    known = {item.name for item in fields(section_type)}
    values: dict[str, object] = {}
    for key, value in payload.items():
        if key not in known:
            raise ValueError(f"Unknown settings field `{name}.{key}`.")
        if section_type is MarkupSettings and key == "break_ms":
            if not isinstance(value, Mapping):
                raise ValueError("`markup.break_ms` must be a mapping.")
            values[key] = _build_section("markup.break_ms", BreakTimings, value)
            continue
        values[str(key)] = value
    return section_type(**values)
