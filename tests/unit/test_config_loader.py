"""Unit tests for YAML/environment configuration loader behavior."""

from __future__ import annotations

from pathlib import Path

import pytest

from voicerender.config import ConfigLoader, RenderConfig
from voicerender.models.settings import TuningSettings


def test_config_loader_from_yaml_loads_valid_config_and_normalizes_values(
    tmp_path: Path,
) -> None:
    """YAML loader should parse valid payloads and normalize typed/blank values."""

    config_path = tmp_path / "voicerender.yml"
    config_path.write_text(
        """
api_key: " test-key "
base_url: " https://tts.example "
store_root: " renders-out "
batch_size: " 3 "
batch_delay_seconds: 0.5
request_timeout_seconds: 30
max_retries: 0
voice_id: " narrator "
model_id: " "
""".strip(),
        encoding="utf-8",
    )

    config = ConfigLoader.from_yaml(config_path)

    assert config.api_key == "test-key"
    assert config.base_url == "https://tts.example"
    assert config.store_root == Path("renders-out")
    assert config.batch_size == 3
    assert config.batch_delay_seconds == 0.5
    assert config.request_timeout_seconds == 30.0
    assert config.max_retries == 0
    assert config.voice_id == "narrator"
    assert config.model_id is None


def test_config_loader_from_yaml_rejects_unknown_keys_and_bad_roots(tmp_path: Path) -> None:
    """YAML loader should fail clearly on unknown fields and non-mapping payloads."""

    unknown_path = tmp_path / "unknown.yml"
    unknown_path.write_text("batch_size: 2\nunknown_field: x\n", encoding="utf-8")
    list_path = tmp_path / "list.yml"
    list_path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError, match=r"unsupported key\(s\): unknown_field"):
        ConfigLoader.from_yaml(unknown_path)
    with pytest.raises(ValueError, match="top-level mapping"):
        ConfigLoader.from_yaml(list_path)
    with pytest.raises(ValueError, match="Could not read YAML file"):
        ConfigLoader.from_yaml(tmp_path / "absent.yml")


def test_config_loader_from_yaml_rejects_invalid_values(tmp_path: Path) -> None:
    """Out-of-range and mistyped values should be rejected."""

    bad_batch = tmp_path / "batch.yml"
    bad_batch.write_text("batch_size: 40\n", encoding="utf-8")
    bad_retries = tmp_path / "retries.yml"
    bad_retries.write_text("max_retries: true\n", encoding="utf-8")

    with pytest.raises(ValueError, match="between 1 and 16"):
        ConfigLoader.from_yaml(bad_batch)
    with pytest.raises(ValueError, match="must be an integer"):
        ConfigLoader.from_yaml(bad_retries)


def test_config_loader_from_env_overrides_base_values() -> None:
    """Environment values should override the base config field by field."""

    base = RenderConfig(batch_size=2, voice_id="from-file")

    config = ConfigLoader.from_env(
        {
            "ELEVENLABS_API_KEY": " env-key ",
            "VOICERENDER_BATCH_DELAY_SECONDS": "0",
            "ELEVEN_MODEL_ID": "eleven_turbo_v2",
            "VOICERENDER_STORE_ROOT": "",
        },
        base=base,
    )

    assert config.api_key == "env-key"
    assert config.batch_size == 2
    assert config.batch_delay_seconds == 0.0
    assert config.voice_id == "from-file"
    assert config.model_id == "eleven_turbo_v2"
    assert config.store_root == Path("renders")


def test_config_loader_from_env_rejects_invalid_numbers() -> None:
    """Malformed numeric environment values should fail with the variable name."""

    with pytest.raises(ValueError, match="VOICERENDER_BATCH_SIZE"):
        ConfigLoader.from_env({"VOICERENDER_BATCH_SIZE": "zero"})
    with pytest.raises(ValueError, match="VOICERENDER_BATCH_DELAY_SECONDS"):
        ConfigLoader.from_env({"VOICERENDER_BATCH_DELAY_SECONDS": "-1"})


def test_render_config_applies_voice_and_model_overrides() -> None:
    """Configured overrides should replace the tuning voice fields."""

    settings = RenderConfig(voice_id="v", model_id="eleven_v3").apply_overrides(TuningSettings())

    assert settings.voice.voice_id == "v"
    assert settings.voice.model_id == "eleven_v3"
    assert RenderConfig().apply_overrides(TuningSettings()) == TuningSettings()


def test_load_tuning_settings_merges_partial_yaml(tmp_path: Path) -> None:
    """Partial settings files should override only the named fields."""

    settings_path = tmp_path / "settings.yml"
    settings_path.write_text(
        """
voice:
  stability: 0.4
markup:
  break_ms:
    sentence: 500
chunking:
  max_sec: 25
export:
  format: wav
""".strip(),
        encoding="utf-8",
    )

    settings = ConfigLoader.load_tuning_settings(settings_path)

    assert settings.voice.stability == 0.4
    assert settings.markup.break_ms.sentence == 500
    assert settings.markup.break_ms.comma == 140
    assert settings.chunking.max_sec == 25
    assert settings.export.format == "wav"
    assert settings.mastering == TuningSettings().mastering
    assert ConfigLoader.load_tuning_settings(None) == TuningSettings()


def test_load_tuning_settings_rejects_unknown_and_out_of_range_fields(tmp_path: Path) -> None:
    """Unknown sections/fields and out-of-range values should fail with the file path."""

    unknown_section = tmp_path / "section.yml"
    unknown_section.write_text("loudness:\n  target: -14\n", encoding="utf-8")
    unknown_field = tmp_path / "field.yml"
    unknown_field.write_text("voice:\n  pitch: 2\n", encoding="utf-8")
    out_of_range = tmp_path / "range.yml"
    out_of_range.write_text("chunking:\n  max_sec: 90\n", encoding="utf-8")
    bad_rate = tmp_path / "rate.yml"
    bad_rate.write_text("stitching:\n  sample_rate: 48000\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Unknown settings section `loudness`"):
        ConfigLoader.load_tuning_settings(unknown_section)
    with pytest.raises(ValueError, match=r"Unknown settings field `voice\.pitch`"):
        ConfigLoader.load_tuning_settings(unknown_field)
    with pytest.raises(ValueError, match="chunking.max_sec"):
        ConfigLoader.load_tuning_settings(out_of_range)
    with pytest.raises(ValueError, match="44100 or 22050"):
        ConfigLoader.load_tuning_settings(bad_rate)


def test_load_voice_rules_from_yaml(tmp_path: Path) -> None:
    """Rules files should override defaults and convert lists to tuples."""

    rules_path = tmp_path / "rules.yml"
    rules_path.write_text(
        """
pacing:
  wpm: 160
transition_phrases:
  - "Next up"
""".strip(),
        encoding="utf-8",
    )
    bad_path = tmp_path / "bad_rules.yml"
    bad_path.write_text("pacing:\n  tempo: 3\n", encoding="utf-8")

    rules = ConfigLoader.load_voice_rules(rules_path)

    assert rules.pacing.wpm == 160
    assert rules.pacing.reflective_rate_delta_pct == -8
    assert rules.transition_phrases == ("Next up",)
    with pytest.raises(ValueError, match=r"Rules file .* is invalid"):
        ConfigLoader.load_voice_rules(bad_path)
