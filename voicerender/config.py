"""Configuration model and loaders for VoiceRender.

Responsibilities:
- Define runtime render options as a typed dataclass.
- Provide loader entry points for file- and environment-based configuration.
- Load tuning settings and voice rules from YAML files.

Key types:
- `RenderConfig`: normalized runtime options for a render service.
- `ConfigLoader`: static construction helpers for configs, settings and rules.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models.settings import TuningSettings
from .parsing import normalize_optional_string
from .text.rules import VoiceRules
from .tts.client import DEFAULT_BASE_URL


@dataclass(frozen=True, slots=True)
class RenderConfig:
    """Runtime options for one render service.

    Attributes:
        api_key: Provider API key; never persisted or logged.
        base_url: Provider REST API base URL.
        store_root: Root directory of the filesystem blob store.
        batch_size: Chunks synthesized concurrently per batch.
        batch_delay_seconds: Pause between synthesis batches.
        request_timeout_seconds: Timeout of one provider request.
        store_timeout_seconds: Timeout of one cache read or write.
        max_retries: Retries per chunk after a transient failure.
        voice_id: Optional voice override applied over tuning settings.
        model_id: Optional model override applied over tuning settings.
    """

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    store_root: Path = Path("renders")
    batch_size: int = 4
    batch_delay_seconds: float = 0.25
    request_timeout_seconds: float = 120.0
    store_timeout_seconds: float = 10.0
    max_retries: int = 1
    voice_id: str | None = None
    model_id: str | None = None

    def validate(self) -> RenderConfig:
        """Validate runtime option ranges and return `self`."""

        if not isinstance(self.base_url, str) or not self.base_url.strip():
            raise ValueError("`base_url` must be a non-empty string.")
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise ValueError("`batch_size` must be an integer.")
        if not 1 <= self.batch_size <= 16:
            raise ValueError("`batch_size` must be between 1 and 16.")
        if self.batch_delay_seconds < 0:
            raise ValueError("`batch_delay_seconds` must be zero or positive.")
        if self.request_timeout_seconds <= 0:
            raise ValueError("`request_timeout_seconds` must be positive.")
        if self.store_timeout_seconds <= 0:
            raise ValueError("`store_timeout_seconds` must be positive.")
        if isinstance(self.max_retries, bool) or self.max_retries not in (0, 1):
            raise ValueError("`max_retries` must be 0 or 1.")
        return self

    def apply_overrides(self, settings: TuningSettings) -> TuningSettings:
        """Return settings with configured voice/model overrides applied."""

        changes: dict[str, str] = {}
        if self.voice_id is not None:
            changes["voice_id"] = self.voice_id
        if self.model_id is not None:
            changes["model_id"] = self.model_id
        if not changes:
            return settings
        return settings.with_voice(**changes)


class ConfigLoader:
    """Factory methods for runtime config, tuning settings and voice rules."""

    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "api_key",
            "base_url",
            "store_root",
            "batch_size",
            "batch_delay_seconds",
            "request_timeout_seconds",
            "store_timeout_seconds",
            "max_retries",
            "voice_id",
            "model_id",
        }
    )

    @staticmethod
    def from_yaml(path: Path) -> RenderConfig:
        """Create a validated runtime config from a YAML file."""

        payload = ConfigLoader._load_yaml_mapping(path)
        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(
        env: Mapping[str, str] | None = None,
        base: RenderConfig | None = None,
    ) -> RenderConfig:
        """Create a validated runtime config from environment variables.

        Environment values override `base` field by field.
        """

        env_map: Mapping[str, str] = os.environ if env is None else env
        config = base if base is not None else RenderConfig()

        changes: dict[str, Any] = {}
        api_key = ConfigLoader._optional_env_string(env_map, "ELEVENLABS_API_KEY")
        if api_key is not None:
            changes["api_key"] = api_key
        store_root = ConfigLoader._optional_env_string(env_map, "VOICERENDER_STORE_ROOT")
        if store_root is not None:
            changes["store_root"] = Path(store_root)
        batch_size = ConfigLoader._optional_env_positive_int(env_map, "VOICERENDER_BATCH_SIZE")
        if batch_size is not None:
            changes["batch_size"] = batch_size
        batch_delay = ConfigLoader._optional_env_float(env_map, "VOICERENDER_BATCH_DELAY_SECONDS")
        if batch_delay is not None:
            changes["batch_delay_seconds"] = batch_delay
        timeout = ConfigLoader._optional_env_float(env_map, "VOICERENDER_REQUEST_TIMEOUT_SECONDS")
        if timeout is not None:
            changes["request_timeout_seconds"] = timeout
        voice_id = ConfigLoader._optional_env_string(env_map, "ELEVEN_VOICE_ID")
        if voice_id is not None:
            changes["voice_id"] = voice_id
        model_id = ConfigLoader._optional_env_string(env_map, "ELEVEN_MODEL_ID")
        if model_id is not None:
            changes["model_id"] = model_id

        return replace(config, **changes).validate()

    @staticmethod
    def load_tuning_settings(path: Path | None) -> TuningSettings:
        """Load tuning settings from YAML, or return the default preset for `None`."""

        if path is None:
            return TuningSettings().validate()
        payload = ConfigLoader._load_yaml_mapping(path)
        try:
            return TuningSettings.from_mapping(payload)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Settings file `{path}` is invalid: {exc}") from exc

    @staticmethod
    def load_voice_rules(path: Path | None) -> VoiceRules:
        """Load voice rules from YAML, or return built-in rules for `None`."""

        if path is None:
            return VoiceRules()
        payload = ConfigLoader._load_yaml_mapping(path)
        try:
            return VoiceRules.from_mapping(payload)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Rules file `{path}` is invalid: {exc}") from exc

    @staticmethod
    def _load_yaml_mapping(path: Path) -> Mapping[str, Any]:
        """Read a YAML file and enforce a mapping root payload."""

        try:
            raw_text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ValueError(f"Could not read YAML file `{path}`: {exc}") from exc
        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML file `{path}` is not valid YAML: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML file `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _build_config_from_mapping(payload: Mapping[str, Any], source_label: str) -> RenderConfig:
        """Build a validated runtime config from a mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(str(key) for key in unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        defaults = RenderConfig()
        store_root = ConfigLoader._optional_non_empty_string(payload, "store_root")
        config = RenderConfig(
            api_key=ConfigLoader._optional_non_empty_string(payload, "api_key"),
            base_url=(
                ConfigLoader._optional_non_empty_string(payload, "base_url") or defaults.base_url
            ),
            store_root=Path(store_root) if store_root is not None else defaults.store_root,
            batch_size=ConfigLoader._optional_positive_int(
                payload, "batch_size", source_label, default=defaults.batch_size
            ),
            batch_delay_seconds=ConfigLoader._optional_float(
                payload, "batch_delay_seconds", source_label, default=defaults.batch_delay_seconds
            ),
            request_timeout_seconds=ConfigLoader._optional_float(
                payload,
                "request_timeout_seconds",
                source_label,
                default=defaults.request_timeout_seconds,
            ),
            store_timeout_seconds=ConfigLoader._optional_float(
                payload,
                "store_timeout_seconds",
                source_label,
                default=defaults.store_timeout_seconds,
            ),
            max_retries=ConfigLoader._optional_non_negative_int(
                payload, "max_retries", source_label, default=defaults.max_retries
            ),
            voice_id=ConfigLoader._optional_non_empty_string(payload, "voice_id"),
            model_id=ConfigLoader._optional_non_empty_string(payload, "model_id"),
        )
        return config.validate()

    @staticmethod
    def _optional_non_empty_string(payload: Mapping[str, Any], key: str) -> str | None:
        """Read an optional string field and normalize blank values to `None`."""

        if key not in payload:
            return None
        return normalize_optional_string(payload[key])

    @staticmethod
    def _optional_positive_int(
        payload: Mapping[str, Any], key: str, source_label: str, default: int
    ) -> int:
        """Read and validate a positive integer payload field."""

        parsed = ConfigLoader._optional_non_negative_int(payload, key, source_label, default)
        if parsed <= 0:
            raise ValueError(f"{source_label} field `{key}` must be a positive integer.")
        return parsed

    @staticmethod
    def _optional_non_negative_int(
        payload: Mapping[str, Any], key: str, source_label: str, default: int
    ) -> int:
        """Read and validate a non-negative integer payload field."""

        if key not in payload:
            return default
        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be an integer.")
        if isinstance(raw_value, int):
            parsed = raw_value
        else:
            normalized = normalize_optional_string(raw_value)
            if normalized is None:
                return default
            try:
                parsed = int(normalized)
            except ValueError as exc:
                raise ValueError(f"{source_label} field `{key}` must be an integer.") from exc
        if parsed < 0:
            raise ValueError(f"{source_label} field `{key}` must not be negative.")
        return parsed

    @staticmethod
    def _optional_float(
        payload: Mapping[str, Any], key: str, source_label: str, default: float
    ) -> float:
        """Read and validate a numeric payload field."""

        if key not in payload:
            return default
        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a number.")
        try:
            return float(raw_value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{source_label} field `{key}` must be a number.") from exc

    @staticmethod
    def _optional_env_string(env: Mapping[str, str], key: str) -> str | None:
        """Read and normalize optional string environment variable values."""

        if key not in env:
            return None
        return normalize_optional_string(env.get(key))

    @staticmethod
    def _optional_env_positive_int(env: Mapping[str, str], key: str) -> int | None:
        """Read an optional positive integer from environment mapping."""

        raw_value = ConfigLoader._optional_env_string(env, key)
        if raw_value is None:
            return None
        try:
            parsed = int(raw_value)
        except ValueError as exc:
            raise ValueError(f"Environment variable `{key}` must be a positive integer.") from exc
        if parsed <= 0:
            raise ValueError(f"Environment variable `{key}` must be a positive integer.")
        return parsed

    @staticmethod
    def _optional_env_float(env: Mapping[str, str], key: str) -> float | None:
        """Read an optional non-negative number from environment mapping."""

        raw_value = ConfigLoader._optional_env_string(env, key)
        if raw_value is None:
            return None
        try:
            parsed = float(raw_value)
        except ValueError as exc:
            raise ValueError(f"Environment variable `{key}` must be a number.") from exc
        if parsed < 0:
            raise ValueError(f"Environment variable `{key}` must not be negative.")
        return parsed
