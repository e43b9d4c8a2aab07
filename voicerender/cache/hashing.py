"""Deterministic hashes and storage key layout.

Responsibilities:
- Hash scripts, settings and chunk content with canonical JSON serialization.
- Select the settings subset that changes synthesized audio.
- Build storage keys for cached chunk audio and per-render artifacts.
"""

from __future__ import annotations

from hashlib import sha256
import json
import re
import secrets
from typing import Any

from ..models.settings import TuningSettings

_HASH_PATTERN = re.compile(r"^[a-f0-9]{64}$")
_RENDER_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$")
RENDER_ARTIFACTS = frozenset(
    {
        "request.json",
        "markup.xml",
        "manifest.json",
        "status.json",
        "raw.wav",
        "diagnostics.json",
    }
)


def canonical_json(payload: Any) -> str:
    """Serialize payload with sorted keys and compact separators."""

    return json.dumps(payload, sort_keys=True, ensure_ascii=True, separators=(",", ":"))


def sha256_hex(content: str) -> str:
    """Return the hex SHA-256 digest of UTF-8 text."""

    return sha256(content.encode("utf-8")).hexdigest()


def script_hash(script: str) -> str:
    """Hash a script after collapsing whitespace runs."""

    return sha256_hex(" ".join(script.split()))


def settings_hash(settings: TuningSettings) -> str:
    """Hash the complete canonical settings value."""

    return sha256_hex(canonical_json(settings.as_dict()))


def synthesis_settings_subset(settings: TuningSettings) -> dict[str, Any]:
    """Return the settings fields that alter synthesized audio."""

    voice = settings.voice
    return {
        "voice_id": voice.voice_id,
        "model_id": voice.model_id,
        "stability": voice.stability,
        "similarity_boost": voice.similarity_boost,
        "style": voice.style,
        "speaker_boost": voice.speaker_boost,
        "seed": voice.seed,
        "output_format": f"pcm_{settings.stitching.sample_rate}",
    }


def chunk_content_hash(markup_body: str, settings_subset: dict[str, Any]) -> str:
    """Hash chunk markup together with the audio-affecting settings subset."""

    return sha256_hex(canonical_json({"markup": markup_body.strip(), "settings": settings_subset}))


def is_valid_hash(value: str) -> bool:
    """Return whether a value looks like a hex SHA-256 digest."""

    return bool(_HASH_PATTERN.match(value))


def new_render_id() -> str:
    """Return a random 32-character hex render identifier."""

    return secrets.token_hex(16)


def is_valid_render_id(value: str) -> bool:
    """Return whether a value looks like a render identifier."""

    return bool(_RENDER_ID_PATTERN.match(value))


def chunk_audio_key(content_hash: str) -> str:
    """Return the store key of cached chunk audio."""

    if not is_valid_hash(content_hash):
        raise ValueError(f"Invalid chunk content hash: {content_hash!r}")
    return f"tts/cache/chunks/{content_hash}.wav"


def render_artifact_key(render_id: str, artifact: str) -> str:
    """Return the store key of one render artifact.

    Args:
        render_id: Render identifier.
        artifact: Artifact file name, e.g. `status.json` or `final.mp3`.
    """

    if artifact not in RENDER_ARTIFACTS and not artifact.startswith("final."):
        raise ValueError(f"Unknown render artifact: {artifact!r}")
    return f"tts/renders/{render_id}/{artifact}"
