"""CLI integration tests for annotate, chunks, render and status commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from voicerender.cli import app
from voicerender.tts.client import ProviderError

_ENV_OVERRIDES = (
    "ELEVEN_VOICE_ID",
    "ELEVEN_MODEL_ID",
    "VOICERENDER_STORE_ROOT",
    "VOICERENDER_BATCH_SIZE",
    "VOICERENDER_REQUEST_TIMEOUT_SECONDS",
)


@pytest.fixture
def script_file(tmp_path: Path, sample_script: str) -> Path:
    """Write the sample script to a UTF-8 file."""

    path = tmp_path / "script.txt"
    path.write_text(sample_script, encoding="utf-8")
    return path


@pytest.fixture
def wav_settings_file(tmp_path: Path) -> Path:
    """Write a settings file selecting WAV export."""

    path = tmp_path / "settings.yml"
    path.write_text("export:\n  format: wav\n", encoding="utf-8")
    return path


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove runtime overrides from the environment and disable batch delays."""

    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("VOICERENDER_BATCH_DELAY_SECONDS", "0")


def _render_id(output: str) -> str:
    """Extract the render id line from command output."""

    for line in output.splitlines():
        if line.startswith("Render id: "):
            return line.removeprefix("Render id: ").strip()
    raise AssertionError(f"No render id in output:\n{output}")


def test_annotate_command_prints_markup_and_diagnostics(script_file: Path) -> None:
    """Annotate should print one markup document followed by its statistics."""

    result = CliRunner().invoke(app, ["annotate", str(script_file)])

    assert result.exit_code == 0, result.output
    assert result.output.startswith("<speak>")
    assert "Words: " in result.output
    assert "Estimated duration: " in result.output
    assert "Breaks: comma " in result.output


def test_chunks_command_prints_chunk_table(script_file: Path) -> None:
    """Chunks should print one row per chunk and a totals line."""

    result = CliRunner().invoke(app, ["chunks", str(script_file)])

    assert result.exit_code == 0, result.output
    assert "  0  " in result.output
    assert "Total: " in result.output


def test_render_command_reports_missing_script(tmp_path: Path) -> None:
    """A missing script fails at the validate stage with exit code 1."""

    result = CliRunner().invoke(app, ["render", str(tmp_path / "absent.txt")])

    assert result.exit_code == 1
    assert "render failed at stage `validate`" in result.output
    assert "Script file not found" in result.output
    assert "Hint: Pass an existing UTF-8 text file." in result.output


def test_render_command_reports_invalid_settings(tmp_path: Path, script_file: Path) -> None:
    """Out-of-range settings fail at the config stage before any synthesis."""

    settings_path = tmp_path / "bad.yml"
    settings_path.write_text("chunking:\n  max_sec: 90\n", encoding="utf-8")

    result = CliRunner().invoke(
        app, ["render", str(script_file), "--settings", str(settings_path)]
    )

    assert result.exit_code == 1
    assert "render failed at stage `config`" in result.output
    assert "chunking.max_sec" in result.output


def test_render_command_renders_to_store_and_status_reads_it(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    script_file: Path,
    wav_settings_file: Path,
    scripted_synthesizer,
    clean_env: None,
) -> None:
    """Render should finish with audio in the store; status should read it back."""

    synthesizer = scripted_synthesizer()
    monkeypatch.setattr("voicerender.cli.ProviderSpeechSynthesizer", lambda _client: synthesizer)
    store = tmp_path / "store"
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "render",
            str(script_file),
            "--settings",
            str(wav_settings_file),
            "--store",
            str(store),
            "--voice-id",
            "narrator",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "State: done" in result.output
    assert "Loudness: " in result.output
    render_id = _render_id(result.output)
    assert (store / "tts" / "renders" / render_id / "final.wav").is_file()
    assert {request.voice.voice_id for request in synthesizer.requests} == {"narrator"}

    status = runner.invoke(app, ["status", render_id, "--store", str(store)])

    assert status.exit_code == 0, status.output
    assert "State: done" in status.output
    assert "synthesize=ok" in status.output


def test_render_command_reports_failed_render(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    script_file: Path,
    wav_settings_file: Path,
    scripted_synthesizer,
    clean_env: None,
) -> None:
    """A provider auth failure ends with a failed state and exit code 1."""

    synthesizer = scripted_synthesizer(
        always_fail=ProviderError("Unauthorized (HTTP 401)", failure_kind="auth", status_code=401)
    )
    monkeypatch.setattr("voicerender.cli.ProviderSpeechSynthesizer", lambda _client: synthesizer)

    result = CliRunner().invoke(
        app,
        [
            "render",
            str(script_file),
            "--settings",
            str(wav_settings_file),
            "--store",
            str(tmp_path / "store"),
        ],
    )

    assert result.exit_code == 1
    assert "State: failed" in result.output
    assert "render failed at stage `render`: Chunk 0 failed after 1 attempt(s)" in result.output


def test_status_command_reports_unknown_render(tmp_path: Path) -> None:
    """Unknown render ids fail at the status stage."""

    result = CliRunner().invoke(app, ["status", "f" * 32, "--store", str(tmp_path)])

    assert result.exit_code == 1
    assert "status failed at stage `status`" in result.output
    assert f"No status found for render `{'f' * 32}`." in result.output
