"""Command-line interface for VoiceRender.

Responsibilities:
- Expose user-facing commands for rendering, annotation, chunk preview and status.
- Convert CLI arguments into runtime config, tuning settings and voice rules.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer

from .cache.hashing import settings_hash
from .cli_rendering import (
    echo_chunk_table,
    echo_diagnostics,
    echo_markup_diagnostics,
    echo_start_summary,
    echo_status,
    echo_warnings,
    exit_with_command_error,
)
from .config import ConfigLoader, RenderConfig
from .errors import PipelineStageError
from .io.storage import FilesystemBlobStore
from .models.datatypes import RenderStatus, StartRenderResult
from .models.settings import TuningSettings
from .pipeline.service import RenderService, read_persisted_status
from .telemetry.logger import RunLogger
from .text.annotate import AnnotationPipeline, content_rng_factory
from .text.chunking import SemanticChunker
from .text.rules import VoiceRules
from .tts.client import SpeechClient
from .tts.synthesizer import ProviderSpeechSynthesizer

app = typer.Typer(
    name="voicerender",
    no_args_is_help=True,
    help="VoiceRender CLI.",
)

ScriptArgument = Annotated[Path, typer.Argument(help="Path to a UTF-8 narration script.")]
SettingsOption = Annotated[
    Path | None,
    typer.Option("--settings", help="YAML file with tuning settings overrides."),
]
RulesOption = Annotated[
    Path | None,
    typer.Option("--rules", help="YAML file with voice rules overrides."),
]


def _read_script(path: Path) -> str:
    """Read a script file and map failures to stage errors."""

    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="validate",
            detail=f"Script file not found: `{path}`.",
            hint="Pass an existing UTF-8 text file.",
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise PipelineStageError(
            stage="validate",
            detail=f"Could not read script file `{path}`: {exc}",
            hint="Verify file permissions and UTF-8 encoding.",
        ) from exc


def _load_inputs(
    settings_path: Path | None,
    rules_path: Path | None,
) -> tuple[TuningSettings, VoiceRules]:
    """Load tuning settings and voice rules and map failures to stage errors."""

    try:
        settings = ConfigLoader.load_tuning_settings(settings_path)
        rules = ConfigLoader.load_voice_rules(rules_path)
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=str(exc),
            hint="Fix the YAML schema/values and rerun.",
        ) from exc
    return settings, rules


def _load_render_config(config_path: Path | None) -> RenderConfig:
    """Load runtime config from YAML and environment and map failures to stage errors."""

    try:
        base = ConfigLoader.from_yaml(config_path) if config_path is not None else None
        return ConfigLoader.from_env(base=base)
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid runtime configuration: {exc}",
            hint="Fix the config file or environment variables and rerun.",
        ) from exc


async def _render_and_wait(
    service: RenderService,
    script: str,
    settings: TuningSettings,
) -> tuple[StartRenderResult, RenderStatus | None]:
    started = await service.start_render(script, settings)
    status = await service.wait(started.render_id)
    return started, status


@app.command("render")
def render_command(
    script_path: ScriptArgument,
    settings_path: SettingsOption = None,
    rules_path: RulesOption = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="YAML file with runtime options."),
    ] = None,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Blob store directory (overrides config and env)."),
    ] = None,
    voice_id: Annotated[
        str | None, typer.Option("--voice-id", help="Provider voice id override.")
    ] = None,
    model_id: Annotated[
        str | None, typer.Option("--model-id", help="Provider model id override.")
    ] = None,
) -> None:
    """Render a script to mastered audio and wait for completion."""

    try:
        script = _read_script(script_path)
        settings, rules = _load_inputs(settings_path, rules_path)
        config = _load_render_config(config_file)
        overrides: dict[str, object] = {}
        if store is not None:
            overrides["store_root"] = store
        if voice_id is not None:
            overrides["voice_id"] = voice_id
        if model_id is not None:
            overrides["model_id"] = model_id
        config = replace(config, **overrides).validate()

        client = SpeechClient(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout_seconds=config.request_timeout_seconds,
        )
        service = RenderService(
            FilesystemBlobStore(config.store_root),
            ProviderSpeechSynthesizer(client),
            rules=rules,
            config=config,
            logger=RunLogger(),
        )
        started, status = asyncio.run(_render_and_wait(service, script, settings))
    except Exception as exc:
        exit_with_command_error("render", exc)

    echo_start_summary(started)
    if status is None:
        exit_with_command_error(
            "render",
            PipelineStageError(stage="render", detail="Render status is unavailable."),
        )
    typer.echo(f"State: {status.state}")
    if status.state == "failed":
        exit_with_command_error(
            "render",
            PipelineStageError(stage="render", detail=status.error or "Render failed."),
        )
    typer.echo(f"Final audio: {status.final_audio_ref}")
    if status.diagnostics is not None:
        echo_diagnostics(status.diagnostics)


@app.command("annotate")
def annotate_command(
    script_path: ScriptArgument,
    settings_path: SettingsOption = None,
    rules_path: RulesOption = None,
) -> None:
    """Print the annotated markup document and its diagnostics."""

    try:
        script = _read_script(script_path)
        settings, rules = _load_inputs(settings_path, rules_path)
        pipeline = AnnotationPipeline(settings, rules)
        result = pipeline.annotate(script, content_rng_factory(settings_hash(settings)))
    except Exception as exc:
        exit_with_command_error("annotate", exc)

    typer.echo(result.markup)
    typer.echo("")
    echo_markup_diagnostics(result.diagnostics)
    echo_warnings(result.warnings)


@app.command("chunks")
def chunks_command(
    script_path: ScriptArgument,
    settings_path: SettingsOption = None,
    rules_path: RulesOption = None,
) -> None:
    """Print the chunk table a render of this script would synthesize."""

    try:
        script = _read_script(script_path)
        settings, rules = _load_inputs(settings_path, rules_path)
        pipeline = AnnotationPipeline(settings, rules)
        annotation = pipeline.annotate(script, content_rng_factory(settings_hash(settings)))
        result = SemanticChunker(settings, rules, pipeline.capability).chunk(annotation.markup)
    except Exception as exc:
        exit_with_command_error("chunks", exc)

    echo_chunk_table(result)


@app.command("status")
def status_command(
    render_id: Annotated[str, typer.Argument(help="Render identifier.")],
    store: Annotated[Path, typer.Option("--store", help="Blob store directory.")],
) -> None:
    """Print a persisted render status."""

    status = read_persisted_status(FilesystemBlobStore(store), render_id)
    if status is None:
        exit_with_command_error(
            "status",
            PipelineStageError(
                stage="status",
                detail=f"No status found for render `{render_id}`.",
                hint="Check the render id and `--store` directory.",
            ),
        )
    echo_status(status)


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
