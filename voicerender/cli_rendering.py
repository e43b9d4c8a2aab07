"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
render summaries, chunk tables and status records.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import PipelineStageError
from .models.datatypes import (
    ChunkingResult,
    Diagnostics,
    MarkupDiagnostics,
    RenderStatus,
    StartRenderResult,
)


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_warnings(warnings: tuple[str, ...]) -> None:
    """Print warnings one per line, or nothing when there are none."""

    for warning in warnings:
        typer.secho(f"Warning: {warning}", fg=typer.colors.YELLOW)


def echo_start_summary(result: StartRenderResult) -> None:
    """Print render id, hashes and chunk statistics."""

    typer.echo(f"Render id: {result.render_id}")
    typer.echo(f"Script hash: {result.script_hash}")
    typer.echo(f"Settings hash: {result.settings_hash}")
    typer.echo(
        f"Chunks: {result.chunks} (estimated {result.estimated_duration:.1f}s, "
        f"{result.markup_tags} markup tags)"
    )
    echo_warnings(result.warnings)


def echo_markup_diagnostics(diagnostics: MarkupDiagnostics) -> None:
    """Print text and tag statistics of an annotated document."""

    histogram = diagnostics.break_histogram
    typer.echo(
        f"Words: {diagnostics.words}, sentences: {diagnostics.sentences}, "
        f"paragraphs: {diagnostics.paragraphs}, characters: {diagnostics.characters}"
    )
    typer.echo(
        f"Estimated duration: {diagnostics.estimated_duration_sec:.1f}s at {diagnostics.wpm:.0f} wpm"
    )
    typer.echo(
        f"Tags: {diagnostics.total_tags} (prosody {diagnostics.prosody_tags}, "
        f"break {diagnostics.break_tags}, emphasis {diagnostics.emphasis_tags}), "
        f"density {diagnostics.tag_density:.2f} per 10 words"
    )
    typer.echo(
        f"Breaks: comma {histogram.comma}, clause {histogram.clause}, "
        f"sentence {histogram.sentence}, paragraph {histogram.paragraph}"
    )


def echo_chunk_table(result: ChunkingResult) -> None:
    """Print compact deterministic chunk rows and chunking statistics."""

    for chunk in result.chunks:
        typer.echo(
            f"{chunk.index:>3}  {chunk.estimated_duration_sec:>6.1f}s  "
            f"{chunk.char_count:>5} chars  {chunk.content_hash[:12]}"
        )
    stats = result.stats
    typer.echo(
        f"Total: {stats.total_chunks} chunks, {stats.total_duration_sec:.1f}s, "
        f"average {stats.average_chars:.0f} chars, overlap ratio {stats.overlap_ratio:.3f}"
    )
    echo_warnings(result.warnings)


def echo_diagnostics(diagnostics: Diagnostics) -> None:
    """Print post-mastering diagnostics."""

    typer.echo(f"Duration: {diagnostics.duration_sec:.2f}s ({diagnostics.wpm:.0f} wpm)")
    typer.echo(f"Loudness: {diagnostics.lufs:.2f} LUFS, true peak {diagnostics.true_peak_db:.2f} dBTP")
    typer.echo(f"Tag density: {diagnostics.tag_density:.2f} per 10 words")
    if diagnostics.join_spikes:
        spikes = ", ".join(f"{spike.pos_ms}ms (+{spike.db:.1f} dB)" for spike in diagnostics.join_spikes)
        typer.echo(f"Join spikes: {spikes}")
    else:
        typer.echo("Join spikes: none")


def echo_status(status: RenderStatus) -> None:
    """Print a render status record."""

    typer.echo(f"Render id: {status.render_id}")
    typer.echo(f"State: {status.state}")
    typer.echo(f"Progress: {status.progress_done}/{status.progress_total}")
    steps = ", ".join(f"{step.name}={'ok' if step.ok else 'pending'}" for step in status.steps)
    typer.echo(f"Steps: {steps}")
    if status.error:
        typer.secho(f"Error: {status.error}", fg=typer.colors.RED)
    if status.final_audio_ref:
        typer.echo(f"Final audio: {status.final_audio_ref}")
    if status.diagnostics is not None:
        echo_diagnostics(status.diagnostics)
