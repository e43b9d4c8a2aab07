"""Shared typed data models for VoiceRender.

This package contains dataclasses used across pipeline modules to avoid
cross-module coupling and circular imports.
"""

from .datatypes import (
    AnnotationResult,
    BreakHistogram,
    Chunk,
    ChunkingResult,
    ChunkingStats,
    Diagnostics,
    JoinSpike,
    Manifest,
    MarkupDiagnostics,
    RenderStatus,
    RenderStep,
    StartRenderResult,
)
from .settings import TuningSettings

__all__ = [
    "AnnotationResult",
    "BreakHistogram",
    "Chunk",
    "ChunkingResult",
    "ChunkingStats",
    "Diagnostics",
    "JoinSpike",
    "Manifest",
    "MarkupDiagnostics",
    "RenderStatus",
    "RenderStep",
    "StartRenderResult",
    "TuningSettings",
]
