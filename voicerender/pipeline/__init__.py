"""VoiceRender pipeline package.

This package contains the synthesis orchestrator, the render job state machine
and the render service that drives a script from markup to mastered audio.
"""

from .jobs import InvalidTransitionError, JobRegistry, RenderJob
from .orchestrator import ChunkAudio, RetryPolicy, SynthesisOrchestrator
from .service import RenderService, read_persisted_status

__all__ = [
    "ChunkAudio",
    "InvalidTransitionError",
    "JobRegistry",
    "RenderJob",
    "RenderService",
    "RetryPolicy",
    "SynthesisOrchestrator",
    "read_persisted_status",
]
