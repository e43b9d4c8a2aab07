"""Render job state machine and in-process registry.

Responsibilities:
- Enforce `queued -> running -> done | failed` transitions.
- Track step completion and monotonic synthesis progress.
- Produce immutable `RenderStatus` snapshots.
"""

from __future__ import annotations

from datetime import datetime, timezone
import threading
from typing import Callable

from ..models.datatypes import Diagnostics, RenderStatus, RenderStep

STEP_NAMES = ("markup", "chunk", "synthesize", "stitch", "master", "analyze")
TERMINAL_STATES = frozenset({"done", "failed"})
_TRANSITIONS: dict[str, frozenset[str]] = {
    "queued": frozenset({"running", "failed"}),
    "running": frozenset({"done", "failed"}),
    "done": frozenset(),
    "failed": frozenset(),
}
_REQUIRED_FOR_DONE = ("markup", "chunk", "synthesize", "stitch", "master")


class InvalidTransitionError(RuntimeError):
    """Raised when a job transition is not allowed from its current state."""


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""

    return datetime.now(timezone.utc).isoformat()


class RenderJob:
    """Mutable state of one render, guarded by a lock."""

    def __init__(
        self,
        render_id: str,
        total_chunks: int,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        """Initialize a queued job with all steps pending."""

        self.render_id = render_id
        self._clock = clock
        self._lock = threading.Lock()
        self._state = "queued"
        self._total = total_chunks
        self._done = 0
        self._completed: set[str] = set()
        self._error: str | None = None
        self._final_audio_ref: str | None = None
        self._diagnostics: Diagnostics | None = None
        self._started_at = clock()
        self._updated_at = self._started_at

    @property
    def state(self) -> str:
        """Return the current state name."""

        return self._state

    @property
    def is_terminal(self) -> bool:
        """Return whether the job reached `done` or `failed`."""

        return self._state in TERMINAL_STATES

    def start(self) -> None:
        """Move a queued job to `running`."""

        with self._lock:
            self._transition("running")

    def complete_step(self, name: str) -> None:
        """Mark a step complete; completed steps never regress."""

        if name not in STEP_NAMES:
            raise ValueError(f"Unknown render step `{name}`.")
        with self._lock:
            self._completed.add(name)
            self._updated_at = self._clock()

    def record_chunk_done(self) -> None:
        """Advance synthesis progress by one chunk, never past the total."""

        with self._lock:
            self._done = min(self._total, self._done + 1)
            if self._done == self._total:
                self._completed.add("synthesize")
            self._updated_at = self._clock()

    def finish(self, final_audio_ref: str, diagnostics: Diagnostics | None) -> None:
        """Move a running job to `done`.

        Raises:
            InvalidTransitionError: If a required step is incomplete.
        """

        with self._lock:
            missing = [name for name in _REQUIRED_FOR_DONE if name not in self._completed]
            if missing:
                raise InvalidTransitionError(
                    f"Render `{self.render_id}` cannot finish; incomplete steps: {', '.join(missing)}."
                )
            self._transition("done")
            self._final_audio_ref = final_audio_ref
            self._diagnostics = diagnostics

    def fail(self, error: str) -> None:
        """Move a non-terminal job to `failed` with a human-readable cause."""

        with self._lock:
            self._transition("failed")
            self._error = error

    def snapshot(self) -> RenderStatus:
        """Return an immutable status snapshot."""

        with self._lock:
            steps = []
            for name in STEP_NAMES:
                if name == "synthesize":
                    steps.append(
                        RenderStep(
                            name=name,
                            ok=name in self._completed,
                            done=self._done,
                            total=self._total,
                        )
                    )
                else:
                    steps.append(RenderStep(name=name, ok=name in self._completed))
            return RenderStatus(
                render_id=self.render_id,
                state=self._state,
                progress_total=self._total,
                progress_done=self._done,
                steps=tuple(steps),
                started_at=self._started_at,
                updated_at=self._updated_at,
                error=self._error,
                final_audio_ref=self._final_audio_ref,
                diagnostics=self._diagnostics,
            )

    def _transition(self, target: str) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"Render `{self.render_id}` cannot move from `{self._state}` to `{target}`."
            )
        self._state = target
        self._updated_at = self._clock()


class JobRegistry:
    """In-process registry of live render jobs."""

    def __init__(self) -> None:
        """Initialize an empty registry."""

        self._jobs: dict[str, RenderJob] = {}
        self._lock = threading.Lock()

    def register(self, job: RenderJob) -> None:
        """Register a job under its render id."""

        with self._lock:
            self._jobs[job.render_id] = job

    def get(self, render_id: str) -> RenderJob | None:
        """Return a live job, or `None` when unknown."""

        with self._lock:
            return self._jobs.get(render_id)
