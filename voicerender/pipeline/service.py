"""Render service entry points.

Responsibilities:
- Validate scripts and compute the manifest synchronously in `start_render`.
- Persist request, markup, manifest and status artifacts.
- Run synthesis, stitching, mastering and analysis as a background task.
- Serve render status from live jobs or persisted `status.json`.
"""

from __future__ import annotations

import asyncio
import random

from ..audio.assembler import AudioAssembler
from ..audio.codec import encode_audio
from ..audio.diagnostics import render_diagnostics
from ..audio.mastering import AudioMastering
from ..cache.chunk_cache import ChunkAudioCache
from ..cache.hashing import (
    is_valid_render_id,
    new_render_id,
    render_artifact_key,
    script_hash,
    settings_hash,
)
from ..config import RenderConfig
from ..errors import PipelineStageError
from ..io.storage import BlobStore, StoreError, get_json, put_json
from ..models.datatypes import Manifest, RenderStatus, StartRenderResult
from ..models.settings import TuningSettings
from ..telemetry.logger import RunLogger
from ..text.annotate import AnnotationPipeline, content_rng_factory
from ..text.chunking import SemanticChunker
from ..text.rules import VoiceRules
from ..tts.synthesizer import SpeechSynthesizer
from .jobs import JobRegistry, RenderJob, utc_now
from .orchestrator import RetryPolicy, SleepFunction, SynthesisOrchestrator

MAX_SCRIPT_CHARS = 50_000


def read_persisted_status(store: BlobStore, render_id: str) -> RenderStatus | None:
    """Return the persisted status of a render, or `None` when unknown or unreadable."""

    if not is_valid_render_id(render_id):
        return None
    try:
        payload = get_json(store, render_artifact_key(render_id, "status.json"))
    except StoreError:
        return None
    if payload is None:
        return None
    return RenderStatus.from_dict(payload)


class RenderService:
    """Start renders, run them in the background and report their status."""

    def __init__(
        self,
        store: BlobStore,
        synthesizer: SpeechSynthesizer,
        *,
        rules: VoiceRules | None = None,
        config: RenderConfig | None = None,
        logger: RunLogger | None = None,
        sleep: SleepFunction = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize service collaborators."""

        self._store = store
        self._synthesizer = synthesizer
        self._rules = rules or VoiceRules()
        self._config = (config or RenderConfig()).validate()
        self._logger = logger
        self._sleep = sleep
        self._rng = rng
        self._cache = ChunkAudioCache(store, logger)
        self._jobs = JobRegistry()
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def cache(self) -> ChunkAudioCache:
        """Return the chunk audio cache shared by all renders of this service."""

        return self._cache

    async def start_render(
        self,
        script: str,
        settings: TuningSettings | None = None,
    ) -> StartRenderResult:
        """Validate, annotate and chunk a script, then schedule its render.

        Must be awaited on a running event loop; processing continues in a task.

        Raises:
            PipelineStageError: If the script or settings are invalid, or the script
                has no speakable text.
        """

        self._log_start("validate", characters=len(script) if isinstance(script, str) else 0)
        resolved = self._validate_request(script, settings)
        self._log_complete("validate")
        script_digest = script_hash(script)
        settings_digest = settings_hash(resolved)

        self._log_start("markup")
        pipeline = AnnotationPipeline(resolved, self._rules)
        annotation = pipeline.annotate(script, content_rng_factory(settings_digest))
        self._log_complete("markup", tags=annotation.diagnostics.total_tags)

        self._log_start("chunk")
        chunker = SemanticChunker(resolved, self._rules, pipeline.capability)
        chunking = chunker.chunk(annotation.markup)
        self._log_complete("chunk", chunks=chunking.stats.total_chunks)

        render_id = new_render_id()
        manifest = Manifest(
            script_hash=script_digest,
            settings_hash=settings_digest,
            chunking_params=chunker.chunking_params(),
            chunks=chunking.chunks,
        )
        job = RenderJob(render_id, total_chunks=len(manifest.chunks))
        job.complete_step("markup")
        job.complete_step("chunk")
        self._jobs.register(job)

        await asyncio.to_thread(
            self._persist_request,
            render_id,
            script,
            resolved,
            annotation.markup,
            manifest,
        )
        await asyncio.to_thread(self._save_status, job)

        self._tasks[render_id] = asyncio.create_task(
            self._run(job, manifest, annotation.markup, resolved)
        )
        return StartRenderResult(
            render_id=render_id,
            script_hash=script_digest,
            settings_hash=settings_digest,
            chunks=len(manifest.chunks),
            estimated_duration=round(chunking.stats.total_duration_sec, 1),
            markup_tags=annotation.diagnostics.total_tags,
            warnings=annotation.warnings + chunking.warnings,
        )

    def get_status(self, render_id: str) -> RenderStatus | None:
        """Return live or persisted status, or `None` for unknown renders."""

        job = self._jobs.get(render_id)
        if job is not None:
            return job.snapshot()
        return read_persisted_status(self._store, render_id)

    async def wait(self, render_id: str) -> RenderStatus | None:
        """Wait for a background render to reach a terminal state."""

        task = self._tasks.get(render_id)
        if task is not None:
            await task
        return self.get_status(render_id)

    def _validate_request(self, script: str, settings: TuningSettings | None) -> TuningSettings:
        if not isinstance(script, str) or not script.strip():
            raise PipelineStageError(
                stage="validate",
                detail="Script is empty.",
                hint="Provide a script with at least one word.",
            )
        if len(script) > MAX_SCRIPT_CHARS:
            raise PipelineStageError(
                stage="validate",
                detail=f"Script has {len(script)} characters; the limit is {MAX_SCRIPT_CHARS}.",
                hint="Split the script into several renders.",
            )
        try:
            return self._config.apply_overrides(settings or TuningSettings()).validate()
        except ValueError as exc:
            raise PipelineStageError(
                stage="validate",
                detail=str(exc),
                hint="Fix the tuning settings value and retry.",
            ) from exc

    async def _run(
        self,
        job: RenderJob,
        manifest: Manifest,
        markup: str,
        settings: TuningSettings,
    ) -> None:
        """Run a render to a terminal state; failures are recorded, never raised."""

        stage = "synthesize"
        try:
            job.start()
            await asyncio.to_thread(self._save_status, job)

            self._log_start(stage, render_id=job.render_id, chunks=len(manifest.chunks))
            orchestrator = SynthesisOrchestrator(
                self._synthesizer,
                self._cache,
                settings,
                batch_size=self._config.batch_size,
                batch_delay_seconds=self._config.batch_delay_seconds,
                request_timeout_seconds=self._config.request_timeout_seconds,
                store_timeout_seconds=self._config.store_timeout_seconds,
                retry_policy=RetryPolicy(max_retries=self._config.max_retries),
                logger=self._logger,
                sleep=self._sleep,
                rng=self._rng,
            )
            chunk_audio = await orchestrator.synthesize_all(
                manifest.chunks,
                on_progress=lambda _index: job.record_chunk_done(),
            )
            job.complete_step("synthesize")
            await asyncio.to_thread(self._save_status, job)
            self._log_complete(stage, provider_calls=orchestrator.provider_calls)

            stage = "stitch"
            self._log_start(stage)
            assembler = AudioAssembler(settings.stitching)
            stitched = await asyncio.to_thread(
                assembler.stitch, [item.audio for item in chunk_audio]
            )
            raw = await asyncio.to_thread(
                encode_audio, stitched.samples, stitched.sample_rate, "wav"
            )
            await asyncio.to_thread(self._put_best_effort, job.render_id, "raw.wav", raw)
            job.complete_step("stitch")
            self._log_complete(stage, duration_sec=stitched.duration_sec)

            stage = "master"
            self._log_start(stage)
            mastered = await asyncio.to_thread(
                AudioMastering(settings.mastering).process,
                stitched.samples,
                stitched.sample_rate,
            )
            encoded = await asyncio.to_thread(
                encode_audio,
                mastered,
                stitched.sample_rate,
                settings.export.format,
                settings.export.bitrate_kbps,
            )
            final_ref = await asyncio.to_thread(
                self._store.put,
                render_artifact_key(job.render_id, f"final.{settings.export.format}"),
                encoded,
            )
            job.complete_step("master")
            self._log_complete(stage, format=settings.export.format)

            stage = "analyze"
            self._log_start(stage)
            diagnostics = await asyncio.to_thread(
                render_diagnostics,
                markup,
                mastered,
                stitched.sample_rate,
                stitched.join_positions_ms,
                settings,
            )
            await asyncio.to_thread(self._put_json_best_effort, job, diagnostics.to_dict())
            job.complete_step("analyze")
            self._log_complete(stage, lufs=diagnostics.lufs, true_peak_db=diagnostics.true_peak_db)

            job.finish(final_ref, diagnostics)
            self._log_complete("render", render_id=job.render_id, state=job.state)
        except Exception as exc:
            job.fail(self._describe_failure(stage, exc))
            if self._logger is not None:
                self._logger.log_stage_failure(
                    stage, type(exc).__name__, render_id=job.render_id
                )
        finally:
            await asyncio.to_thread(self._save_status, job)

    @staticmethod
    def _describe_failure(stage: str, exc: Exception) -> str:
        if isinstance(exc, PipelineStageError):
            return exc.detail
        message = str(exc).strip() or type(exc).__name__
        return f"{stage} failed: {message}"

    def _persist_request(
        self,
        render_id: str,
        script: str,
        settings: TuningSettings,
        markup: str,
        manifest: Manifest,
    ) -> None:
        request = {
            "script": script,
            "settings": settings.as_dict(),
            "script_hash": manifest.script_hash,
            "settings_hash": manifest.settings_hash,
            "created_at": utc_now(),
        }
        try:
            put_json(self._store, render_artifact_key(render_id, "request.json"), request)
            self._store.put(render_artifact_key(render_id, "markup.xml"), markup.encode("utf-8"))
            put_json(
                self._store,
                render_artifact_key(render_id, "manifest.json"),
                manifest.to_dict(),
            )
        except (StoreError, OSError) as exc:
            self._log_artifact_error(render_id, "request", exc)

    def _save_status(self, job: RenderJob) -> None:
        try:
            put_json(
                self._store,
                render_artifact_key(job.render_id, "status.json"),
                job.snapshot().to_dict(),
            )
        except (StoreError, OSError) as exc:
            self._log_artifact_error(job.render_id, "status.json", exc)

    def _put_json_best_effort(self, job: RenderJob, payload: dict[str, object]) -> None:
        try:
            put_json(self._store, render_artifact_key(job.render_id, "diagnostics.json"), payload)
        except (StoreError, OSError) as exc:
            self._log_artifact_error(job.render_id, "diagnostics.json", exc)

    def _put_best_effort(self, render_id: str, artifact: str, data: bytes) -> None:
        try:
            self._store.put(render_artifact_key(render_id, artifact), data)
        except (StoreError, OSError) as exc:
            self._log_artifact_error(render_id, artifact, exc)

    def _log_artifact_error(self, render_id: str, artifact: str, exc: Exception) -> None:
        if self._logger is not None:
            self._logger.log_event(
                "render",
                "artifact_error",
                level="WARNING",
                render_id=render_id,
                artifact=artifact,
                error_type=type(exc).__name__,
            )

    def _log_start(self, stage: str, **context: object) -> None:
        if self._logger is not None:
            self._logger.log_stage_start(stage, **context)

    def _log_complete(self, stage: str, **context: object) -> None:
        if self._logger is not None:
            self._logger.log_stage_complete(stage, **context)
