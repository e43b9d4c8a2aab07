"""Batched, cache-aware chunk synthesis.

Responsibilities:
- Look up every chunk in the content-addressable cache before synthesis.
- Dispatch cache misses in bounded concurrent batches with an inter-batch delay.
- Retry transient provider failures once with backoff and voice jitter.
- Return chunk audio re-sorted into render order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import random
from typing import Awaitable, Callable, Sequence

from ..cache.chunk_cache import ChunkAudioCache
from ..errors import PipelineStageError
from ..models.datatypes import Chunk
from ..models.settings import TuningSettings
from ..telemetry.logger import RunLogger
from ..tts.capabilities import ModelCapability, resolve_capability, rewrite_for_model
from ..tts.client import ProviderError
from ..tts.synthesizer import VOICE_JITTER, SpeechSynthesizer, SynthesisRequest, jitter_voice

SleepFunction = Callable[[float], Awaitable[None]]
ProgressCallback = Callable[[int], None]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry budget and backoff for transient provider failures.

    Attributes:
        max_retries: Retries allowed per chunk after the first attempt.
        base_delay_seconds: Backoff before the first retry.
        max_delay_seconds: Backoff ceiling.
        jitter: Largest perturbation of stability and style per retry.
    """

    max_retries: int = 1
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 5.0
    jitter: float = VOICE_JITTER

    def backoff_seconds(self, attempt: int) -> float:
        """Return the delay after failed attempt number `attempt` (1-based)."""

        return min(self.base_delay_seconds * 2 ** (attempt - 1), self.max_delay_seconds)


@dataclass(frozen=True, slots=True)
class ChunkAudio:
    """Synthesized or cached audio of one chunk.

    Attributes:
        index: Render-order chunk index.
        content_hash: Chunk content hash.
        audio: WAV bytes.
        cache_hit: Whether audio came from the cache.
        attempts: Provider calls made for this chunk.
    """

    index: int
    content_hash: str
    audio: bytes
    cache_hit: bool
    attempts: int = 0


class SynthesisOrchestrator:
    """Synthesize chunk lists through the cache and a speech synthesizer."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        cache: ChunkAudioCache,
        settings: TuningSettings,
        *,
        capability: ModelCapability | None = None,
        batch_size: int = 4,
        batch_delay_seconds: float = 0.25,
        request_timeout_seconds: float = 120.0,
        store_timeout_seconds: float = 10.0,
        retry_policy: RetryPolicy | None = None,
        logger: RunLogger | None = None,
        sleep: SleepFunction = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize orchestrator collaborators and dispatch limits."""

        if batch_size < 1:
            raise ValueError("`batch_size` must be at least 1.")
        self._synthesizer = synthesizer
        self._cache = cache
        self._settings = settings
        self._capability = capability or resolve_capability(settings.voice.model_id)
        self._batch_size = batch_size
        self._batch_delay_seconds = batch_delay_seconds
        self._request_timeout_seconds = request_timeout_seconds
        self._store_timeout_seconds = store_timeout_seconds
        self._retry = retry_policy or RetryPolicy()
        self._logger = logger
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.provider_calls = 0

    async def synthesize_all(
        self,
        chunks: Sequence[Chunk],
        on_progress: ProgressCallback | None = None,
    ) -> list[ChunkAudio]:
        """Synthesize every chunk and return audio sorted by chunk index.

        Each batch runs to completion before its first failure is raised, so
        successful chunks are cached even when the render fails.

        Raises:
            PipelineStageError: On the first unrecoverable chunk failure.
        """

        results: list[ChunkAudio] = []
        for start in range(0, len(chunks), self._batch_size):
            if start > 0 and self._batch_delay_seconds > 0:
                await self._sleep(self._batch_delay_seconds)
            batch = chunks[start : start + self._batch_size]
            outcomes = await asyncio.gather(
                *(self._process(chunk, on_progress) for chunk in batch),
                return_exceptions=True,
            )
            failure: BaseException | None = None
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    failure = failure or outcome
                else:
                    results.append(outcome)
            if failure is not None:
                raise failure
        return sorted(results, key=lambda item: item.index)

    async def _process(self, chunk: Chunk, on_progress: ProgressCallback | None) -> ChunkAudio:
        cached = await self._cache_get(chunk.content_hash)
        if cached is not None:
            self._log("cache_hit", chunk=chunk.index, hash=chunk.content_hash[:12])
            if on_progress is not None:
                on_progress(chunk.index)
            return ChunkAudio(
                index=chunk.index,
                content_hash=chunk.content_hash,
                audio=cached,
                cache_hit=True,
            )

        self._log("cache_miss", chunk=chunk.index, hash=chunk.content_hash[:12])
        text = rewrite_for_model(chunk.markup_body, self._capability)
        audio, attempts = await self._synthesize_with_retry(chunk, text)
        await self._cache_put(chunk.content_hash, audio)
        if on_progress is not None:
            on_progress(chunk.index)
        return ChunkAudio(
            index=chunk.index,
            content_hash=chunk.content_hash,
            audio=audio,
            cache_hit=False,
            attempts=attempts,
        )

    async def _synthesize_with_retry(self, chunk: Chunk, text: str) -> tuple[bytes, int]:
        voice = self._settings.voice
        attempt = 0
        while True:
            attempt += 1
            request = SynthesisRequest(
                chunk_index=chunk.index,
                content_hash=chunk.content_hash,
                text=text,
                voice=voice,
                sample_rate=self._settings.stitching.sample_rate,
                previous_context=chunk.previous_context,
                next_context=chunk.next_context,
            )
            self.provider_calls += 1
            try:
                audio = await asyncio.wait_for(
                    asyncio.to_thread(self._synthesizer.synthesize, request),
                    timeout=self._request_timeout_seconds,
                )
                return audio, attempt
            except asyncio.TimeoutError:
                error = ProviderError(
                    f"Provider request for chunk {chunk.index} timed out.",
                    failure_kind="timeout",
                )
            except ProviderError as exc:
                error = exc

            if not error.retryable or attempt > self._retry.max_retries:
                raise self._stage_error(chunk, error, attempt) from error
            delay = self._retry.backoff_seconds(attempt)
            self._log(
                "retry",
                level="WARNING",
                chunk=chunk.index,
                attempt=attempt,
                failure_kind=error.failure_kind,
                delay_seconds=delay,
            )
            await self._sleep(delay)
            voice = jitter_voice(self._settings.voice, self._rng, self._retry.jitter)

    async def _cache_get(self, content_hash: str) -> bytes | None:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._cache.get, content_hash),
                timeout=self._store_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._cache.record_error(content_hash, "read", "TimeoutError")
            return None

    async def _cache_put(self, content_hash: str, audio: bytes) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._cache.put, content_hash, audio),
                timeout=self._store_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._cache.record_error(content_hash, "write", "TimeoutError")

    def _log(self, event: str, level: str = "INFO", **context: object) -> None:
        if self._logger is not None:
            self._logger.log_event("synthesize", event, level=level, **context)

    @staticmethod
    def _stage_error(chunk: Chunk, error: ProviderError, attempts: int) -> PipelineStageError:
        """Convert a final provider failure into a stage-aware pipeline error."""

        hints = {
            "auth": "Set a valid `ELEVENLABS_API_KEY` and retry the render.",
            "validation": "Check the voice id, model id and voice settings, then retry.",
            "rate_limited": "Lower `batch_size` or wait for the provider rate limit to reset.",
            "server_error": "Retry the render; cached chunks will be reused.",
            "timeout": "Retry the render. If timeouts persist, verify network stability.",
            "transport": "Check internet/proxy connectivity and retry the render.",
            "invalid_response": "Retry the render; the provider returned unusable audio.",
        }
        return PipelineStageError(
            stage="synthesize",
            detail=f"Chunk {chunk.index} failed after {attempts} attempt(s): {error}",
            hint=hints.get(error.failure_kind, "Verify provider configuration and retry."),
        )
