"""
GenerationOrchestrator - sermon text to a persisted audio artifact.

Pipeline per (document, language):

    NOT_STARTED ──(artifact exists)──────────────────────────────► COMPLETED
         │
         ▼
    CHUNKING → PER_CHUNK_RESOLUTION → SYNTHESIZING → MERGING → PERSISTING → COMPLETED

    any non-terminal state ──(error)──► FAILED

    1. Load the document; if ``audio.<languageCode>`` already holds an
       artifact, return it (``cached=True``) without touching the provider.
    2. Chunk the source text (see tts/chunker.py).
    3. Fingerprint every segment and look it up in the synthesis cache.
    4. Synthesize each distinct missing fingerprint once, concurrently under
       the shared limiter, with a per-call timeout and bounded retry. Every
       success is written to the cache straight away.
    5. Concatenate payloads in segment order.
    6. Upload the artifact, then record it on the document.

Either the whole artifact is produced and recorded or the run fails with
nothing recorded on the document. A blob uploaded before a failed document
write is left in place and logged.

Requests for the same (document, language) inside one process are
serialized; the second caller finds the artifact and returns it. Separate
processes can still both generate the same pair.

Example:
    >>> orchestrator = GenerationOrchestrator(documents, blobs, cache, client)
    >>> result = await orchestrator.generate_audio("sermon42", "en-US")
    >>> result.url, result.cached, result.chunk_count
    ('https://storage.googleapis.com/...', False, 3)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from sermon_tts.core.config import ServiceConfig, Settings
from sermon_tts.core.errors import (
    DocumentNotFound,
    ErrorCode,
    GenerationError,
    InvalidInputError,
    NoSourceText,
    PersistenceFailure,
    SynthesisFailure,
)
from sermon_tts.core.logging import debug, error, fail, get_logger, info, success, verbose, warn
from sermon_tts.core.metrics import metrics
from sermon_tts.services.usage import UsageRecord, UsageRecorder
from sermon_tts.stores.base import BlobStore, DocumentStore, StoreError
from sermon_tts.tts.cache import SynthesisCache
from sermon_tts.tts.chunker import TextSegment, chunk_text
from sermon_tts.tts.client import SynthesisClient
from sermon_tts.tts.concurrency import SynthesisLimiter, get_limiter, reset_limiter
from sermon_tts.tts.fingerprint import fingerprint
from sermon_tts.tts.retry import RetryPolicy
from sermon_tts.tts.voices import VoiceConfig, is_supported, resolve_voice
from sermon_tts.utils.audio import MP3_CONTENT_TYPE, concat_audio
from sermon_tts.utils.timeit import timeit

_LOG = get_logger("sermon-tts.generation")

ARTIFACT_FIELD = "audio"


# =============================================================================
# State machine
# =============================================================================

class GenerationState(str, Enum):
    NOT_STARTED = "not_started"
    CHUNKING = "chunking"
    PER_CHUNK_RESOLUTION = "per_chunk_resolution"
    SYNTHESIZING = "synthesizing"
    MERGING = "merging"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    GenerationState.NOT_STARTED: {GenerationState.CHUNKING, GenerationState.COMPLETED},
    GenerationState.CHUNKING: {GenerationState.PER_CHUNK_RESOLUTION},
    GenerationState.PER_CHUNK_RESOLUTION: {GenerationState.SYNTHESIZING},
    GenerationState.SYNTHESIZING: {GenerationState.MERGING},
    GenerationState.MERGING: {GenerationState.PERSISTING},
    GenerationState.PERSISTING: {GenerationState.COMPLETED},
    GenerationState.COMPLETED: set(),
    GenerationState.FAILED: set(),
}

TERMINAL_STATES = frozenset({GenerationState.COMPLETED, GenerationState.FAILED})


@dataclass
class GenerationRun:
    """Bookkeeping for one generate_audio() call."""
    document_id: str
    language_code: str
    state: GenerationState = GenerationState.NOT_STARTED
    history: List[GenerationState] = field(default_factory=lambda: [GenerationState.NOT_STARTED])
    timings: Dict[str, float] = field(default_factory=dict)
    error_code: Optional[str] = None

    def advance(self, state: GenerationState) -> None:
        if state is GenerationState.FAILED:
            if self.state in TERMINAL_STATES:
                raise RuntimeError(f"cannot fail a run in terminal state {self.state.value}")
        elif state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        debug(_LOG, "state", document_id=self.document_id, language=self.language_code, state=state.value)

    def fail(self, code: str) -> None:
        if self.state not in TERMINAL_STATES:
            self.error_code = code
            self.advance(GenerationState.FAILED)


# =============================================================================
# Results
# =============================================================================

@dataclass
class GenerationResult:
    """
    Attributes:
        url: Link to the merged artifact.
        cached: True only when an existing artifact was returned.
        chunk_count: Number of segments the artifact was built from.
        cached_chunks: Segments served from the synthesis cache this run.
        synthesized_chunks: Provider calls made this run (after dedup).
    """
    document_id: str
    url: str
    cached: bool
    chunk_count: int
    language_code: str
    voice_name: str
    generated_at: Optional[str] = None
    cached_chunks: int = 0
    synthesized_chunks: int = 0
    run: Optional[GenerationRun] = field(default=None, repr=False, compare=False)


@dataclass
class AudioStatus:
    document_id: str
    language_code: str
    has_audio: bool
    url: Optional[str] = None
    generated_at: Optional[str] = None
    chunk_count: Optional[int] = None
    voice_name: Optional[str] = None


@dataclass
class _Resolution:
    """Outcome of the per-chunk cache pass."""
    keys: List[str]
    payloads: Dict[str, bytes]
    pending: Dict[str, TextSegment]
    cached_segments: int


@dataclass
class _PairLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def _artifact_of(doc: Dict[str, Any], language_code: str) -> Optional[Dict[str, Any]]:
    artifacts = doc.get(ARTIFACT_FIELD)
    if not isinstance(artifacts, dict):
        return None
    artifact = artifacts.get(language_code)
    if isinstance(artifact, dict) and artifact.get("audioUrl"):
        return artifact
    return None


# =============================================================================
# Orchestrator
# =============================================================================

class GenerationOrchestrator:
    """
    Produces or reuses the audio artifact for a document and language.

    All collaborators are injected; ``from_config`` wires the configured
    backends.
    """

    def __init__(
        self,
        documents: DocumentStore,
        blobs: BlobStore,
        cache: SynthesisCache,
        client: SynthesisClient,
        config: Optional[ServiceConfig] = None,
        limiter: Optional[SynthesisLimiter] = None,
        retry: Optional[RetryPolicy] = None,
        usage: Optional[UsageRecorder] = None,
    ):
        self._config = config or ServiceConfig()
        self._documents = documents
        self._blobs = blobs
        self._cache = cache
        self._client = client
        self._limiter = limiter or SynthesisLimiter(self._config.synthesis.max_concurrent)
        self._retry = retry or RetryPolicy.from_config(self._config.retry)
        self._usage = usage or UsageRecorder(documents, self._config.documents.usage_collection)

        self._collection = self._config.documents.collection
        self._text_fields = list(self._config.documents.text_fields)
        self._max_chunk_size = self._config.chunking.max_chunk_size
        self._timeout_s = self._config.synthesis.timeout_s
        self._default_language = self._config.synthesis.default_language
        self._blob_prefix = self._config.blob.prefix
        self._text_preview_chars = self._config.logging.text_preview_chars

        self._locks: Dict[Tuple[str, str], _PairLock] = {}

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "GenerationOrchestrator":
        from sermon_tts.stores import create_blob_store, create_document_store
        from sermon_tts.tts.client import create_synthesis_client

        documents = create_document_store(config.documents)
        return cls(
            documents=documents,
            blobs=create_blob_store(config.blob),
            cache=SynthesisCache.from_config(documents, config.cache),
            client=create_synthesis_client(config.synthesis),
            config=config,
            limiter=get_limiter(config.synthesis.max_concurrent),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Accessors
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def cache(self) -> SynthesisCache:
        return self._cache

    @property
    def limiter(self) -> SynthesisLimiter:
        return self._limiter

    @property
    def documents(self) -> DocumentStore:
        return self._documents

    def artifact_path(self, document_id: str, language_code: str) -> str:
        return f"{self._blob_prefix}/{document_id}/{language_code}.mp3"

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _resolve(self, document_id: str, language: Optional[str], voice_name: Optional[str]) -> VoiceConfig:
        if not document_id or not document_id.strip():
            raise InvalidInputError("document_id is required")
        if "/" in document_id:
            raise InvalidInputError("document_id must not contain '/'", {"document_id": document_id})
        tag = language or self._default_language
        if not is_supported(tag):
            verbose(_LOG, "language_fallback", requested=tag, document_id=document_id)
        return resolve_voice(tag, voice_name)

    @asynccontextmanager
    async def _pair_lock(self, document_id: str, language_code: str) -> AsyncIterator[None]:
        key = (document_id, language_code)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _PairLock()
        entry.users += 1
        if entry.users > 1:
            verbose(_LOG, "waiting_for_generation", document_id=document_id, language=language_code)
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(key, None)

    async def _load_document(self, document_id: str) -> Dict[str, Any]:
        try:
            doc = await self._documents.get(self._collection, document_id)
        except StoreError as e:
            raise GenerationError(
                f"could not read document {document_id}: {e}",
                ErrorCode.INTERNAL_ERROR,
                {"document_id": document_id},
            ) from e
        if doc is None:
            raise DocumentNotFound(document_id, self._collection)
        return doc

    def _source_text(self, doc: Dict[str, Any]) -> Optional[str]:
        for name in self._text_fields:
            value = doc.get(name)
            if isinstance(value, str) and value.strip():
                return value
        return None

    async def _resolve_chunks(self, segments: List[TextSegment], voice: VoiceConfig) -> _Resolution:
        keys = [fingerprint(s.text, voice) for s in segments]

        first_segment: Dict[str, TextSegment] = {}
        for key, segment in zip(keys, segments):
            first_segment.setdefault(key, segment)

        unique = list(first_segment)
        found = await asyncio.gather(*(self._cache.lookup(k) for k in unique))
        payloads = {k: audio for k, audio in zip(unique, found) if audio is not None}

        cached_segments = 0
        for key in keys:
            if key in payloads:
                cached_segments += 1
                self._cache.schedule_access(key)

        pending = {k: first_segment[k] for k in unique if k not in payloads}
        metrics.record_chunk_cache("hit", cached_segments)
        metrics.record_chunk_cache("miss", len(keys) - cached_segments)
        return _Resolution(keys=keys, payloads=payloads, pending=pending, cached_segments=cached_segments)

    async def _synthesize_once(self, key: str, text: str, voice: VoiceConfig) -> bytes:
        async with self._limiter.slot():
            with timeit("synth_call") as t:
                try:
                    audio = await asyncio.wait_for(self._client.synthesize(text, voice), timeout=self._timeout_s)
                except asyncio.TimeoutError as e:
                    self._limiter.record_timeout()
                    metrics.record_synthesis("timeout", t.seconds)
                    raise SynthesisFailure(
                        f"synthesis timed out after {self._timeout_s}s",
                        status="DEADLINE_EXCEEDED",
                        retryable=True,
                    ) from e
                except SynthesisFailure:
                    metrics.record_synthesis("error", t.seconds)
                    raise
        metrics.record_synthesis("success", t.timing.seconds)
        verbose(_LOG, "synthesized", key=key[:8], chars=len(text), bytes=len(audio), seconds=round(t.timing.seconds, 3))
        return audio

    async def _synthesize_segment(self, key: str, segment: TextSegment, voice: VoiceConfig) -> bytes:
        audio = await self._retry.run(
            lambda: self._synthesize_once(key, segment.text, voice),
            label=key[:8],
            on_retry=lambda attempt, exc: metrics.inc_synthesis_retries(),
        )
        await self._cache.store(key, audio, text_length=len(segment.text), voice=voice)
        return audio

    async def _synthesize_pending(self, pending: Dict[str, TextSegment], voice: VoiceConfig) -> Dict[str, bytes]:
        if not pending:
            return {}
        tasks = {
            key: asyncio.ensure_future(self._synthesize_segment(key, segment, voice))
            for key, segment in pending.items()
        }
        try:
            results = await asyncio.gather(*tasks.values())
        except BaseException:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise
        return dict(zip(tasks.keys(), results))

    async def _persist(
        self,
        document_id: str,
        voice: VoiceConfig,
        audio: bytes,
        chunk_count: int,
    ) -> Dict[str, Any]:
        path = self.artifact_path(document_id, voice.language_code)
        try:
            await self._blobs.put(path, audio, content_type=MP3_CONTENT_TYPE)
            url = await self._blobs.url(path)
        except StoreError as e:
            raise PersistenceFailure(f"could not store audio for {document_id}: {e}", {"path": path}) from e

        artifact = {
            "documentId": document_id,
            "languageCode": voice.language_code,
            "voiceName": voice.voice_name,
            "audioUrl": url,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "chunkCount": chunk_count,
        }
        try:
            # update() fails on a document deleted since it was loaded.
            await self._documents.update(
                self._collection,
                document_id,
                {f"{ARTIFACT_FIELD}.{voice.language_code}": artifact},
            )
        except StoreError as e:
            error(_LOG, "orphaned_blob", document_id=document_id, path=path, error=str(e))
            raise PersistenceFailure(
                f"could not record audio on {document_id}: {e}",
                {"path": path, "orphaned_blob": True},
            ) from e
        return artifact

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    async def generate_audio(
        self,
        document_id: str,
        language: Optional[str] = None,
        voice_name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> GenerationResult:
        """
        Return the audio artifact for ``document_id`` in ``language``,
        generating it first if the document has none.

        Args:
            document_id: Id in the sermons collection.
            language: Language tag; unknown tags resolve to English.
            voice_name: Optional voice override.
            user_id: Attributed in the usage record.

        Raises:
            InvalidInputError: Malformed document id.
            DocumentNotFound: No such document.
            NoSourceText: The document has no text to synthesize.
            SynthesisFailure: A segment failed after all retries.
            PersistenceFailure: The artifact could not be stored or recorded.
        """
        voice = self._resolve(document_id, language, voice_name)
        run = GenerationRun(document_id=document_id, language_code=voice.language_code)

        with timeit("generation") as total_t:
            try:
                async with self._pair_lock(document_id, voice.language_code):
                    result = await self._run(run, voice, user_id)
            except GenerationError as e:
                run.fail(e.code)
                metrics.record_generation("error", outcome=e.code, duration=total_t.seconds)
                fail(
                    _LOG,
                    "generation_failed",
                    document_id=document_id,
                    language=voice.language_code,
                    state=run.history[-2].value if len(run.history) > 1 else run.state.value,
                    code=e.code,
                    error=e.message,
                )
                raise
            except Exception as e:
                run.fail(ErrorCode.INTERNAL_ERROR)
                metrics.record_generation("error", outcome=ErrorCode.INTERNAL_ERROR, duration=total_t.seconds)
                fail(_LOG, "generation_failed", document_id=document_id, error=str(e), error_type=type(e).__name__)
                raise GenerationError(
                    f"unexpected error: {e}",
                    ErrorCode.INTERNAL_ERROR,
                    {"error_type": type(e).__name__},
                ) from e

        run.timings["total"] = total_t.timing.seconds
        result.run = run
        return result

    async def _run(self, run: GenerationRun, voice: VoiceConfig, user_id: Optional[str]) -> GenerationResult:
        document_id = run.document_id

        doc = await self._load_document(document_id)
        existing = _artifact_of(doc, voice.language_code)
        if existing is not None:
            run.advance(GenerationState.COMPLETED)
            metrics.record_generation("success", outcome="existing")
            info(_LOG, "artifact_exists", document_id=document_id, language=voice.language_code, cached=True)
            return GenerationResult(
                document_id=document_id,
                url=existing["audioUrl"],
                cached=True,
                chunk_count=int(existing.get("chunkCount", 0)),
                language_code=voice.language_code,
                voice_name=str(existing.get("voiceName", voice.voice_name)),
                generated_at=existing.get("generatedAt"),
            )

        text = self._source_text(doc)
        if text is None:
            raise NoSourceText(document_id)

        preview = text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(
            _LOG,
            "generation_started",
            document_id=document_id,
            language=voice.language_code,
            voice=voice.voice_name,
            chars=len(text),
            text_preview=preview,
        )

        with timeit("pipeline") as pipeline_t:
            # Stage 1: chunk
            run.advance(GenerationState.CHUNKING)
            chunked = chunk_text(text, self._max_chunk_size)
            segments = chunked.segments
            if not segments:
                raise GenerationError(
                    f"chunker produced no segments for {document_id}",
                    ErrorCode.INTERNAL_ERROR,
                    {"chars": len(text)},
                )
            run.timings.update(chunked.timings_s)
            verbose(_LOG, "stage", event="chunk", segments=len(segments), seconds=round(chunked.timings_s["chunk"], 4))

            # Stage 2: per-chunk cache resolution
            run.advance(GenerationState.PER_CHUNK_RESOLUTION)
            with timeit("resolve") as t:
                resolution = await self._resolve_chunks(segments, voice)
            run.timings["resolve"] = t.timing.seconds
            verbose(
                _LOG,
                "stage",
                event="resolve",
                cache_hits=resolution.cached_segments,
                to_synthesize=len(resolution.pending),
                seconds=round(t.timing.seconds, 4),
            )

            # Stage 3: synthesize distinct misses
            run.advance(GenerationState.SYNTHESIZING)
            with timeit("synthesize") as t:
                synthesized = await self._synthesize_pending(resolution.pending, voice)
            run.timings["synthesize"] = t.timing.seconds
            payloads = {**resolution.payloads, **synthesized}
            verbose(_LOG, "stage", event="synthesize", calls=len(synthesized), seconds=round(t.timing.seconds, 4))

            # Stage 4: merge in segment order
            run.advance(GenerationState.MERGING)
            audio, merge_timings = concat_audio([payloads[key] for key in resolution.keys])
            run.timings.update(merge_timings)

            # Stage 5: persist
            run.advance(GenerationState.PERSISTING)
            with timeit("persist") as t:
                artifact = await self._persist(document_id, voice, audio, chunk_count=len(segments))
            run.timings["persist"] = t.timing.seconds
            verbose(_LOG, "stage", event="persist", bytes=len(audio), seconds=round(t.timing.seconds, 4))

        run.advance(GenerationState.COMPLETED)

        await self._usage.record(
            UsageRecord.create(
                document_id=document_id,
                user_id=user_id,
                chunks_count=len(segments),
                cached_chunks=resolution.cached_segments,
                total_characters=len(text),
                language=voice.language_code,
            )
        )

        metrics.record_generation(
            "success",
            outcome="synthesized",
            duration=pipeline_t.timing.seconds,
            audio_bytes=len(audio),
        )
        success(
            _LOG,
            "generation_done",
            document_id=document_id,
            language=voice.language_code,
            chunks=len(segments),
            cached_chunks=resolution.cached_segments,
            synthesized=len(synthesized),
            bytes=len(audio),
            seconds=round(pipeline_t.timing.seconds, 3),
        )

        return GenerationResult(
            document_id=document_id,
            url=artifact["audioUrl"],
            cached=False,
            chunk_count=len(segments),
            language_code=voice.language_code,
            voice_name=voice.voice_name,
            generated_at=artifact["generatedAt"],
            cached_chunks=resolution.cached_segments,
            synthesized_chunks=len(synthesized),
        )

    async def check_audio_status(self, document_id: str, language: Optional[str] = None) -> AudioStatus:
        """
        Report whether the document has an artifact for ``language``.

        Read-only. Raises DocumentNotFound for an unknown document.
        """
        voice = self._resolve(document_id, language, None)
        doc = await self._load_document(document_id)
        artifact = _artifact_of(doc, voice.language_code)
        if artifact is None:
            return AudioStatus(document_id=document_id, language_code=voice.language_code, has_audio=False)
        return AudioStatus(
            document_id=document_id,
            language_code=voice.language_code,
            has_audio=True,
            url=artifact["audioUrl"],
            generated_at=artifact.get("generatedAt"),
            chunk_count=artifact.get("chunkCount"),
            voice_name=artifact.get("voiceName"),
        )

    def get_health_info(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "chunking": {"max_chunk_size": self._max_chunk_size},
            "cache": self._cache.stats(),
            "concurrency": self._limiter.stats().to_dict(),
            "in_flight_pairs": len(self._locks),
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[GenerationOrchestrator] = None


def get_service(settings: Settings) -> GenerationOrchestrator:
    """Process-wide orchestrator built from ``settings`` on first call."""
    global _service
    if _service is None:
        _service = GenerationOrchestrator.from_config(settings.get_service_config())
    return _service


def reset_service() -> None:
    global _service
    _service = None
    reset_limiter()
