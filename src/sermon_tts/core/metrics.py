"""
Prometheus metrics for sermon-tts.

Metrics exposed:
    sermon_tts_generation_requests_total        generation requests by status and outcome
    sermon_tts_generation_duration_seconds      end-to-end generation latency
    sermon_tts_chunk_cache_total                per-chunk cache lookups by result
    sermon_tts_synthesis_calls_total            provider calls by outcome
    sermon_tts_synthesis_retries_total          retried provider calls
    sermon_tts_synthesis_duration_seconds       single provider call latency
    sermon_tts_audio_bytes_total                bytes of merged artifacts written
    sermon_tts_cache_sweep_deleted_total        stale cache entries removed by sweeps
    sermon_tts_synthesis_active                 provider calls currently in flight

Usage:
    from sermon_tts.core.metrics import metrics

    metrics.record_generation("success", outcome="synthesized", duration=4.2, audio_bytes=812345)
    metrics.record_chunk_cache("hit")
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class GenerationMetrics:
    """
    Collectors for the generation pipeline, held in a private registry so
    that several instances (tests, embedded use) never clash on the global
    default registry.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._generation_requests = Counter(
            "sermon_tts_generation_requests_total",
            "Audio generation requests",
            ["status", "outcome"],
            registry=self._registry,
        )
        self._generation_duration = Histogram(
            "sermon_tts_generation_duration_seconds",
            "Audio generation duration in seconds",
            ["outcome"],
            buckets=(0.05, 0.25, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )
        self._chunk_cache = Counter(
            "sermon_tts_chunk_cache_total",
            "Synthesis cache lookups per chunk",
            ["result"],
            registry=self._registry,
        )
        self._synthesis_calls = Counter(
            "sermon_tts_synthesis_calls_total",
            "Speech synthesis provider calls",
            ["outcome"],
            registry=self._registry,
        )
        self._synthesis_retries = Counter(
            "sermon_tts_synthesis_retries_total",
            "Speech synthesis calls retried after a failure",
            registry=self._registry,
        )
        self._synthesis_duration = Histogram(
            "sermon_tts_synthesis_duration_seconds",
            "Single speech synthesis call duration in seconds",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._audio_bytes = Counter(
            "sermon_tts_audio_bytes_total",
            "Bytes of merged audio artifacts written",
            registry=self._registry,
        )
        self._sweep_deleted = Counter(
            "sermon_tts_cache_sweep_deleted_total",
            "Stale synthesis cache entries deleted by sweeps",
            registry=self._registry,
        )
        self._synthesis_active = Gauge(
            "sermon_tts_synthesis_active",
            "Speech synthesis calls currently in flight",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_generation(
        self,
        status: str,
        outcome: str = "synthesized",
        duration: float = 0.0,
        audio_bytes: int = 0,
    ) -> None:
        """
        Record a finished generation request.

        Args:
            status: "success" or "error".
            outcome: "existing" (artifact already present), "synthesized",
                or the error code for failures.
            duration: Seconds spent in generate_audio.
            audio_bytes: Size of the artifact written, if any.
        """
        self._generation_requests.labels(status=status, outcome=outcome).inc()
        self._generation_duration.labels(outcome=outcome).observe(duration)
        if audio_bytes > 0:
            self._audio_bytes.inc(audio_bytes)

    def record_chunk_cache(self, result: str, count: int = 1) -> None:
        """``result`` is "hit", "miss" or "stale"."""
        if count > 0:
            self._chunk_cache.labels(result=result).inc(count)

    def record_synthesis(self, outcome: str, duration: float | None = None) -> None:
        self._synthesis_calls.labels(outcome=outcome).inc()
        if duration is not None:
            self._synthesis_duration.observe(duration)

    def inc_synthesis_retries(self) -> None:
        self._synthesis_retries.inc()

    def record_sweep(self, deleted: int) -> None:
        if deleted > 0:
            self._sweep_deleted.inc(deleted)

    def set_synthesis_active(self, count: int) -> None:
        self._synthesis_active.set(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """(content, content_type) for the /metrics endpoint."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide collector; import this to record metrics.
metrics = GenerationMetrics()
