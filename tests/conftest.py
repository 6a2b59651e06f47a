"""Shared fixtures: fake synthesis client and an orchestrator over in-memory stores."""
from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from sermon_tts.core.config import (
    ChunkingConfig,
    RetryConfig,
    ServiceConfig,
    SynthesisConfig,
)
from sermon_tts.services.generation import GenerationOrchestrator
from sermon_tts.stores.base import StoreError
from sermon_tts.stores.memory import InMemoryBlobStore, InMemoryDocumentStore
from sermon_tts.tts.cache import SynthesisCache
from sermon_tts.tts.retry import RetryPolicy
from sermon_tts.tts.voices import VoiceConfig


def payload_for(text: str) -> bytes:
    """Sentinel audio for a segment, so merged output shows order and content."""
    return b"<" + text.encode("utf-8") + b">"


class FakeSynthesisClient:
    """
    SynthesisClient double.

    Args:
        delay: Seconds to sleep per call, or a function of the text.
        failures: Exceptions to raise, per text, before succeeding. The key
            "*" applies to every text.
    """

    def __init__(
        self,
        delay: Union[float, Callable[[str], float]] = 0.0,
        failures: Optional[Dict[str, List[Exception]]] = None,
    ):
        self.delay = delay
        self.failures = failures or {}
        self.calls: List[Tuple[str, VoiceConfig]] = []
        self.active = 0
        self.peak = 0

    @property
    def texts(self) -> List[str]:
        return [text for text, _ in self.calls]

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        self.calls.append((text, voice))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            delay = self.delay(text) if callable(self.delay) else self.delay
            if delay:
                await asyncio.sleep(delay)
            queue = self.failures.get(text) or self.failures.get("*")
            if queue:
                raise queue.pop(0)
            return payload_for(text)
        finally:
            self.active -= 1


class FailingDocumentStore(InMemoryDocumentStore):
    """InMemoryDocumentStore whose writes to chosen collections raise StoreError."""

    def __init__(self, *args, fail_set_on=(), fail_get_on=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_set_on = set(fail_set_on)
        self.fail_get_on = set(fail_get_on)

    async def get(self, collection, doc_id):
        if collection in self.fail_get_on:
            raise StoreError("backend unavailable", backend="memory", operation="get")
        return await super().get(collection, doc_id)

    async def set(self, collection, doc_id, data, merge=False):
        if collection in self.fail_set_on:
            raise StoreError("backend unavailable", backend="memory", operation="set")
        await super().set(collection, doc_id, data, merge=merge)

    async def update(self, collection, doc_id, fields):
        if collection in self.fail_set_on:
            raise StoreError("backend unavailable", backend="memory", operation="update")
        await super().update(collection, doc_id, fields)


class FailingBlobStore(InMemoryBlobStore):
    async def put(self, path, data, content_type="application/octet-stream"):
        raise StoreError("bucket unavailable", backend="memory", operation="put")


def make_config(
    max_chunk_size: int = 4000,
    max_concurrent: int = 4,
    timeout_s: float = 5.0,
    max_attempts: int = 3,
) -> ServiceConfig:
    return ServiceConfig(
        chunking=ChunkingConfig(max_chunk_size=max_chunk_size),
        synthesis=SynthesisConfig(max_concurrent=max_concurrent, timeout_s=timeout_s),
        retry=RetryConfig(max_attempts=max_attempts, base_delay_s=0.0, max_delay_s=0.0, jitter=False),
    )


def make_orchestrator(
    sermons: Optional[Dict[str, dict]] = None,
    client: Optional[FakeSynthesisClient] = None,
    documents: Optional[InMemoryDocumentStore] = None,
    blobs: Optional[InMemoryBlobStore] = None,
    config: Optional[ServiceConfig] = None,
    **config_kwargs,
) -> GenerationOrchestrator:
    config = config or make_config(**config_kwargs)
    if documents is None:
        documents = InMemoryDocumentStore({"sermons": sermons or {}})
    return GenerationOrchestrator(
        documents=documents,
        blobs=blobs if blobs is not None else InMemoryBlobStore(),
        cache=SynthesisCache.from_config(documents, config.cache),
        client=client if client is not None else FakeSynthesisClient(),
        config=config,
        retry=RetryPolicy.from_config(config.retry),
    )


@pytest.fixture
def fake_client() -> FakeSynthesisClient:
    return FakeSynthesisClient()


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """A settings.yaml with memory backends, selected via SERMON_TTS_SETTINGS."""
    path = tmp_path / "settings.yaml"
    path.write_text(
        "chunking:\n"
        "  max_chunk_size: 50\n"
        "cache:\n"
        "  sweep_enabled: false\n"
        "documents:\n"
        "  backend: memory\n"
        "blob:\n"
        "  backend: memory\n"
        "logging:\n"
        "  level: 1\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("SERMON_TTS_SETTINGS", str(path))
    for name in ("SERMON_TTS_DOCUMENT_BACKEND", "SERMON_TTS_BLOB_BACKEND", "SERMON_TTS_BUCKET"):
        monkeypatch.delenv(name, raising=False)
    return path
