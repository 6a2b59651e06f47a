"""
Tests for the REST API.

The router is mounted on a bare FastAPI app and the orchestrator is
injected through dependency_overrides, so no settings file or cloud
backend is involved.
"""
from __future__ import annotations

import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FailingBlobStore, FakeSynthesisClient, make_orchestrator
from sermon_tts.api.dependencies import get_cache, get_orchestrator
from sermon_tts.api.routes import STATUS_MAP, router
from sermon_tts.core.errors import ErrorCode, SynthesisFailure

SERMONS = {
    "s1": {"title": "Light", "text": "In the beginning was the Word. The Word was with God."},
    "blank": {"title": "Empty", "text": "   "},
}


def _client(orchestrator) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)


@pytest.fixture
def orchestrator():
    return make_orchestrator(sermons=SERMONS, max_chunk_size=32)


@pytest.fixture
def client(orchestrator):
    with _client(orchestrator) as c:
        yield c


class TestGenerateEndpoint:
    def test_generate(self, client):
        r = client.post("/v1/sermons/s1/audio", json={"language": "en"})

        assert r.status_code == 200
        j = r.json()
        assert j["ok"] is True
        assert j["cached"] is False
        assert j["chunk_count"] == 2
        assert j["synthesized_chunks"] == 2
        assert j["language_code"] == "en-US"
        assert j["url"] == "memory://blobs/sermons/audio/s1/en-US.mp3"
        assert r.headers["X-Request-Id"] == j["request_id"]
        assert len(j["request_id"]) == 12

    def test_second_call_is_cached(self, client):
        first = client.post("/v1/sermons/s1/audio", json={"language": "en"}).json()
        second = client.post("/v1/sermons/s1/audio", json={"language": "en-GB"}).json()

        assert second["cached"] is True
        assert second["url"] == first["url"]
        assert second["request_id"] != first["request_id"]

    def test_body_optional(self, client):
        r = client.post("/v1/sermons/s1/audio")
        assert r.status_code == 200
        assert r.json()["language_code"] == "en-US"

    def test_unknown_language_falls_back(self, client):
        r = client.post("/v1/sermons/s1/audio", json={"language": "tlh"})
        assert r.json()["language_code"] == "en-US"

    def test_language_too_long_rejected(self, client):
        r = client.post("/v1/sermons/s1/audio", json={"language": "x" * 40})
        assert r.status_code == 422


class TestErrorMapping:
    def test_status_map(self):
        assert STATUS_MAP[ErrorCode.DOCUMENT_NOT_FOUND] == 404
        assert STATUS_MAP[ErrorCode.SYNTHESIS_FAILED] == 502

    def test_document_not_found(self, client):
        r = client.post("/v1/sermons/nope/audio", json={})
        assert r.status_code == 404
        j = r.json()
        assert j["ok"] is False
        assert j["error"] == "DOCUMENT_NOT_FOUND"
        assert j["request_id"] == r.headers["X-Request-Id"]

    def test_no_source_text(self, client):
        r = client.post("/v1/sermons/blank/audio", json={})
        assert r.status_code == 422
        assert r.json()["error"] == "NO_SOURCE_TEXT"

    def test_blank_id(self, client):
        r = client.post("/v1/sermons/%20/audio", json={})
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_INPUT"

    def test_synthesis_failure(self):
        fake = FakeSynthesisClient(failures={"*": [SynthesisFailure("bad voice", status="INVALID_ARGUMENT")]})
        orch = make_orchestrator(sermons=SERMONS, client=fake)
        with _client(orch) as c:
            r = c.post("/v1/sermons/s1/audio", json={})
        assert r.status_code == 502
        assert r.json()["error"] == "SYNTHESIS_FAILED"
        assert r.json()["details"]["status"] == "INVALID_ARGUMENT"

    def test_persistence_failure(self):
        orch = make_orchestrator(sermons=SERMONS, blobs=FailingBlobStore())
        with _client(orch) as c:
            r = c.post("/v1/sermons/s1/audio", json={})
        assert r.status_code == 500
        assert r.json()["error"] == "PERSISTENCE_FAILED"

    def test_unexpected_error_hidden(self):
        orch = MagicMock()
        orch.generate_audio = AsyncMock(side_effect=RuntimeError("secret detail"))
        with _client(orch) as c:
            r = c.post("/v1/sermons/s1/audio", json={})
        assert r.status_code == 500
        j = r.json()
        assert j["error"] == "INTERNAL_ERROR"
        assert j["message"] == "Internal server error"
        assert "secret" not in r.text


class TestStatusEndpoint:
    def test_no_audio_yet(self, client):
        r = client.get("/v1/sermons/s1/audio", params={"language": "es"})
        assert r.status_code == 200
        j = r.json()
        assert j["has_audio"] is False
        assert j["url"] is None
        assert j["language_code"] == "es-ES"

    def test_after_generation(self, client, orchestrator):
        client.post("/v1/sermons/s1/audio", json={"language": "es"})
        calls = len(orchestrator._client.calls)

        j = client.get("/v1/sermons/s1/audio", params={"language": "es-MX"}).json()

        assert j["has_audio"] is True
        assert j["url"].endswith("/s1/es-ES.mp3")
        assert j["generated_at"]
        assert len(orchestrator._client.calls) == calls

    def test_unknown_document(self, client):
        r = client.get("/v1/sermons/nope/audio")
        assert r.status_code == 404


class TestSweepEndpoint:
    def test_sweep(self, client):
        client.post("/v1/sermons/s1/audio", json={})
        time.sleep(0.01)
        r = client.post("/v1/cache/sweep", params={"ttl_seconds": 0})
        assert r.status_code == 200
        j = r.json()
        assert j["ok"] is True
        assert j["deleted"] == 2
        assert "X-Request-Id" in r.headers

    def test_sweep_uses_cache_dependency(self, orchestrator):
        cache = MagicMock()
        cache.sweep = AsyncMock(return_value=5)
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_cache] = lambda: cache
        with TestClient(app) as c:
            assert c.post("/v1/cache/sweep").json()["deleted"] == 5
        cache.sweep.assert_awaited_once_with(None)

    def test_negative_ttl_rejected(self, client):
        assert client.post("/v1/cache/sweep", params={"ttl_seconds": -1}).status_code == 422


class TestHealthAndMetrics:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        j = r.json()
        assert j["status"] == "ok"
        assert j["ok"] is True
        assert j["chunking"]["max_chunk_size"] == 32
        assert "hits" in j["cache"]
        assert j["concurrency"]["max_concurrent"] == 4
        assert j["in_flight_pairs"] == 0

    def test_metrics(self, client):
        client.post("/v1/sermons/s1/audio", json={})
        r = client.get("/metrics")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/plain")
        assert "sermon_tts_generation_requests_total" in r.text
