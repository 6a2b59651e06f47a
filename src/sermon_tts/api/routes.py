"""
REST API routes.

Endpoints:
    POST /v1/sermons/{document_id}/audio  - Generate (or reuse) the audio artifact
    GET  /v1/sermons/{document_id}/audio  - Whether an artifact exists
    POST /v1/cache/sweep                  - Delete stale synthesis cache entries
    GET  /health                          - Health check for load balancers and probes
    GET  /metrics                         - Prometheus metrics

Error Handling:
    All errors are returned as JSON with standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "request_id": "<12-char id>"
    }

    HTTP status codes are mapped from GenerationError codes:
        - DOCUMENT_NOT_FOUND -> 404 Not Found
        - NO_SOURCE_TEXT -> 422 Unprocessable Entity
        - INVALID_INPUT -> 400 Bad Request
        - SYNTHESIS_FAILED -> 502 Bad Gateway
        - PERSISTENCE_FAILED -> 500 Internal Server Error

Example Usage:
    curl -X POST http://localhost:8000/v1/sermons/sermon42/audio \\
        -H "Content-Type: application/json" \\
        -d '{"language": "es"}'
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.responses import JSONResponse

from sermon_tts.api.dependencies import get_cache, get_orchestrator
from sermon_tts.api.schemas import (
    AudioStatusResponse,
    GenerateAudioRequest,
    GenerateAudioResponse,
    SweepResponse,
)
from sermon_tts.core.errors import ErrorCode, GenerationError
from sermon_tts.core.logging import error, get_logger, info, set_request_id
from sermon_tts.core.metrics import metrics
from sermon_tts.services.generation import GenerationOrchestrator
from sermon_tts.tts.cache import SynthesisCache

router = APIRouter()

_LOG = get_logger("sermon-tts.api")

STATUS_MAP = {
    ErrorCode.DOCUMENT_NOT_FOUND: 404,
    ErrorCode.NO_SOURCE_TEXT: 422,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.SYNTHESIS_FAILED: 502,
    ErrorCode.PERSISTENCE_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def _new_request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def _error_response(err: GenerationError, rid: str) -> JSONResponse:
    content = err.to_dict()
    content["request_id"] = rid
    return JSONResponse(
        status_code=STATUS_MAP.get(err.code, 500),
        content=content,
        headers={"X-Request-Id": rid},
    )


def _internal_error(exc: Exception, rid: str) -> JSONResponse:
    # Log the detail, don't expose it.
    error(_LOG, "unhandled_error", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": rid,
        },
        headers={"X-Request-Id": rid},
    )


@router.post("/v1/sermons/{document_id}/audio", response_model=GenerateAudioResponse)
async def generate_audio(
    document_id: str,
    response: Response,
    req: Optional[GenerateAudioRequest] = Body(default=None),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """
    Generate the audio artifact for a sermon, or return the existing one.

    Idempotent per document and language: a second call returns the same
    URL with ``cached=true`` and makes no synthesis calls.
    """
    rid = _new_request_id()
    req = req or GenerateAudioRequest()
    info(_LOG, "generate_request", document_id=document_id, language=req.language)

    try:
        result = await orchestrator.generate_audio(
            document_id,
            language=req.language,
            voice_name=req.voice_name,
            user_id=req.user_id,
        )
    except GenerationError as e:
        return _error_response(e, rid)
    except Exception as e:
        return _internal_error(e, rid)

    response.headers["X-Request-Id"] = rid
    return GenerateAudioResponse(
        url=result.url,
        cached=result.cached,
        chunk_count=result.chunk_count,
        language_code=result.language_code,
        voice_name=result.voice_name,
        cached_chunks=result.cached_chunks,
        synthesized_chunks=result.synthesized_chunks,
        request_id=rid,
    )


@router.get("/v1/sermons/{document_id}/audio", response_model=AudioStatusResponse)
async def audio_status(
    document_id: str,
    response: Response,
    language: Optional[str] = Query(default=None, max_length=35),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Report whether the sermon has an artifact for ``language``. Never generates."""
    rid = _new_request_id()
    try:
        status = await orchestrator.check_audio_status(document_id, language)
    except GenerationError as e:
        return _error_response(e, rid)
    except Exception as e:
        return _internal_error(e, rid)

    response.headers["X-Request-Id"] = rid
    return AudioStatusResponse(
        has_audio=status.has_audio,
        url=status.url,
        generated_at=status.generated_at,
        language_code=status.language_code,
        request_id=rid,
    )


@router.post("/v1/cache/sweep", response_model=SweepResponse)
async def sweep_cache(
    response: Response,
    ttl_seconds: Optional[int] = Query(default=None, ge=0),
    cache: SynthesisCache = Depends(get_cache),
):
    """Delete synthesis cache entries older than ``ttl_seconds`` (default: configured TTL)."""
    rid = _new_request_id()
    try:
        deleted = await cache.sweep(ttl_seconds)
    except Exception as e:
        return _internal_error(e, rid)
    response.headers["X-Request-Id"] = rid
    return SweepResponse(deleted=deleted, request_id=rid)


@router.get("/health")
def health(orchestrator: GenerationOrchestrator = Depends(get_orchestrator)):
    """
    Health check for load balancers and orchestration.

    Returns cache counters, limiter statistics and chunking settings from
    GenerationOrchestrator.get_health_info().
    """
    return {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(),
        **orchestrator.get_health_info(),
    }


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics in text exposition format."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
