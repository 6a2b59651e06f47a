"""
API request/response schemas.

Example Request (POST /v1/sermons/sermon42/audio):
    {
        "language": "es-MX",
        "voice_name": null,
        "user_id": "u-981"
    }

Example Response:
    {
        "ok": true,
        "url": "https://storage.googleapis.com/bucket/sermons/audio/sermon42/es-ES.mp3",
        "cached": false,
        "chunk_count": 3,
        "language_code": "es-ES",
        "voice_name": "es-ES-Neural2-B",
        "request_id": "3f2a9c1d-8b7"
    }
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class GenerateAudioRequest(BaseModel):
    """
    Attributes:
        language: BCP-47 style tag ("en", "es-MX"). Only the primary subtag
            picks the voice; unknown languages fall back to English.
            None uses synthesis.default_language.
        voice_name: Provider voice to use instead of the language default.
        user_id: Attributed in the usage record.
    """
    language: str | None = Field(
        default=None,
        max_length=35,
        description="Language tag (e.g., 'en', 'es-MX')"
    )
    voice_name: str | None = Field(
        default=None,
        max_length=100,
        description="Voice override (provider voice name)"
    )
    user_id: str | None = Field(
        default=None,
        max_length=128,
        description="Requesting user, for usage records"
    )


class GenerateAudioResponse(BaseModel):
    ok: bool = True
    url: str = Field(..., description="Link to the merged audio artifact")
    cached: bool = Field(..., description="True when an existing artifact was returned")
    chunk_count: int = Field(..., description="Segments the artifact was built from")
    language_code: str
    voice_name: str
    cached_chunks: int = Field(default=0, description="Segments served from the synthesis cache")
    synthesized_chunks: int = Field(default=0, description="Provider calls made for this request")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class AudioStatusResponse(BaseModel):
    ok: bool = True
    has_audio: bool
    url: str | None = None
    generated_at: str | None = Field(default=None, description="ISO-8601 timestamp of generation")
    language_code: str
    request_id: str


class SweepResponse(BaseModel):
    ok: bool = True
    deleted: int = Field(..., description="Cache entries removed")
    request_id: str
