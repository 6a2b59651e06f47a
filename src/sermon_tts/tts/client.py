"""
Speech synthesis provider client.

SynthesisClient is the seam the generation pipeline depends on: one text
segment in, one encoded audio payload out. GoogleSynthesisClient talks to
Google Cloud Text-to-Speech through its async gRPC client.

The client does not retry and does not check segment length; both belong to
the caller. Every provider error becomes a SynthesisFailure whose
``retryable`` flag marks throttling and transient server faults.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from google.api_core import exceptions as gexc
from google.cloud import texttospeech

from sermon_tts.core.config import Defaults, SynthesisConfig
from sermon_tts.core.errors import SynthesisFailure
from sermon_tts.core.logging import debug, get_logger, info
from sermon_tts.tts.voices import VoiceConfig

_LOG = get_logger("sermon-tts.client")

# Provider errors worth another attempt.
RETRYABLE_ERRORS = (
    gexc.ResourceExhausted,
    gexc.ServiceUnavailable,
    gexc.InternalServerError,
    gexc.DeadlineExceeded,
    gexc.Aborted,
)


@runtime_checkable
class SynthesisClient(Protocol):
    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        ...


def _status_name(exc: gexc.GoogleAPICallError) -> str:
    code = getattr(exc, "grpc_status_code", None)
    if code is not None:
        return code.name
    return type(exc).__name__


def failure_from_google(exc: gexc.GoogleAPICallError) -> SynthesisFailure:
    return SynthesisFailure(
        f"text-to-speech request failed: {exc.message}",
        status=_status_name(exc),
        retryable=isinstance(exc, RETRYABLE_ERRORS),
    )


class GoogleSynthesisClient:
    """
    Google Cloud Text-to-Speech client.

    The underlying TextToSpeechAsyncClient is created on first use so that
    the service can start (and serve cached artifacts) before credentials
    are checked.
    """

    def __init__(
        self,
        audio_encoding: str = Defaults.SYNTHESIS_AUDIO_ENCODING,
        timeout_s: float = Defaults.SYNTHESIS_TIMEOUT_S,
        client: Optional[texttospeech.TextToSpeechAsyncClient] = None,
    ):
        self._audio_encoding = texttospeech.AudioEncoding[audio_encoding.upper()]
        self._timeout_s = timeout_s
        self._client = client

    def _get_client(self) -> texttospeech.TextToSpeechAsyncClient:
        if self._client is None:
            self._client = texttospeech.TextToSpeechAsyncClient()
            info(_LOG, "tts_client_ready", encoding=self._audio_encoding.name)
        return self._client

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        try:
            response = await self._get_client().synthesize_speech(
                input=texttospeech.SynthesisInput(text=text),
                voice=texttospeech.VoiceSelectionParams(
                    language_code=voice.language_code,
                    name=voice.voice_name,
                ),
                audio_config=texttospeech.AudioConfig(audio_encoding=self._audio_encoding),
                timeout=self._timeout_s,
            )
        except gexc.GoogleAPICallError as e:
            raise failure_from_google(e) from e

        audio = response.audio_content
        if not audio:
            raise SynthesisFailure("text-to-speech returned no audio", status="EMPTY_AUDIO", retryable=False)

        debug(_LOG, "synthesized", chars=len(text), bytes=len(audio), voice=voice.voice_name)
        return audio


def create_synthesis_client(config: SynthesisConfig) -> SynthesisClient:
    """
    Build the configured provider client.

    Raises:
        ValueError: If the provider is unknown.
    """
    if config.provider == "google":
        return GoogleSynthesisClient(audio_encoding=config.audio_encoding, timeout_s=config.timeout_s)
    raise ValueError(f"unknown synthesis provider: {config.provider}")
