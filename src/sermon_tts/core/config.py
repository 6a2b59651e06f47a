"""
Configuration management for sermon-tts.

Configuration hierarchy (highest priority first):
    1. Environment variables (SERMON_TTS_BUCKET, SERMON_TTS_LOG_LEVEL, ...)
    2. YAML config file (config/settings.yaml, or $SERMON_TTS_SETTINGS)
    3. Defaults class values

Example settings.yaml:
    chunking:
      max_chunk_size: 4000

    cache:
      ttl_seconds: 2592000   # 30 days
      sweep_enabled: true

    synthesis:
      max_concurrent: 4

    documents:
      backend: firestore
      collection: sermons
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List
import os
import yaml

from sermon_tts.core.logging.levels import coerce_level


DEFAULT_SETTINGS_PATH = "config/settings.yaml"


class ConfigValidationError(ValueError):
    """Raised when a configuration value is out of bounds or of the wrong kind."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Chunking: synthesis segment budget
        - Cache: synthesis cache TTL and sweep schedule
        - Synthesis: provider, fan-out ceiling, per-call timeout
        - Retry: backoff policy for failed synthesis calls
        - Documents: document store backend and collections
        - Blob: artifact storage backend and URL shape
        - Logging: level and text preview
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Chunking
    # ─────────────────────────────────────────────────────────────────────────
    CHUNKING_MAX_CHUNK_SIZE = 4000      # Characters per synthesis call

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesis cache
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_TTL_SECONDS = 30 * 86400      # Entries older than this are stale
    CACHE_COLLECTION = "tts_cache"
    CACHE_SWEEP_ENABLED = True
    CACHE_SWEEP_INTERVAL_SECONDS = 86400
    CACHE_SWEEP_BATCH_SIZE = 200        # Entries deleted per query page

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesis
    # ─────────────────────────────────────────────────────────────────────────
    SYNTHESIS_PROVIDER = "google"
    SYNTHESIS_MAX_CONCURRENT = 4        # Simultaneous provider calls per process
    SYNTHESIS_TIMEOUT_S = 30.0          # Per-call deadline
    SYNTHESIS_AUDIO_ENCODING = "MP3"
    SYNTHESIS_DEFAULT_LANGUAGE = "en"

    # ─────────────────────────────────────────────────────────────────────────
    # Retry
    # ─────────────────────────────────────────────────────────────────────────
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY_S = 0.5
    RETRY_MAX_DELAY_S = 8.0
    RETRY_JITTER = True

    # ─────────────────────────────────────────────────────────────────────────
    # Document store
    # ─────────────────────────────────────────────────────────────────────────
    DOCUMENTS_BACKEND = "memory"        # memory | firestore
    DOCUMENTS_COLLECTION = "sermons"
    DOCUMENTS_TEXT_FIELDS = ("text", "content")
    DOCUMENTS_USAGE_COLLECTION = "tts_usage"

    # ─────────────────────────────────────────────────────────────────────────
    # Blob store
    # ─────────────────────────────────────────────────────────────────────────
    BLOB_BACKEND = "memory"             # memory | local | gcs
    BLOB_PREFIX = "sermons/audio"
    BLOB_BASE_DIR = "./storage"
    BLOB_PUBLIC_BASE_URL = "http://localhost:8000/static"
    BLOB_SIGNED_URL_TTL_SECONDS = 0     # 0 = public URL

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class ChunkingConfig:
    max_chunk_size: int = Defaults.CHUNKING_MAX_CHUNK_SIZE


@dataclass
class CacheConfig:
    """
    Synthesis cache configuration.

    Stale entries are treated as misses on lookup and only removed by the
    sweep, which runs every ``sweep_interval_seconds`` when enabled.
    """
    ttl_seconds: int = Defaults.CACHE_TTL_SECONDS
    collection: str = Defaults.CACHE_COLLECTION
    sweep_enabled: bool = Defaults.CACHE_SWEEP_ENABLED
    sweep_interval_seconds: int = Defaults.CACHE_SWEEP_INTERVAL_SECONDS
    sweep_batch_size: int = Defaults.CACHE_SWEEP_BATCH_SIZE


@dataclass
class SynthesisConfig:
    provider: str = Defaults.SYNTHESIS_PROVIDER
    max_concurrent: int = Defaults.SYNTHESIS_MAX_CONCURRENT
    timeout_s: float = Defaults.SYNTHESIS_TIMEOUT_S
    audio_encoding: str = Defaults.SYNTHESIS_AUDIO_ENCODING
    default_language: str = Defaults.SYNTHESIS_DEFAULT_LANGUAGE


@dataclass
class RetryConfig:
    """Exponential backoff for synthesis calls; ``max_attempts`` counts the first try."""
    max_attempts: int = Defaults.RETRY_MAX_ATTEMPTS
    base_delay_s: float = Defaults.RETRY_BASE_DELAY_S
    max_delay_s: float = Defaults.RETRY_MAX_DELAY_S
    jitter: bool = Defaults.RETRY_JITTER


@dataclass
class DocumentsConfig:
    backend: str = Defaults.DOCUMENTS_BACKEND
    collection: str = Defaults.DOCUMENTS_COLLECTION
    text_fields: List[str] = field(default_factory=lambda: list(Defaults.DOCUMENTS_TEXT_FIELDS))
    usage_collection: str = Defaults.DOCUMENTS_USAGE_COLLECTION
    project: str | None = None


@dataclass
class BlobConfig:
    """
    Artifact storage configuration.

    ``bucket`` is only used by the gcs backend, ``base_dir`` and
    ``public_base_url`` only by the local backend.
    """
    backend: str = Defaults.BLOB_BACKEND
    prefix: str = Defaults.BLOB_PREFIX
    base_dir: str = Defaults.BLOB_BASE_DIR
    public_base_url: str = Defaults.BLOB_PUBLIC_BASE_URL
    bucket: str | None = None
    signed_url_ttl_seconds: int = Defaults.BLOB_SIGNED_URL_TTL_SECONDS


@dataclass
class LoggingConfig:
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ServiceConfig:
    """
    Validated configuration for the generation service.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ServiceConfig.from_settings(settings)
        print(config.cache.ttl_seconds)
    """
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    documents: DocumentsConfig = field(default_factory=DocumentsConfig)
    blob: BlobConfig = field(default_factory=BlobConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Build a validated ServiceConfig from raw settings.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        chunking_raw = raw.get("chunking", {}) or {}
        chunking = ChunkingConfig(
            max_chunk_size=int(chunking_raw.get("max_chunk_size", Defaults.CHUNKING_MAX_CHUNK_SIZE)),
        )
        cls._validate_positive("chunking.max_chunk_size", chunking.max_chunk_size)

        cache_raw = raw.get("cache", {}) or {}
        cache = CacheConfig(
            ttl_seconds=int(cache_raw.get("ttl_seconds", Defaults.CACHE_TTL_SECONDS)),
            collection=str(cache_raw.get("collection", Defaults.CACHE_COLLECTION)),
            sweep_enabled=cls._bool("cache.sweep_enabled", cache_raw.get("sweep_enabled", Defaults.CACHE_SWEEP_ENABLED)),
            sweep_interval_seconds=int(cache_raw.get("sweep_interval_seconds", Defaults.CACHE_SWEEP_INTERVAL_SECONDS)),
            sweep_batch_size=int(cache_raw.get("sweep_batch_size", Defaults.CACHE_SWEEP_BATCH_SIZE)),
        )
        cls._validate_positive("cache.ttl_seconds", cache.ttl_seconds)
        cls._validate_positive("cache.sweep_interval_seconds", cache.sweep_interval_seconds)
        cls._validate_positive("cache.sweep_batch_size", cache.sweep_batch_size)
        cls._validate_non_empty("cache.collection", cache.collection)

        synthesis_raw = raw.get("synthesis", {}) or {}
        synthesis = SynthesisConfig(
            provider=str(synthesis_raw.get("provider", Defaults.SYNTHESIS_PROVIDER)),
            max_concurrent=int(synthesis_raw.get("max_concurrent", Defaults.SYNTHESIS_MAX_CONCURRENT)),
            timeout_s=float(synthesis_raw.get("timeout_s", Defaults.SYNTHESIS_TIMEOUT_S)),
            audio_encoding=str(synthesis_raw.get("audio_encoding", Defaults.SYNTHESIS_AUDIO_ENCODING)).upper(),
            default_language=str(synthesis_raw.get("default_language", Defaults.SYNTHESIS_DEFAULT_LANGUAGE)),
        )
        cls._validate_choice("synthesis.provider", synthesis.provider, ("google",))
        cls._validate_positive("synthesis.max_concurrent", synthesis.max_concurrent)
        cls._validate_positive("synthesis.timeout_s", synthesis.timeout_s)

        retry_raw = raw.get("retry", {}) or {}
        retry = RetryConfig(
            max_attempts=int(retry_raw.get("max_attempts", Defaults.RETRY_MAX_ATTEMPTS)),
            base_delay_s=float(retry_raw.get("base_delay_s", Defaults.RETRY_BASE_DELAY_S)),
            max_delay_s=float(retry_raw.get("max_delay_s", Defaults.RETRY_MAX_DELAY_S)),
            jitter=cls._bool("retry.jitter", retry_raw.get("jitter", Defaults.RETRY_JITTER)),
        )
        cls._validate_positive("retry.max_attempts", retry.max_attempts)
        cls._validate_non_negative("retry.base_delay_s", retry.base_delay_s)
        cls._validate_non_negative("retry.max_delay_s", retry.max_delay_s)

        documents_raw = raw.get("documents", {}) or {}
        text_fields = documents_raw.get("text_fields", list(Defaults.DOCUMENTS_TEXT_FIELDS))
        if isinstance(text_fields, str):
            text_fields = [text_fields]
        documents = DocumentsConfig(
            backend=str(os.getenv("SERMON_TTS_DOCUMENT_BACKEND") or documents_raw.get("backend", Defaults.DOCUMENTS_BACKEND)),
            collection=str(documents_raw.get("collection", Defaults.DOCUMENTS_COLLECTION)),
            text_fields=[str(f) for f in text_fields],
            usage_collection=str(documents_raw.get("usage_collection", Defaults.DOCUMENTS_USAGE_COLLECTION)),
            project=documents_raw.get("project"),
        )
        cls._validate_choice("documents.backend", documents.backend, ("memory", "firestore"))
        cls._validate_non_empty("documents.collection", documents.collection)
        if not documents.text_fields:
            raise ConfigValidationError("documents.text_fields must name at least one field")

        blob_raw = raw.get("blob", {}) or {}
        blob = BlobConfig(
            backend=str(os.getenv("SERMON_TTS_BLOB_BACKEND") or blob_raw.get("backend", Defaults.BLOB_BACKEND)),
            prefix=str(blob_raw.get("prefix", Defaults.BLOB_PREFIX)).strip("/"),
            base_dir=str(blob_raw.get("base_dir", Defaults.BLOB_BASE_DIR)),
            public_base_url=str(blob_raw.get("public_base_url", Defaults.BLOB_PUBLIC_BASE_URL)).rstrip("/"),
            bucket=os.getenv("SERMON_TTS_BUCKET") or blob_raw.get("bucket"),
            signed_url_ttl_seconds=int(blob_raw.get("signed_url_ttl_seconds", Defaults.BLOB_SIGNED_URL_TTL_SECONDS)),
        )
        cls._validate_choice("blob.backend", blob.backend, ("memory", "local", "gcs"))
        cls._validate_non_negative("blob.signed_url_ttl_seconds", blob.signed_url_ttl_seconds)
        if blob.backend == "gcs" and not blob.bucket:
            raise ConfigValidationError("blob.bucket is required for the gcs backend")

        logging_raw = raw.get("logging", {}) or {}
        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=int(coerce_level(logging_raw.get("level", Defaults.LOGGING_LEVEL))),
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        return cls(
            chunking=chunking,
            cache=cache,
            synthesis=synthesis,
            retry=retry,
            documents=documents,
            blob=blob,
            logging=logging_cfg,
        )

    @staticmethod
    def _bool(name: str, value: Any) -> bool:
        # YAML yields real booleans; a quoted "false" would otherwise be truthy.
        if not isinstance(value, bool):
            raise ConfigValidationError(f"{name} must be true or false, got {value!r}")
        return value

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_non_empty(name: str, value: str) -> None:
        if not value.strip():
            raise ConfigValidationError(f"{name} must not be empty")

    @staticmethod
    def _validate_choice(name: str, value: str, choices: tuple) -> None:
        if value not in choices:
            raise ConfigValidationError(f"{name} must be one of {', '.join(choices)}, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw mapping before validation; use ``get_service_config()``
    for typed access.
    """
    raw: Dict[str, Any]

    def get_service_config(self) -> ServiceConfig:
        return ServiceConfig.from_settings(self)


def load_settings(path: str | None = None) -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML file. Defaults to $SERMON_TTS_SETTINGS, then
            config/settings.yaml.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
        ConfigValidationError: If the file's top level is not a mapping.
    """
    p = Path(path or os.getenv("SERMON_TTS_SETTINGS", DEFAULT_SETTINGS_PATH))
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigValidationError(f"{p}: top level must be a mapping")

    return Settings(raw=raw)
