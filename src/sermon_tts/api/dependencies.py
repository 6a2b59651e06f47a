"""
FastAPI dependency injection providers.

    1. get_settings() - loads and caches application configuration
    2. get_orchestrator() - creates/returns the singleton GenerationOrchestrator
    3. get_cache() - the orchestrator's synthesis cache (sweep endpoint)

Tests replace these through ``app.dependency_overrides``:

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

See Also:
    - core/config.py: Settings class and load_settings()
    - services/generation.py: GenerationOrchestrator and get_service()
    - main.py: Application startup and lifespan management
"""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from sermon_tts.core.config import Settings, load_settings
from sermon_tts.services.generation import GenerationOrchestrator, get_service
from sermon_tts.tts.cache import SynthesisCache


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from SERMON_TTS_SETTINGS, falling back to
    config/settings.yaml. Settings are immutable once loaded; restart the
    application to pick up changes.
    """
    return load_settings()


def get_orchestrator() -> GenerationOrchestrator:
    """Process-wide orchestrator, built from settings on first request."""
    return get_service(get_settings())


def get_cache(orchestrator: GenerationOrchestrator = Depends(get_orchestrator)) -> SynthesisCache:
    return orchestrator.cache
