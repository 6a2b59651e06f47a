"""
FastAPI application entry point.

Usage:
    # Run with uvicorn
    uvicorn sermon_tts.main:app --host 0.0.0.0 --port 8000

    # Or use the module directly
    python -m uvicorn sermon_tts.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from sermon_tts.api.dependencies import get_orchestrator, get_settings
from sermon_tts.api.routes import router
from sermon_tts.core.logging import configure_logging, get_logger, info
from sermon_tts.tts.cache import CacheSweeper

_LOG = get_logger("sermon-tts.main")

STATIC_PATH = "/static"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Start the cache sweeper (when enabled) and drain background cache
    updates on shutdown.
    """
    config = get_settings().get_service_config()
    orchestrator = get_orchestrator()

    sweeper: Optional[CacheSweeper] = None
    if config.cache.sweep_enabled:
        sweeper = CacheSweeper(orchestrator.cache, config.cache.sweep_interval_seconds)
        sweeper.start()
    app.state.sweeper = sweeper
    info(_LOG, "startup", documents=config.documents.backend, blob=config.blob.backend)

    try:
        yield
    finally:
        if sweeper is not None:
            await sweeper.stop()
        await orchestrator.cache.drain()
        info(_LOG, "shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

        1. Configures structured logging (SERMON_TTS_LOG_LEVEL etc.)
        2. Registers the API router
        3. Serves the local blob directory under /static when the local
           blob backend is configured
    """
    configure_logging()

    app = FastAPI(title="sermon-tts", lifespan=lifespan)
    app.include_router(router)

    blob = get_settings().get_service_config().blob
    if blob.backend == "local":
        app.mount(STATIC_PATH, StaticFiles(directory=blob.base_dir, check_dir=False), name="static")

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
