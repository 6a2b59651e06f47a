"""
Services layer.

Sits between the API/CLI and the speech pipeline.

Components:
    - generation.py: GenerationOrchestrator (document text to stored artifact)
    - usage.py: Usage records for metering
"""
from .generation import (
    AudioStatus,
    GenerationOrchestrator,
    GenerationResult,
    GenerationRun,
    GenerationState,
    get_service,
    reset_service,
)
from .usage import UsageRecord, UsageRecorder

__all__ = [
    "GenerationOrchestrator",
    "GenerationResult",
    "GenerationRun",
    "GenerationState",
    "AudioStatus",
    "UsageRecord",
    "UsageRecorder",
    "get_service",
    "reset_service",
]
