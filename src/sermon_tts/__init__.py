"""
sermon-tts: audio generation for sermon documents.

Turns the text of a sermon document into one narrated audio artifact per
language, using Google Cloud Text-to-Speech, and reuses work wherever it can.

Key Features:
    - Sentence-aware chunking under the provider's request size limit
    - Content-addressed synthesis cache with TTL and periodic sweep
    - Bounded, retried, concurrent synthesis of cache misses
    - Idempotent generation per document and language
    - Firestore / Cloud Storage backends, with in-memory and local ones for development
    - Prometheus metrics and structured logging

Example Usage:
    >>> from sermon_tts.core.config import load_settings
    >>> from sermon_tts.services import get_service
    >>>
    >>> service = get_service(load_settings())
    >>> result = await service.generate_audio("sermon42", "es")
    >>> result.url
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
