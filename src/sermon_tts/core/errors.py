"""
Error codes and exception hierarchy for audio generation.

Every failure surfaced to a caller is a GenerationError carrying one of the
ErrorCode strings; the API layer maps codes to HTTP statuses and returns
``to_dict()`` as the response body.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standardized error codes for API responses and CLI output."""
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"   # No document with that id
    NO_SOURCE_TEXT = "NO_SOURCE_TEXT"           # Document has no usable text
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"       # Provider failed after retries
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"     # Never leaves the cache layer
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"   # Blob or document write failed
    INVALID_INPUT = "INVALID_INPUT"             # Bad request data
    INTERNAL_ERROR = "INTERNAL_ERROR"           # Unexpected error


class GenerationError(Exception):
    """
    Base exception for generation failures.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional additional context.
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class DocumentNotFound(GenerationError):
    def __init__(self, document_id: str, collection: str = "sermons"):
        super().__init__(
            f"document {collection}/{document_id} not found",
            ErrorCode.DOCUMENT_NOT_FOUND,
            {"document_id": document_id},
        )
        self.document_id = document_id


class NoSourceText(GenerationError):
    """The document exists but has no non-blank text to synthesize."""

    def __init__(self, document_id: str):
        super().__init__(
            f"document {document_id} has no text to synthesize",
            ErrorCode.NO_SOURCE_TEXT,
            {"document_id": document_id},
        )
        self.document_id = document_id


class SynthesisFailure(GenerationError):
    """
    The speech provider rejected or failed a segment.

    Attributes:
        status: Provider status name ("UNAVAILABLE", "DEADLINE_EXCEEDED", ...).
        retryable: Whether another attempt may succeed.
    """

    def __init__(self, message: str, status: str = "UNKNOWN", retryable: bool = False, details: Optional[Dict[str, Any]] = None):
        merged = {"status": status, "retryable": retryable}
        merged.update(details or {})
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, merged)
        self.status = status
        self.retryable = retryable


class CacheUnavailable(GenerationError):
    """Backing store for the synthesis cache failed; callers degrade to a miss."""

    def __init__(self, message: str, operation: str):
        super().__init__(message, ErrorCode.CACHE_UNAVAILABLE, {"operation": operation})
        self.operation = operation


class PersistenceFailure(GenerationError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PERSISTENCE_FAILED, details)


class InvalidInputError(GenerationError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)
