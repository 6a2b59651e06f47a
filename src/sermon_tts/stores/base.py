"""
Collaborator interfaces for persistence.

DocumentStore is a key-value document database organised in collections
(Firestore in production, a dict in tests). BlobStore holds binary
artifacts addressed by path and hands out URLs for them.

Both are async. Implementations raise StoreError (or DocumentMissing) for
backend failures so callers never see SDK-specific exceptions.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

# (field, operator, value); operators: == != < <= > >=
Filter = Tuple[str, str, Any]

FILTER_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")


class StoreError(Exception):
    """A document or blob backend call failed."""

    def __init__(self, message: str, *, backend: str = "", operation: str = ""):
        super().__init__(message)
        self.backend = backend
        self.operation = operation


class DocumentMissing(StoreError):
    """update()/increment() on a document that does not exist."""


@dataclass(frozen=True)
class StoredDocument:
    id: str
    data: Dict[str, Any]


@runtime_checkable
class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """The document's fields, or None if absent."""
        ...

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        """Create or replace; with ``merge`` nested maps are merged into the existing document."""
        ...

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Set top-level or dotted-path fields of an existing document."""
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[StoredDocument]:
        ...

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Atomically add ``amount`` to ``field`` and set ``extra`` fields in the same write."""
        ...

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Append a document with a generated id and return the id."""
        ...


@runtime_checkable
class BlobStore(Protocol):
    async def put(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        ...

    async def url(self, path: str) -> str:
        """Public or signed URL for ``path``."""
        ...

    async def exists(self, path: str) -> bool:
        ...

    async def delete(self, path: str) -> bool:
        """True if something was deleted."""
        ...


def validate_filters(filters: Sequence[Filter]) -> None:
    for field, op, _ in filters:
        if op not in FILTER_OPERATORS:
            raise ValueError(f"unsupported filter operator {op!r} on {field!r}")
