"""
In-process stores.

Used for local development and tests. Data is deep-copied in and out so a
caller mutating a returned dict never changes stored state, matching the
snapshot semantics of a remote document database.
"""
from __future__ import annotations

import copy
import operator
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from sermon_tts.stores.base import DocumentMissing, Filter, StoredDocument, validate_filters

_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_MISSING = object()


def deep_merge(target: Dict[str, Any], updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``updates`` into ``target`` recursively; non-dict values replace."""
    for key, value in updates.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            deep_merge(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _get_path(data: Mapping[str, Any], path: str) -> Any:
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = copy.deepcopy(value)


class InMemoryDocumentStore:
    """DocumentStore over nested dicts: ``{collection: {doc_id: fields}}``."""

    backend = "memory"

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for collection, docs in (initial or {}).items():
            for doc_id, data in docs.items():
                self._collection(collection)[doc_id] = copy.deepcopy(dict(data))

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        docs = self._collection(collection)
        if merge and doc_id in docs:
            deep_merge(docs[doc_id], data)
        else:
            docs[doc_id] = copy.deepcopy(dict(data))

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise DocumentMissing(f"{collection}/{doc_id} not found", backend=self.backend, operation="update")
        for path, value in fields.items():
            _set_path(docs[doc_id], path, value)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[StoredDocument]:
        validate_filters(filters)
        rows: List[Tuple[str, Dict[str, Any]]] = []
        for doc_id, data in self._collection(collection).items():
            if all(self._matches(data, f) for f in filters):
                rows.append((doc_id, data))

        if order_by:
            # Documents without the ordering field are excluded, as in Firestore.
            rows = [r for r in rows if _get_path(r[1], order_by) is not _MISSING]
            rows.sort(key=lambda r: _get_path(r[1], order_by), reverse=descending)

        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return [StoredDocument(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    @staticmethod
    def _matches(data: Mapping[str, Any], flt: Filter) -> bool:
        field, op, expected = flt
        actual = _get_path(data, field)
        if actual is _MISSING:
            return False
        try:
            return _OPS[op](actual, expected)
        except TypeError:
            return False

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise DocumentMissing(f"{collection}/{doc_id} not found", backend=self.backend, operation="increment")
        current = _get_path(docs[doc_id], field)
        base = current if isinstance(current, (int, float)) else 0
        _set_path(docs[doc_id], field, base + amount)
        for path, value in (extra or {}).items():
            _set_path(docs[doc_id], path, value)

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self._collection(collection)[doc_id] = copy.deepcopy(dict(data))
        return doc_id

    def count(self, collection: str) -> int:
        return len(self._collection(collection))


class InMemoryBlobStore:
    """BlobStore over a dict; URLs are ``<base_url>/<path>``."""

    backend = "memory"

    def __init__(self, base_url: str = "memory://blobs"):
        self.base_url = base_url.rstrip("/")
        self._blobs: Dict[str, Tuple[bytes, str]] = {}

    async def put(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self._blobs[path] = (bytes(data), content_type)

    async def url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def exists(self, path: str) -> bool:
        return path in self._blobs

    async def delete(self, path: str) -> bool:
        return self._blobs.pop(path, None) is not None

    def read(self, path: str) -> bytes:
        return self._blobs[path][0]

    def content_type(self, path: str) -> str:
        return self._blobs[path][1]

    def paths(self) -> List[str]:
        return sorted(self._blobs)
