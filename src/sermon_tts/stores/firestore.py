"""
Firestore-backed DocumentStore.

Wraps ``google.cloud.firestore.AsyncClient``. SDK errors are translated to
StoreError / DocumentMissing; credentials come from the environment
(GOOGLE_APPLICATION_CREDENTIALS or workload identity) as usual.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from google.api_core import exceptions as gexc
from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from sermon_tts.core.logging import debug, get_logger
from sermon_tts.stores.base import DocumentMissing, Filter, StoreError, StoredDocument, validate_filters

_LOG = get_logger("sermon-tts.documents.firestore")

# RetryError and auth/transport failures are not GoogleAPICallErrors.
BACKEND_ERRORS = (gexc.GoogleAPIError, GoogleAuthError)


def field_paths(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Dotted keys to Firestore field paths; segments like 'en-US' get backtick-quoted."""
    return {FieldPath(*key.split(".")).to_api_repr(): value for key, value in fields.items()}


class FirestoreDocumentStore:
    backend = "firestore"

    def __init__(self, client: Optional[firestore.AsyncClient] = None, project: Optional[str] = None):
        self._client = client or firestore.AsyncClient(project=project)

    def _doc(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    def _wrap(self, operation: str, collection: str, doc_id: str, exc: Exception) -> StoreError:
        target = f"{collection}/{doc_id}" if doc_id else collection
        if isinstance(exc, gexc.NotFound):
            return DocumentMissing(f"{target} not found", backend=self.backend, operation=operation)
        return StoreError(f"firestore {operation} {target} failed: {exc}", backend=self.backend, operation=operation)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            snap = await self._doc(collection, doc_id).get()
        except BACKEND_ERRORS as e:
            raise self._wrap("get", collection, doc_id, e) from e
        return snap.to_dict() if snap.exists else None

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        try:
            await self._doc(collection, doc_id).set(dict(data), merge=merge)
        except BACKEND_ERRORS as e:
            raise self._wrap("set", collection, doc_id, e) from e

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        try:
            await self._doc(collection, doc_id).update(field_paths(fields))
        except BACKEND_ERRORS as e:
            raise self._wrap("update", collection, doc_id, e) from e

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            await self._doc(collection, doc_id).delete()
        except BACKEND_ERRORS as e:
            raise self._wrap("delete", collection, doc_id, e) from e

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
        q = self._client.collection(collection)
        for field, op, value in filters:
            q = q.where(filter=FieldFilter(field, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            q = q.order_by(order_by, direction=direction)
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)

        out: List[StoredDocument] = []
        try:
            async for snap in q.stream():
                out.append(StoredDocument(id=snap.id, data=snap.to_dict() or {}))
        except BACKEND_ERRORS as e:
            raise self._wrap("query", collection, "", e) from e
        debug(_LOG, "query", collection=collection, filters=len(filters), rows=len(out))
        return out

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        fields: Dict[str, Any] = {field: firestore.Increment(amount)}
        fields.update(extra or {})
        try:
            await self._doc(collection, doc_id).update(field_paths(fields))
        except BACKEND_ERRORS as e:
            raise self._wrap("increment", collection, doc_id, e) from e

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        try:
            _, ref = await self._client.collection(collection).add(dict(data))
        except BACKEND_ERRORS as e:
            raise self._wrap("add", collection, "", e) from e
        return ref.id
