"""
Persistence backends.

    - base.py: DocumentStore / BlobStore protocols and StoreError
    - memory.py: in-process stores (development, tests)
    - local.py: filesystem blob store
    - firestore.py: Firestore document store
    - gcs.py: Google Cloud Storage blob store

The Google-backed modules are imported only when selected so that a memory
or local setup never needs cloud credentials at import time.
"""
from __future__ import annotations

from sermon_tts.core.config import BlobConfig, DocumentsConfig
from sermon_tts.core.logging import get_logger, info
from sermon_tts.stores.base import BlobStore, DocumentMissing, DocumentStore, StoredDocument, StoreError
from sermon_tts.stores.memory import InMemoryBlobStore, InMemoryDocumentStore

_LOG = get_logger("sermon-tts.stores")


def create_document_store(config: DocumentsConfig) -> DocumentStore:
    if config.backend == "memory":
        store: DocumentStore = InMemoryDocumentStore()
    elif config.backend == "firestore":
        from sermon_tts.stores.firestore import FirestoreDocumentStore
        store = FirestoreDocumentStore(project=config.project)
    else:
        raise ValueError(f"unknown document store backend: {config.backend}")
    info(_LOG, "document_store", backend=config.backend, collection=config.collection)
    return store


def create_blob_store(config: BlobConfig) -> BlobStore:
    if config.backend == "memory":
        store: BlobStore = InMemoryBlobStore()
    elif config.backend == "local":
        from sermon_tts.stores.local import LocalBlobStore
        store = LocalBlobStore(config.base_dir, config.public_base_url)
    elif config.backend == "gcs":
        if not config.bucket:
            raise ValueError("blob.bucket is required for the gcs backend")
        from sermon_tts.stores.gcs import GCSBlobStore
        store = GCSBlobStore(config.bucket, signed_url_ttl_seconds=config.signed_url_ttl_seconds)
    else:
        raise ValueError(f"unknown blob store backend: {config.backend}")
    info(_LOG, "blob_store", backend=config.backend, prefix=config.prefix)
    return store


__all__ = [
    "BlobStore",
    "DocumentMissing",
    "DocumentStore",
    "InMemoryBlobStore",
    "InMemoryDocumentStore",
    "StoredDocument",
    "StoreError",
    "create_blob_store",
    "create_document_store",
]
