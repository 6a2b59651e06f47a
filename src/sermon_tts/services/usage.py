"""
Per-request metering records.

One document is appended to the usage collection for every generation that
actually ran the pipeline (not for short-circuited requests). Records are
telemetry only; nothing in the service reads them back.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sermon_tts.core.config import Defaults
from sermon_tts.core.logging import debug, get_logger, warn
from sermon_tts.stores.base import DocumentStore, StoreError

_LOG = get_logger("sermon-tts.usage")


@dataclass(frozen=True)
class UsageRecord:
    documentId: str
    userId: Optional[str]
    chunksCount: int
    cachedChunks: int
    totalCharacters: int
    language: str
    timestamp: str

    @classmethod
    def create(
        cls,
        document_id: str,
        user_id: Optional[str],
        chunks_count: int,
        cached_chunks: int,
        total_characters: int,
        language: str,
    ) -> "UsageRecord":
        return cls(
            documentId=document_id,
            userId=user_id,
            chunksCount=chunks_count,
            cachedChunks=cached_chunks,
            totalCharacters=total_characters,
            language=language,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UsageRecorder:
    def __init__(self, store: DocumentStore, collection: str = Defaults.DOCUMENTS_USAGE_COLLECTION):
        self._store = store
        self.collection = collection

    async def record(self, usage: UsageRecord) -> Optional[str]:
        """Append ``usage``; returns the new record id, or None if the write failed."""
        try:
            record_id = await self._store.add(self.collection, usage.to_dict())
        except StoreError as e:
            warn(_LOG, "usage_record_failed", document_id=usage.documentId, error=str(e))
            return None
        debug(_LOG, "usage_recorded", record_id=record_id, chunks=usage.chunksCount, cached=usage.cachedChunks)
        return record_id
