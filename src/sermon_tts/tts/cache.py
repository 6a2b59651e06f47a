"""
Synthesis cache: fingerprint -> synthesized audio, shared by every request.

Entries live in a document store collection (``tts_cache`` by default), one
document per fingerprint:

    {
        "key": "5a2b...",              # fingerprint, also the document id
        "audio": "<base64>",           # synthesized payload
        "textLength": 1834,
        "voice": {"languageCode": "en-US", "voiceName": "en-US-Neural2-D"},
        "createdAt": 1767225600000,    # epoch ms
        "lastAccessedAt": 1767312000000,
        "accessCount": 4,
    }

An entry older than the TTL is stale: lookups treat it as a miss, but it is
only removed by ``sweep()``, which CacheSweeper runs on a schedule.

The cache never fails a generation. A backing store error on lookup counts
as a miss and an error on store is logged and dropped.

Example:
    >>> cache = SynthesisCache(InMemoryDocumentStore(), ttl_seconds=86400)
    >>> await cache.store(key, mp3_bytes, text_length=42, voice=voice)
    >>> await cache.lookup(key)
    b'...'
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Set

from sermon_tts.core.config import CacheConfig, Defaults
from sermon_tts.core.errors import CacheUnavailable
from sermon_tts.core.logging import debug, error, get_logger, info, verbose, warn
from sermon_tts.core.metrics import metrics
from sermon_tts.stores.base import DocumentStore, StoreError
from sermon_tts.tts.voices import VoiceConfig
from sermon_tts.utils.timeit import timeit

_LOG = get_logger("sermon-tts.cache")


def now_ms(clock: Callable[[], float] = time.time) -> int:
    return int(clock() * 1000)


@dataclass
class CacheEntry:
    key: str
    audio: bytes
    text_length: int
    voice: Dict[str, str]
    created_at: int
    last_accessed_at: int
    access_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "audio": base64.b64encode(self.audio).decode("ascii"),
            "textLength": self.text_length,
            "voice": dict(self.voice),
            "createdAt": self.created_at,
            "lastAccessedAt": self.last_accessed_at,
            "accessCount": self.access_count,
        }

    @classmethod
    def from_dict(cls, key: str, data: Mapping[str, Any]) -> "CacheEntry":
        """
        Raises:
            ValueError: If the stored document is malformed.
        """
        try:
            created_at = int(data["createdAt"])
            return cls(
                key=key,
                audio=base64.b64decode(data["audio"], validate=True),
                text_length=int(data.get("textLength", 0)),
                voice=dict(data.get("voice") or {}),
                created_at=created_at,
                last_accessed_at=int(data.get("lastAccessedAt", created_at)),
                access_count=int(data.get("accessCount", 0)),
            )
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise ValueError(f"malformed cache entry {key[:8]}: {e}") from e


class SynthesisCache:
    """
    Content-addressed cache over a DocumentStore.

    Safe for concurrent use from many tasks: every operation is a single
    document read or write and concurrent stores of the same key are
    last-writer-wins (synthesis is deterministic for a given key).

    Attributes:
        ttl_seconds: Age after which an entry is stale.
        collection: Document store collection holding entries.
    """

    def __init__(
        self,
        store: DocumentStore,
        ttl_seconds: int = Defaults.CACHE_TTL_SECONDS,
        collection: str = Defaults.CACHE_COLLECTION,
        sweep_batch_size: int = Defaults.CACHE_SWEEP_BATCH_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.ttl_seconds = int(ttl_seconds)
        self.collection = collection
        self._sweep_batch_size = int(sweep_batch_size)
        self._clock = clock
        self._pending: Set[asyncio.Task] = set()

        self._hits = 0
        self._misses = 0
        self._stale = 0
        self._errors = 0
        self._stores = 0
        self._swept = 0

    @classmethod
    def from_config(cls, store: DocumentStore, config: CacheConfig, clock: Callable[[], float] = time.time) -> "SynthesisCache":
        return cls(
            store,
            ttl_seconds=config.ttl_seconds,
            collection=config.collection,
            sweep_batch_size=config.sweep_batch_size,
            clock=clock,
        )

    def _now_ms(self) -> int:
        return now_ms(self._clock)

    def is_stale(self, created_at_ms: int, ttl_seconds: Optional[int] = None) -> bool:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return self._now_ms() - created_at_ms > ttl * 1000

    async def _read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._store.get(self.collection, key)
        except StoreError as e:
            raise CacheUnavailable(str(e), operation="lookup") from e

    async def lookup(self, key: str) -> Optional[bytes]:
        """
        Return the cached payload for ``key``, or None.

        None covers: no entry, a stale entry, an unreadable entry and a
        backing store failure.
        """
        with timeit("cache_get") as t:
            try:
                data = await self._read(key)
            except CacheUnavailable as e:
                self._errors += 1
                self._misses += 1
                warn(_LOG, "cache_unavailable", op="lookup", key=key[:8], error=e.message)
                return None

        if data is None:
            self._misses += 1
            debug(_LOG, "miss", key=key[:8])
            return None

        try:
            entry = CacheEntry.from_dict(key, data)
        except ValueError as e:
            self._errors += 1
            self._misses += 1
            warn(_LOG, "cache_entry_invalid", key=key[:8], error=str(e))
            return None

        if self.is_stale(entry.created_at):
            self._stale += 1
            self._misses += 1
            age_days = (self._now_ms() - entry.created_at) / 86_400_000
            verbose(_LOG, "stale", key=key[:8], age_days=round(age_days, 2))
            return None

        self._hits += 1
        verbose(_LOG, "hit", key=key[:8], bytes=len(entry.audio), seconds=round(t.timing.seconds, 5))
        return entry.audio

    async def store(self, key: str, payload: bytes, text_length: int, voice: VoiceConfig) -> bool:
        """
        Upsert the entry for ``key``.

        A fresh existing entry keeps its ``createdAt``; a stale or missing one
        gets the current time. Returns False (after logging) on failure.
        """
        now = self._now_ms()
        created_at = now
        access_count = 0
        try:
            existing = await self._read(key)
        except CacheUnavailable:
            existing = None
        if existing is not None:
            try:
                prior = int(existing["createdAt"])
            except (KeyError, TypeError, ValueError):
                prior = None
            if prior is not None and not self.is_stale(prior):
                created_at = prior
            try:
                access_count = int(existing.get("accessCount") or 0)
            except (TypeError, ValueError):
                access_count = 0

        entry = CacheEntry(
            key=key,
            audio=payload,
            text_length=text_length,
            voice=voice.to_dict(),
            created_at=created_at,
            last_accessed_at=now,
            access_count=access_count,
        )

        with timeit("cache_set") as t:
            try:
                await self._store.set(self.collection, key, entry.to_dict())
            except StoreError as e:
                self._errors += 1
                warn(_LOG, "cache_store_failed", key=key[:8], error=str(e))
                return False

        self._stores += 1
        verbose(_LOG, "set", key=key[:8], bytes=len(payload), seconds=round(t.timing.seconds, 5))
        return True

    async def record_access(self, key: str) -> None:
        """Bump ``accessCount`` and ``lastAccessedAt``; failures are logged only."""
        try:
            await self._store.increment(
                self.collection,
                key,
                "accessCount",
                1,
                extra={"lastAccessedAt": self._now_ms()},
            )
        except StoreError as e:
            warn(_LOG, "record_access_failed", key=key[:8], error=str(e))

    def schedule_access(self, key: str) -> asyncio.Task:
        """Run record_access() in the background without blocking the caller."""
        task = asyncio.get_running_loop().create_task(self.record_access(key))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for background access updates (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def sweep(self, ttl_seconds: Optional[int] = None) -> int:
        """
        Delete every entry with ``createdAt`` older than now - ttl.

        Runs page by page so it never loads the whole collection. Entries
        written while the sweep runs are newer than the cutoff and untouched.

        Returns:
            Number of entries deleted.
        """
        ttl = self.ttl_seconds if ttl_seconds is None else int(ttl_seconds)
        cutoff = self._now_ms() - ttl * 1000
        deleted = 0

        with timeit("cache_sweep") as t:
            while True:
                try:
                    page = await self._store.query(
                        self.collection,
                        filters=[("createdAt", "<", cutoff)],
                        order_by="createdAt",
                        limit=self._sweep_batch_size,
                    )
                except StoreError as e:
                    warn(_LOG, "sweep_query_failed", deleted=deleted, error=str(e))
                    break
                if not page:
                    break

                removed_this_page = 0
                for doc in page:
                    try:
                        await self._store.delete(self.collection, doc.id)
                    except StoreError as e:
                        warn(_LOG, "sweep_delete_failed", key=doc.id[:8], error=str(e))
                        continue
                    removed_this_page += 1
                deleted += removed_this_page

                # A page that deleted nothing would be returned again.
                if removed_this_page == 0 or len(page) < self._sweep_batch_size:
                    break

        self._swept += deleted
        metrics.record_sweep(deleted)
        info(_LOG, "cache_sweep", deleted=deleted, ttl_seconds=ttl, seconds=round(t.timing.seconds, 3))
        return deleted

    def stats(self) -> Dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "stale": self._stale,
            "errors": self._errors,
            "stores": self._stores,
            "swept": self._swept,
            "pending_access_updates": len(self._pending),
            "ttl_seconds": self.ttl_seconds,
        }


class CacheSweeper:
    """
    Background task that sweeps the cache every ``interval_seconds``.

    Started from the application lifespan; the first sweep runs after one
    full interval so a restart loop never hammers the store.
    """

    def __init__(self, cache: SynthesisCache, interval_seconds: int = Defaults.CACHE_SWEEP_INTERVAL_SECONDS):
        self._cache = cache
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._runs = 0
        self._last_deleted = 0
        self._last_run_at: Optional[float] = None
        self._failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="cache-sweeper")
        info(_LOG, "sweeper_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        info(_LOG, "sweeper_stopped", runs=self._runs)

    async def run_once(self) -> int:
        self._last_deleted = await self._cache.sweep()
        self._runs += 1
        self._last_run_at = time.time()
        return self._last_deleted

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception as e:
                self._failures += 1
                error(_LOG, "sweep_failed", error=str(e), error_type=type(e).__name__)

    def stats(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self._interval,
            "runs": self._runs,
            "failures": self._failures,
            "last_deleted": self._last_deleted,
            "last_run_at": self._last_run_at,
        }
