"""
Fan-out ceiling for speech synthesis calls.

One SynthesisLimiter is shared by every generation in the process, so the
provider sees at most ``max_concurrent`` calls at once no matter how many
sermons are being generated. Callers that cannot get a slot wait; there is
no rejection, since a generation run needs every segment synthesized.

Usage:
    limiter = SynthesisLimiter(max_concurrent=4)

    async with limiter.slot():
        audio = await client.synthesize(text, voice)

    stats = limiter.stats()
    print(f"Active: {stats.current_active}/{stats.max_concurrent}")
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import AsyncIterator, Dict, Optional

from sermon_tts.core.config import Defaults
from sermon_tts.core.logging import debug, get_logger, info
from sermon_tts.core.metrics import metrics

_LOG = get_logger("sermon-tts.concurrency")


@dataclass
class LimiterStats:
    max_concurrent: int
    current_active: int
    current_waiting: int
    peak_active: int
    total_processed: int
    total_timeouts: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class SynthesisLimiter:
    """
    asyncio semaphore with counters.

    Bound to whichever event loop first waits on it (asyncio.Semaphore
    semantics), so create one per loop; the API keeps one per app.
    """

    def __init__(self, max_concurrent: int = Defaults.SYNTHESIS_MAX_CONCURRENT):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self._sem = asyncio.Semaphore(max_concurrent)
        self._active = 0
        self._waiting = 0
        self._peak = 0
        self._processed = 0
        self._timeouts = 0

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_depth(self) -> int:
        return self._waiting

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        self._waiting += 1
        try:
            await self._sem.acquire()
        finally:
            self._waiting -= 1

        self._active += 1
        self._peak = max(self._peak, self._active)
        metrics.set_synthesis_active(self._active)
        debug(_LOG, "slot_acquired", active=self._active, waiting=self._waiting)
        try:
            yield
        finally:
            self._active -= 1
            self._processed += 1
            metrics.set_synthesis_active(self._active)
            self._sem.release()

    def record_timeout(self) -> None:
        self._timeouts += 1

    def stats(self) -> LimiterStats:
        return LimiterStats(
            max_concurrent=self.max_concurrent,
            current_active=self._active,
            current_waiting=self._waiting,
            peak_active=self._peak,
            total_processed=self._processed,
            total_timeouts=self._timeouts,
        )


_limiter: Optional[SynthesisLimiter] = None


def get_limiter(max_concurrent: int = Defaults.SYNTHESIS_MAX_CONCURRENT) -> SynthesisLimiter:
    """Process-wide limiter, created on first use."""
    global _limiter
    if _limiter is None:
        _limiter = SynthesisLimiter(max_concurrent=max_concurrent)
        info(_LOG, "limiter_init", max_concurrent=max_concurrent)
    return _limiter


def reset_limiter() -> None:
    """Drop the process-wide limiter (tests, app shutdown)."""
    global _limiter
    _limiter = None
