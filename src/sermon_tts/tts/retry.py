"""
Bounded retry with exponential backoff for synthesis calls.

    policy = RetryPolicy(max_attempts=3, base_delay_s=0.5, max_delay_s=8.0)
    audio = await policy.run(lambda: client.synthesize(text, voice), label=key[:8])

Only SynthesisFailure with ``retryable=True`` is retried (throttling,
unavailability, deadlines). Anything else, and the last failed attempt,
propagates unchanged.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from sermon_tts.core.config import Defaults, RetryConfig
from sermon_tts.core.errors import SynthesisFailure
from sermon_tts.core.logging import get_logger, info, warn

_LOG = get_logger("sermon-tts.retry")

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total tries including the first (1 = no retry).
        base_delay_s: Delay before the second attempt.
        max_delay_s: Cap on any single delay.
        jitter: Add up to 10% random extra delay to spread out retries.
    """
    max_attempts: int = Defaults.RETRY_MAX_ATTEMPTS
    base_delay_s: float = Defaults.RETRY_BASE_DELAY_S
    max_delay_s: float = Defaults.RETRY_MAX_DELAY_S
    jitter: bool = Defaults.RETRY_JITTER
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay_s=config.base_delay_s,
            max_delay_s=config.max_delay_s,
            jitter=config.jitter,
        )

    def compute_delay(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay_s * (2 ** (attempt - 1)), self.max_delay_s)
        if self.jitter and delay > 0:
            delay += random.uniform(0, 0.1 * delay)
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "",
        on_retry: Optional[Callable[[int, SynthesisFailure], None]] = None,
    ) -> T:
        attempt = 1
        while True:
            try:
                result = await operation()
            except SynthesisFailure as e:
                if not e.retryable or attempt >= self.max_attempts:
                    if attempt > 1:
                        warn(_LOG, "retry_exhausted", label=label, attempt=attempt, status=e.status, error=e.message)
                    raise
                delay = self.compute_delay(attempt)
                warn(
                    _LOG,
                    "retry",
                    label=label,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    status=e.status,
                    delay_s=round(delay, 3),
                )
                if on_retry is not None:
                    on_retry(attempt, e)
                await self.sleep(delay)
                attempt += 1
                continue

            if attempt > 1:
                info(_LOG, "retry_succeeded", label=label, attempt=attempt)
            return result
