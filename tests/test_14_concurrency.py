"""Tests for the synthesis concurrency ceiling."""
from __future__ import annotations

import asyncio

import pytest

from conftest import make_config
from sermon_tts.services.generation import GenerationOrchestrator, reset_service
from sermon_tts.tts.concurrency import LimiterStats, SynthesisLimiter, get_limiter, reset_limiter


class TestSynthesisLimiter:
    """Test SynthesisLimiter basic functionality."""

    def test_creation(self):
        limiter = SynthesisLimiter(max_concurrent=3)
        assert limiter.max_concurrent == 3
        assert limiter.active_count == 0
        assert limiter.queue_depth == 0

    @pytest.mark.parametrize("value", [0, -1])
    def test_invalid_max(self, value):
        with pytest.raises(ValueError):
            SynthesisLimiter(max_concurrent=value)

    def test_slot_counts(self):
        limiter = SynthesisLimiter(max_concurrent=2)

        async def run():
            async with limiter.slot():
                assert limiter.active_count == 1
            assert limiter.active_count == 0

        asyncio.run(run())
        stats = limiter.stats()
        assert stats.total_processed == 1
        assert stats.peak_active == 1

    def test_slot_released_on_error(self):
        limiter = SynthesisLimiter(max_concurrent=1)

        async def run():
            with pytest.raises(RuntimeError):
                async with limiter.slot():
                    raise RuntimeError("provider")
            async with limiter.slot():
                pass

        asyncio.run(run())
        assert limiter.stats().total_processed == 2
        assert limiter.active_count == 0

    def test_ceiling_enforced(self):
        """No more than max_concurrent holders at once; the rest wait."""
        limiter = SynthesisLimiter(max_concurrent=3)
        observed = []

        async def worker():
            async with limiter.slot():
                observed.append(limiter.active_count)
                await asyncio.sleep(0.01)

        async def run():
            await asyncio.gather(*(worker() for _ in range(10)))

        asyncio.run(run())
        assert max(observed) <= 3
        stats = limiter.stats()
        assert stats.peak_active == 3
        assert stats.total_processed == 10
        assert stats.current_waiting == 0

    def test_waiting_counted(self):
        limiter = SynthesisLimiter(max_concurrent=1)

        async def run():
            release = asyncio.Event()

            async def holder():
                async with limiter.slot():
                    await release.wait()

            first = asyncio.create_task(holder())
            await asyncio.sleep(0)
            second = asyncio.create_task(holder())
            await asyncio.sleep(0)
            waiting = limiter.queue_depth
            release.set()
            await asyncio.gather(first, second)
            return waiting

        assert asyncio.run(run()) == 1

    def test_record_timeout(self):
        limiter = SynthesisLimiter(max_concurrent=1)
        limiter.record_timeout()
        limiter.record_timeout()
        assert limiter.stats().total_timeouts == 2

    def test_stats_to_dict(self):
        stats = SynthesisLimiter(max_concurrent=2).stats()
        assert isinstance(stats, LimiterStats)
        assert stats.to_dict() == {
            "max_concurrent": 2,
            "current_active": 0,
            "current_waiting": 0,
            "peak_active": 0,
            "total_processed": 0,
            "total_timeouts": 0,
        }


class TestGlobalLimiter:
    def setup_method(self):
        reset_limiter()

    def teardown_method(self):
        reset_limiter()

    def test_singleton(self):
        first = get_limiter(max_concurrent=5)
        assert get_limiter(max_concurrent=9) is first
        assert first.max_concurrent == 5

    def test_reset(self):
        first = get_limiter()
        reset_limiter()
        assert get_limiter() is not first

    def test_orchestrators_from_config_share_limiter(self):
        config = make_config(max_concurrent=3)
        first = GenerationOrchestrator.from_config(config)
        second = GenerationOrchestrator.from_config(config)

        assert first.limiter is second.limiter
        assert first.limiter is get_limiter()
        assert first.limiter.max_concurrent == 3

    def test_reset_service_drops_limiter(self):
        first = get_limiter()
        reset_service()
        assert get_limiter() is not first
