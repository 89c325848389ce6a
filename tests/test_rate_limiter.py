"""
Tests for rate_limiter.py.

Covers:
  - First acquisition goes straight through
  - Back-to-back acquisitions are spaced by at least the interval
  - Concurrent callers are released one at a time, in arrival order
  - interval follows config.RATE_LIMIT_INTERVAL live when not fixed
  - The shared module-level limiter defaults to one second
"""
from __future__ import annotations

import asyncio
import time

import pytest

import config
from rate_limiter import RateLimiter, limiter


@pytest.mark.asyncio
class TestRateLimiter:
    async def test_first_acquire_does_not_wait(self):
        rl = RateLimiter(interval=5.0)
        t0 = time.monotonic()
        await rl.acquire()
        assert time.monotonic() - t0 < 0.5

    async def test_records_acquisition_time(self):
        rl = RateLimiter(interval=0.01)
        assert rl.last_acquired == float("-inf")
        before = time.monotonic()
        await rl.acquire()
        assert rl.last_acquired >= before

    async def test_back_to_back_calls_are_spaced(self):
        rl = RateLimiter(interval=0.05)
        stamps = []
        for _ in range(4):
            await rl.acquire()
            stamps.append(rl.last_acquired)
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(g >= 0.05 for g in gaps)

    async def test_concurrent_callers_serialised_in_order(self):
        rl = RateLimiter(interval=0.03)
        order = []
        stamps = []

        async def caller(n):
            await rl.acquire()
            order.append(n)
            stamps.append(rl.last_acquired)

        tasks = []
        for n in range(5):
            tasks.append(asyncio.create_task(caller(n)))
            await asyncio.sleep(0)   # guarantee arrival order
        await asyncio.gather(*tasks)

        assert order == [0, 1, 2, 3, 4]
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(g >= 0.03 for g in gaps)

    async def test_no_wait_after_interval_elapsed(self):
        rl = RateLimiter(interval=0.02)
        await rl.acquire()
        await asyncio.sleep(0.05)
        t0 = time.monotonic()
        await rl.acquire()
        assert time.monotonic() - t0 < 0.02

    async def test_reset_forgets_last_acquisition(self):
        rl = RateLimiter(interval=5.0)
        await rl.acquire()
        rl.reset()
        t0 = time.monotonic()
        await rl.acquire()
        assert time.monotonic() - t0 < 0.5


class TestInterval:
    def test_follows_config_when_not_fixed(self, monkeypatch):
        monkeypatch.setattr(config, "RATE_LIMIT_INTERVAL", 2.5)
        assert RateLimiter().interval == 2.5

    def test_fixed_interval_ignores_config(self, monkeypatch):
        monkeypatch.setattr(config, "RATE_LIMIT_INTERVAL", 2.5)
        assert RateLimiter(interval=0.1).interval == 0.1

    def test_shared_limiter_defaults_to_one_second(self, monkeypatch):
        monkeypatch.delenv("RATE_LIMIT_INTERVAL", raising=False)
        assert limiter.interval == config.RATE_LIMIT_INTERVAL
        assert config.RATE_LIMIT_INTERVAL >= 1.0
