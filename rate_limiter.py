"""
rate_limiter.py — process-wide spacing for Gemini calls.

Vision and scoring draw on one shared quota, so every outbound Gemini request
goes through the single module-level `limiter`:

    from rate_limiter import limiter
    await limiter.acquire()

acquire() holds an asyncio.Lock while it waits, so callers are released one
at a time in arrival order, each at least `interval` seconds after the last.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import config

logger = logging.getLogger(__name__)

# Never acquired: the first caller goes straight through.
_NEVER = float("-inf")


class RateLimiter:

    def __init__(self, interval: Optional[float] = None) -> None:
        # None → follow config.RATE_LIMIT_INTERVAL live (settings_store may change it)
        self._interval = interval
        self._last: float = _NEVER
        self._lock = asyncio.Lock()

    @property
    def interval(self) -> float:
        return config.RATE_LIMIT_INTERVAL if self._interval is None else self._interval

    @property
    def last_acquired(self) -> float:
        """time.monotonic() of the most recent acquisition, -inf if none yet."""
        return self._last

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                wait = self.interval - (time.monotonic() - self._last)
                if wait <= 0:
                    break
                logger.debug("Rate limit: waiting %.3fs for next slot", wait)
                await asyncio.sleep(wait)
            self._last = time.monotonic()

    def reset(self) -> None:
        """Forget the last acquisition (tests only)."""
        self._last = _NEVER


limiter = RateLimiter()
