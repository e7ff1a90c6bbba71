"""
Rate Limiter
============
Sliding-window rate limiter shared by every job in the process.

Each logical key (e.g. "visual-analysis", "repurpose-<user>") gets its own
window of request timestamps. ``acquire`` suspends the caller until the window
has room. A per-key ``asyncio.Lock`` serializes waiters, and since the lock
wakes waiters in arrival order, callers are admitted FIFO.

Usage:
    limiter = RateLimiter(max_requests=5, window_seconds=10)
    await limiter.acquire("scene-detection")
"""

import asyncio
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict

from loguru import logger

from config import settings


class RateLimiter:
    """Per-key sliding-window limiter."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _prune(self, key: str, now: float) -> Deque[float]:
        window = self._requests[key]
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        return window

    async def acquire(self, key: str = "default") -> None:
        """Suspend until a request slot is available for ``key``, then take it."""
        async with self._lock_for(key):
            while True:
                now = self._clock()
                window = self._prune(key, now)
                if len(window) < self.max_requests:
                    window.append(now)
                    return

                wait = self.window_seconds - (now - window[0])
                logger.debug(f"[{self.name}] rate limit hit for '{key}', waiting {wait:.2f}s")
                await self._sleep(max(wait, 0.0))

    def get_count(self, key: str = "default") -> int:
        """Requests recorded for ``key`` inside the current window."""
        return len(self._prune(key, self._clock()))

    def reset(self, key: str) -> None:
        """Forget the history for ``key``."""
        self._requests.pop(key, None)


@dataclass
class RateLimiters:
    """The limiters a pipeline process shares across jobs."""
    default: RateLimiter
    ai: RateLimiter
    jobs: RateLimiter


def build_rate_limiters() -> RateLimiters:
    """Build the process-wide limiters from settings."""
    return RateLimiters(
        default=RateLimiter(
            settings.DEFAULT_RATE_LIMIT, settings.DEFAULT_RATE_WINDOW_SECONDS, name="default"
        ),
        ai=RateLimiter(settings.AI_RATE_LIMIT, settings.AI_RATE_WINDOW_SECONDS, name="ai"),
        jobs=RateLimiter(settings.JOB_RATE_LIMIT, settings.JOB_RATE_WINDOW_SECONDS, name="jobs"),
    )
