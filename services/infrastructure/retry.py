"""
Retry Executor
==============
Exponential backoff for external calls, plus the rate-limit + retry wrapper
every signal extractor goes through.

Backoff: the first retry waits ``initial_delay`` seconds and each further retry
doubles the wait (capped at ``max_delay``). Only errors accepted by
``is_retryable`` are retried; anything else propagates on the first failure.
"""

import asyncio
import functools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from loguru import logger

from config import settings

from .errors import TransientExternalError, is_transient_status
from .rate_limiter import RateLimiter

T = TypeVar("T")


def is_transient_http_error(error: BaseException) -> bool:
    """HTTP 429 or 5xx, whichever client raised it."""
    if isinstance(error, TransientExternalError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return is_transient_status(error.response.status_code)
    return is_transient_status(getattr(error, "status_code", None))


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry."""
    max_retries: int = 2
    initial_delay: float = 2.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = field(default=is_transient_http_error)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is 0-based)."""
        return min(self.initial_delay * (self.backoff_multiplier ** attempt), self.max_delay)

    @classmethod
    def for_content_model(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.MODEL_MAX_RETRIES,
            initial_delay=settings.MODEL_RETRY_INITIAL_DELAY,
            max_delay=settings.MODEL_RETRY_MAX_DELAY,
        )


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    operation: str = "external call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``fn`` until it succeeds, retrying retryable failures with backoff.

    Args:
        fn: Zero-argument coroutine factory (called once per attempt)
        policy: Retry policy (defaults to RetryPolicy())
        operation: Name used in log lines
        sleep: Injectable sleep for tests

    Returns:
        Whatever ``fn`` returns

    Raises:
        The first non-retryable error, or the last error once retries run out
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return await fn()
        except Exception as e:
            if not policy.is_retryable(e):
                raise
            if attempt >= policy.max_retries:
                logger.warning(
                    f"{operation} failed after {attempt + 1} attempts: {e}"
                )
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                f"{operation} failed (attempt {attempt + 1}/{policy.max_retries + 1}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await sleep(delay)
            attempt += 1


class ResilientCaller:
    """
    Rate limit + retry around any async external call.

    Usage:
        caller = ResilientCaller(limiter, RetryPolicy(max_retries=2))
        result = await caller.run("scene-detection", lambda: client.generate(...))

        @caller.guard("transcript-analysis")
        async def analyze(text): ...
    """

    def __init__(
        self,
        limiter: RateLimiter,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.limiter = limiter
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def run(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Take one token for ``key``, then run ``fn`` through the retry executor."""
        await self.limiter.acquire(key)
        return await retry_with_backoff(fn, self.policy, operation=key, sleep=self._sleep)

    def guard(self, key: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
        """Decorator form of ``run``."""
        def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
            @functools.wraps(func)
            async def wrapper(*args: Any, **kwargs: Any) -> T:
                return await self.run(key, lambda: func(*args, **kwargs))
            return wrapper
        return decorator
