"""
Tests for retry with backoff and the rate-limit + retry wrapper.
"""
import httpx
import pytest

from services.infrastructure.errors import (
    ExternalServiceError,
    TransientExternalError,
    error_for_status,
    is_transient_status,
)
from services.infrastructure.rate_limiter import RateLimiter
from services.infrastructure.retry import (
    ResilientCaller,
    RetryPolicy,
    is_transient_http_error,
    retry_with_backoff,
)


class Recorder:
    def __init__(self):
        self.delays = []

    async def sleep(self, seconds):
        self.delays.append(seconds)


def flaky(errors, result="ok"):
    """Coroutine factory that raises each error in turn, then returns result."""
    remaining = list(errors)
    calls = {"count": 0}

    async def fn():
        calls["count"] += 1
        if remaining:
            raise remaining.pop(0)
        return result

    return fn, calls


@pytest.mark.parametrize("status,expected", [
    (429, True), (500, True), (503, True), (599, True),
    (400, False), (401, False), (404, False), (None, False),
])
def test_transient_status_classification(status, expected):
    assert is_transient_status(status) is expected


def test_error_for_status_picks_transient_class():
    assert isinstance(error_for_status("x", 503), TransientExternalError)
    err = error_for_status("x", 400, body="bad")
    assert type(err) is ExternalServiceError
    assert err.status_code == 400
    assert err.body == "bad"


def test_httpx_status_errors_are_classified():
    request = httpx.Request("POST", "https://example.test")
    too_many = httpx.HTTPStatusError("429", request=request, response=httpx.Response(429, request=request))
    not_found = httpx.HTTPStatusError("404", request=request, response=httpx.Response(404, request=request))

    assert is_transient_http_error(too_many)
    assert not is_transient_http_error(not_found)
    assert not is_transient_http_error(ValueError("boom"))


def test_delay_doubles_and_caps():
    policy = RetryPolicy(initial_delay=2.0, max_delay=10.0)
    assert [policy.delay_for(i) for i in range(4)] == [2.0, 4.0, 8.0, 10.0]


@pytest.mark.asyncio
async def test_retries_transient_errors_then_succeeds():
    recorder = Recorder()
    fn, calls = flaky([TransientExternalError("429", status_code=429)] * 2)

    result = await retry_with_backoff(fn, RetryPolicy(max_retries=2, initial_delay=2.0), sleep=recorder.sleep)

    assert result == "ok"
    assert calls["count"] == 3
    assert recorder.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately():
    recorder = Recorder()
    fn, calls = flaky([ExternalServiceError("bad request", status_code=400)])

    with pytest.raises(ExternalServiceError):
        await retry_with_backoff(fn, RetryPolicy(max_retries=2), sleep=recorder.sleep)

    assert calls["count"] == 1
    assert recorder.delays == []


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error():
    recorder = Recorder()
    errors = [TransientExternalError(f"fail {i}", status_code=503) for i in range(3)]
    fn, calls = flaky(errors)

    with pytest.raises(TransientExternalError, match="fail 2"):
        await retry_with_backoff(fn, RetryPolicy(max_retries=2), sleep=recorder.sleep)

    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_resilient_caller_takes_one_token_per_call():
    recorder = Recorder()
    limiter = RateLimiter(10, 60.0)
    caller = ResilientCaller(limiter, RetryPolicy(max_retries=2, initial_delay=0.0), sleep=recorder.sleep)
    fn, calls = flaky([TransientExternalError("503", status_code=503)])

    assert await caller.run("scene-detection", fn) == "ok"
    assert calls["count"] == 2
    assert limiter.get_count("scene-detection") == 1


@pytest.mark.asyncio
async def test_guard_decorator_wraps_function():
    recorder = Recorder()
    limiter = RateLimiter(10, 60.0)
    caller = ResilientCaller(limiter, RetryPolicy(max_retries=1, initial_delay=0.0), sleep=recorder.sleep)
    attempts = []

    @caller.guard("transcript-analysis")
    async def analyze(text):
        attempts.append(text)
        if len(attempts) == 1:
            raise TransientExternalError("429", status_code=429)
        return text.upper()

    assert await analyze("hook") == "HOOK"
    assert attempts == ["hook", "hook"]
    assert limiter.get_count("transcript-analysis") == 1
