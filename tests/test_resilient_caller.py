"""Tests for the timeout + classified-retry wrapper."""

import asyncio
import time
import warnings

import httpx
import pytest

from leadpilot.core.context import RunContext
from leadpilot.core.exceptions import (
    UpstreamRejectedError,
    UpstreamTimeoutError,
    UpstreamTransientError,
    UpstreamUnavailableError,
)
from leadpilot.core.retry import ResilientCaller, classify_exception, classify_status


def fast_caller(**kwargs) -> ResilientCaller:
    """Caller with zero backoff so retries do not slow the suite."""
    return ResilientCaller(base_delay=0, max_delay=0, jitter=0, **kwargs)


class FlakyOperation:
    """Fails with the queued errors, then returns "ok"."""

    def __init__(self, *errors: Exception):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self, ctx: RunContext) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetryPolicy:
    """Tests for retry classification in ResilientCaller.call."""

    async def test_two_transient_failures_then_success(self):
        """Test success after exactly two retries."""
        operation = FlakyOperation(
            UpstreamTransientError("502 from upstream"),
            httpx.ConnectError("connection reset"),
        )

        result = await fast_caller(max_retries=3).call(operation)

        assert result == "ok"
        assert operation.calls == 3

    async def test_non_retryable_failure_is_not_retried(self):
        """Test that a 4xx rejection surfaces after one attempt."""
        operation = FlakyOperation(UpstreamRejectedError("400 bad request", 400))

        with pytest.raises(UpstreamRejectedError):
            await fast_caller(max_retries=3).call(operation)

        assert operation.calls == 1

    async def test_quota_exhaustion_is_not_retried(self):
        operation = FlakyOperation(classify_status(429, '{"error": {"code": "insufficient_quota"}}'))

        with pytest.raises(UpstreamUnavailableError):
            await fast_caller(max_retries=3).call(operation)

        assert operation.calls == 1

    async def test_exhausted_retries_raise_last_error(self):
        operation = FlakyOperation(*[UpstreamTransientError(f"attempt {i}") for i in range(5)])

        with pytest.raises(UpstreamTransientError, match="attempt 2"):
            await fast_caller(max_retries=2).call(operation)

        assert operation.calls == 3

    async def test_backoff_configuration_emits_no_deprecation_warning(self):
        operation = FlakyOperation(UpstreamTransientError("502 from upstream"))

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            result = await ResilientCaller(base_delay=0.01, max_delay=0.02, jitter=0.01, max_retries=1).call(operation)

        assert result == "ok"
        assert operation.calls == 2

    async def test_unknown_exception_propagates_unchanged(self):
        operation = FlakyOperation(KeyError("missing"))

        with pytest.raises(KeyError):
            await fast_caller(max_retries=3).call(operation)

        assert operation.calls == 1


class TestDeadlines:
    """Tests for per-attempt timeouts and run deadlines."""

    async def test_timeout_cancels_in_flight_call(self):
        """Test that the timed-out coroutine is cancelled, not abandoned."""
        cancelled = asyncio.Event()

        async def slow(ctx: RunContext) -> str:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return "late"

        with pytest.raises(UpstreamTimeoutError):
            await fast_caller(timeout=0.05, max_retries=0).call(slow)

        assert cancelled.is_set()

    async def test_expired_run_deadline_skips_call(self):
        operation = FlakyOperation()
        ctx = RunContext(deadline=time.monotonic() - 1)

        with pytest.raises(UpstreamTimeoutError):
            await fast_caller().call(operation, ctx)

        assert operation.calls == 0

    async def test_run_deadline_caps_attempt_timeout(self):
        ctx = RunContext.with_timeout(0.05, label="test")

        async def slow(run_ctx: RunContext) -> str:
            await asyncio.sleep(5)
            return "late"

        started = time.monotonic()
        with pytest.raises(UpstreamTimeoutError):
            await fast_caller(timeout=30, max_retries=5).call(slow, ctx)

        assert time.monotonic() - started < 2


class TestClassification:
    """Tests for status and exception classification."""

    @pytest.mark.parametrize(
        "status, body, expected",
        [
            (500, "", UpstreamTransientError),
            (503, "", UpstreamTransientError),
            (408, "", UpstreamTransientError),
            (429, "slow down", UpstreamTransientError),
            (429, "You exceeded your current quota: insufficient_quota", UpstreamUnavailableError),
            (402, "", UpstreamUnavailableError),
            (400, "", UpstreamRejectedError),
            (403, "", UpstreamRejectedError),
            (404, "", UpstreamRejectedError),
        ],
    )
    def test_classify_status(self, status, body, expected):
        error = classify_status(status, body)
        assert type(error) is expected
        assert error.upstream_status == status

    def test_retryable_flags(self):
        assert classify_status(502).retryable is True
        assert classify_status(404).retryable is False
        assert classify_status(402).retryable is False

    def test_classify_transport_errors(self):
        assert isinstance(classify_exception(httpx.ReadTimeout("slow")), UpstreamTimeoutError)
        assert isinstance(classify_exception(httpx.ConnectError("refused")), UpstreamTransientError)
        assert isinstance(classify_exception(asyncio.TimeoutError()), UpstreamTimeoutError)

        other = ValueError("bug")
        assert classify_exception(other) is other
