"""Timeout and classified-retry wrapper for external calls.

Every external hop (scrape, score, generate) goes through
``ResilientCaller.call``. Each attempt runs under ``asyncio.wait_for`` so a
timeout cancels the in-flight coroutine, and the per-attempt timeout is
capped by the run deadline carried in ``RunContext``.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)
from tenacity.stop import stop_base

from leadpilot.core.context import RunContext
from leadpilot.core.exceptions import (
    LeadPilotError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
    UpstreamTransientError,
    UpstreamUnavailableError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Body markers the AI provider uses for exhausted quota / billing on 429
_QUOTA_MARKERS = ("insufficient_quota", "billing_hard_limit", "quota exceeded")


def classify_status(status_code: int, body: str = "", source: str = "upstream") -> LeadPilotError:
    """Map an upstream HTTP status to a classified error.

    Args:
        status_code: HTTP status returned by the upstream
        body: Response body (used to tell quota 429s from throttling 429s)
        source: Name of the upstream for the error message

    Returns:
        Error instance; ``retryable`` tells whether a retry may help
    """
    lowered = (body or "").lower()
    if status_code == 402:
        return UpstreamUnavailableError(f"{source} billing exhausted (402)", status_code)
    if status_code == 429:
        if any(marker in lowered for marker in _QUOTA_MARKERS):
            return UpstreamUnavailableError(f"{source} quota exhausted (429)", status_code)
        return UpstreamTransientError(f"{source} throttled the request (429)", status_code)
    if status_code in (408, 425) or status_code >= 500:
        return UpstreamTransientError(f"{source} returned {status_code}", status_code)
    return UpstreamRejectedError(f"{source} rejected the request ({status_code})", status_code)


def raise_for_upstream_status(response: httpx.Response, source: str = "upstream") -> None:
    """Raise a classified error for any non-2xx response."""
    if response.is_success:
        return
    try:
        body = response.text
    except httpx.ResponseNotRead:
        body = ""
    raise classify_status(response.status_code, body[:500], source)


def classify_exception(exc: BaseException) -> BaseException:
    """Translate transport-level exceptions into the error taxonomy.

    Already-classified errors pass through; unknown exceptions are returned
    unchanged and treated as non-retryable.
    """
    if isinstance(exc, LeadPilotError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return UpstreamTimeoutError(f"External call timed out: {exc.__class__.__name__}")
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code, exc.response.text[:500])
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return UpstreamTransientError(f"Network error: {exc}")
    return exc


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, LeadPilotError) and exc.retryable


class stop_at_deadline(stop_base):
    """Stop retrying once the run deadline has passed."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.ctx.expired


class ResilientCaller:
    """Stateless timeout + retry wrapper shared by all external hops.

    Args:
        timeout: Default per-attempt timeout in seconds
        max_retries: Default number of retries after the first attempt
        base_delay: Initial backoff in seconds
        max_delay: Backoff ceiling in seconds
        jitter: Maximum random jitter added to each backoff, in seconds
    """

    def __init__(
        self,
        timeout: Optional[float] = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        jitter: float = 1.0,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter

    async def call(
        self,
        operation: Callable[[RunContext], Awaitable[T]],
        ctx: Optional[RunContext] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        name: str = "external_call",
    ) -> T:
        """Run ``operation`` with a deadline and classified retries.

        Args:
            operation: Coroutine function receiving the RunContext; re-invoked
                from scratch on every retry
            ctx: Run context whose deadline caps every attempt
            timeout: Per-attempt timeout override
            max_retries: Retry count override
            name: Operation name for logs

        Returns:
            The operation's result

        Raises:
            LeadPilotError: The last classified error once retries are exhausted,
                or the first non-retryable one
        """
        ctx = ctx or RunContext()
        per_attempt = self.timeout if timeout is None else timeout
        retries = self.max_retries if max_retries is None else max_retries

        def _log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "external_call_retry",
                operation=name,
                attempt=retry_state.attempt_number,
                wait_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
                error=str(error),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1) | stop_at_deadline(ctx),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay) + wait_random(0, self.jitter),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                result = await self._attempt(operation, ctx, per_attempt, name)
        return result

    async def _attempt(
        self,
        operation: Callable[[RunContext], Awaitable[T]],
        ctx: RunContext,
        timeout: Optional[float],
        name: str,
    ) -> T:
        effective = ctx.cap(timeout)
        if effective is not None and effective <= 0:
            raise UpstreamTimeoutError(f"{name}: run deadline exceeded before the call")
        try:
            return await asyncio.wait_for(operation(ctx), timeout=effective)
        except asyncio.TimeoutError:
            raise UpstreamTimeoutError(f"{name} exceeded {effective:.1f}s deadline")
        except Exception as e:
            classified = classify_exception(e)
            if classified is e:
                raise
            raise classified from e
