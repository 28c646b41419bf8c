"""Run-scoped deadline passed down every external call boundary."""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from leadpilot.core.exceptions import UpstreamTimeoutError


@dataclass
class RunContext:
    """Deadline carrier for one request or automation run.

    A context without a deadline never expires. Child calls cap their own
    timeouts with ``remaining()`` so nothing outlives the run.
    """

    deadline: Optional[float] = None  # time.monotonic() based
    label: str = ""
    _clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    @classmethod
    def with_timeout(cls, seconds: Optional[float], label: str = "") -> "RunContext":
        """Create a context expiring ``seconds`` from now (None for no deadline)."""
        if seconds is None:
            return cls(label=label)
        return cls(deadline=time.monotonic() + seconds, label=label)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def cap(self, timeout: Optional[float]) -> Optional[float]:
        """Shrink a per-call timeout so it ends no later than the run deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def check(self) -> None:
        """Raise UpstreamTimeoutError if the deadline has passed."""
        if self.expired:
            raise UpstreamTimeoutError(f"Run deadline exceeded{f' ({self.label})' if self.label else ''}")
