"""Per-domain politeness pacing for outbound scrape requests."""

import asyncio
import time
from typing import Callable, Dict, Optional

from leadpilot.config import settings


class DomainPacer:
    """Enforces a minimum interval between requests to one domain.

    Callers serialize on the domain lock and sleep out whatever remains of
    the interval since the previous request.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], "asyncio.Future"] = asyncio.sleep,
    ):
        """Initialize pacer.

        Args:
            min_interval: Seconds that must separate two requests
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep coroutine (injectable for tests)
        """
        self.min_interval = min_interval
        self.last_request: Optional[float] = None
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

    async def wait(self, min_interval: Optional[float] = None) -> float:
        """Block until the next request to this domain is allowed.

        Args:
            min_interval: Interval override for this request

        Returns:
            Seconds actually slept
        """
        interval = self.min_interval if min_interval is None else min_interval
        async with self._lock:
            slept = 0.0
            if self.last_request is not None:
                remaining = interval - (self._clock() - self.last_request)
                if remaining > 0:
                    await self._sleep(remaining)
                    slept = remaining
            self.last_request = self._clock()
            return slept


class PolitenessPacer:
    """Shared per-domain pacer for all source adapters.

    Each domain gets its own DomainPacer. Intervals are multiplied by
    POLITENESS_SCALE (0 disables pacing, e.g. in tests).
    """

    DEFAULT_INTERVAL = 1.0

    def __init__(
        self,
        scale: float = settings.POLITENESS_SCALE,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
    ):
        self.scale = scale
        self._clock = clock
        self._sleep = sleep
        self._pacers: Dict[str, DomainPacer] = {}

    def _get_pacer(self, domain: str, interval: float) -> DomainPacer:
        """Get or create the pacer for a domain."""
        if domain not in self._pacers:
            self._pacers[domain] = DomainPacer(interval, clock=self._clock, sleep=self._sleep)
        return self._pacers[domain]

    async def acquire(self, domain: str, interval: Optional[float] = None) -> float:
        """Wait for the domain's politeness interval.

        Args:
            domain: Host name (e.g., "www.idealista.it")
            interval: Unscaled seconds between requests; platform default if None

        Returns:
            Seconds slept
        """
        base = self.DEFAULT_INTERVAL if interval is None else interval
        scaled = base * self.scale
        if scaled <= 0:
            return 0.0
        return await self._get_pacer(domain, scaled).wait(scaled)
