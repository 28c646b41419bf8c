"""Two-tier admission control per caller identity.

Burst tier: short fixed window held in process memory (single instance) or
in Redis (shared across instances). Quota tier: per-calendar-month counter
in the database, read and incremented with one conditional upsert.

``RateLimiter.check`` never raises for backend failures; they resolve through
the ``RATE_LIMIT_FAIL_OPEN`` policy (fail closed by default). An unknown tier
name is a programming error and raises ValueError.
"""

import asyncio
import math
import threading
import time
import uuid
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError
from sqlalchemy import case, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadpilot.config import settings
from leadpilot.models.rate_limit import RateLimitState

logger = structlog.get_logger(__name__)

TIER_BURST = "burst"
TIER_QUOTA = "quota"


@dataclass
class RateLimitResult:
    """Outcome of one admission check."""

    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int
    message: Optional[str] = None

    @property
    def retry_after(self) -> int:
        """Whole seconds until the window resets (0 when already reset)."""
        delta = (self.reset_at - datetime.now(timezone.utc)).total_seconds()
        return max(0, math.ceil(delta))

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat(),
            "limit": self.limit,
            "message": self.message,
        }


def _evaluate(count: int, ceiling: int, window_start: datetime, window: timedelta, tier: str) -> RateLimitResult:
    """Turn a post-increment counter into an admission decision."""
    reset_at = window_start + window
    if count > ceiling:
        if tier == TIER_BURST:
            message = "Too many requests. Please slow down and retry shortly."
        else:
            message = "Monthly plan quota exhausted. Upgrade your plan or wait for the next period."
        return RateLimitResult(False, 0, reset_at, ceiling, message)
    return RateLimitResult(True, ceiling - count, reset_at, ceiling)


class MemoryBurstBackend:
    """Fixed-window counters in a sharded in-process map.

    Each shard has its own lock so concurrent callers on different keys do
    not contend. Correct for a single process only.
    """

    def __init__(self, shards: int = 16, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._shards: List[Dict[str, Tuple[float, int]]] = [{} for _ in range(shards)]
        self._locks = [threading.Lock() for _ in range(shards)]

    def _shard(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % len(self._shards)

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, datetime]:
        """Count one request for ``key``.

        Returns:
            Tuple of (count after increment, window start)
        """
        idx = self._shard(key)
        now = self._clock()
        with self._locks[idx]:
            entry = self._shards[idx].get(key)
            if entry is None or now - entry[0] >= window_seconds:
                entry = (now, 1)
            else:
                entry = (entry[0], entry[1] + 1)
            self._shards[idx][key] = entry
        return entry[1], datetime.fromtimestamp(entry[0], tz=timezone.utc)

    def purge_expired(self, window_seconds: int) -> int:
        """Drop counters whose window has closed.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        removed = 0
        for shard, lock in zip(self._shards, self._locks):
            with lock:
                stale = [k for k, (start, _) in shard.items() if now - start >= window_seconds]
                for key in stale:
                    del shard[key]
                removed += len(stale)
        return removed

    def __len__(self) -> int:
        return sum(len(shard) for shard in self._shards)


class RedisBurstBackend:
    """Fixed-window counters shared across instances through Redis.

    ``SET NX EX`` opens the window, ``INCR`` counts and ``TTL`` reports the
    time left, all inside one MULTI transaction.
    """

    def __init__(self, redis_url: str, prefix: str = "ratelimit"):
        self.redis_url = redis_url
        self.prefix = prefix
        self._redis: Optional[Redis] = None

    async def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._redis

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, datetime]:
        redis = await self._get_redis()
        full_key = f"{self.prefix}:{key}"
        async with redis.pipeline(transaction=True) as pipe:
            pipe.set(full_key, 0, ex=window_seconds, nx=True)
            pipe.incr(full_key)
            pipe.ttl(full_key)
            _, count, ttl = await pipe.execute()
        if ttl is None or ttl < 0:
            ttl = window_seconds
        now = datetime.now(timezone.utc)
        window_start = now - timedelta(seconds=window_seconds - ttl)
        return int(count), window_start

    def purge_expired(self, window_seconds: int) -> int:
        # Redis expires keys on its own
        return 0

    async def close(self) -> None:
        if self._redis:
            await self._redis.close()
            self._redis = None


def _month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Start of the calendar month containing ``now`` and start of the next."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class QuotaStore:
    """Per-period counters in ``rate_limit_states``.

    Opens one short session per check; the counter update is a single
    INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def hit(self, identity: str, tier: str, period_start: datetime) -> Tuple[int, datetime]:
        async with self.session_factory() as session:
            insert = pg_insert if session.bind.dialect.name == "postgresql" else sqlite_insert
            table = RateLimitState.__table__
            stmt = insert(table).values(
                id=uuid.uuid4(),
                identity=identity,
                tier=tier,
                window_start=period_start,
                count=1,
            )
            window_elapsed = table.c.window_start < stmt.excluded.window_start
            stmt = stmt.on_conflict_do_update(
                index_elements=["identity", "tier"],
                set_={
                    "count": case((window_elapsed, 1), else_=table.c.count + 1),
                    "window_start": case(
                        (window_elapsed, stmt.excluded.window_start),
                        else_=table.c.window_start,
                    ),
                },
            ).returning(table.c.count, table.c.window_start)

            result = await session.execute(stmt)
            count, window_start = result.one()
            await session.commit()

        if window_start.tzinfo is None:
            window_start = window_start.replace(tzinfo=timezone.utc)
        return int(count), window_start

    async def purge_expired(self, tier: str, before: datetime) -> int:
        """Delete counters whose window started before ``before``."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(RateLimitState).where(
                    RateLimitState.tier == tier,
                    RateLimitState.window_start < before,
                )
            )
            await session.commit()
            return result.rowcount or 0


class RateLimiter:
    """Admission control facade used by the API layer and services.

    Args:
        quota_store: Durable store for the monthly quota tier
        burst_backend: MemoryBurstBackend or RedisBurstBackend
        fail_open: Admit requests when a backend fails (default: deny)
    """

    def __init__(
        self,
        quota_store: Optional[QuotaStore] = None,
        burst_backend=None,
        fail_open: bool = settings.RATE_LIMIT_FAIL_OPEN,
        burst_limits: Optional[Dict[str, int]] = None,
        plan_quotas: Optional[Dict[str, int]] = None,
        burst_window_seconds: int = settings.BURST_WINDOW_SECONDS,
        op_timeout: float = settings.RATE_LIMIT_OP_TIMEOUT_SECONDS,
    ):
        self.quota_store = quota_store
        self.burst_backend = burst_backend or MemoryBurstBackend(shards=settings.BURST_SHARDS)
        self.fail_open = fail_open
        self.burst_limits = burst_limits if burst_limits is not None else dict(settings.BURST_LIMITS)
        self.plan_quotas = plan_quotas if plan_quotas is not None else dict(settings.PLAN_GENERATION_QUOTAS)
        self.burst_window = timedelta(seconds=burst_window_seconds)
        self.op_timeout = op_timeout
        self.logger = logger.bind(service="rate_limiter")

    async def check(
        self,
        identity: str,
        tier: str = TIER_BURST,
        category: str = "api-general",
        plan: Optional[str] = None,
    ) -> RateLimitResult:
        """Count one request for ``identity`` and decide whether to admit it.

        Args:
            identity: User id or client IP
            tier: "burst" or "quota"
            category: Burst category (e.g., "ai-generation", "scraping")
            plan: Subscription plan, required for the quota tier

        Returns:
            RateLimitResult; ``allowed`` is False once the count exceeds the ceiling

        Raises:
            ValueError: If ``tier`` is neither "burst" nor "quota"
        """
        if tier == TIER_BURST:
            ceiling = self.burst_limits.get(category, self.burst_limits.get("api-general", 60))
            window = self.burst_window
            key = f"{category}:{identity}"
        elif tier == TIER_QUOTA:
            ceiling = self.plan_quotas.get(plan or settings.DEFAULT_PLAN, 0)
            window = None
            key = identity
        else:
            raise ValueError(f"Unknown rate-limit tier: {tier}")

        try:
            if tier == TIER_BURST:
                count, window_start = await asyncio.wait_for(
                    self.burst_backend.hit(key, int(window.total_seconds())),
                    timeout=self.op_timeout,
                )
            else:
                if self.quota_store is None:
                    raise RuntimeError("quota tier requested without a quota store")
                period_start, period_end = _month_bounds(datetime.now(timezone.utc))
                count, window_start = await asyncio.wait_for(
                    self.quota_store.hit(key, TIER_QUOTA, period_start),
                    timeout=self.op_timeout,
                )
                window = period_end - period_start
        except (RedisError, SQLAlchemyError, OSError, RuntimeError, asyncio.TimeoutError) as e:
            return self._on_backend_failure(identity, tier, ceiling, e)

        result = _evaluate(count, ceiling, window_start, window, tier)
        if not result.allowed:
            self.logger.warning(
                "rate_limit_exceeded",
                identity=identity,
                tier=tier,
                category=category if tier == TIER_BURST else None,
                plan=plan,
                count=count,
                limit=ceiling,
                retry_after=result.retry_after,
            )
        return result

    def _on_backend_failure(self, identity: str, tier: str, ceiling: int, error: Exception) -> RateLimitResult:
        self.logger.error(
            "rate_limit_backend_failed",
            identity=identity,
            tier=tier,
            fail_open=self.fail_open,
            error=str(error) or error.__class__.__name__,
        )
        retry_at = datetime.now(timezone.utc) + timedelta(seconds=30)
        if self.fail_open:
            return RateLimitResult(True, ceiling, retry_at, ceiling)
        return RateLimitResult(
            False,
            0,
            retry_at,
            ceiling,
            "Rate limiting is temporarily unavailable. Please retry shortly.",
        )

    async def purge_expired(self) -> int:
        """Garbage-collect closed windows on both tiers."""
        removed = self.burst_backend.purge_expired(int(self.burst_window.total_seconds()))
        if self.quota_store is not None:
            period_start, _ = _month_bounds(datetime.now(timezone.utc))
            try:
                removed += await self.quota_store.purge_expired(TIER_QUOTA, period_start)
            except SQLAlchemyError as e:
                self.logger.error("rate_limit_purge_failed", error=str(e))
        self.logger.debug("rate_limit_purged", removed=removed)
        return removed

    async def close(self) -> None:
        if isinstance(self.burst_backend, RedisBurstBackend):
            await self.burst_backend.close()


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the global rate limiter.

    Burst state goes to Redis when BURST_BACKEND=redis, which is required
    when more than one API instance is running.
    """
    global _rate_limiter

    if _rate_limiter is None:
        from leadpilot.db.session import async_session_factory

        if settings.BURST_BACKEND == "redis":
            burst_backend = RedisBurstBackend(settings.REDIS_URL)
        else:
            burst_backend = MemoryBurstBackend(shards=settings.BURST_SHARDS)
        _rate_limiter = RateLimiter(
            quota_store=QuotaStore(async_session_factory),
            burst_backend=burst_backend,
        )
        logger.info("rate_limiter_initialized", burst_backend=settings.BURST_BACKEND)

    return _rate_limiter
