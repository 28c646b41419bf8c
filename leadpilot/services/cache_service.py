"""Content-addressed cache for externally generated results.

Keys are ``namespace:sha256(namespace + canonical input)`` so identical
requests for the same operation always collide and different ones never do.
The cache is an optimization only: every backend failure or timeout is
logged and reported as a miss (reads) or a no-op (writes).
"""

import asyncio
import hashlib
import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Tuple

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadpilot.config import settings
from leadpilot.models.cache_entry import CacheEntry

logger = structlog.get_logger(__name__)

# Failures that degrade to miss / no-op instead of reaching the caller
_BACKEND_ERRORS = (RedisError, SQLAlchemyError, OSError, asyncio.TimeoutError, ValueError, TypeError)


def normalize_input(value: Any) -> Any:
    """Normalize request fields so equivalent requests hash identically.

    Strings are trimmed, lower-cased and whitespace-collapsed; mappings and
    sequences are normalized recursively.
    """
    if isinstance(value, str):
        return " ".join(value.split()).lower()
    if isinstance(value, dict):
        return {str(k): normalize_input(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [normalize_input(v) for v in value]
    return value


def make_cache_key(namespace: str, normalized_input: Any) -> str:
    """Build the content-addressed key for a namespace and input."""
    canonical = json.dumps(
        normalized_input,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    digest = hashlib.sha256(f"{namespace}\x00{canonical}".encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


class RedisCacheBackend:
    """Async Redis backend storing JSON values with native TTLs."""

    def __init__(self, redis_url: str):
        """Initialize Redis backend.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        """
        self.redis_url = redis_url
        self._redis: Optional[Redis] = None
        self.logger = logger.bind(service="cache_service", backend="redis")

    async def _get_redis(self) -> Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            self.logger.info("redis_connection_created", url=self.redis_url)

        return self._redis

    async def get(self, key: str) -> Optional[Any]:
        redis = await self._get_redis()
        raw = await redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        redis = await self._get_redis()
        await redis.set(key, json.dumps(value, default=str), ex=ttl)

    async def delete(self, key: str) -> bool:
        redis = await self._get_redis()
        return bool(await redis.delete(key))

    async def purge_expired(self) -> int:
        # Redis evicts expired keys itself
        return 0

    async def health_check(self) -> bool:
        redis = await self._get_redis()
        return bool(await redis.ping())

    async def close(self) -> None:
        if self._redis:
            await self._redis.close()
            self._redis = None
            self.logger.info("redis_connection_closed")


class DatabaseCacheBackend:
    """Durable backend over the ``ai_response_cache`` table.

    Reads past ``expires_at`` are misses; expired rows are removed by
    ``purge_expired`` from the maintenance job.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self._clock = clock

    @staticmethod
    def _aware(value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    async def get(self, key: str) -> Optional[Any]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CacheEntry.value, CacheEntry.expires_at).where(CacheEntry.cache_key == key)
            )
            row = result.one_or_none()
            if row is None:
                return None
            value, expires_at = row
            if self._aware(expires_at) <= self._clock():
                return None

            await session.execute(
                update(CacheEntry)
                .where(CacheEntry.cache_key == key)
                .values(hit_count=CacheEntry.hit_count + 1)
            )
            await session.commit()
            return value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        namespace = key.split(":", 1)[0]
        expires_at = self._clock() + timedelta(seconds=ttl)
        async with self.session_factory() as session:
            insert = pg_insert if session.bind.dialect.name == "postgresql" else sqlite_insert
            stmt = insert(CacheEntry.__table__).values(
                id=uuid.uuid4(),
                cache_key=key,
                namespace=namespace,
                value=value,
                expires_at=expires_at,
                hit_count=0,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["cache_key"],
                set_={
                    "value": stmt.excluded.value,
                    "expires_at": stmt.excluded.expires_at,
                    "hit_count": 0,
                },
            )
            await session.execute(stmt)
            await session.commit()

    async def delete(self, key: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(CacheEntry).where(CacheEntry.cache_key == key))
            await session.commit()
            return bool(result.rowcount)

    async def purge_expired(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(CacheEntry).where(CacheEntry.expires_at <= self._clock())
            )
            await session.commit()
            return result.rowcount or 0

    async def health_check(self) -> bool:
        async with self.session_factory() as session:
            await session.execute(select(1))
        return True

    async def close(self) -> None:
        return None


class ContentCache:
    """Namespace-aware cache facade that never raises backend errors.

    Args:
        backend: RedisCacheBackend or DatabaseCacheBackend
        op_timeout: Deadline for each backend operation, in seconds
    """

    def __init__(self, backend, op_timeout: float = settings.CACHE_OP_TIMEOUT_SECONDS):
        self.backend = backend
        self.op_timeout = op_timeout
        self.logger = logger.bind(service="content_cache")

    async def get(self, namespace: str, normalized_input: Any) -> Optional[Any]:
        """Look up a cached value.

        Args:
            namespace: Operation type (e.g., "titles", "translate")
            normalized_input: Request fields, already passed through normalize_input

        Returns:
            Cached value, or None on miss, expiry or backend failure
        """
        key = make_cache_key(namespace, normalized_input)
        try:
            value = await asyncio.wait_for(self.backend.get(key), timeout=self.op_timeout)
        except _BACKEND_ERRORS as e:
            self.logger.error(
                "cache_get_failed",
                namespace=namespace,
                key=key,
                error=str(e) or e.__class__.__name__,
            )
            return None

        if value is None:
            self.logger.debug("cache_miss", namespace=namespace, key=key)
        else:
            self.logger.debug("cache_hit", namespace=namespace, key=key)
        return value

    async def set(
        self,
        namespace: str,
        normalized_input: Any,
        value: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """Store a value under the namespace TTL (or an explicit one).

        Returns:
            True if stored, False on backend failure
        """
        key = make_cache_key(namespace, normalized_input)
        ttl = settings.get_namespace_ttl(namespace) if ttl is None else ttl
        try:
            await asyncio.wait_for(self.backend.set(key, value, ttl), timeout=self.op_timeout)
        except _BACKEND_ERRORS as e:
            self.logger.error(
                "cache_set_failed",
                namespace=namespace,
                key=key,
                error=str(e) or e.__class__.__name__,
            )
            return False

        self.logger.debug("cache_set", namespace=namespace, key=key, ttl=ttl)
        return True

    async def get_or_compute(
        self,
        namespace: str,
        normalized_input: Any,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Tuple[Any, bool]:
        """Return the cached value or compute, store and return a fresh one.

        Errors raised by ``compute`` propagate; nothing is cached for them.

        Returns:
            Tuple of (value, cache_hit)
        """
        cached = await self.get(namespace, normalized_input)
        if cached is not None:
            return cached, True
        value = await compute()
        if value is not None:
            await self.set(namespace, normalized_input, value, ttl)
        return value, False

    async def purge_expired(self) -> int:
        """Evict expired entries; returns the number removed (0 on failure)."""
        try:
            removed = await self.backend.purge_expired()
        except _BACKEND_ERRORS as e:
            self.logger.error("cache_purge_failed", error=str(e))
            return 0
        if removed:
            self.logger.info("cache_purged", removed=removed)
        return removed

    async def health_check(self) -> bool:
        try:
            return await asyncio.wait_for(self.backend.health_check(), timeout=self.op_timeout)
        except Exception as e:
            self.logger.error("cache_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.backend.close()


# Global cache instance
_cache_instance: Optional[ContentCache] = None


def get_content_cache() -> ContentCache:
    """Get or create the global content cache.

    The backend follows CACHE_BACKEND: "redis" or "database".
    """
    global _cache_instance

    if _cache_instance is None:
        if settings.CACHE_BACKEND == "redis":
            backend = RedisCacheBackend(settings.REDIS_URL)
        else:
            from leadpilot.db.session import async_session_factory

            backend = DatabaseCacheBackend(async_session_factory)
        _cache_instance = ContentCache(backend)
        logger.info("content_cache_initialized", backend=settings.CACHE_BACKEND)

    return _cache_instance


async def get_cache() -> ContentCache:
    """FastAPI dependency for the content cache."""
    return get_content_cache()
