"""Async engine, session factory and schema bootstrap."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from leadpilot.config import settings


def build_engine(database_url: str, **overrides) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend.

    Postgres gets a sized pool with pre-ping; SQLite (tests, local dev)
    accepts none of those options.
    """
    kwargs: dict = {"echo": False}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    kwargs.update(overrides)
    return create_async_engine(database_url, **kwargs)


async def init_models(bind: AsyncEngine) -> None:
    """Create every table that does not exist yet."""
    import leadpilot.models  # noqa: F401  registers every table with Base.metadata
    from leadpilot.models.base import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = build_engine(settings.DATABASE_URL)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
