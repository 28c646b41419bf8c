"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; keep tests off real services
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CACHE_BACKEND", "database")
os.environ.setdefault("BURST_BACKEND", "memory")
os.environ.setdefault("POLITENESS_SCALE", "0")
os.environ.setdefault("LLM_API_KEY", "")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from leadpilot.db.session import build_engine, init_models


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite database so concurrent sessions see one store."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'leadpilot.db'}", poolclass=NullPool)
    await init_models(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    """A single session for service-level tests."""
    async with session_factory() as session:
        yield session
