"""Shared fixtures: a throwaway SQLite catalog database."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_cache.db.models import Base
from catalog_cache.db.session import build_engine


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions get their own connections."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as db:
        yield db

