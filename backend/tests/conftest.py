"""
Shared pytest fixtures.

pytest-asyncio (asyncio_mode=auto) gives each test its own event loop, and
the module-level engine in ibdb.database is bound to whatever loop first
used it.  Each test therefore builds its own engine: an in-memory SQLite
database (StaticPool, so every session sees the same connection) created
from Base.metadata and disposed at teardown.

DATABASE_URL must be set before ibdb.config is imported.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import ibdb.models  # noqa: E402,F401  (registers every table on Base.metadata)
from ibdb.database import Base  # noqa: E402


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
