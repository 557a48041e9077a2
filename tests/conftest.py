import os

# must be in place before app settings are imported
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ADMIN_API_KEY", "test-admin")
os.environ.setdefault("INTERNAL_ADMIN_KEY", "test-internal")

import pytest
import pytest_asyncio
import httpx

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

# Import Base + all models so metadata is complete
from app.models import Base

from app.main import app
from app.core.db import get_db, get_session_factory

pytest_plugins = ["tests.fixtures_seed"]


def _test_db_url(tmp_path) -> str:
    # DATABASE_URL_TEST points at a throwaway Postgres; otherwise a per-test SQLite file
    return os.getenv("DATABASE_URL_TEST") or f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    url = _test_db_url(tmp_path)
    engine = create_async_engine(url, poolclass=NullPool)

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.execute("PRAGMA busy_timeout=5000")
            cur.close()

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """
    HTTP client bound to the test database: one session per request, like production.
    """
    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
