"""Pytest fixtures for testing."""
import os
from collections.abc import AsyncGenerator

# Must be set before any app imports that trigger Settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from page_history.models.base import Base  # noqa: E402
from page_history.models.page import PageContent, PageData  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Create a fresh in-memory SQLite engine per test.

    StaticPool keeps the single in-memory database alive across sessions, and
    each test gets its own engine, so tests don't affect each other.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create an async session on the test database."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def page(db_session: AsyncSession) -> PageData:
    """A page with one content row."""
    page = PageData(
        title="Getting Started",
        slug="getting-started",
        description="First steps",
        tags=["intro"],
    )
    db_session.add(page)
    await db_session.flush()
    db_session.add(PageContent(content_id=page.id, content="Hello"))
    await db_session.commit()
    return page


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient]:
    """
    Create a test client whose requests use the test database.

    Each request gets its own session that commits on success and rolls back
    on error, and holds page locks until then, like the real dependency.
    """
    # Clear the settings cache so it picks up DATABASE_URL from environment
    from page_history.core.config import get_settings

    get_settings.cache_clear()

    from page_history.api.main import app
    from page_history.core.locks import record_locks
    from page_history.db.session import get_async_session

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session, record_locks.until_released(session):
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = override_get_async_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
