"""Async SQLAlchemy session factory."""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from page_history.core.config import get_settings
from page_history.core.locks import record_locks


settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_pre_ping=not settings.is_sqlite,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield an async database session.

    Uses unit-of-work pattern: services use flush() for refreshing objects,
    commit happens once here at request end. Inserting a diff together with
    its retention pruning, and every step of a revert, therefore commit or
    roll back as one transaction.

    Page locks taken by services on this session are released only after the
    commit or rollback, so a concurrent request for the same page cannot read
    the page's diffs before this transaction is visible.
    """
    async with async_session_factory() as session, record_locks.until_released(session):
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
