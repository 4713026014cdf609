"""
Database Configuration
======================

SQLAlchemy async database setup with connection pooling and session management.
Celery workers get their own NullPool engine because every task runs on a
fresh event loop.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.models.base import Base


# Create async engine with connection pooling
_engine_kwargs = dict(
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

if settings.APP_ENV == "test" or settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["poolclass"] = NullPool
else:
    _engine_kwargs["pool_size"] = 10
    _engine_kwargs["max_overflow"] = 20

engine: AsyncEngine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs)

# Session factory
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def create_worker_session_factory() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Build an engine and session factory for a single worker event loop.

    The caller owns the engine and must dispose it once the loop is done.
    """
    worker_engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    factory = async_sessionmaker(
        bind=worker_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return worker_engine, factory


async def create_db_and_tables() -> None:
    """
    Create database tables if they don't exist.

    Note: In production, use Alembic migrations instead.
    This is primarily for development convenience.
    """
    # Register all mapped tables on the metadata.
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Creates a new database session for each request and ensures
    proper cleanup after the request is complete.

    Yields:
        AsyncSession: Database session for the request
    """
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
