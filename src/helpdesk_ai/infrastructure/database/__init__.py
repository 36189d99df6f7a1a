"""
Database Infrastructure
=======================

Engine and session lifecycle for the help desk tables.

PostgreSQL through asyncpg in deployment; any SQLAlchemy async URL works
(the tests use sqlite+aiosqlite). Sessions never autoflush and keep loaded
attributes after commit, since repositories commit mid-run (lease
acquisition, notification claims) and keep using their rows afterwards.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from helpdesk_ai.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by the responder and notification models."""


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """
    Raises:
        RuntimeError: If init_database() has not run
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session maker. Called once from the app lifespan.

    Args:
        database_url: Override for settings.database_url
    """
    global _engine, _session_maker

    url = database_url or settings.database_url
    engine_kwargs = {"echo": settings.debug, "pool_pre_ping": True}

    if url.startswith("postgresql"):
        # asyncpg expects ssl= rather than libpq's sslmode=
        url = url.replace("sslmode=", "ssl=")
        engine_kwargs.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)

    _engine = create_async_engine(url, **engine_kwargs)
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    """Dispose of pooled connections on shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scope for background pipeline runs and scheduled batches.

    Commits on normal exit and rolls back if the body raises.

    Usage:
        async with get_session_context() as session:
            await build_dispatcher(session, email_client).process_batch()
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping get_session_context()."""
    async with get_session_context() as session:
        yield session


async def create_tables() -> None:
    """
    Create all tables if missing.

    Development convenience; deployments manage the schema with migrations.
    """
    # Model modules register their tables on Base.metadata when imported
    import helpdesk_ai.responder.infrastructure.models  # noqa: F401
    import helpdesk_ai.notifications.infrastructure.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
