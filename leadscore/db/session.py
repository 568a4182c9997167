# leadscore/db/session.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from leadscore.core.config import settings
from leadscore.core.exceptions import StoreError
from leadscore.core.logging import get_logger

logger = get_logger(__name__)

# Global engine instance, created on first use
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def create_database_engine() -> AsyncEngine:
    """Create and configure the async database engine."""
    global engine, AsyncSessionLocal

    if engine is not None:
        return engine

    if settings.is_testing:
        # Use NullPool for tests to ensure clean state
        engine = create_async_engine(
            settings.database_url,
            poolclass=NullPool,
            echo=settings.debug,
        )
    else:
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.debug,
        )

    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info(
        "database.engine.created",
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        testing=settings.is_testing,
    )
    return engine


async def dispose_engine() -> None:
    global engine, AsyncSessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """One transaction: committed on success, rolled back on any exception.

    A cancelled task rolls back too, so a half-written decision is never
    committed.
    """
    if AsyncSessionLocal is None:
        create_database_engine()

    session = AsyncSessionLocal()
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("database.transaction_error", error=str(e))
        raise StoreError(
            message="Database transaction failed",
            details={"error": str(e)},
        ) from e
    except BaseException:
        await session.rollback()
        raise
    finally:
        await session.close()
