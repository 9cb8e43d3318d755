"""Database session management."""

from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from starlette.requests import HTTPConnection

from flowops.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict[str, Any]:
    # SQLite (tests, local tinkering) does not take pool sizing arguments
    if url.startswith("sqlite"):
        return {"echo": settings.database_echo}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_pre_ping": True,
        "echo": settings.database_echo,
    }


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create an async engine for the given (or configured) database URL."""
    url = url or str(settings.database_url)
    return create_async_engine(url, **_engine_options(url))


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine()

# Create session factory
async_session_factory = create_session_factory(engine)


async def init_db() -> None:
    """Initialize database connection pool."""
    async with engine.begin() as conn:
        # Simple connectivity check
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Close database connection pool."""
    await engine.dispose()


def get_session_factory(connection: HTTPConnection) -> async_sessionmaker[AsyncSession]:
    """Session factory installed on the app (falls back to the module default)."""
    return getattr(connection.app.state, "session_factory", async_session_factory)


async def get_db_session(connection: HTTPConnection) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for dependency injection.

    Each request runs in a single transaction: endpoints commit once the
    primary mutation and all derived writes are flushed, and anything left
    uncommitted is rolled back when the request fails.
    """
    async with get_session_factory(connection)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]
