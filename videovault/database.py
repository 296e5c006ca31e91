"""
Database configuration and session management.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def build_engine(database_url: str, pooled: bool = True) -> AsyncEngine:
    """
    Create an async engine.

    Unpooled engines open a fresh connection per checkout, which keeps
    SQLite connections from leaking across event loops.
    """
    kwargs = {"echo": False, "future": True}
    if not pooled:
        kwargs["poolclass"] = NullPool
    return create_async_engine(database_url, **kwargs)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def init_db(engine: AsyncEngine):
    """Initialize database and create all tables."""
    # Import models to register them with Base
    from videovault.models import video, tenant, user, invite  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

