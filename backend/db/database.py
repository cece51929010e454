"""Async engine and sessions for the decisioning store.

SQLite (aiosqlite) is the default backend. Any SQLAlchemy async URL works
through ``DATABASE_URL``; non-SQLite pools get pre-ping enabled.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.config import get_settings


def create_db_engine(database_url: Optional[str] = None) -> AsyncEngine:
    settings = get_settings()
    url = database_url or settings.DATABASE_URL
    options: dict = {"echo": settings.SQLALCHEMY_ECHO}
    if not url.startswith("sqlite"):
        options["pool_pre_ping"] = True
    return create_async_engine(url, **options)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Sessions keep loaded rows usable after commit; services flush explicitly."""
    return async_sessionmaker(bind, expire_on_commit=False, autoflush=False)


engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create the workflow and execution tables if they are missing."""
    from db.base import Base
    import db.models  # noqa: F401  registers models on Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
