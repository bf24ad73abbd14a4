"""
Async database engines and sessions — PostgreSQL, MySQL, SQLite.

Two kinds of databases are reached through here:

  * the application database (flows, chats, process logs), one
    module-level engine built from settings.database.url;
  * per-tenant legacy databases queried by SqlDataSource, each with its
    own engine from build_engine().

Plain URLs are mapped onto the async drivers:

  postgresql:// | postgres://     → postgresql+asyncpg://
  mysql:// | mysql+pymysql://     → mysql+aiomysql://
  sqlite://                       → sqlite+aiosqlite://

Usage:
    await init_db()
    async with get_session() as db:
        await db.execute(...)
    await close_db()
"""
from __future__ import annotations

import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker,
)

from config.settings import get_settings
from database.models import Base

logger = structlog.get_logger()

ASYNC_DRIVERS: tuple[tuple[str, str], ...] = (
    ("postgresql://", "postgresql+asyncpg://"),
    ("postgres://", "postgresql+asyncpg://"),
    ("mysql+pymysql://", "mysql+aiomysql://"),
    ("mysql://", "mysql+aiomysql://"),
    ("sqlite://", "sqlite+aiosqlite://"),
)

# pooled servers only; SQLite keeps SQLAlchemy's default pool
SERVER_POOL = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}

_app_engine: Optional[AsyncEngine] = None
_app_sessions: Optional[async_sessionmaker[AsyncSession]] = None


def to_async_url(db_url: str) -> str:
    """Map a plain database URL to its async driver; other URLs pass through."""
    for plain, driver in ASYNC_DRIVERS:
        if db_url.startswith(plain):
            return driver + db_url[len(plain):]
    return db_url


def build_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    url = to_async_url(db_url)
    options = {} if url.startswith("sqlite") else dict(SERVER_POOL)
    engine = create_async_engine(url, echo=echo, **options)
    logger.info("database_engine_created",
                dialect=engine.dialect.name,
                url=make_url(url).render_as_string(hide_password=True))
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """The application engine, built on first use."""
    global _app_engine
    if _app_engine is None:
        settings = get_settings()
        _app_engine = build_engine(settings.database.url, echo=settings.debug)
    return _app_engine


def _app_session_factory() -> async_sessionmaker[AsyncSession]:
    global _app_sessions
    if _app_sessions is None:
        _app_sessions = build_session_factory(get_engine())
    return _app_sessions


@asynccontextmanager
async def get_session(
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work: commits when the block exits normally, rolls back
    and re-raises otherwise. Uses the application database unless a
    session factory is given.
    """
    async with (factory or _app_session_factory())() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create the engine tables (message_flows, message_flow_steps, chats, process_logs)."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized",
                dialect=engine.dialect.name,
                tables=sorted(Base.metadata.tables))


async def close_db() -> None:
    """Dispose the application engine; the next get_engine() builds a new one."""
    global _app_engine, _app_sessions
    if _app_engine is None:
        return
    await _app_engine.dispose()
    _app_engine = None
    _app_sessions = None
    logger.info("database_closed")
