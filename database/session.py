"""
Async engine and session scope for the sql state store.

``init_db(url)`` opens the engine and creates the ``chat_states`` table,
``get_session()`` yields a session that commits on exit and rolls back on
error, ``close_db()`` disposes the pool. Plain URLs are given their async
driver: postgresql → asyncpg, mysql → aiomysql, sqlite → aiosqlite.
"""
from __future__ import annotations

import structlog
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from database.models import Base

logger = structlog.get_logger()

_ASYNC_DRIVERS = {
    "postgresql": "asyncpg",
    "mysql": "aiomysql",
    "sqlite": "aiosqlite",
}

_engine: Optional[AsyncEngine] = None
_sessions: Optional[async_sessionmaker[AsyncSession]] = None


def async_url(url: str) -> URL:
    """``postgres://u@h/db`` → ``postgresql+asyncpg://u@h/db``; explicit drivers are kept."""
    parsed = make_url(url)
    if "+" in parsed.drivername:
        return parsed
    backend = "postgresql" if parsed.drivername == "postgres" else parsed.drivername
    driver = _ASYNC_DRIVERS.get(backend)
    return parsed.set(drivername=f"{backend}+{driver}") if driver else parsed


async def init_db(url: str, echo: bool = False) -> AsyncEngine:
    """Open the engine (once) and create missing tables."""
    global _engine, _sessions
    if _engine is None:
        target = async_url(url)
        pool = {} if target.get_backend_name() == "sqlite" else {"pool_pre_ping": True, "pool_recycle": 1800}
        _engine = create_async_engine(target, echo=echo, **pool)
        _sessions = async_sessionmaker(_engine, expire_on_commit=False)

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_ready",
                url=_engine.url.render_as_string(hide_password=True),
                tables=sorted(Base.metadata.tables))
    return _engine


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    if _sessions is None:
        raise RuntimeError("database is not initialised; call init_db() at startup")
    async with _sessions() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_db() -> None:
    global _engine, _sessions
    if _engine is not None:
        await _engine.dispose()
        logger.info("database_closed")
    _engine = None
    _sessions = None
