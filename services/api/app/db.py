from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .settings import settings

logger = logging.getLogger("chefascend.db")


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_SessionLocal: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict:
    """Pool and timeout options for the configured driver."""
    if url.startswith("sqlite"):
        return {"connect_args": {"timeout": settings.db_connect_timeout_sec}}

    options = {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": 0,
        "pool_timeout": settings.db_pool_timeout_sec,
        "pool_recycle": settings.db_pool_recycle_sec,
    }
    if "+asyncpg" in url:
        options["connect_args"] = {
            "timeout": settings.db_connect_timeout_sec,
            "command_timeout": settings.db_command_timeout_sec,
        }
    return options


def init_engine(database_url: str | None = None, **overrides) -> AsyncEngine:
    global _engine, _SessionLocal
    url = database_url or settings.database_url
    options = _engine_options(url)
    options.update(overrides)
    _engine = create_async_engine(url, **options)
    _SessionLocal = async_sessionmaker(_engine, expire_on_commit=False, autoflush=False)
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        init_engine()
    return _engine


def SessionLocal() -> async_sessionmaker[AsyncSession]:
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


async def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _SessionLocal = None


async def get_db():
    db = SessionLocal()()
    try:
        yield db
    finally:
        await db.close()
