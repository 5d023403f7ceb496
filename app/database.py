"""
Kindred — Async database engine and per-request sessions.

The engine is built once at import time:

* With ``CLOUD_SQL_USE_UNIX_SOCKET`` and ``CLOUD_SQL_INSTANCE_CONNECTION``
  set, connections go through ``cloud-sql-python-connector`` (asyncpg,
  IAM auth).
* Otherwise ``DATABASE_URL`` is used as-is; ``postgresql://`` is upgraded
  to the asyncpg dialect and ``sqlite+aiosqlite`` works for local runs.

``get_db`` hands each request one ``AsyncSession``, committed when the
route returns and rolled back when it raises.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for every Kindred table."""


# ── Engine ────────────────────────────────────────────────────────────────────

# Connection pool sizing for PostgreSQL; SQLite keeps SQLAlchemy's default pool.
POSTGRES_POOL: dict[str, Any] = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def _uses_cloud_sql(settings: Settings) -> bool:
    return bool(settings.CLOUD_SQL_USE_UNIX_SOCKET and settings.CLOUD_SQL_INSTANCE_CONNECTION)


def _cloud_sql_engine(settings: Settings) -> AsyncEngine:
    from google.cloud.sql.connector import Connector

    connector = Connector()

    async def _connect():
        return await connector.connect_async(
            settings.CLOUD_SQL_INSTANCE_CONNECTION,
            "asyncpg",
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            db=settings.DB_NAME,
            enable_iam_auth=True,
        )

    logger.info("Connecting to Cloud SQL instance %s", settings.CLOUD_SQL_INSTANCE_CONNECTION)
    return create_async_engine(
        "postgresql+asyncpg://",
        async_creator=_connect,
        echo=settings.LOG_LEVEL == "DEBUG",
        **POSTGRES_POOL,
    )


def _url_engine(settings: Settings) -> AsyncEngine:
    url = settings.DATABASE_URL
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]

    pool = {} if url.startswith("sqlite") else POSTGRES_POOL
    logger.info("Connecting with DATABASE_URL (%s)", url.split("://", 1)[0])
    return create_async_engine(url, echo=settings.LOG_LEVEL == "DEBUG", **pool)


def build_engine(settings: Settings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    if _uses_cloud_sql(settings):
        return _cloud_sql_engine(settings)
    return _url_engine(settings)


engine = build_engine()

async_session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── FastAPI dependency ────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request: commit on success, roll back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
