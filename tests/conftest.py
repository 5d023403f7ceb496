"""Shared pytest fixtures for Kindred tests."""
import itertools
import os
import random
from datetime import date, datetime, timedelta, timezone

# Settings are read once and cached; configure them before any app import.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-for-kindred"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["GCS_BUCKET_NAME"] = "kindred-test"
os.environ["REDIS_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models.user import User

import app.models  # noqa: F401  (registers every table on Base.metadata)

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    """In-memory SQLite with working SAVEPOINTs, one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so nested transactions behave.
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    """Factory for complete, feed-eligible profiles.

    Each user is created one second after the previous one so feed ordering
    by ``created_at`` is deterministic.
    """
    counter = itertools.count(1)

    async def _make(**overrides) -> User:
        n = next(counter)
        fields = {
            "email": f"user{n}@kindred.app",
            "username": f"user_{n}",
            "password_hash": "not-a-real-hash",
            "name": f"User {n}",
            "dob": date(1998, 1, 1),
            "gender": "Female",
            "interested_in": "Male",
            "profile_picture": f"https://example.com/u{n}.jpg",
            "status": "active",
            "created_at": _BASE_TIME + timedelta(seconds=n),
        }
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest.fixture
def seeded_rng():
    return random.Random(1234)


@pytest.fixture
async def client(session_factory):
    """HTTP client bound to the ASGI app with the test database."""
    from app.main import app

    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
