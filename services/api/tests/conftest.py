import os

# Settings are read at import time
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REDIS_ENABLED"] = "true"

import pytest
import fakeredis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.db import Base, get_db
from app.deps import get_cache
from app.infra import redis_client
from app.models import Dish, DishStep, User
from app.repositories.cook_records import CookRecordRepository
from app.repositories.cook_sessions import CookSessionRepository
from app.services.cook_records import CookRecordService
from app.services.cook_sessions import CookSessionService

# --- Test Database Setup ---
#
# A temp SQLite file shared by a sync engine (seeding, assertions) and an
# aiosqlite engine (code under test). Every async transaction starts with
# BEGIN IMMEDIATE, so concurrent writers queue up the way they do behind
# the row lock on PostgreSQL, and foreign keys are enforced as they are there.


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return path


@pytest.fixture
def engine(db_path):
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db_session(db_path):
    """Direct database session for setup and assertions."""
    sync_engine = create_engine(f"sqlite:///{db_path}")
    session = sessionmaker(bind=sync_engine, expire_on_commit=False)()
    yield session
    session.close()
    sync_engine.dispose()


# --- Redis ---

@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


# --- Services ---

@pytest.fixture
async def session_service(session_factory, fake_redis):
    async with session_factory() as db:
        yield CookSessionService(CookSessionRepository(db), fake_redis)


@pytest.fixture
async def record_service(session_factory, fake_redis):
    async with session_factory() as db:
        yield CookRecordService(CookRecordRepository(db), fake_redis)


# --- HTTP ---

@pytest.fixture
def client(session_factory, fake_redis):
    """Test client with DB and cache overrides."""
    async def override_get_db():
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: fake_redis
    redis_client._redis_async = fake_redis
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    redis_client._redis_async = None


# --- Seed data ---

@pytest.fixture
def make_dish(db_session):
    def _make(timers=(60, 30), name="Kimchi Stew", is_active=True, first_step_no=1):
        dish = Dish(name=name, is_active=is_active)
        dish.steps = [
            DishStep(step_no=first_step_no + i, description=f"Step {i + 1}", timer_seconds=t)
            for i, t in enumerate(timers)
        ]
        db_session.add(dish)
        db_session.commit()
        return dish
    return _make


@pytest.fixture
def dish(make_dish):
    return make_dish()


@pytest.fixture
def user(db_session):
    u = User(nickname="tester")
    db_session.add(u)
    db_session.commit()
    return u
