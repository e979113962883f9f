"""
Test fixtures: a throwaway SQLite database per test and a sink that records
notifications instead of publishing them to Redis.
"""

import os

# must be set before travelbunk.db.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from travelbunk.db.database import Base
from travelbunk.db.models import user  # noqa: F401  (registers the users table)
from travelbunk.repositories.user_repository import UserDirectory
from travelbunk.services.connection_service import ConnectionRequestManager


class RecordingSink:
    """Stands in for RedisNotificationSink"""

    def __init__(self):
        self.published = []

    async def publish(self, channel, event_name, payload):
        self.published.append((channel, event_name, payload))


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'travelbunk.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def directory(db):
    return UserDirectory(db)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def manager(directory, sink):
    return ConnectionRequestManager(directory, sink)


@pytest.fixture
async def alice_and_bob(directory):
    alice = await directory.create("alice@x.com", first_name="Alice")
    bob = await directory.create("bob@x.com", first_name="Bob")
    return alice, bob


@pytest.fixture
def reload(session_factory):
    """Reads a user through a fresh session, bypassing the test session's identity map."""

    async def _reload(email):
        async with session_factory() as session:
            return await UserDirectory(session).find(email)

    return _reload
