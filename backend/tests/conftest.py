"""Shared test fixtures - uses async SQLite for isolated testing."""

import asyncio
import json
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vibex.core.kinds import CREATOR_ROLE, SessionKind
from vibex.core.session_clock import utcnow
from vibex.db.database import Base
from vibex.db.store import SessionStore
from vibex.models.session import Session
from vibex.services.notification_service import NotificationService

# In-memory SQLite for tests (no Docker needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


class FakeRedis:
    """Records published messages; can be told to fail like a dropped connection."""

    def __init__(self):
        self.published: list[tuple[str, dict]] = []
        self.fail = False

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.published.append((channel, json.loads(message)))
        return 1


class SerializedStore(SessionStore):
    """Runs one store call at a time and yields between calls.

    Models a remote store that serializes conflicting writes while letting
    concurrent operations interleave between their reads and writes.
    """

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._lock = asyncio.Lock()

    async def _bounded(self, coro, op):
        async with self._lock:
            result = await super()._bounded(coro, op)
        await asyncio.sleep(0)
        return result


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    # Import all models so Base.metadata knows about them
    import vibex.models  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory():
    return test_session_factory


@pytest.fixture
def store():
    return SessionStore(test_session_factory)


@pytest.fixture
def serialized_store():
    return SerializedStore(test_session_factory)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def notifier(fake_redis):
    return NotificationService(fake_redis, channel="test:notifications")


@pytest.fixture
def make_session():
    """Factory that inserts a session row and returns it."""

    async def _make(
        kind: SessionKind = SessionKind.VIBE,
        creator_id: str = "alice",
        event_time=None,
        duration: int = 60,
        participants: list[str] | None = None,
        participant_roles: dict | None = None,
        **fields,
    ) -> Session:
        if participants is None:
            participants = [creator_id]
        if participant_roles is None:
            participant_roles = {creator_id: CREATOR_ROLE[kind].value}
        session = Session(
            title=fields.pop("title", "Study break"),
            lat=fields.pop("lat", 12.97),
            lng=fields.pop("lng", 77.59),
            kind=kind.value,
            event_time=event_time or utcnow() - timedelta(minutes=10),
            duration=duration,
            creator_id=creator_id,
            participants=participants,
            participant_roles=participant_roles,
            version=1,
            **fields,
        )
        async with test_session_factory() as db:
            db.add(session)
            await db.commit()
        return session

    return _make


@pytest.fixture
async def client(fake_redis):
    """Async HTTP test client with test store and fake Redis."""
    from vibex.api.deps import get_store
    from vibex.db.redis import get_redis
    from vibex.main import app

    async def _override_get_store():
        return SessionStore(test_session_factory)

    async def _override_get_redis():
        return fake_redis

    app.dependency_overrides[get_store] = _override_get_store
    app.dependency_overrides[get_redis] = _override_get_redis
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
