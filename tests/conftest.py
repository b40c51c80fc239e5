"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from commentvault.config import Settings
from commentvault.db.database import get_db
from commentvault.main import app
from commentvault.models.base import Base
from commentvault.models.video import Video
from commentvault.services.youtube.client import YouTubeCommentClient
from commentvault.utils.retry import RetryConfig
from commentvault.workers.bus import EventBus, get_event_bus

# Test database URL (uses SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# One shared connection, so every session sees the same in-memory database
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)


@event.listens_for(test_engine.sync_engine, "connect")
def _sqlite_on_connect(dbapi_connection, connection_record):
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works, and enforce FKs
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@event.listens_for(test_engine.sync_engine, "begin")
def _sqlite_on_begin(conn):
    conn.exec_driver_sql("BEGIN")


test_session_maker = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

VIDEO_ID = "dQw4w9WgXcQ"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session_maker() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return test_session_maker


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment, with no delays."""
    return Settings(
        _env_file=None,
        app_env="test",
        database_url=TEST_DATABASE_URL,
        event_signing_key="",
        youtube_page_delay=0,
        backfill_video_metadata=False,
        proxy_config="",
        proxy_url="",
    )


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry policy without sleeps."""
    return RetryConfig(base_delay=0, jitter=0, fixed_delay=0)


@pytest.fixture
def mock_youtube() -> AsyncMock:
    """Protocol client double with the real client's interface."""
    return AsyncMock(spec=YouTubeCommentClient)


@pytest_asyncio.fixture
async def test_video(db_session: AsyncSession) -> Video:
    """Create a video row."""
    video = Video(video_id=VIDEO_ID, title="Test Video")
    db_session.add(video)
    await db_session.commit()
    await db_session.refresh(video)
    return video


@pytest.fixture
def memory_bus() -> EventBus:
    """Event bus on the in-memory queue."""
    return EventBus(redis_url=None, retry_delay=0)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, memory_bus: EventBus) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client against the test database and an in-memory bus."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: memory_bus

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
