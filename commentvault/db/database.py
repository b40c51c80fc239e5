"""Async engine and sessions.

Each running event handler holds one session for the whole crawl step, so the
pool is sized from the handler concurrency ceilings plus a few connections
for the API.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from commentvault.config import Settings, get_settings
from commentvault.constants import DB_API_CONNECTIONS, DB_POOL_RECYCLE, DB_POOL_TIMEOUT


def pool_size_for(settings: Settings) -> int:
    """Connections needed when every handler slot is busy."""
    return settings.crawl_trigger_concurrency + settings.crawl_page_concurrency


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.database_url_async,
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_size=pool_size_for(settings),
        max_overflow=DB_API_CONNECTIONS,
        pool_timeout=DB_POOL_TIMEOUT,
        pool_recycle=DB_POOL_RECYCLE,
    )


engine = create_engine(get_settings())

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def init_db() -> None:
    """Create the video, comment and crawl tables if they are missing."""
    from commentvault.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session for the read-only crawl progress routes."""
    async with async_session_maker() as session:
        yield session
