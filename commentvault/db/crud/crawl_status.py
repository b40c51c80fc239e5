"""CRUD operations and state transitions for crawl progress rows.

Every transition commits, so a page-fetch unit emitted after a transition
always observes the persisted cursor.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commentvault.models.crawl import CrawlSortBy, CrawlState, CrawlStatus

logger = logging.getLogger(__name__)


async def find_crawl(
    db: AsyncSession, video_id: str, sort_by: CrawlSortBy
) -> CrawlStatus | None:
    """Look up the crawl for a (video, sort order) pair."""
    result = await db.execute(
        select(CrawlStatus).where(
            CrawlStatus.video_id == video_id,
            CrawlStatus.sort_by == sort_by,
        )
    )
    return result.scalar_one_or_none()


async def get_crawl(db: AsyncSession, crawl_id: int) -> CrawlStatus | None:
    """Get a crawl by its identifier."""
    return await db.get(CrawlStatus, crawl_id)


async def list_crawls(db: AsyncSession, video_id: str) -> Sequence[CrawlStatus]:
    """List every crawl of a video."""
    result = await db.execute(
        select(CrawlStatus)
        .where(CrawlStatus.video_id == video_id)
        .order_by(CrawlStatus.crawl_id)
    )
    return result.scalars().all()


async def create_crawl(
    db: AsyncSession, video_id: str, sort_by: CrawlSortBy
) -> tuple[CrawlStatus, bool]:
    """Create a PENDING crawl.

    Two triggers racing on the same pair both end up with the single row the
    unique constraint allows.

    Returns:
        Tuple of (crawl, created)
    """
    crawl = CrawlStatus(
        video_id=video_id,
        sort_by=sort_by,
        status=CrawlState.PENDING,
        ytcfg=None,
    )
    db.add(crawl)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await find_crawl(db, video_id, sort_by)
        if existing is None:
            raise
        logger.info(f"Crawl for {video_id}/{sort_by.value} was created concurrently")
        return existing, False

    await db.refresh(crawl)
    return crawl, True


async def restart_crawl(db: AsyncSession, crawl: CrawlStatus) -> None:
    """Reset a terminal crawl so it starts again from page one."""
    crawl.status = CrawlState.PENDING
    crawl.continuation_token = None
    crawl.ytcfg = None
    crawl.error_message = None
    crawl.updated_at = datetime.now(UTC)
    await db.commit()


async def set_initial_token(
    db: AsyncSession, crawl: CrawlStatus, token: str, ytcfg: dict[str, Any]
) -> None:
    """Persist the first continuation token with its session config."""
    crawl.continuation_token = token
    crawl.ytcfg = ytcfg
    crawl.updated_at = datetime.now(UTC)
    await db.commit()


async def mark_in_progress(db: AsyncSession, crawl: CrawlStatus) -> None:
    """Mark a page fetch as started."""
    now = datetime.now(UTC)
    crawl.status = CrawlState.IN_PROGRESS
    crawl.last_attempted_at = now
    crawl.updated_at = now
    await db.commit()


async def advance_page(db: AsyncSession, crawl: CrawlStatus, next_token: str) -> None:
    """Store the next cursor after a successful page."""
    now = datetime.now(UTC)
    crawl.status = CrawlState.PENDING
    crawl.continuation_token = next_token
    crawl.last_successful_page_at = now
    crawl.error_message = None
    crawl.updated_at = now
    await db.commit()


async def mark_completed(db: AsyncSession, crawl: CrawlStatus) -> None:
    """Finish a crawl after its last page."""
    now = datetime.now(UTC)
    crawl.status = CrawlState.COMPLETED
    crawl.continuation_token = None
    crawl.last_successful_page_at = now
    crawl.error_message = None
    crawl.updated_at = now
    await db.commit()


async def mark_completed_no_token(db: AsyncSession, crawl: CrawlStatus) -> None:
    """Finish a crawl that never had anything to paginate."""
    crawl.status = CrawlState.COMPLETED
    crawl.continuation_token = None
    crawl.updated_at = datetime.now(UTC)
    await db.commit()


async def mark_failed(db: AsyncSession, crawl: CrawlStatus, error_message: str) -> None:
    """Record a failure.

    Called from error paths: a failing write is logged instead of raised so
    the error being handled keeps propagating.
    """
    try:
        crawl.status = CrawlState.FAILED
        crawl.error_message = error_message
        crawl.updated_at = datetime.now(UTC)
        await db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error marking crawl {crawl.crawl_id} as failed: {e}")
        await db.rollback()
