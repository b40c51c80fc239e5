"""Resumable crawl state machine.

A crawl is one (video, sort order) pair with a persisted cursor. Two steps
drive it:

- ``trigger``: create or restart the crawl, run the initial fetch when the
  crawl has no cursor yet, and emit the first page-fetch event.
- ``fetch_page``: re-read the cursor, fetch and store one page, persist the
  next cursor and emit the next page-fetch event, or complete the crawl.

Page-fetch events carry only the crawl id, so a redelivered or retried event
always continues from the cursor that was last committed.

States::

    PENDING -> IN_PROGRESS -> PENDING (more pages)
                           -> COMPLETED (last page)
                           -> FAILED (error, re-raised for the bus to retry)
"""

import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from commentvault.config import Settings, get_settings
from commentvault.db.crud.crawl_status import (
    advance_page,
    create_crawl,
    find_crawl,
    get_crawl,
    mark_completed,
    mark_completed_no_token,
    mark_failed,
    mark_in_progress,
    restart_crawl,
    set_initial_token,
)
from commentvault.db.crud.videos import apply_video_metadata, get_or_create_video, touch_video
from commentvault.models.crawl import CrawlSortBy
from commentvault.models.video import Video
from commentvault.services.comments.diff import CommentService
from commentvault.services.crawler.events import Event, page_requested
from commentvault.services.youtube.client import YouTubeCommentClient
from commentvault.services.youtube.exceptions import YouTubeError
from commentvault.utils.logging import LogContext

logger = logging.getLogger(__name__)


class CrawlError(Exception):
    """A crawl cannot proceed from its persisted state."""

    pass


class CrawlWorkflow:
    """Runs crawl steps against one database session."""

    def __init__(
        self,
        db: AsyncSession,
        client: YouTubeCommentClient,
        settings: Settings | None = None,
    ):
        self.db = db
        self.client = client
        self.settings = settings or get_settings()

    async def trigger(self, video_id: str, sort_by: CrawlSortBy) -> list[Event]:
        """Start, restart or resume the crawl of a (video, sort order) pair.

        Returns:
            The page-fetch event to schedule, or nothing when the crawl is
            skipped, already complete or failed its initial fetch
        """
        log = LogContext(logger, video_id=video_id, sort_by=sort_by.value)

        video, _ = await get_or_create_video(self.db, video_id)

        crawl = await find_crawl(self.db, video_id, sort_by)
        created = False
        if crawl is None:
            crawl, created = await create_crawl(self.db, video_id, sort_by)

        if created:
            log.info(f"Created crawl {crawl.crawl_id}")
            needs_initial_fetch = True
        elif crawl.status.is_terminal:
            log.info(f"Restarting {crawl.status.value.lower()} crawl {crawl.crawl_id}")
            await restart_crawl(self.db, crawl)
            needs_initial_fetch = True
        elif crawl.continuation_token is None:
            # No page event was ever emitted for this crawl
            log.info(f"Crawl {crawl.crawl_id} has no cursor yet, running the initial fetch")
            needs_initial_fetch = True
        elif self.settings.crawl_retrigger_policy == "skip":
            log.warning(f"Crawl {crawl.crawl_id} is already {crawl.status.value}, skipping")
            return []
        else:
            log.info(f"Crawl {crawl.crawl_id} is already {crawl.status.value}, proceeding")
            needs_initial_fetch = False

        if needs_initial_fetch:
            try:
                initial = await self.client.get_initial_crawl_data(video_id, sort_by)
            except (YouTubeError, httpx.HTTPError) as e:
                log.error(f"Initial fetch failed: {e}")
                await mark_failed(self.db, crawl, str(e))
                return []

            if self.settings.backfill_video_metadata and not video.title and initial.metadata:
                await apply_video_metadata(self.db, video, initial.metadata)

            if not initial.token:
                log.info("Nothing to crawl")
                await mark_completed_no_token(self.db, crawl)
                return []

            await set_initial_token(self.db, crawl, initial.token, initial.session_config)
        elif not crawl.ytcfg:
            log.warning(f"Crawl {crawl.crawl_id} has no session config")

        return [page_requested(crawl.crawl_id)]

    async def fetch_page(self, crawl_id: int) -> list[Event]:
        """Fetch and store the page at the crawl's persisted cursor.

        Raises:
            CrawlError: If the crawl does not exist or lacks its session config
            Exception: Any fetch, parse or persistence error, after the crawl
                has been marked FAILED
        """
        log = LogContext(logger, crawl_id=crawl_id)

        crawl = await get_crawl(self.db, crawl_id)
        if crawl is None:
            raise CrawlError(f"Crawl {crawl_id} not found")

        if not crawl.continuation_token:
            log.info("No continuation token left, completing")
            await mark_completed_no_token(self.db, crawl)
            return []

        await mark_in_progress(self.db, crawl)

        try:
            if not crawl.ytcfg:
                raise CrawlError(f"Crawl {crawl_id} has a continuation token but no session config")

            page = await self.client.fetch_comment_page(crawl.continuation_token, crawl.ytcfg)
            if page.exhausted:
                log.warning("Continuation fetch returned nothing after retries")
                if self.settings.crawl_fail_on_exhausted_retries:
                    raise CrawlError("Continuation fetch failed after all retries")

            service = CommentService(self.db, self.settings.comment_batch_policy)
            result = await service.process_batch(page.comments, crawl.video_id)
            log.info(f"Stored page: {result}")

            if page.next_token:
                await advance_page(self.db, crawl, page.next_token)
                return [page_requested(crawl_id)]

            video = await self.db.get(Video, crawl.video_id)
            if video is not None:
                await touch_video(self.db, video)
            await mark_completed(self.db, crawl)
            log.info("Crawl completed")
            return []

        except Exception as e:
            log.error(f"Page fetch failed: {e}")
            await self.db.rollback()
            await self.db.refresh(crawl)
            await mark_failed(self.db, crawl, str(e))
            raise
