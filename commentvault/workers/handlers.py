"""Event handlers connecting the bus to the crawl workflow."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commentvault.config import Settings, get_settings
from commentvault.constants import EVENT_CRAWL_PAGE_REQUESTED, EVENT_CRAWL_REQUESTED
from commentvault.models.schemas import CrawlPageRequestedData, CrawlRequestedData
from commentvault.services.crawler.events import Event
from commentvault.services.crawler.workflow import CrawlWorkflow
from commentvault.services.youtube.client import YouTubeCommentClient
from commentvault.workers.bus import EventBus

logger = logging.getLogger(__name__)


class CrawlHandlers:
    """Runs each event in its own database session."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        client: YouTubeCommentClient,
        settings: Settings | None = None,
    ):
        self.session_maker = session_maker
        self.client = client
        self.settings = settings or get_settings()

    async def crawl_requested(self, event: Event) -> list[Event]:
        data = CrawlRequestedData.model_validate(event.data)
        async with self.session_maker() as db:
            workflow = CrawlWorkflow(db, self.client, self.settings)
            return await workflow.trigger(data.video_id, data.sort_by)

    async def page_requested(self, event: Event) -> list[Event]:
        data = CrawlPageRequestedData.model_validate(event.data)
        async with self.session_maker() as db:
            workflow = CrawlWorkflow(db, self.client, self.settings)
            return await workflow.fetch_page(data.crawl_id)

    def register(self, bus: EventBus) -> None:
        """Register both crawl handlers with their configured limits."""
        bus.register(
            EVENT_CRAWL_REQUESTED,
            self.crawl_requested,
            concurrency=self.settings.crawl_trigger_concurrency,
            max_attempts=self.settings.crawl_trigger_max_attempts,
        )
        bus.register(
            EVENT_CRAWL_PAGE_REQUESTED,
            self.page_requested,
            concurrency=self.settings.crawl_page_concurrency,
            max_attempts=self.settings.crawl_page_max_attempts,
        )
        logger.info("Registered crawl event handlers")
