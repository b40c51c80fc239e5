#!/usr/bin/env python3
"""Crawl one video into the database without running the API server.

Queues a trigger event on an in-process event bus and works the queue until
the crawl has no more pages.

Usage:
    python scripts/crawl_video.py URL [--sort=popular|recent]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from commentvault.config import get_settings
from commentvault.db.crud.crawl_status import find_crawl
from commentvault.db.database import async_session_maker, init_db
from commentvault.models.crawl import CrawlSortBy
from commentvault.services.crawler.events import crawl_requested
from commentvault.services.proxy import load_proxy_rotation
from commentvault.services.youtube import YouTubeCommentClient
from commentvault.services.youtube.parsing import extract_video_id
from commentvault.utils.http_client import close_all_clients
from commentvault.utils.logging import setup_logging
from commentvault.workers import CrawlHandlers, EventBus


async def crawl_video(video_id: str, sort_by: CrawlSortBy) -> None:
    settings = get_settings()
    await init_db()

    client = YouTubeCommentClient(
        rotation=load_proxy_rotation(settings),
        page_delay=settings.youtube_page_delay,
        language=settings.youtube_language,
    )
    bus = EventBus()
    CrawlHandlers(async_session_maker, client, settings).register(bus)

    try:
        await bus.send(crawl_requested(video_id, sort_by))
        await bus.run_until_idle()
    finally:
        await close_all_clients()

    async with async_session_maker() as db:
        crawl = await find_crawl(db, video_id, sort_by)
        if crawl is None:
            print("No crawl was recorded")
            return
        print(f"\nCrawl {crawl.crawl_id}: {crawl.status.value}")
        if crawl.error_message:
            print(f"  Error: {crawl.error_message}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Crawl the comments of one video")
    parser.add_argument("url", help="Video URL or 11-character video id")
    parser.add_argument("--sort", choices=["popular", "recent"], default="recent", help="Comment order")
    args = parser.parse_args()

    video_id = extract_video_id(args.url)
    if not video_id:
        print(f"Could not extract a video id from {args.url}")
        sys.exit(2)

    setup_logging()
    asyncio.run(crawl_video(video_id, CrawlSortBy(args.sort.upper())))
