"""Crawl state machine and its events."""

from commentvault.services.crawler.events import Event, crawl_requested, page_requested
from commentvault.services.crawler.workflow import CrawlError, CrawlWorkflow

__all__ = ["CrawlError", "CrawlWorkflow", "Event", "crawl_requested", "page_requested"]
