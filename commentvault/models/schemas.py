"""Pydantic schemas for API validation and serialization."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Re-export enums from crawl model (avoid duplication)
from commentvault.models.crawl import CrawlSortBy as CrawlSortByEnum
from commentvault.models.crawl import CrawlState as CrawlStateEnum


class EventIn(BaseModel):
    """Named event submitted through the front door."""

    name: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class EventAccepted(BaseModel):
    """Acknowledgement for an accepted event."""

    id: str
    name: str
    status: str = "queued"


class CrawlRequestedData(BaseModel):
    """Payload of the crawl trigger event."""

    video_id: str = Field(..., min_length=11, max_length=11)
    sort_by: CrawlSortByEnum = CrawlSortByEnum.RECENT


class CrawlPageRequestedData(BaseModel):
    """Payload of the page-fetch event. Carries only the crawl identifier."""

    crawl_id: int


class CrawlStatusRead(BaseModel):
    """Crawl progress read schema."""

    model_config = ConfigDict(from_attributes=True)

    crawl_id: int
    video_id: str
    sort_by: CrawlSortByEnum
    status: CrawlStateEnum
    has_continuation: bool = False
    last_attempted_at: datetime | None = None
    last_successful_page_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
