"""Named events exchanged between the crawl workflow and the event bus."""

import json
from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import uuid4

from commentvault.constants import EVENT_CRAWL_PAGE_REQUESTED, EVENT_CRAWL_REQUESTED
from commentvault.models.crawl import CrawlSortBy


@dataclass
class Event:
    """A named unit of work with a JSON payload.

    ``attempt`` counts deliveries; the bus increments it on re-enqueue.
    """

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid4().hex)
    attempt: int = 1

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Event":
        payload = json.loads(raw)
        return cls(
            name=payload["name"],
            data=payload.get("data") or {},
            id=payload.get("id") or uuid4().hex,
            attempt=int(payload.get("attempt") or 1),
        )


def crawl_requested(video_id: str, sort_by: CrawlSortBy = CrawlSortBy.RECENT) -> Event:
    """Trigger event for a (video, sort order) crawl."""
    return Event(name=EVENT_CRAWL_REQUESTED, data={"video_id": video_id, "sort_by": sort_by.value})


def page_requested(crawl_id: int) -> Event:
    """Page-fetch event. The cursor itself stays in the database."""
    return Event(name=EVENT_CRAWL_PAGE_REQUESTED, data={"crawl_id": crawl_id})
