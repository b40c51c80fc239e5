"""SQLAlchemy models."""

from commentvault.models.base import Base
from commentvault.models.comment import Comment, CommentUpdate
from commentvault.models.crawl import CrawlSortBy, CrawlState, CrawlStatus
from commentvault.models.video import Video

__all__ = [
    "Base",
    "Video",
    "Comment",
    "CommentUpdate",
    "CrawlStatus",
    "CrawlSortBy",
    "CrawlState",
]
