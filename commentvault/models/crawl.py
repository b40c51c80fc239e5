"""Crawl progress model."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commentvault.models.base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from commentvault.models.video import Video


class CrawlSortBy(str, enum.Enum):
    """Comment ordering requested from the platform.

    The member order matches the position of the entry in the platform's
    sort menu.
    """

    POPULAR = "POPULAR"
    RECENT = "RECENT"

    @property
    def menu_index(self) -> int:
        return list(CrawlSortBy).index(self)


class CrawlState(str, enum.Enum):
    """Lifecycle state of one (video, sort order) crawl."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (CrawlState.COMPLETED, CrawlState.FAILED)


class CrawlStatus(Base, TimestampMixin):
    """Persisted pagination cursor for one (video, sort order) pair."""

    __tablename__ = "crawl_status"

    crawl_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    video_id: Mapped[str] = mapped_column(
        ForeignKey("videos.video_id", ondelete="CASCADE"), nullable=False, index=True
    )
    sort_by: Mapped[CrawlSortBy] = mapped_column(
        Enum(CrawlSortBy, name="crawl_sort_by"), nullable=False
    )
    status: Mapped[CrawlState] = mapped_column(
        Enum(CrawlState, name="crawl_state"), default=CrawlState.PENDING, nullable=False
    )
    continuation_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Session config captured at the initial fetch; required for every page
    ytcfg: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    last_attempted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_successful_page_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    video: Mapped["Video"] = relationship("Video", back_populates="crawls")

    __table_args__ = (UniqueConstraint("video_id", "sort_by", name="uq_crawl_video_sort"),)

    @property
    def has_continuation(self) -> bool:
        return self.continuation_token is not None

    def __repr__(self) -> str:
        return f"<CrawlStatus(crawl_id={self.crawl_id}, video_id={self.video_id}, sort_by={self.sort_by})>"
