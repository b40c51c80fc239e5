"""Video model."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commentvault.models.base import Base

if TYPE_CHECKING:
    from commentvault.models.comment import Comment
    from commentvault.models.crawl import CrawlStatus


class Video(Base):
    """A crawled video. Created lazily on the first crawl trigger."""

    __tablename__ = "videos"

    video_id: Mapped[str] = mapped_column(String(11), primary_key=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(24), nullable=True, index=True)
    channel_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_fetched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    comments: Mapped[list["Comment"]] = relationship(
        "Comment",
        back_populates="video",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )
    crawls: Mapped[list["CrawlStatus"]] = relationship(
        "CrawlStatus",
        back_populates="video",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<Video(video_id={self.video_id})>"
