"""Comment and comment change-log models."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commentvault.models.base import Base, BigIntPK

if TYPE_CHECKING:
    from commentvault.models.video import Video


class Comment(Base):
    """A comment (or reply) as last observed on the platform."""

    __tablename__ = "comments"

    comment_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    video_id: Mapped[str] = mapped_column(
        ForeignKey("videos.video_id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Replies point at their thread root; deleting the root only unlinks them
    parent_comment_id: Mapped[str | None] = mapped_column(
        ForeignKey("comments.comment_id", ondelete="SET NULL"), nullable=True, index=True
    )

    text: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    author_display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    author_channel_id: Mapped[str | None] = mapped_column(String(24), nullable=True, index=True)
    author_photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    votes: Mapped[int] = mapped_column(Integer, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, default=0)
    is_hearted: Mapped[bool] = mapped_column(default=False)
    is_paid: Mapped[bool] = mapped_column(default=False)
    raw_time_string: Mapped[str | None] = mapped_column(String(100), nullable=True)

    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    video: Mapped["Video"] = relationship("Video", back_populates="comments")
    updates: Mapped[list["CommentUpdate"]] = relationship(
        "CommentUpdate",
        back_populates="comment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<Comment(comment_id={self.comment_id})>"


class CommentUpdate(Base):
    """Append-only record of one attribute change on one comment."""

    __tablename__ = "comment_updates"

    update_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    comment_id: Mapped[str] = mapped_column(
        ForeignKey("comments.comment_id", ondelete="CASCADE"), nullable=False, index=True
    )
    attribute_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    comment: Mapped["Comment"] = relationship("Comment", back_populates="updates")

    def __repr__(self) -> str:
        return f"<CommentUpdate(comment_id={self.comment_id}, attribute={self.attribute_name})>"
