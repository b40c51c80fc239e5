"""Comment upsert with change tracking.

Fetched comments are reconciled against stored rows: new comments are
inserted, changed comments are updated and every changed tracked attribute is
logged to ``comment_updates``. Unchanged comments are not touched at all.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commentvault.constants import TRACKED_COMMENT_ATTRIBUTES
from commentvault.models.comment import Comment, CommentUpdate
from commentvault.services.youtube.normalizer import NormalizedComment
from commentvault.services.youtube.timeparse import parse_relative_time

logger = logging.getLogger(__name__)

BatchPolicy = Literal["strict", "lenient"]


class UpsertOutcome(str, Enum):
    """What happened to one comment."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class BatchResult:
    """Result of processing one page of comments."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.inserted + self.updated + self.unchanged

    def record(self, outcome: UpsertOutcome) -> None:
        if outcome == UpsertOutcome.INSERTED:
            self.inserted += 1
        elif outcome == UpsertOutcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1

    def __str__(self) -> str:
        return (
            f"inserted={self.inserted}, updated={self.updated}, "
            f"unchanged={self.unchanged}, failed={self.failed}"
        )


def format_audit_value(value: Any) -> str | None:
    """Render an attribute value for the change log."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def tracked_values(comment: NormalizedComment) -> dict[str, Any]:
    """Tracked attribute values of a fetched comment, by column name."""
    return {
        "text": comment.text,
        "votes": comment.votes,
        "reply_count": comment.replies,
        "is_hearted": comment.is_hearted,
        "is_paid": comment.is_paid,
    }


class CommentService:
    """Reconciles fetched comments with the database.

    Args:
        db: Session the rows are written with
        batch_policy: ``strict`` aborts a batch on the first failing comment,
            ``lenient`` logs and skips it
    """

    def __init__(self, db: AsyncSession, batch_policy: BatchPolicy = "strict"):
        self.db = db
        self.batch_policy = batch_policy

    async def upsert_comment(
        self, comment: NormalizedComment, video_id: str, now: datetime | None = None
    ) -> UpsertOutcome:
        """Insert a new comment or apply its changes to the stored row.

        Changes are flushed, not committed.
        """
        now = now or datetime.now(UTC)
        existing = await self.db.get(Comment, comment.comment_id)

        if existing is None:
            await self._insert(comment, video_id, now)
            return UpsertOutcome.INSERTED

        await self._link_parent(existing, comment)

        values = tracked_values(comment)
        changes = {
            name: (getattr(existing, name), values[name])
            for name in TRACKED_COMMENT_ATTRIBUTES
            if getattr(existing, name) != values[name]
        }
        if not changes:
            await self.db.flush()
            return UpsertOutcome.UNCHANGED

        for name, (_, new) in changes.items():
            setattr(existing, name, new)
        existing.last_updated_at = now
        await self.db.flush()

        await self._record_changes(existing.comment_id, changes, now)
        return UpsertOutcome.UPDATED

    async def _insert(self, comment: NormalizedComment, video_id: str, now: datetime) -> None:
        parent_id = comment.parent_id
        if parent_id and await self.db.get(Comment, parent_id) is None:
            # Linked later, once the thread root is stored
            logger.debug(f"Parent {parent_id} of {comment.comment_id} not stored yet")
            parent_id = None

        self.db.add(
            Comment(
                comment_id=comment.comment_id,
                video_id=video_id,
                parent_comment_id=parent_id,
                text=comment.text,
                published_at=parse_relative_time(comment.raw_time, now),
                author_display_name=comment.author or None,
                author_channel_id=comment.channel or None,
                author_photo_url=comment.photo or None,
                votes=comment.votes,
                reply_count=comment.replies,
                is_hearted=comment.is_hearted,
                is_paid=comment.is_paid,
                raw_time_string=comment.raw_time or None,
                first_seen_at=now,
            )
        )
        await self.db.flush()

    async def _link_parent(self, existing: Comment, comment: NormalizedComment) -> None:
        parent_id = comment.parent_id
        if not parent_id or existing.parent_comment_id == parent_id:
            return
        if await self.db.get(Comment, parent_id) is not None:
            existing.parent_comment_id = parent_id

    async def _record_changes(
        self, comment_id: str, changes: dict[str, tuple[Any, Any]], now: datetime
    ) -> None:
        """Append change-log rows. A failure here is logged, never raised."""
        try:
            async with self.db.begin_nested():
                for name, (old, new) in changes.items():
                    self.db.add(
                        CommentUpdate(
                            comment_id=comment_id,
                            attribute_name=name,
                            old_value=format_audit_value(old),
                            new_value=format_audit_value(new),
                            updated_at=now,
                        )
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to record changes for comment {comment_id}: {e}")

    async def process_batch(self, comments: list[NormalizedComment], video_id: str) -> BatchResult:
        """Upsert a page of comments and commit.

        Thread roots are processed before replies so replies can link to them.
        """
        result = BatchResult()
        now = datetime.now(UTC)

        for comment in sorted(comments, key=lambda c: c.is_reply):
            if self.batch_policy == "strict":
                result.record(await self.upsert_comment(comment, video_id, now))
                continue

            try:
                async with self.db.begin_nested():
                    outcome = await self.upsert_comment(comment, video_id, now)
                result.record(outcome)
            except Exception as e:
                result.failed += 1
                result.errors.append(f"Error processing {comment.comment_id}: {e}")
                logger.error(f"Error processing comment {comment.comment_id}: {e}")

        await self.db.commit()
        logger.info(f"Processed {len(comments)} comments for {video_id}: {result}")
        return result
