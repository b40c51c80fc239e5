"""CRUD operations for videos."""

from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from commentvault.models.video import Video
from commentvault.services.youtube.metadata import VideoMetadata


async def get_or_create_video(db: AsyncSession, video_id: str) -> tuple[Video, bool]:
    """Get a video row, creating a bare one if absent.

    Returns:
        Tuple of (video, created)
    """
    video = await db.get(Video, video_id)
    if video is not None:
        return video, False

    video = Video(video_id=video_id)
    db.add(video)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await db.get(Video, video_id)
        if existing is None:
            raise
        return existing, False

    await db.refresh(video)
    return video, True


async def apply_video_metadata(db: AsyncSession, video: Video, meta: VideoMetadata) -> None:
    """Backfill title and channel information, keeping known values over blanks."""
    video.title = meta.title or video.title
    video.channel_id = meta.channel_id or video.channel_id
    video.channel_title = meta.channel_title or video.channel_title
    await db.commit()


async def touch_video(db: AsyncSession, video: Video) -> None:
    """Stamp the last time comments were fetched for a video."""
    video.last_fetched_at = datetime.now(UTC)
    await db.commit()
