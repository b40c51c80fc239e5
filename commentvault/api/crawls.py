"""Crawl progress API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commentvault.db import get_db
from commentvault.db.crud.crawl_status import get_crawl, list_crawls
from commentvault.models.schemas import CrawlStatusRead

router = APIRouter()


@router.get("", response_model=list[CrawlStatusRead])
async def list_video_crawls(
    db: Annotated[AsyncSession, Depends(get_db)],
    video_id: Annotated[str, Query(min_length=11, max_length=11)],
) -> list[CrawlStatusRead]:
    """List the crawls of a video, one per sort order."""
    crawls = await list_crawls(db, video_id)
    return [CrawlStatusRead.model_validate(c) for c in crawls]


@router.get("/{crawl_id}", response_model=CrawlStatusRead)
async def get_crawl_status(
    crawl_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CrawlStatusRead:
    """Get one crawl's progress."""
    crawl = await get_crawl(db, crawl_id)
    if crawl is None:
        raise HTTPException(status_code=404, detail="Crawl not found")
    return CrawlStatusRead.model_validate(crawl)
