"""Main API router."""

from fastapi import APIRouter

from commentvault.api.crawls import router as crawls_router
from commentvault.api.events import router as events_router

api_router = APIRouter(prefix="/api")

api_router.include_router(crawls_router, prefix="/crawls", tags=["crawls"])
api_router.include_router(events_router, prefix="/events", tags=["events"])
