"""Main FastAPI application."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from commentvault import __version__
from commentvault.api import api_router
from commentvault.config import get_settings
from commentvault.db import async_session_maker, init_db
from commentvault.services.proxy import install_proxy_rotation, load_proxy_rotation
from commentvault.services.youtube import YouTubeCommentClient
from commentvault.utils.http_client import close_all_clients
from commentvault.utils.logging import get_logger, setup_logging
from commentvault.workers import CrawlHandlers, close_event_bus, get_event_bus

settings = get_settings()
setup_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    await init_db()
    logger.info("Database initialized")

    rotation = load_proxy_rotation(settings)
    install_proxy_rotation(rotation)
    logger.info(f"Proxy rotation {'enabled' if rotation.enabled else 'disabled'}")

    client = YouTubeCommentClient(
        rotation=rotation,
        page_delay=settings.youtube_page_delay,
        language=settings.youtube_language,
    )
    bus = get_event_bus()
    CrawlHandlers(async_session_maker, client, settings).register(bus)

    # Create shutdown event for graceful task termination
    shutdown_event = asyncio.Event()
    bus_task = asyncio.create_task(bus.run(shutdown_event), name="event_bus")
    logger.info("Started event bus")

    yield

    # Graceful shutdown - signal the bus to stop taking events
    logger.info("Shutting down event bus...")
    shutdown_event.set()

    try:
        await asyncio.wait_for(bus_task, timeout=10.0)
        logger.info("Event bus stopped gracefully")
    except TimeoutError:
        logger.warning("Event bus did not stop in time, forcing cancellation")
        bus_task.cancel()
        await asyncio.gather(bus_task, return_exceptions=True)

    await close_event_bus()

    # Close persistent HTTP clients
    await close_all_clients()
    logger.info("HTTP clients closed")

    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)

# Store app start time for uptime tracking
_app_start_time = datetime.now(UTC)


@app.get("/health", include_in_schema=True, tags=["monitoring"])
async def health_check() -> JSONResponse:
    """Health check endpoint for monitoring and load balancers.

    Returns:
        JSONResponse with status, uptime, and service health checks.
    """
    from sqlalchemy import text

    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": (datetime.now(UTC) - _app_start_time).total_seconds(),
        "version": __version__,
        "checks": {},
    }

    # Check database connection
    try:
        async with async_session_maker() as db:
            await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {"status": "healthy"}
    except Exception:
        health_status["checks"]["database"] = {"status": "unhealthy"}
        health_status["status"] = "degraded"

    # Check event queue
    bus = get_event_bus()
    if await bus.ping():
        health_status["checks"]["queue"] = {
            "status": "healthy",
            "backend": bus.backend,
            "pending": await bus.pending(),
        }
    else:
        health_status["checks"]["queue"] = {"status": "unhealthy"}
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)
