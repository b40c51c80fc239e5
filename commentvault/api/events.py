"""Event ingestion endpoint (front door of the event bus)."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, ValidationError

from commentvault.config import Settings, get_settings
from commentvault.constants import EVENT_CRAWL_PAGE_REQUESTED, EVENT_CRAWL_REQUESTED
from commentvault.models.schemas import (
    CrawlPageRequestedData,
    CrawlRequestedData,
    EventAccepted,
    EventIn,
)
from commentvault.services.crawler.events import Event
from commentvault.utils.signing import validate_signature
from commentvault.workers.bus import EventBus, get_event_bus

router = APIRouter()
logger = logging.getLogger(__name__)

# Payload schema of every event accepted from outside
EVENT_SCHEMAS: dict[str, type[BaseModel]] = {
    EVENT_CRAWL_REQUESTED: CrawlRequestedData,
    EVENT_CRAWL_PAGE_REQUESTED: CrawlPageRequestedData,
}


@router.post("", response_model=EventAccepted, status_code=status.HTTP_202_ACCEPTED)
async def ingest_event(
    request: Request,
    bus: Annotated[EventBus, Depends(get_event_bus)],
    settings: Annotated[Settings, Depends(get_settings)],
    x_signature: Annotated[str | None, Header()] = None,
) -> EventAccepted:
    """Queue a named event.

    When a signing key is configured, ``X-Signature`` must carry the hex
    HMAC-SHA256 of the raw request body. Production refuses events until a
    key is configured.
    """
    body = await request.body()

    if not settings.event_signing_key and settings.is_production:
        logger.error("Rejected event: no event signing key configured in production")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event signing key not configured",
        )

    if settings.event_signing_key and not validate_signature(
        settings.event_signing_key, body, x_signature
    ):
        logger.warning("Rejected event with invalid signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = EventIn.model_validate_json(body)
        schema = EVENT_SCHEMAS.get(payload.name)
        if schema is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown event: {payload.name}",
            )
        data = schema.model_validate(payload.data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=json.loads(e.json())
        ) from e

    event = await bus.send(Event(name=payload.name, data=data.model_dump(mode="json")))
    logger.info(f"Accepted {event.name} ({event.id})")
    return EventAccepted(id=event.id, name=event.name)
