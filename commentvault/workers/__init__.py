"""Background event processing."""

from commentvault.workers.bus import EventBus, close_event_bus, get_event_bus
from commentvault.workers.handlers import CrawlHandlers

__all__ = ["CrawlHandlers", "EventBus", "close_event_bus", "get_event_bus"]
