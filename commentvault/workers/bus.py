"""Event bus running crawl steps with at-least-once delivery.

Events are queued on a Redis list (in-memory queue when Redis is not
reachable). Each registered handler has a concurrency ceiling and an attempt
budget: a failing event is re-enqueued until its attempts are used up, and the
events a handler returns are sent only after it succeeded.

A claimed event moves to a processing list and is removed from it only once
its handler has finished, so events held by a consumer that stops or crashes
are requeued by ``recover()`` when the next consumer starts.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace

from redis.asyncio import Redis
from redis.exceptions import RedisError

from commentvault.config import get_settings
from commentvault.constants import EVENT_POLL_TIMEOUT, EVENT_RETRY_DELAY
from commentvault.services.crawler.events import Event

logger = logging.getLogger(__name__)

Handler = Callable[[Event], Awaitable[list[Event] | None]]


@dataclass
class HandlerSpec:
    """A registered handler with its limits."""

    name: str
    func: Handler
    concurrency: int = 1
    max_attempts: int = 1
    semaphore: asyncio.Semaphore = field(init=False)

    def __post_init__(self) -> None:
        self.semaphore = asyncio.Semaphore(self.concurrency)


class EventBus:
    """Queue plus dispatcher for named events.

    Usage:
        bus = EventBus(redis_url=settings.redis_url)
        bus.register("crawl/requested", handle_trigger, concurrency=2, max_attempts=3)

        await bus.send(crawl_requested("dQw4w9WgXcQ"))
        await bus.run(shutdown_event)  # or: await bus.run_until_idle()
    """

    def __init__(
        self,
        redis_url: str | None = None,
        queue_key: str = "commentvault:events",
        retry_delay: float = EVENT_RETRY_DELAY,
        redis: Redis | None = None,
    ):
        if redis is None and redis_url:
            redis = Redis.from_url(redis_url, decode_responses=True)
        self._redis = redis
        self._redis_available: bool | None = None if redis is not None else False
        self._memory_queue: asyncio.Queue[str] = asyncio.Queue()
        self.queue_key = queue_key
        self.processing_key = f"{queue_key}:processing"
        self.retry_delay = retry_delay
        self._handlers: dict[str, HandlerSpec] = {}
        self._tasks: set[asyncio.Task] = set()

    def register(
        self, name: str, func: Handler, concurrency: int = 1, max_attempts: int = 1
    ) -> None:
        """Register the handler for an event name (replacing any previous one)."""
        self._handlers[name] = HandlerSpec(name, func, concurrency, max_attempts)

    def handles(self, name: str) -> bool:
        return name in self._handlers

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def _use_redis(self) -> bool:
        if self._redis_available is not None:
            return self._redis_available
        try:
            await self._redis.ping()
            self._redis_available = True
        except (RedisError, OSError) as e:
            logger.warning(f"Redis unavailable, using in-memory event queue: {e}")
            self._redis_available = False
        return self._redis_available

    async def ping(self) -> bool:
        """Check the queue backend."""
        if not await self._use_redis():
            return True
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError):
            return False

    @property
    def backend(self) -> str:
        return "redis" if self._redis_available else "memory"

    @property
    def max_in_flight(self) -> int:
        """Events claimed at once: the sum of the handlers' concurrency ceilings."""
        return sum(spec.concurrency for spec in self._handlers.values()) or 1

    async def send(self, event: Event) -> Event:
        """Enqueue an event."""
        raw = event.to_json()
        if await self._use_redis():
            await self._redis.rpush(self.queue_key, raw)
        else:
            await self._memory_queue.put(raw)
        logger.debug(f"Queued {event.name} ({event.id}, attempt {event.attempt})")
        return event

    async def pending(self) -> int:
        """Number of queued events not yet claimed."""
        if await self._use_redis():
            return await self._redis.llen(self.queue_key)
        return self._memory_queue.qsize()

    async def _claim(self, timeout: float) -> str | None:
        """Move the next event onto the processing list; ``timeout <= 0`` never waits."""
        if await self._use_redis():
            if timeout <= 0:
                return await self._redis.lmove(self.queue_key, self.processing_key)
            return await self._redis.blmove(self.queue_key, self.processing_key, timeout)
        if timeout <= 0:
            try:
                return self._memory_queue.get_nowait()
            except asyncio.QueueEmpty:
                return None
        try:
            return await asyncio.wait_for(self._memory_queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def _ack(self, raw: str) -> None:
        if self._redis_available:
            await self._redis.lrem(self.processing_key, 1, raw)

    async def pop(self, timeout: float = EVENT_POLL_TIMEOUT) -> Event | None:
        """Take the next event off the queue, waiting up to ``timeout`` seconds."""
        raw = await self._claim(timeout)
        if raw is None:
            return None
        await self._ack(raw)
        return Event.from_json(raw)

    async def recover(self) -> int:
        """Requeue events a previous consumer claimed but never finished.

        Only safe with a single consumer per queue key.
        """
        if not await self._use_redis():
            return 0
        count = 0
        while await self._redis.lmove(self.processing_key, self.queue_key, "RIGHT", "LEFT"):
            count += 1
        if count:
            logger.warning(f"Requeued {count} unfinished events")
        return count

    async def dispatch(self, event: Event) -> None:
        """Run the handler of one event, then send its follow-ups or retry it."""
        spec = self._handlers.get(event.name)
        if spec is None:
            logger.warning(f"No handler registered for {event.name}, dropping {event.id}")
            return

        try:
            async with spec.semaphore:
                follow_ups = await spec.func(event) or []
        except Exception as e:
            if event.attempt >= spec.max_attempts:
                logger.error(
                    f"{event.name} ({event.id}) failed after {event.attempt} attempts: {e}"
                )
                return
            logger.warning(
                f"{event.name} ({event.id}) failed, retrying "
                f"(attempt {event.attempt}/{spec.max_attempts}): {e}"
            )
            if self.retry_delay:
                await asyncio.sleep(self.retry_delay)
            await self.send(replace(event, attempt=event.attempt + 1))
            return

        for follow_up in follow_ups:
            await self.send(follow_up)

    async def _process(self, raw: str) -> None:
        try:
            event = Event.from_json(raw)
        except (ValueError, KeyError) as e:
            logger.error(f"Dropping malformed event: {e}")
            await self._ack(raw)
            return
        try:
            await self.dispatch(event)
        except RedisError as e:
            # Stays on the processing list until the next recover()
            logger.error(f"{event.name} ({event.id}) not acknowledged: {e}")
            return
        await self._ack(raw)

    def _spawn(self, raw: str) -> None:
        task = asyncio.create_task(self._process(raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _wait_for_capacity(self, timeout: float | None = None) -> None:
        if self.in_flight >= self.max_in_flight:
            await asyncio.wait(set(self._tasks), timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Consume events until the shutdown event is set.

        An event is claimed only when a slot is free, so everything taken off
        the queue is already being handled.
        """
        logger.info(f"Event bus started ({len(self._handlers)} handlers)")
        try:
            await self.recover()
        except RedisError as e:
            logger.error(f"Could not requeue unfinished events: {e}")

        while not shutdown_event.is_set():
            if self.in_flight >= self.max_in_flight:
                await self._wait_for_capacity(timeout=EVENT_POLL_TIMEOUT)
                continue
            try:
                raw = await self._claim(EVENT_POLL_TIMEOUT)
            except RedisError as e:
                logger.error(f"Error reading event queue: {e}")
                await asyncio.sleep(EVENT_RETRY_DELAY)
                continue
            if raw is not None:
                self._spawn(raw)

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Event bus stopped")

    async def run_until_idle(self) -> None:
        """Consume events until the queue is empty and nothing is in flight."""
        while True:
            await self._wait_for_capacity()
            raw = await self._claim(0)
            if raw is not None:
                self._spawn(raw)
                continue
            if not self._tasks:
                return
            await asyncio.wait(set(self._tasks), return_when=asyncio.FIRST_COMPLETED)

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        settings = get_settings()
        _event_bus = EventBus(redis_url=settings.redis_url, queue_key=settings.event_queue_key)
    return _event_bus


async def close_event_bus() -> None:
    """Close the process-wide event bus. Call during app shutdown."""
    global _event_bus
    if _event_bus is not None:
        await _event_bus.aclose()
        _event_bus = None
