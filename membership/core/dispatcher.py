"""
Event dispatcher

Fire-and-forget, at-least-once delivery of domain events to their handlers.
Publishing is a cheap enqueue onto a bounded asyncio queue owned by a
dedicated loop thread; worker tasks run the handlers out of band. Each
handler attempt is time-bounded, failed attempts are retried, and a handler
that exhausts its attempts is logged and dropped. Nothing a handler does
ever reaches the publisher.
"""

from typing import Awaitable, Callable, List, Optional, Union
import asyncio
import concurrent.futures
import inspect
import threading
import structlog

from membership.core.config import get_settings
from membership.core.events import DomainEvent

logger = structlog.get_logger(__name__)

Handler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


def _is_async(handler: Handler) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


class EventDispatcher:
    """In-process asynchronous event bus"""

    def __init__(
        self,
        max_attempts: int = 3,
        attempt_timeout: float = 60.0,
        maxsize: int = 1000,
        workers: int = 2,
        retry_delay: float = 0.0,
    ):
        self.max_attempts = max_attempts
        self.attempt_timeout = attempt_timeout
        self.maxsize = maxsize
        self.workers = workers
        self.retry_delay = retry_delay

        self._handlers: List[Handler] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and self._ready.is_set()

    def subscribe(self, handler: Handler) -> None:
        """Register a handler for every published event"""
        self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def start(self) -> None:
        """Start the loop thread and its workers"""
        if self.is_running:
            return
        self._ready.clear()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="event-dispatcher", daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.info(f"Event dispatcher started with {self.workers} workers")

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        tasks = [self._loop.create_task(self._worker(i)) for i in range(self.workers)]
        self._ready.set()
        try:
            self._loop.run_forever()
        finally:
            for task in tasks:
                task.cancel()
            self._loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
            self._loop.close()

    def publish(self, event: DomainEvent) -> bool:
        """Enqueue an event; never raises, returns False when the event was dropped"""
        if not self.is_running:
            logger.warning(f"Event dispatcher not running, dropping {event.name} ({event.event_id})")
            return False
        self._loop.call_soon_threadsafe(self._enqueue, event)
        return True

    def _enqueue(self, event: DomainEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(f"Event queue full, dropping {event.name} ({event.event_id})")

    async def _worker(self, index: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                for handler in list(self._handlers):
                    await self._deliver(handler, event)
            finally:
                self._queue.task_done()

    async def _deliver(self, handler: Handler, event: DomainEvent) -> bool:
        handler_name = getattr(handler, "__qualname__", repr(handler))
        for attempt in range(1, self.max_attempts + 1):
            try:
                await asyncio.wait_for(self._invoke(handler, event), timeout=self.attempt_timeout)
                return True
            except asyncio.TimeoutError:
                logger.warning(
                    f"Handler {handler_name} timed out on {event.name} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
            except Exception as e:
                logger.warning(
                    f"Handler {handler_name} failed on {event.name} "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
            if attempt < self.max_attempts and self.retry_delay:
                await asyncio.sleep(self.retry_delay)

        logger.error(f"Dropping {event.name} ({event.event_id}) for {handler_name} after {self.max_attempts} attempts")
        return False

    async def _invoke(self, handler: Handler, event: DomainEvent) -> None:
        if _is_async(handler):
            await handler(event)
        else:
            # A timed out sync handler keeps running in its thread, the attempt still counts as failed
            await asyncio.to_thread(handler, event)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until every published event has been handled"""
        if not self.is_running:
            return True
        future = asyncio.run_coroutine_threadsafe(self._queue.join(), self._loop)
        try:
            future.result(timeout)
            return True
        except concurrent.futures.TimeoutError:
            future.cancel()
            return False

    def stop(self, timeout: float = 5.0) -> None:
        """Drain pending events (best effort) and stop the loop thread"""
        if not self.is_running:
            return
        if not self.join(timeout):
            logger.warning("Event dispatcher stopped with undelivered events")
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        self._thread = None
        self._loop = None
        self._queue = None
        self._ready.clear()
        logger.info("Event dispatcher stopped")


EventPublisher = Callable[[DomainEvent], object]


def publish_safely(publish: EventPublisher, event: DomainEvent) -> bool:
    """Publish after a committed mutation; a failing publisher never reaches the caller"""
    try:
        return publish(event) is not False
    except Exception as e:
        logger.error(f"Failed to publish {event.name} ({event.event_id}): {e}")
        return False


def build_dispatcher() -> EventDispatcher:
    """Dispatcher configured from settings"""
    settings = get_settings()
    return EventDispatcher(
        max_attempts=settings.EVENT_MAX_ATTEMPTS,
        attempt_timeout=settings.EVENT_ATTEMPT_TIMEOUT_SECONDS,
        maxsize=settings.EVENT_QUEUE_MAXSIZE,
        workers=settings.EVENT_WORKERS,
    )


# Process-wide dispatcher
dispatcher = build_dispatcher()
