"""Async pub/sub event bus."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine
from uuid import uuid4

from jellyhook.utils.logging import get_logger

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(str, Enum):
    PLAYBACK_STARTED = "playback_started"
    PLAYBACK_ENDED = "playback_ended"
    MEDIA_RECENTLY_ADDED = "media_recently_added"


def event_name(name: str | EventType) -> str:
    return name.value if isinstance(name, EventType) else str(name)


@dataclass
class Event:
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        self.name = event_name(self.name)


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------

Handler = Callable[[Event], Coroutine[Any, Any, Any]]


class EventBus:
    """Named-channel pub/sub; publishing never waits on handlers.

    Each subscription owns a bounded queue drained by ``workers`` consumer
    tasks, so a slow handler only delays its own backlog.
    """

    def __init__(self, max_queue_size: int = 256, workers: int = 1) -> None:
        self._subscribers: dict[str, list[tuple[Handler, asyncio.Queue[Event]]]] = {}
        self._max_queue_size = max_queue_size
        self._workers = max(1, workers)
        self._running = False
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, name: str | EventType, handler: Handler) -> None:
        key = event_name(name)
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(key, []).append((handler, queue))
        if self._running:
            self._spawn_consumers(key, handler, queue)

    def subscriptions(self, name: str | EventType) -> int:
        return len(self._subscribers.get(event_name(name), []))

    async def publish(self, event: Event) -> None:
        handlers = self._subscribers.get(event.name, [])
        if not handlers:
            log.debug("event_dropped_no_subscribers", event_name=event.name)
            return
        for handler, queue in handlers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                log.warning(
                    "event_queue_full",
                    event_name=event.name,
                    handler=handler.__qualname__,
                )

    async def start(self) -> None:
        self._running = True
        for key, handler_list in self._subscribers.items():
            for handler, queue in handler_list:
                self._spawn_consumers(key, handler, queue)

    def _spawn_consumers(
        self, key: str, handler: Handler, queue: asyncio.Queue[Event]
    ) -> None:
        for n in range(self._workers):
            task = asyncio.create_task(
                self._consumer(handler, queue, key),
                name=f"bus-{key}-{handler.__qualname__}-{n}",
            )
            self._tasks.append(task)

    async def _consumer(
        self, handler: Handler, queue: asyncio.Queue[Event], key: str
    ) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            try:
                await handler(event)
            except Exception:
                log.exception("handler_error", event_name=key, event_id=event.id)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        for handler_list in self._subscribers.values():
            for _handler, queue in handler_list:
                await queue.join()

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
