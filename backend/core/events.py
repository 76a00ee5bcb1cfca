"""Broadcast channel for state-change events.

One tagged-union event type, one bounded queue per subscriber. Publishing
never blocks: a subscriber whose queue is full simply misses the event.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from core.serialization import to_jsonable

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    ENERGY_UPDATE = "energy_update"
    DEVICE_UPDATE = "device_update"
    ANALYSIS_UPDATE = "analysis_update"
    PREDICTIONS_UPDATE = "predictions_update"
    RECOMMENDATIONS_UPDATE = "recommendations_update"
    SYSTEM_HEALTH = "system_health"


@dataclass(frozen=True)
class Event:
    type: EventType
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": to_jsonable(self.data)}


_CLOSED = object()


class Subscription:
    """Async iterator over the events delivered to one subscriber."""

    def __init__(self, bus: "EventBus", maxsize: int) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def _offer(self, item: Any) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1

    def _close(self) -> None:
        # Make room so the sentinel always lands.
        while self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def pending(self) -> list[Event]:
        """Drain events already queued without waiting."""
        items: list[Event] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                break
            items.append(item)
        return items

    async def get(self) -> Event | None:
        """Next event, or None once the bus has been closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while (event := await self.get()) is not None:
            yield event

    def unsubscribe(self) -> None:
        self._bus.unsubscribe(self)


class EventBus:
    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: list[Subscription] = []
        self._closed = False
        self.published = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self._queue_size)
        if self._closed:
            subscription._close()
        else:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, event_type: EventType, data: Any) -> Event | None:
        if self._closed:
            logger.debug("Dropping %s: bus closed", event_type)
            return None
        event = Event(event_type, data)
        for subscription in self._subscribers:
            subscription._offer(event)
        self.published += 1
        return event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers:
            subscription._close()
        self._subscribers.clear()
