"""In-process typed event bus for real-time subscribers.

Dispatch is keyed by :class:`~tagmap.domain.events.Topic`, never by string
patterns. Every subscription owns a bounded buffer; when the buffer is full the
oldest undelivered event is dropped so ``publish`` never awaits and a slow
subscriber can never stall a writer. Delivery is at-most-once with no replay: a
subscription only sees events published while it is registered.

Subscriptions to ``TAG_STATUS_CHANGED`` may carry an ``after`` anchor, in which
case only events whose ``occurred_at`` is strictly later are delivered. This
lets a client resume a feed from a known point without re-receiving older
events.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from tagmap.core.config import get_settings
from tagmap.core.errors import NotificationDeliveryError
from tagmap.domain.events import Event, Topic
from tagmap.domain.models import as_utc
from tagmap.services.telemetry import increment_counter, set_gauge


logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    def __init__(
        self,
        bus: "NotificationBus",
        topic: Topic,
        *,
        after: datetime | None,
        buffer_size: int,
    ) -> None:
        self.topic = topic
        self.after = as_utc(after) if after is not None else None
        self.dropped = 0
        self._bus = bus
        # One slot is reserved for the close sentinel.
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=buffer_size + 1)
        self._buffer_size = buffer_size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: Event) -> bool:
        if self.after is None:
            return True
        return as_utc(event.occurred_at) > self.after

    def deliver(self, event: Event) -> bool:
        # Returns False when an older event had to be dropped to make room.
        if self._closed:
            return True
        kept_all = True
        if self._queue.qsize() >= self._buffer_size:
            self._queue.get_nowait()
            self.dropped += 1
            kept_all = False
        self._queue.put_nowait(event)
        return kept_all

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._unregister(self)
        # Discard undelivered events; nothing is handed out after close.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def next(self, timeout: float | None = None) -> Event | None:
        """Wait for the next event; ``None`` on timeout.

        Raises ``StopAsyncIteration`` once the subscription is closed.
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        try:
            if timeout is None:
                item = await self._queue.get()
            else:
                item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        # Without a timeout next() only returns once an event arrives or the subscription closes.
        event = None
        while event is None:
            event = await self.next()
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        self.close()


class NotificationBus:
    def __init__(self, *, buffer_size: int | None = None) -> None:
        size = buffer_size if buffer_size is not None else get_settings().notification_buffer_size
        if size < 1:
            raise ValueError("notification buffer size must be at least 1")
        self._buffer_size = size
        self._subscriptions: dict[Topic, set[Subscription]] = {topic: set() for topic in Topic}

    def subscribe(
        self,
        topic: Topic,
        *,
        after: datetime | None = None,
        buffer_size: int | None = None,
    ) -> Subscription:
        topic = Topic(topic)
        subscription = Subscription(
            self,
            topic,
            after=after,
            buffer_size=buffer_size or self._buffer_size,
        )
        self._subscriptions[topic].add(subscription)
        set_gauge(f"notification_subscribers.{topic.value}", len(self._subscriptions[topic]))
        logger.debug("subscription_opened topic=%s after=%s", topic.value, subscription.after)
        return subscription

    def publish(self, topic: Topic, event: Event) -> int:
        """Fan ``event`` out to matching subscribers without awaiting.

        Returns the number of subscriptions the event was handed to. Raises
        ``NotificationDeliveryError`` after attempting every subscriber if any
        of them failed.
        """
        topic = Topic(topic)
        delivered = 0
        failures = 0
        for subscription in list(self._subscriptions[topic]):
            if not subscription.matches(event):
                continue
            try:
                kept_all = subscription.deliver(event)
            except Exception as exc:  # noqa: BLE001 - one broken subscriber must not starve the rest
                failures += 1
                logger.warning("notification_deliver_failed topic=%s", topic.value, exc_info=exc)
                continue
            delivered += 1
            if not kept_all:
                increment_counter("notification_dropped_total")
                logger.warning(
                    "notification_buffer_full topic=%s dropped_total=%s",
                    topic.value,
                    subscription.dropped,
                )
        if failures:
            raise NotificationDeliveryError(f"{failures} subscriber(s) failed on {topic.value}")
        return delivered

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscriptions[Topic(topic)])

    def close_all(self) -> None:
        for subscriptions in self._subscriptions.values():
            for subscription in list(subscriptions):
                subscription.close()

    def _unregister(self, subscription: Subscription) -> None:
        self._subscriptions[subscription.topic].discard(subscription)
        set_gauge(
            f"notification_subscribers.{subscription.topic.value}",
            len(self._subscriptions[subscription.topic]),
        )
