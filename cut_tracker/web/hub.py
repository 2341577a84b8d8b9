"""Fan-out of change events to connected WebSocket clients."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict
from uuid import uuid4

from ..events import ChangeEvent

logger = logging.getLogger(__name__)

MAX_QUEUED_MESSAGES = 500


@dataclass(slots=True)
class Subscriber:
    loop: asyncio.AbstractEventLoop
    client_id: str = field(default_factory=lambda: str(uuid4()))
    queue: "asyncio.Queue[Dict[str, Any]]" = field(
        default_factory=lambda: asyncio.Queue(MAX_QUEUED_MESSAGES)
    )


class BroadcastHub:
    """Event publisher that forwards every event to all subscribers.

    ``publish`` may be called from any thread (the reaper runs on its own);
    messages are handed to each subscriber's event loop.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(loop=asyncio.get_running_loop())
        with self._lock:
            self._subscribers[subscriber.client_id] = subscriber
        logger.debug("Client %s subscribed", subscriber.client_id)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.pop(subscriber.client_id, None)
        logger.debug("Client %s unsubscribed", subscriber.client_id)

    def publish(self, event: ChangeEvent) -> None:
        message = event.as_message()
        with self._lock:
            subscribers = list(self._subscribers.values())
        for subscriber in subscribers:
            try:
                subscriber.loop.call_soon_threadsafe(self._offer, subscriber, message)
            except RuntimeError:
                # Event loop already closed.
                self.unsubscribe(subscriber)

    @staticmethod
    def _offer(subscriber: Subscriber, message: Dict[str, Any]) -> None:
        try:
            subscriber.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Dropping event for slow client %s", subscriber.client_id)


__all__ = ["BroadcastHub", "Subscriber"]
