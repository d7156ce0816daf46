"""
Sample Broadcast Hub

Fans each published sample out to every live subscriber. Delivery is
best-effort and synchronous: a subscriber whose callback raises is
dropped from the hub and the remaining subscribers still receive the
sample. There is no replay; new subscribers only see samples published
after they subscribe.
"""

import asyncio
import itertools
import threading
from typing import Callable

from ...common.logging_setup import get_service_logger
from .models import Sample

logger = get_service_logger("metrics.broadcast")

SampleCallback = Callable[[Sample], None]


class BroadcastHub:
    """Registry of subscriber callbacks with fail-removal on delivery error"""

    def __init__(self):
        self._subscribers: dict[int, SampleCallback] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._published = 0

    def subscribe(self, on_sample: SampleCallback) -> Callable[[], None]:
        """
        Register a callback for new samples.

        Returns:
            Idempotent unsubscribe function
        """
        with self._lock:
            token = next(self._ids)
            self._subscribers[token] = on_sample

        logger.debug(f"Subscriber {token} added", extra={"subscribers": len(self)})

        def unsubscribe() -> None:
            self._remove(token)

        return unsubscribe

    def publish(self, sample: Sample) -> int:
        """
        Deliver a sample to every current subscriber.

        Returns:
            Number of successful deliveries
        """
        with self._lock:
            targets = list(self._subscribers.items())

        delivered = 0
        for token, callback in targets:
            try:
                callback(sample)
                delivered += 1
            except Exception as e:
                if self._remove(token):
                    logger.info(
                        f"Dropped subscriber {token} after failed delivery: {e}",
                        extra={"subscribers": len(self)},
                    )

        self._published += 1
        return delivered

    def _remove(self, token: int) -> bool:
        with self._lock:
            return self._subscribers.pop(token, None) is not None

    def __len__(self) -> int:
        return len(self._subscribers)

    def get_stats(self) -> dict:
        return {
            "subscribers": len(self),
            "published": self._published,
        }


class SubscriberClosed(Exception):
    """Delivery attempted to a closed or overflowing queue subscriber"""


class QueueSubscriber:
    """
    Bridges hub callbacks to an asyncio consumer.

    deliver() must run on the event loop that owns the queue. A full
    queue means the consumer stopped reading; the subscriber then
    closes itself so the hub drops it.
    """

    def __init__(self, maxsize: int = 60):
        self.queue: asyncio.Queue[Sample] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def deliver(self, sample: Sample) -> None:
        if self.closed:
            raise SubscriberClosed("subscriber closed")
        try:
            self.queue.put_nowait(sample)
        except asyncio.QueueFull:
            self.closed = True
            raise SubscriberClosed("subscriber queue full")

    def close(self) -> None:
        self.closed = True
