"""
events.py - Subscription-based event sources for sensor streams
"""

import logging
import threading
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class Subscription:
    """Cancellation token returned by EventSource.subscribe"""

    def __init__(self, source: "EventSource", handler: Callable[[Any], None]):
        self._source = source
        self._handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def handler(self) -> Callable[[Any], None]:
        return self._handler

    def cancel(self) -> None:
        """Detach the handler. Safe to call any number of times."""
        if not self._active:
            return
        self._active = False
        self._source._remove(self)


class EventSource:
    """
    Fan-out point for one kind of sensor event.

    Handlers run synchronously in the publishing thread. A handler that
    raises is logged and does not prevent delivery to the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[[Any], None]) -> Subscription:
        subscription = Subscription(self, handler)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, event: Any) -> int:
        """Deliver an event to every active handler, returns delivery count"""
        with self._lock:
            targets = list(self._subscriptions)

        delivered = 0
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.handler(event)
                delivered += 1
            except Exception:
                logger.exception(f"❌ Handler failed on '{self.name}' event")
        return delivered
