"""
Observer channel used for every push-style output.

Replaces single callback fields with a subscribe/unsubscribe channel
that supports any number of listeners.
"""

import logging
import threading
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Subscription:
    """Handle returned by EventChannel.subscribe()."""

    def __init__(self, channel: 'EventChannel', callback: Callable):
        self._channel = channel
        self.callback = callback
        self.active = True

    def cancel(self):
        """Stop receiving values (idempotent)."""
        if self.active:
            self._channel.unsubscribe(self)


class EventChannel(Generic[T]):
    """
    Multi-listener push channel.

    Listeners run synchronously on the publishing thread, in subscription
    order. A listener that raises is logged and counted; the remaining
    listeners still receive the value.

    Usage:
        channel = EventChannel('fused_location')
        sub = channel.subscribe(lambda loc: print(loc.latitude))
        channel.publish(location)
        sub.cancel()
    """

    def __init__(self, name: str = 'channel'):
        self.name = name
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []
        self._closed = False
        self.published_count = 0
        self.error_count = 0

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """
        Register a listener.

        Args:
            callback: Called with every published value

        Returns:
            Subscription handle

        Raises:
            RuntimeError: If the channel was closed
        """
        with self._lock:
            if self._closed:
                raise RuntimeError(f"Channel '{self.name}' is closed")
            subscription = Subscription(self, callback)
            self._subscriptions.append(subscription)
            return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
            subscription.active = False

    def publish(self, value: T):
        """Deliver a value to every current listener."""
        with self._lock:
            if self._closed:
                logger.debug(f"Publish on closed channel '{self.name}' ignored")
                return
            subscriptions = list(self._subscriptions)
            self.published_count += 1

        for subscription in subscriptions:
            try:
                subscription.callback(value)
            except Exception:
                self.error_count += 1
                logger.exception(f"Listener on channel '{self.name}' failed")

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self):
        """Drop every listener; later publishes are ignored."""
        with self._lock:
            for subscription in self._subscriptions:
                subscription.active = False
            self._subscriptions.clear()
            self._closed = True
