"""
Per-user broadcast channels for live bookmark synchronization.

Every signed-in session of a user subscribes to the same topic. Publishing
fans an event out to whoever is subscribed at that moment; nothing is stored,
so a session that is not subscribed simply never sees the event and catches up
through a full refetch instead.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from contextlib import contextmanager
from itertools import count

from tabmark.services.events import SyncEvent


logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_PREFIX = "sync-channel-"


class Subscription:
    """Handle for one session's long-lived subscription to a user topic."""

    def __init__(self, broker: ChannelBroker, user_id: str, maxsize: int):
        self.id = next(broker._ids)
        self.user_id = user_id
        self.channel_name = broker.channel_name(user_id)
        self._broker = broker
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self.last_polled_at = time.monotonic()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _deliver(self, event: SyncEvent) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            logger.warning(
                "Dropped %s for subscription %s on %s (queue full)",
                event.type,
                self.id,
                self.channel_name,
            )
            return False
        return True

    def get(self, timeout: float | None = None) -> SyncEvent | None:
        """Next event in arrival order, or None on timeout or once closed."""
        self.last_polled_at = time.monotonic()
        if self.closed and self._queue.empty():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[SyncEvent]:
        self.last_polled_at = time.monotonic()
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self._broker._detach(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class Channel:
    """Publisher side of a topic, valid only while acquired."""

    def __init__(self, broker: ChannelBroker, user_id: str):
        self.user_id = user_id
        self.name = broker.channel_name(user_id)
        self._broker = broker
        self._released = False

    def send(self, event: SyncEvent) -> int:
        if self._released:
            raise RuntimeError(f"channel {self.name} already released")
        return self._broker._fan_out(self.user_id, event)

    def release(self) -> None:
        self._released = True


class ChannelBroker:
    def __init__(self, prefix: str = DEFAULT_CHANNEL_PREFIX, queue_size: int = 256):
        self.prefix = prefix
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._topics: dict[str, list[Subscription]] = {}
        self._ids = count(1)

    def channel_name(self, user_id: str) -> str:
        return f"{self.prefix}{user_id}"

    def subscribe(self, user_id: str) -> Subscription:
        subscription = Subscription(self, user_id, maxsize=self.queue_size)
        with self._lock:
            self._topics.setdefault(user_id, []).append(subscription)
        logger.debug(
            "Subscription %s joined %s", subscription.id, subscription.channel_name
        )
        return subscription

    @contextmanager
    def channel(self, user_id: str):
        channel = Channel(self, user_id)
        try:
            yield channel
        finally:
            channel.release()

    def publish(self, user_id: str, event: SyncEvent) -> int:
        with self.channel(user_id) as channel:
            return channel.send(event)

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._topics.get(user_id, []))

    def sweep_idle(self, max_idle_seconds: float) -> int:
        cutoff = time.monotonic() - max_idle_seconds
        with self._lock:
            stale = [
                subscription
                for subscriptions in self._topics.values()
                for subscription in subscriptions
                if subscription.last_polled_at < cutoff
            ]
        for subscription in stale:
            logger.info(
                "Closing idle subscription %s on %s",
                subscription.id,
                subscription.channel_name,
            )
            subscription.close()
        return len(stale)

    def _fan_out(self, user_id: str, event: SyncEvent) -> int:
        with self._lock:
            targets = list(self._topics.get(user_id, []))
        return sum(1 for subscription in targets if subscription._deliver(event))

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._topics.get(subscription.user_id, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)
            if not subscriptions:
                self._topics.pop(subscription.user_id, None)
        logger.debug(
            "Subscription %s left %s", subscription.id, subscription.channel_name
        )
