# agora/realtime/broadcaster.py

# In-process topic pub/sub. Delivery is at-most-once and best-effort: a
# subscriber whose queue is full simply misses the event.

import json
import logging
import threading
from queue import Empty, Full, Queue
from typing import Dict, Iterable, Iterator, Optional

from agora.governance.records import utcnow

logger = logging.getLogger(__name__)


class Subscription:
    def __init__(self, broadcaster, topics, max_queue_size):
        self.broadcaster = broadcaster
        self.topics = frozenset(topics) if topics else None  # None means every topic
        self.queue: Queue = Queue(maxsize=max_queue_size)
        self.dropped = 0

    def wants(self, topic) -> bool:
        return self.topics is None or topic in self.topics

    def get(self, timeout=None) -> Optional[Dict]:
        try:
            return self.queue.get(timeout=timeout)
        except Empty:
            return None

    def close(self):
        self.broadcaster.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class Broadcaster:
    def __init__(self, max_queue_size=100):
        self.max_queue_size = max_queue_size
        self._lock = threading.Lock()
        self._subscriptions = set()

    def subscribe(self, topics: Optional[Iterable[str]] = None) -> Subscription:
        subscription = Subscription(self, topics, self.max_queue_size)
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def broadcast(self, topic: str, payload: Optional[Dict] = None) -> int:
        """Fan an event out to current subscribers; returns how many got it."""
        event = {"topic": topic, "payload": payload or {}, "sent_at": utcnow().isoformat()}
        with self._lock:
            targets = [s for s in self._subscriptions if s.wants(topic)]
        delivered = 0
        for subscription in targets:
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except Full:
                subscription.dropped += 1
        logger.debug("Broadcast %r to %d/%d subscribers", topic, delivered, len(targets))
        return delivered


def sse_stream(subscription: Subscription, heartbeat_seconds=15.0, max_events=None) -> Iterator[str]:
    """Server-sent-events framing of a subscription, with keep-alive comments."""
    sent = 0
    try:
        yield ": connected\n\n"
        while max_events is None or sent < max_events:
            event = subscription.get(timeout=heartbeat_seconds)
            if event is None:
                yield ": keep-alive\n\n"
                continue
            yield f"event: {event['topic']}\ndata: {json.dumps(event)}\n\n"
            sent += 1
    finally:
        subscription.close()
