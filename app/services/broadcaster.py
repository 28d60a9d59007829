"""
In-process fan-out of check-in notifications to live subscribers.

Each subscriber owns a bounded queue. Publishing copies the registry under
the lock and delivers to that snapshot, so a subscriber leaving mid-publish
can't disturb the iteration. Delivery is best effort: a closed or backed-up
subscriber is dropped and the rest still receive the event.
"""
import asyncio
import json
import logging
import queue
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.core.config import SUBSCRIBER_QUEUE_SIZE

logger = logging.getLogger(__name__)

RESERVATION = "reservation"
RESERVATION_CANCELLED = "reservation_cancelled"
ATTENDANCE = "attendance"
TOKEN_ROTATED = "token_rotated"

EVENT_KINDS = (RESERVATION, RESERVATION_CANCELLED, ATTENDANCE, TOKEN_ROTATED)


@dataclass(frozen=True)
class BroadcastEvent:
    kind: str
    payload: Dict[str, Any]
    sequence: int


class SubscriberGone(Exception):
    pass


@dataclass(eq=False)
class Subscription:
    """
    Handle for one live connection.

    Publishers run on worker threads and never block on a subscriber. An SSE
    stream awaits :meth:`next_event` on the event loop; ``deliver`` wakes it
    with ``call_soon_threadsafe`` once the stream has bound its loop.
    """

    maxsize: int = SUBSCRIBER_QUEUE_SIZE
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    closed: bool = False

    def __post_init__(self):
        self._queue: queue.Queue = queue.Queue(maxsize=self.maxsize)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready: Optional[asyncio.Event] = None

    def deliver(self, event: BroadcastEvent) -> None:
        if self.closed:
            raise SubscriberGone(self.id)
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            raise SubscriberGone(self.id)

        if not self._wake():
            raise SubscriberGone(self.id)

    def close(self) -> None:
        self.closed = True
        self._wake()

    def get(self, timeout: Optional[float] = None) -> Optional[BroadcastEvent]:
        """Next event, or None if nothing arrived within ``timeout``."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    async def next_event(self, timeout: Optional[float] = None) -> Optional[BroadcastEvent]:
        """Await the next event without holding a worker thread."""
        if self._ready is None:
            self._ready = asyncio.Event()
            self._loop = asyncio.get_running_loop()

        event = self._pop()
        if event is not None:
            return event

        self._ready.clear()
        # an event may have landed between the pop and the clear
        event = self._pop()
        if event is not None:
            return event

        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return None
        return self._pop()

    def drain(self) -> List[BroadcastEvent]:
        events = []
        while True:
            event = self._pop()
            if event is None:
                return events
            events.append(event)

    def _pop(self) -> Optional[BroadcastEvent]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def _wake(self) -> bool:
        """Wake an awaiting stream. False if its event loop has already closed."""
        loop, ready = self._loop, self._ready
        if loop is None or ready is None:
            return True
        try:
            loop.call_soon_threadsafe(ready.set)
        except RuntimeError:
            return False
        return True


class EventBroadcaster:
    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: Dict[str, Subscription] = {}
        self._registry_lock = threading.Lock()
        # serializes publishes so every subscriber sees one global order
        self._publish_lock = threading.Lock()
        self._sequence = 0

    def subscribe(self) -> Subscription:
        subscription = Subscription(maxsize=self.queue_size)
        with self._registry_lock:
            self._subscribers[subscription.id] = subscription
            total = len(self._subscribers)
        logger.info(f"Subscriber connected: id={subscription.id}, total_subscribers={total}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        with self._registry_lock:
            removed = self._subscribers.pop(subscription.id, None)
            total = len(self._subscribers)
        if removed is not None:
            logger.info(f"Subscriber disconnected: id={subscription.id}, total_subscribers={total}")

    def publish(self, kind: str, payload: Dict[str, Any]) -> int:
        """Deliver an event to every current subscriber. Returns the delivery count."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")

        with self._publish_lock:
            self._sequence += 1
            event = BroadcastEvent(kind=kind, payload=payload, sequence=self._sequence)

            with self._registry_lock:
                snapshot = list(self._subscribers.values())

            delivered = 0
            for subscription in snapshot:
                try:
                    subscription.deliver(event)
                    delivered += 1
                except SubscriberGone:
                    logger.warning(f"Dropping unreachable subscriber: id={subscription.id}")
                    self.unsubscribe(subscription)

        logger.debug(f"Published {kind} #{event.sequence} to {delivered} subscriber(s)")
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._registry_lock:
            return len(self._subscribers)


def format_sse(event: BroadcastEvent) -> str:
    """Format an event as a Server-Sent Events frame"""
    lines = [
        f"event: {event.kind}",
        f"id: {event.sequence}",
        f"data: {json.dumps(event.payload, default=str)}",
    ]
    return "\n".join(lines) + "\n\n"


def sse_heartbeat() -> str:
    return ": keep-alive\n\n"


# Global instance
broadcaster = EventBroadcaster()
