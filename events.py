import asyncio
import logging
from typing import Dict, Set, Optional

logger = logging.getLogger(__name__)


def user_topic(user_id: str) -> str:
    return f"user:{user_id}"


def chat_topic(chat_id: str) -> str:
    return f"chat:{chat_id}"


def ride_topic(ride_id: str) -> str:
    return f"ride:{ride_id}"


class Subscription:
    """
    Handle for a live feed on one topic.

    Events published while the subscription is started are buffered in a queue
    and read with ``next_event``. Stopping detaches it from the hub; a stopped
    subscription receives nothing further.
    """

    def __init__(self, hub: "EventHub", topic: str, maxsize: int = 100):
        self.hub = hub
        self.topic = topic
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.active = False

    def start(self) -> "Subscription":
        if not self.active:
            self.hub._attach(self)
            self.active = True
        return self

    def stop(self):
        if self.active:
            self.hub._detach(self)
            self.active = False

    def deliver(self, event: dict):
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            # Slow consumer: drop the oldest event and keep the newest
            self.queue.get_nowait()
            self.queue.put_nowait(event)
            logger.warning("Subscription on %s overflowed, dropped oldest event", self.topic)

    async def next_event(self, timeout: Optional[float] = None) -> dict:
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout)

    async def __aenter__(self):
        return self.start()

    async def __aexit__(self, exc_type, exc, tb):
        self.stop()


class EventHub:
    """In-process fan-out of committed changes to live subscribers."""

    def __init__(self):
        self._subscribers: Dict[str, Set[Subscription]] = {}

    def subscribe(self, topic: str) -> Subscription:
        return Subscription(self, topic)

    def _attach(self, sub: Subscription):
        self._subscribers.setdefault(sub.topic, set()).add(sub)

    def _detach(self, sub: Subscription):
        subs = self._subscribers.get(sub.topic)
        if subs:
            subs.discard(sub)
            if not subs:
                del self._subscribers[sub.topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def publish(self, topic: str, event_type: str, payload: dict):
        event = {"type": event_type, "topic": topic, "data": payload}
        for sub in list(self._subscribers.get(topic, ())):
            sub.deliver(event)


hub = EventHub()
