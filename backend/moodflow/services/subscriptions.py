# change subscriptions: in-process publish/subscribe for live views
# services publish after a committed mutation; the live websocket subscribes per user/patient

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Callback = Callable[[dict[str, Any]], Awaitable[None]]


def notifications_topic(user_id: str) -> str:
    return f"notifications:{user_id}"


def entries_topic(patient_id: str) -> str:
    return f"entries:{patient_id}"


def notes_topic(patient_id: str) -> str:
    return f"notes:{patient_id}"


class Subscription:
    """handle returned by subscribe; cancel() is idempotent"""

    def __init__(self, hub: "ChangeHub", topic: str, callback: Callback):
        self._hub = hub
        self.topic = topic
        self.callback = callback
        self.active = True

    def cancel(self):
        if self.active:
            self.active = False
            self._hub._remove(self)


class ChangeHub:
    """topic -> callbacks registry"""

    def __init__(self):
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, topic: str, callback: Callback) -> Subscription:
        sub = Subscription(self, topic, callback)
        self._subscribers[topic].append(sub)
        return sub

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def publish(self, topic: str, event: dict[str, Any]) -> int:
        """deliver event to every live subscriber of topic; returns delivery count.
        a failing subscriber is logged and skipped."""
        delivered = 0
        for sub in list(self._subscribers.get(topic, [])):
            if not sub.active:
                continue
            try:
                await sub.callback({"topic": topic, **event})
                delivered += 1
            except Exception as e:
                logger.warning(f"Subscriber callback failed on {topic}: {e}")
        return delivered

    def _remove(self, sub: Subscription):
        subs = self._subscribers.get(sub.topic)
        if not subs:
            return
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(sub.topic, None)


class QueueListener:
    """buffers events from several topics into one asyncio queue"""

    def __init__(self, hub: ChangeHub, maxsize: int = 100):
        self._hub = hub
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subs: list[Subscription] = []

    async def _push(self, event: dict[str, Any]):
        if self.queue.full():
            # slow consumer: keep the newest events
            self.queue.get_nowait()
        self.queue.put_nowait(event)

    def listen(self, topic: str):
        self._subs.append(self._hub.subscribe(topic, self._push))

    def close(self):
        for sub in self._subs:
            sub.cancel()
        self._subs.clear()


# singleton hub shared by services and the live router
hub = ChangeHub()
