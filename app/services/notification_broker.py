"""
In-process notification broker.

Services produce NotificationEvents; routers publish them here; every live
Subscription for the recipient receives them on its own queue.

A Subscription is an explicit handle: start() registers it, stop() removes it
and wakes any consumer blocked on the iterator. It is also an async context
manager, so `async with broker.subscribe(user_id) as sub:` guarantees teardown.

Single-process only. Running several server instances needs an external
pub/sub (Redis, Postgres LISTEN/NOTIFY) behind the same interface.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

logger = logging.getLogger(__name__)

EventType = Literal["INSERT", "UPDATE"]

_CLOSED = object()


@dataclass
class NotificationEvent:
    event_type: EventType
    user_id: str
    new: dict
    old: Optional[dict] = field(default=None)

    def to_message(self) -> dict:
        return {"type": self.event_type, "new": self.new, "old": self.old}


class Subscription:
    def __init__(self, broker: "NotificationBroker", user_id: str):
        self.user_id = user_id
        self._broker = broker
        self._queue: asyncio.Queue = asyncio.Queue()
        self.active = False

    def start(self) -> "Subscription":
        if not self.active:
            self._broker._register(self)
            self.active = True
        return self

    def stop(self) -> None:
        if self.active:
            self._broker._unregister(self)
            self.active = False
            self._queue.put_nowait(_CLOSED)

    def deliver(self, event: NotificationEvent) -> None:
        if self.active:
            self._queue.put_nowait(event)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self) -> Optional[NotificationEvent]:
        """Next event, or None once the subscription is stopped and drained."""
        if not self.active and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    async def __aenter__(self) -> "Subscription":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def __aiter__(self):
        return self

    async def __anext__(self) -> NotificationEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class NotificationBroker:
    def __init__(self):
        # Maps user_id (str) → live subscriptions for that user
        self.subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, user_id: str) -> Subscription:
        """Create an unstarted subscription handle for a user."""
        return Subscription(self, str(user_id))

    def _register(self, subscription: Subscription) -> None:
        self.subscriptions.setdefault(subscription.user_id, []).append(subscription)
        logger.info(
            f"Notification subscription started: user={subscription.user_id}, "
            f"total={len(self.subscriptions[subscription.user_id])}"
        )

    def _unregister(self, subscription: Subscription) -> None:
        subs = self.subscriptions.get(subscription.user_id)
        if subs is None:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            pass  # already removed
        if not subs:
            del self.subscriptions[subscription.user_id]
        logger.info(f"Notification subscription stopped: user={subscription.user_id}")

    def subscriber_count(self, user_id: str) -> int:
        return len(self.subscriptions.get(str(user_id), []))

    async def publish(self, event: NotificationEvent) -> None:
        for subscription in list(self.subscriptions.get(event.user_id, [])):
            subscription.deliver(event)

    async def publish_all(self, events: List[NotificationEvent]) -> None:
        for event in events:
            await self.publish(event)


# Module-level singleton, imported by routers and the session context
broker = NotificationBroker()
