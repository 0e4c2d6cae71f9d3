"""
Per-identity notification state: unread counter and a bounded list of the most
recent notifications, kept current from broker events.

Counting rules:
  - INSERT for this user: +1 only if the new row is unread.
  - UPDATE: -1 only on an observed read transition false → true.
  - Everything else is a no-op. The counter never drops below zero.

mark_as_read / mark_all_as_read adjust local state first and then write. Their
own UPDATE events come back through the broker; those echoes are recognised
and not counted a second time. The write can also overtake the INSERT of the
same row still waiting in the queue: that INSERT lands as read and adds
nothing, so the counter still ends at inserts minus reads. A failed write
restores the local state.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import NotFoundException
from app.services import notification_service
from app.services.notification_broker import NotificationBroker, NotificationEvent, Subscription

logger = logging.getLogger(__name__)


class NotificationChannel:
    def __init__(
        self,
        user_id: str,
        broker: NotificationBroker,
        db: Session,
        recent_limit: Optional[int] = None,
    ):
        self.user_id = str(user_id)
        self.broker = broker
        self.db = db
        self.recent_limit = recent_limit or settings.notification_recent_limit
        self.unread_count = 0
        self.recent: List[dict] = []
        self._subscription: Optional[Subscription] = None
        # ids flipped locally whose UPDATE echo has not arrived yet, mapped to
        # whether a local decrement was taken for them
        self._pending_echo: Dict[str, bool] = {}

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def load(self) -> None:
        """Initial fetch: unread count and the newest notifications."""
        rows = notification_service.list_recent(self.db, self.user_id, self.recent_limit)
        self.recent = [notification_service.to_payload(n) for n in rows]
        self.unread_count = notification_service.count_unread(self.db, self.user_id)

    async def start(self) -> "NotificationChannel":
        if self.active:
            return self
        self.load()
        self._subscription = self.broker.subscribe(self.user_id).start()
        logger.info(f"Notification channel started: user={self.user_id}, unread={self.unread_count}")
        return self

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.stop()
            self._subscription = None

    async def __aenter__(self) -> "NotificationChannel":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def events(self):
        """Apply and yield each event until the channel is stopped."""
        subscription = self._subscription
        if subscription is None:
            return
        async for event in subscription:
            self.apply(event)
            yield event

    async def drain(self) -> int:
        """Apply every event already queued without waiting for more."""
        subscription = self._subscription
        applied = 0
        while subscription is not None and subscription.pending():
            event = await subscription.get()
            if event is None:
                break
            self.apply(event)
            applied += 1
        return applied

    # ── State machine ─────────────────────────────────────────────────────────

    def apply(self, event: NotificationEvent) -> bool:
        """Fold one event into local state. Returns True if anything changed."""
        if event.user_id != self.user_id:
            return False

        if event.event_type == "INSERT":
            row = event.new
            notification_id = str(row.get("id"))
            if notification_id in self._pending_echo:
                # Already marked read here before its INSERT was applied
                row = {**row, "read": True}
                if self._pending_echo[notification_id]:
                    # That decrement was taken for a row never counted; give it back
                    self.unread_count += 1
                    self._pending_echo[notification_id] = False
            self.recent.insert(0, row)
            del self.recent[self.recent_limit:]
            if not row.get("read", False):
                self.unread_count += 1
            return True

        if event.event_type == "UPDATE":
            notification_id = str(event.new.get("id"))
            self._replace_recent(event.new)
            was_read = bool((event.old or {}).get("read", False))
            now_read = bool(event.new.get("read", False))
            if was_read or not now_read:
                return True
            if notification_id in self._pending_echo:
                del self._pending_echo[notification_id]
                return True
            self.unread_count = max(0, self.unread_count - 1)
            return True

        return False

    def _replace_recent(self, row: dict) -> None:
        for i, item in enumerate(self.recent):
            if str(item.get("id")) == str(row.get("id")):
                self.recent[i] = row
                return

    def _mark_local(self, notification_id: str) -> List[dict]:
        flipped = []
        for item in self.recent:
            if str(item.get("id")) == notification_id and not item.get("read"):
                item["read"] = True
                flipped.append(item)
        return flipped

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def mark_as_read(self, notification_id: str) -> None:
        notification_id = str(notification_id)
        already_read = notification_id in self._pending_echo or any(
            str(item.get("id")) == notification_id and item.get("read") for item in self.recent
        )
        flipped: List[dict] = []
        decremented = not already_read and self.unread_count > 0
        if not already_read:
            flipped = self._mark_local(notification_id)
            self._pending_echo[notification_id] = decremented
        if decremented:
            self.unread_count -= 1

        def revert() -> None:
            if not already_read:
                self._pending_echo.pop(notification_id, None)
            for item in flipped:
                item["read"] = False
            if decremented:
                self.unread_count += 1

        try:
            event = notification_service.mark_as_read(self.db, self.user_id, notification_id)
        except (NotFoundException, SQLAlchemyError):
            revert()
            raise
        if event is None:
            # Already read server-side: it was never in the count, nothing will echo back
            revert()
            return
        await self.broker.publish(event)

    async def mark_all_as_read(self) -> None:
        saved_count = self.unread_count
        flipped = [item for item in self.recent if not item.get("read")]
        for item in flipped:
            item["read"] = True
        self.unread_count = 0

        try:
            events = notification_service.mark_all_as_read(self.db, self.user_id)
        except SQLAlchemyError:
            for item in flipped:
                item["read"] = False
            self.unread_count = saved_count
            raise

        # The zeroed counter already covers every earlier local decrement
        for notification_id in self._pending_echo:
            self._pending_echo[notification_id] = False
        for event in events:
            self._pending_echo[str(event.new["id"])] = False
        await self.broker.publish_all(events)
