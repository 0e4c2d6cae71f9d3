"""
Session/identity context: who is signed in, plus that identity's live
notification channel.

A SessionContext is an explicit object handed to whoever needs it (the
WebSocket endpoint creates one per connection); nothing here is a process-wide
global. The identity is mirrored into a SessionStore under a single key.

Invariant: at most one live notification subscription per identity. set_user()
always tears the previous channel down before starting the next one.
"""
import json
import logging
import os
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.schemas.auth import SessionIdentity
from app.services.notification_broker import NotificationBroker, broker as default_broker
from app.services.notification_channel import NotificationChannel

logger = logging.getLogger(__name__)

SESSION_KEY = "pmajay_user"


class MemorySessionStore:
    def __init__(self):
        self._data: dict = {}

    def load(self) -> Optional[SessionIdentity]:
        raw = self._data.get(SESSION_KEY)
        return SessionIdentity.model_validate_json(raw) if raw else None

    def save(self, identity: SessionIdentity) -> None:
        self._data[SESSION_KEY] = identity.model_dump_json()

    def clear(self) -> None:
        self._data.pop(SESSION_KEY, None)


class FileSessionStore:
    """
    Durable store: a JSON object on disk holding the identity under
    SESSION_KEY. A missing or unreadable file means "nobody signed in".
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or settings.session_store_path

    def _read(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Ignoring unreadable session store {self.path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh)
        os.replace(tmp, self.path)

    def load(self) -> Optional[SessionIdentity]:
        raw = self._read().get(SESSION_KEY)
        if not raw:
            return None
        return SessionIdentity.model_validate(raw)

    def save(self, identity: SessionIdentity) -> None:
        data = self._read()
        data[SESSION_KEY] = identity.model_dump()
        self._write(data)

    def clear(self) -> None:
        data = self._read()
        if data.pop(SESSION_KEY, None) is not None:
            self._write(data)


class SessionContext:
    def __init__(
        self,
        db: Session,
        store=None,
        broker: Optional[NotificationBroker] = None,
    ):
        self.db = db
        self.store = store if store is not None else MemorySessionStore()
        self.broker = broker or default_broker
        self.user: Optional[SessionIdentity] = None
        self.channel: Optional[NotificationChannel] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def unread_count(self) -> int:
        return self.channel.unread_count if self.channel else 0

    async def restore(self) -> Optional[SessionIdentity]:
        """Bring back a persisted identity, if any, and resubscribe for it."""
        identity = self.store.load()
        if identity is not None:
            await self.set_user(identity)
        return identity

    async def set_user(self, identity: Optional[SessionIdentity]) -> None:
        await self._teardown()
        self.user = identity
        if identity is None:
            self.store.clear()
            return
        self.store.save(identity)
        self.channel = NotificationChannel(identity.id, self.broker, self.db)
        await self.channel.start()
        logger.info(f"Session identity set: user={identity.id}, role={identity.role}")

    async def logout(self) -> None:
        await self.set_user(None)

    async def _teardown(self) -> None:
        if self.channel is not None:
            await self.channel.stop()
            self.channel = None

    async def __aenter__(self) -> "SessionContext":
        await self.restore()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # Stop listening but keep the persisted identity for the next restore
        await self._teardown()
