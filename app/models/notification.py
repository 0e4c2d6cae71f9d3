import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, String, Text, TIMESTAMP, ForeignKey, JSON, Uuid, Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

NOTIFICATION_TYPES = ("info", "success", "warning", "error")
NOTIFICATION_PRIORITIES = ("low", "normal", "high", "urgent")
NOTIFICATION_CATEGORIES = ("general", "proposal", "grievance", "registration", "course", "grant", "system")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    """
    Per-user notification. Inserted by server-side events or admins; the
    recipient only ever flips `read`. Never deleted through the API.
    """
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("portal_users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    read = Column(Boolean, default=False, server_default="0", nullable=False, index=True)
    type = Column(SAEnum(*NOTIFICATION_TYPES, name="notification_type"), nullable=False, default="info")
    priority = Column(SAEnum(*NOTIFICATION_PRIORITIES, name="notification_priority"), nullable=False, default="normal")
    category = Column(SAEnum(*NOTIFICATION_CATEGORIES, name="notification_category"), nullable=False, default="general")
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        index=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────────
    user = relationship("PortalUser", back_populates="notifications")
