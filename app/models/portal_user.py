import uuid
from sqlalchemy import Boolean, Column, String, TIMESTAMP, Uuid, Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

USER_TYPES = ("administrator", "agency", "citizen")


class PortalUser(Base):
    """
    Credential record. Created only after a registration OTP is verified,
    so every row is born verified. Never deleted in the normal flow.
    """
    __tablename__ = "portal_users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)  # bcrypt hash
    user_type = Column(SAEnum(*USER_TYPES, name="portal_user_type"), nullable=False, index=True)
    is_verified = Column(Boolean, default=False, server_default="0", nullable=False)

    last_login = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    # ── Relationships ──────────────────────────────────────────────────────────
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
