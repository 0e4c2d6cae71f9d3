import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, String, TIMESTAMP, JSON, Uuid, Enum as SAEnum
from sqlalchemy.sql import func
from app.database import Base

OTP_TYPES = ("registration", "login")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPRecord(Base):
    """
    One issued OTP. Rows are never edited except to flip is_used, and are
    otherwise left to expire (cleanup_expired_otps removes them).

    - Only the bcrypt hash of the code is stored.
    - user_data carries the pending registration (name, email, password hash,
      user_type) or, for logins, the existing user's id and type.
    - Several unused rows may coexist for one email; verification picks the
      newest unused, unexpired row whose hash matches.
    """
    __tablename__ = "otp_store"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    email = Column(String(255), nullable=False, index=True)
    otp_hash = Column(String, nullable=False)
    otp_type = Column(SAEnum(*OTP_TYPES, name="otp_type"), nullable=False)
    user_data = Column(JSON, nullable=False, default=dict)
    is_used = Column(Boolean, default=False, server_default="0", nullable=False)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    # Python-side default keeps microsecond precision for newest-first ordering
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
