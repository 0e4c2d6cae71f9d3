"""
OTP service: generation, storage (hashed), lookup and consumption.

  1. Raw OTP is never stored, only its bcrypt hash.
  2. OTPs expire OTP_EXPIRY_MINUTES after issue (10 by default).
  3. secrets.randbelow() is cryptographically secure (unlike random.randint).
  4. Issuing a new OTP leaves earlier unused ones valid unless
     OTP_INVALIDATE_ON_RESEND is set; they compete until used or expired.
  5. Nothing here commits a consumed OTP on its own: the caller commits it
     together with the account write it unlocks.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.core.security import pwd_context
from app.models.otp import OTPRecord

logger = logging.getLogger(__name__)

OTP_MIN = 100000
OTP_SPACE = 900000  # 100000–999999 inclusive


def utcnow() -> datetime:
    """Single clock for issue and verification; tests monkeypatch this."""
    return datetime.now(timezone.utc)


def generate_otp() -> str:
    """
    secrets.randbelow(900000) gives 0–899999, +100000 gives 100000–999999.
    Always 6 digits, never a leading zero.
    """
    return str(secrets.randbelow(OTP_SPACE) + OTP_MIN)


def invalidate_pending(db: Session, email: str, purpose: str) -> int:
    """Mark every unused OTP for email+purpose as used. Not committed."""
    return (
        db.query(OTPRecord)
        .filter(
            OTPRecord.email == email,
            OTPRecord.otp_type == purpose,
            OTPRecord.is_used == False,  # noqa: E712
        )
        .update({"is_used": True}, synchronize_session=False)
    )


def create_otp_record(
    db: Session,
    email: str,
    purpose: str,
    user_data: Optional[dict] = None,
    invalidate_previous: bool = False,
) -> str:
    """
    Store a new OTP and return the raw code for delivery.
    Commits; a failed commit propagates as SQLAlchemyError.
    """
    if invalidate_previous:
        invalidate_pending(db, email, purpose)

    raw_otp = generate_otp()
    now = utcnow()
    record = OTPRecord(
        email=email,
        otp_hash=pwd_context.hash(raw_otp),
        otp_type=purpose,
        user_data=user_data or {},
        expires_at=now + timedelta(minutes=settings.otp_expiry_minutes),
        created_at=now,
    )
    db.add(record)
    db.commit()

    if settings.log_otp_codes:
        logger.info(f"OTP issued: email={email}, purpose={purpose}, code={raw_otp}")
    else:
        logger.info(f"OTP issued: email={email}, purpose={purpose}")
    return raw_otp


def find_valid_otp(db: Session, email: str, otp: str, purpose: str) -> Optional[OTPRecord]:
    """
    Newest unused, unexpired record for email+purpose whose hash matches `otp`.
    Candidates are scanned newest-first because several codes may be live at once.
    """
    candidates = (
        db.query(OTPRecord)
        .filter(
            OTPRecord.email == email,
            OTPRecord.otp_type == purpose,
            OTPRecord.is_used == False,  # noqa: E712
            OTPRecord.expires_at > utcnow(),
        )
        .order_by(OTPRecord.created_at.desc())
        .all()
    )
    for record in candidates:
        if pwd_context.verify(otp, record.otp_hash):
            return record
    return None


def latest_pending_payload(db: Session, email: str, purpose: str) -> dict:
    """
    Payload of the newest unused record for email+purpose, expired or not.
    Used by resend so a re-issued registration code keeps the signup data.
    """
    record = (
        db.query(OTPRecord)
        .filter(
            OTPRecord.email == email,
            OTPRecord.otp_type == purpose,
            OTPRecord.is_used == False,  # noqa: E712
        )
        .order_by(OTPRecord.created_at.desc())
        .first()
    )
    return dict(record.user_data or {}) if record else {}


def consume(record: OTPRecord) -> None:
    """Flag the record as used. The caller commits."""
    record.is_used = True


def cleanup_expired_otps(db: Session) -> int:
    """Delete OTP rows whose expiry has passed. Returns the number removed."""
    removed = (
        db.query(OTPRecord)
        .filter(OTPRecord.expires_at < utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Expired OTPs cleaned up: removed={removed}")
    return removed
