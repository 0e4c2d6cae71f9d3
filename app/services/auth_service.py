"""
Auth service: the OTP-gated registration and login handshake.
Routers only handle HTTP; the logic lives here.

Registration:  initiate_registration → (email) → verify_registration_otp
Login:         initiate_login        → (email) → verify_login_otp
Either step 1 can be repeated with resend_otp.

Mail delivery is best-effort: a DeliveryFailure is logged and reported back as
delivered=False, but the issued OTP stays valid.
"""
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, NamedTuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import (
    CredentialsException,
    DeliveryFailure,
    DuplicateAccountException,
    InvalidOTPException,
    NotFoundException,
    PersistenceException,
)
from app.core.security import create_access_token, hash_password, pwd_context, verify_password
from app.models.portal_user import PortalUser
from app.schemas.auth import OTPAcknowledgment, SessionIdentity
from app.services import otp_service

logger = logging.getLogger(__name__)

Mailer = Callable[[str, str, str, str], Awaitable[None]]

REDIRECT_BY_ROLE = {
    "administrator": "/admin-dashboard",
    "agency": "/agency-dashboard",
    "citizen": "/citizen-dashboard",
}

# Verified against when the account doesn't exist so "unknown email" and
# "wrong password" take the same time.
_DUMMY_HASH: str = pwd_context.hash("__dummy_timing_prevention__")


class AuthResult(NamedTuple):
    identity: SessionIdentity
    access_token: str
    redirect_to: str


def redirect_for(role: str) -> str:
    return REDIRECT_BY_ROLE.get(role, "/")


async def _deliver(mailer: Mailer, email: str, otp: str, purpose: str, name: str) -> bool:
    try:
        await mailer(email, otp, purpose, name)
    except DeliveryFailure as exc:
        logger.error(f"OTP delivery failed, code remains valid: email={email}, purpose={purpose}, reason={exc.reason}")
        return False
    return True


def _issue(db: Session, email: str, purpose: str, user_data: dict, failure_message: str,
           invalidate_previous: bool = False) -> str:
    try:
        return otp_service.create_otp_record(
            db, email=email, purpose=purpose, user_data=user_data,
            invalidate_previous=invalidate_previous,
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Could not store OTP: email={email}, purpose={purpose}")
        raise PersistenceException(failure_message)


def _issue_token(user: PortalUser) -> AuthResult:
    identity = SessionIdentity.from_user(user)
    token = create_access_token(identity.id, identity.role)
    return AuthResult(identity, token, redirect_for(identity.role))


def email_exists(db: Session, email: str) -> bool:
    return db.query(PortalUser.id).filter(PortalUser.email == email).first() is not None


# ── Registration ──────────────────────────────────────────────────────────────

async def initiate_registration(
    db: Session,
    name: str,
    email: str,
    password: str,
    role: str,
    mailer: Mailer,
) -> OTPAcknowledgment:
    """
    Step 1 of registration. Nothing is written to portal_users yet; the pending
    account rides along in the OTP record's payload with the password hashed.
    """
    email = email.strip().lower()
    if email_exists(db, email):
        raise DuplicateAccountException()

    payload = {
        "name": name,
        "email": email,
        "password": hash_password(password),
        "user_type": role,
    }
    otp = _issue(db, email, "registration", payload,
                 "Failed to initiate registration. Please try again.")
    delivered = await _deliver(mailer, email, otp, "registration", name)

    return OTPAcknowledgment(
        message="OTP sent to your email. Please check and verify.",
        email=email,
        delivered=delivered,
    )


def verify_registration_otp(db: Session, email: str, otp: str) -> AuthResult:
    """
    Step 2 of registration. Creates the verified credential row from the stored
    payload and consumes the OTP in the same commit.
    Password strength and email format are not re-checked here.
    """
    email = email.strip().lower()
    record = otp_service.find_valid_otp(db, email, otp, "registration")
    if record is None:
        raise InvalidOTPException()

    data = record.user_data or {}
    if not all(data.get(k) for k in ("name", "password", "user_type")):
        # A resend with no signup on file leaves an empty payload behind
        raise InvalidOTPException()

    user = PortalUser(
        name=data["name"],
        email=data.get("email", email),
        password=data["password"],
        user_type=data["user_type"],
        is_verified=True,
    )
    db.add(user)
    otp_service.consume(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateAccountException()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Registration verification failed: email={email}")
        raise PersistenceException("Verification failed. Please try again.")
    db.refresh(user)

    logger.info(f"Portal user registered: id={user.id}, role={user.user_type}")
    return _issue_token(user)


# ── Login ─────────────────────────────────────────────────────────────────────

async def initiate_login(
    db: Session,
    email: str,
    password: str,
    role: str,
    mailer: Mailer,
) -> OTPAcknowledgment:
    """
    Step 1 of login. Wrong email, wrong role and wrong password all produce the
    same CredentialsException, and none of them issue an OTP.
    """
    email = email.strip().lower()
    user = (
        db.query(PortalUser)
        .filter(PortalUser.email == email, PortalUser.user_type == role)
        .first()
    )
    password_ok = verify_password(password, user.password if user else _DUMMY_HASH)
    if not user or not password_ok:
        raise CredentialsException("Invalid email, password or user type")

    otp = _issue(db, user.email, "login",
                 {"user_id": str(user.id), "user_type": user.user_type},
                 "Login failed. Please try again.")
    delivered = await _deliver(mailer, user.email, otp, "login", user.name)

    return OTPAcknowledgment(
        message="OTP sent to your email. Please verify to login.",
        email=user.email,
        delivered=delivered,
    )


def verify_login_otp(db: Session, email: str, otp: str) -> AuthResult:
    """Step 2 of login. Stamps last_login and consumes the OTP in one commit."""
    email = email.strip().lower()
    record = otp_service.find_valid_otp(db, email, otp, "login")
    if record is None:
        raise InvalidOTPException()

    user = db.query(PortalUser).filter(PortalUser.email == email).first()
    if not user:
        raise NotFoundException("User")

    user.last_login = datetime.now(timezone.utc)
    otp_service.consume(record)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Login verification failed: email={email}")
        raise PersistenceException("Login failed. Please try again.")
    db.refresh(user)

    logger.info(f"Portal user logged in: id={user.id}, role={user.user_type}")
    return _issue_token(user)


# ── Resend ────────────────────────────────────────────────────────────────────

async def resend_otp(db: Session, email: str, purpose: str, mailer: Mailer) -> OTPAcknowledgment:
    """
    Issue a fresh code, carrying forward the newest pending payload so a resent
    registration code still knows the signup details.
    """
    email = email.strip().lower()
    payload = otp_service.latest_pending_payload(db, email, purpose)

    name = payload.get("name", "")
    if not name and purpose == "login":
        user = db.query(PortalUser).filter(PortalUser.email == email).first()
        name = user.name if user else ""

    otp = _issue(db, email, purpose, payload, "Failed to resend OTP. Please try again.",
                 invalidate_previous=settings.otp_invalidate_on_resend)
    delivered = await _deliver(mailer, email, otp, purpose, name)

    return OTPAcknowledgment(
        message="New OTP sent to your email.",
        email=email,
        delivered=delivered,
    )


# ── Admin ─────────────────────────────────────────────────────────────────────

def list_portal_users(db: Session) -> list[PortalUser]:
    return db.query(PortalUser).order_by(PortalUser.created_at.desc()).all()
