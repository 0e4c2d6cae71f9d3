"""
Security utilities: password/OTP hashing and JWT access tokens.
Uses PyJWT (not python-jose).
"""
import jwt
from jwt.exceptions import InvalidTokenError
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from app.config import settings

# ── Hashing ───────────────────────────────────────────────────────────────────
# Same context hashes passwords and OTP codes. Rounds are configurable so the
# test suite can run with a cheap cost factor.
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ── JWT ───────────────────────────────────────────────────────────────────────

def create_access_token(user_id: str, role: str) -> str:
    """
    Access token issued once OTP verification succeeds.
    'sub' is the portal user id; 'role' drives admin-only routes.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict:
    """
    Decodes and validates an access token.
    Raises jwt.exceptions.InvalidTokenError (or subclass) on any failure.
    """
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    if payload.get("type") != "access":
        raise InvalidTokenError("Not an access token")
    return payload
