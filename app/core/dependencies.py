"""
FastAPI dependencies used across routers.
Only auth and DB dependencies go here.
Business logic belongs in services/.
"""
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jwt.exceptions import InvalidTokenError

from app.database import get_db, as_uuid
from app.core.security import decode_access_token
from app.core.exceptions import CredentialsException, ForbiddenException
from app.models.portal_user import PortalUser

# Tokens come from /auth/verify-login; the password form is never used directly
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/verify-login")


def user_from_token(db: Session, token: str) -> PortalUser:
    """
    Resolve an access token to its PortalUser or raise CredentialsException.
    Shared by the HTTP dependency and the WebSocket handshake.
    """
    try:
        payload = decode_access_token(token)
        user_id = payload.get("sub")
        if user_id is None:
            raise CredentialsException()
        user_uuid = as_uuid(user_id)
    except (InvalidTokenError, ValueError):
        raise CredentialsException()

    user = db.query(PortalUser).filter(PortalUser.id == user_uuid).first()
    if user is None:
        raise CredentialsException()
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> PortalUser:
    """
    Validates the JWT access token and returns the authenticated PortalUser.
    The role is re-read from the database, not trusted from the token.
    """
    return user_from_token(db, token)


def get_current_admin(
    current_user: PortalUser = Depends(get_current_user),
) -> PortalUser:
    """Requires role administrator."""
    if current_user.user_type != "administrator":
        raise ForbiddenException("Admin access required")
    return current_user
