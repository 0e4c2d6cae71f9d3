# models/__init__.py
# Import all models here so that:
# 1. Alembic's env.py can import this single module and detect all tables.
# 2. SQLAlchemy relationship() calls resolve correctly (all classes in same metadata).

from app.models.portal_user import PortalUser
from app.models.otp import OTPRecord
from app.models.notification import Notification

__all__ = [
    "PortalUser",
    "OTPRecord",
    "Notification",
]
