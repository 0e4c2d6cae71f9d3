"""
Admin router: administrator-only operations.

Every endpoint requires the get_current_admin dependency (user_type=administrator).

Endpoints:
  GET  /admin/users          → all portal users, newest first
  POST /admin/notifications  → send a notification to one user
  POST /admin/otp/cleanup    → delete expired OTP rows
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import get_current_admin
from app.models.portal_user import PortalUser
from app.schemas.auth import MessageResponse
from app.schemas.notification import NotificationOut, SendNotificationRequest
from app.schemas.user import PortalUserOut
from app.services import auth_service, notification_service, otp_service
from app.services.notification_broker import broker

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/users", response_model=List[PortalUserOut])
def list_users(
    db: Session = Depends(get_db),
    admin: PortalUser = Depends(get_current_admin),
):
    return auth_service.list_portal_users(db)


@router.post("/notifications", response_model=NotificationOut, status_code=201)
async def send_notification(
    body: SendNotificationRequest,
    db: Session = Depends(get_db),
    admin: PortalUser = Depends(get_current_admin),
):
    event = notification_service.send_notification(
        db,
        user_id=body.user_id,
        title=body.title,
        body=body.body,
        type=body.type,
        priority=body.priority,
        category=body.category,
        link=body.link,
        metadata=body.metadata,
    )
    await broker.publish(event)
    logger.info(f"Admin notification sent: admin={admin.id}, user={body.user_id}")
    return event.new


@router.post("/otp/cleanup", response_model=MessageResponse)
def cleanup_otps(
    db: Session = Depends(get_db),
    admin: PortalUser = Depends(get_current_admin),
):
    removed = otp_service.cleanup_expired_otps(db)
    return {"message": f"Removed {removed} expired OTP(s)."}
