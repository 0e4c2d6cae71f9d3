"""
Notifications router: the signed-in user's notification list and read state.

Endpoints:
  GET /notifications               → recent notifications + unread count
  GET /notifications/unread-count  → unread count only
  PUT /notifications/read-all      → mark everything read
  PUT /notifications/{id}/read     → mark one read

Every mutation is also published to the broker so open WebSocket channels for
the same user adjust their counters.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import get_current_user
from app.models.portal_user import PortalUser
from app.schemas.notification import (
    NotificationListResponse, NotificationOut, UnreadCountResponse, MarkReadResponse,
)
from app.services import notification_service
from app.services.notification_broker import broker

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    current_user: PortalUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    limit: int = Query(10, ge=1, le=100),
):
    """Newest first."""
    rows = notification_service.list_recent(db, str(current_user.id), limit)
    return NotificationListResponse(
        unread_count=notification_service.count_unread(db, str(current_user.id)),
        notifications=[NotificationOut.model_validate(n) for n in rows],
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    current_user: PortalUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return UnreadCountResponse(unread_count=notification_service.count_unread(db, str(current_user.id)))


@router.put("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    current_user: PortalUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    events = notification_service.mark_all_as_read(db, str(current_user.id))
    await broker.publish_all(events)
    return MarkReadResponse(updated=len(events), unread_count=0)


@router.put("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_read(
    notification_id: str,
    current_user: PortalUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = notification_service.mark_as_read(db, str(current_user.id), notification_id)
    if event is not None:
        await broker.publish(event)
    return MarkReadResponse(
        updated=1 if event else 0,
        unread_count=notification_service.count_unread(db, str(current_user.id)),
    )
