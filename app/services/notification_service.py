"""
Notification service: persistence for the notifications table.

Mutations return the NotificationEvent(s) they produced; the async caller
publishes them on the broker. That keeps these functions synchronous like the
rest of the DB layer.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundException
from app.database import as_uuid
from app.models.notification import Notification
from app.models.portal_user import PortalUser
from app.schemas.notification import NotificationOut
from app.services.notification_broker import NotificationEvent

logger = logging.getLogger(__name__)


def _uuid_or_404(value, resource: str):
    try:
        return as_uuid(value)
    except ValueError:
        raise NotFoundException(resource)


def to_payload(notification: Notification) -> dict:
    return NotificationOut.model_validate(notification).model_dump(mode="json")


def list_recent(db: Session, user_id: str, limit: int = 10) -> List[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == as_uuid(user_id))
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )


def count_unread(db: Session, user_id: str) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == as_uuid(user_id), Notification.read == False)  # noqa: E712
        .count()
    )


def send_notification(
    db: Session,
    user_id: str,
    title: str,
    body: str,
    type: str = "info",
    priority: str = "normal",
    category: str = "general",
    link: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> NotificationEvent:
    """Insert an unread notification and return its INSERT event."""
    user_id = _uuid_or_404(user_id, "User")
    if db.query(PortalUser.id).filter(PortalUser.id == user_id).first() is None:
        raise NotFoundException("User")

    notification = Notification(
        user_id=user_id,
        title=title,
        body=body,
        type=type,
        priority=priority,
        category=category,
        link=link,
        read=False,
        extra=metadata or {},
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    logger.info(f"Notification created: id={notification.id}, user={user_id}, category={category}")
    return NotificationEvent("INSERT", str(notification.user_id), to_payload(notification))


def mark_as_read(db: Session, user_id: str, notification_id: str) -> Optional[NotificationEvent]:
    """
    Flip one notification to read. Returns the UPDATE event, or None if it was
    already read (nothing changed, nothing to publish).
    """
    notification = (
        db.query(Notification)
        .filter(
            Notification.id == _uuid_or_404(notification_id, "Notification"),
            Notification.user_id == as_uuid(user_id),
        )
        .first()
    )
    if not notification:
        raise NotFoundException("Notification")
    if notification.read:
        return None

    old = to_payload(notification)
    notification.read = True
    db.commit()
    db.refresh(notification)
    return NotificationEvent("UPDATE", str(notification.user_id), to_payload(notification), old)


def mark_all_as_read(db: Session, user_id: str) -> List[NotificationEvent]:
    """Flip every unread notification for the user. One UPDATE event per row."""
    unread = (
        db.query(Notification)
        .filter(Notification.user_id == as_uuid(user_id), Notification.read == False)  # noqa: E712
        .all()
    )
    olds = [to_payload(n) for n in unread]
    for n in unread:
        n.read = True
    db.commit()

    events = []
    for n, old in zip(unread, olds):
        db.refresh(n)
        events.append(NotificationEvent("UPDATE", str(n.user_id), to_payload(n), old))
    return events


# ── Status-change helpers ─────────────────────────────────────────────────────
# Fixed copy per status; unknown statuses fall back to a generic message.

def notify_proposal_status_change(db: Session, user_id: str, proposal_title: str,
                                  new_status: str, link: Optional[str] = None) -> NotificationEvent:
    messages = {
        "approved": ("Proposal Approved", f'Your proposal "{proposal_title}" has been approved!', "success", "high"),
        "rejected": ("Proposal Rejected",
                     f'Your proposal "{proposal_title}" has been rejected. Please check the review notes.',
                     "warning", "high"),
        "under_review": ("Proposal Under Review", f'Your proposal "{proposal_title}" is now under review.',
                         "info", "normal"),
        "pending": ("Proposal Received",
                    f'Your proposal "{proposal_title}" has been received and is pending review.', "info", "normal"),
    }
    title, body, type_, priority = messages.get(new_status, (
        "Proposal Status Updated",
        f'Your proposal "{proposal_title}" status has been updated to {new_status}.',
        "info", "normal",
    ))
    return send_notification(db, user_id, title, body, type=type_, priority=priority,
                             category="proposal", link=link)


def notify_grievance_status_change(db: Session, user_id: str, grievance_ref: str,
                                   new_status: str, link: Optional[str] = None) -> NotificationEvent:
    messages = {
        "resolved": ("Grievance Resolved", f"Your grievance {grievance_ref} has been resolved.", "success", "high"),
        "in_progress": ("Grievance In Progress", f"Your grievance {grievance_ref} is being processed.",
                        "info", "normal"),
        "pending": ("Grievance Received", f"Your grievance {grievance_ref} has been received.", "info", "normal"),
    }
    title, body, type_, priority = messages.get(new_status, (
        "Grievance Status Updated",
        f"Your grievance {grievance_ref} status has been updated to {new_status}.",
        "info", "normal",
    ))
    return send_notification(db, user_id, title, body, type=type_, priority=priority,
                             category="grievance", link=link)


def notify_course_registration_status_change(db: Session, user_id: str, course_name: str,
                                             new_status: str, link: Optional[str] = None) -> NotificationEvent:
    messages = {
        "approved": ("Course Registration Approved",
                     f'Your registration for "{course_name}" has been approved!', "success", "high"),
        "rejected": ("Course Registration Rejected",
                     f'Your registration for "{course_name}" has been rejected. Please check the comments.',
                     "warning", "high"),
        "pending": ("Course Registration Received",
                    f'Your registration for "{course_name}" has been received and is pending review.',
                    "info", "normal"),
    }
    title, body, type_, priority = messages.get(new_status, (
        "Registration Status Updated",
        f'Your registration for "{course_name}" status has been updated to {new_status}.',
        "info", "normal",
    ))
    return send_notification(db, user_id, title, body, type=type_, priority=priority,
                             category="registration", link=link)


def notify_new_proposal(db: Session, admin_user_ids: List[str], proposal_title: str,
                        submitter_name: str, link: Optional[str] = None) -> List[NotificationEvent]:
    """Fan a new-proposal alert out to each administrator."""
    return [
        send_notification(
            db, admin_id,
            "New Proposal Submitted",
            f'{submitter_name} has submitted a new proposal: "{proposal_title}"',
            type="info", priority="normal", category="proposal", link=link,
        )
        for admin_id in admin_user_ids
    ]


def notify_new_grievance(db: Session, admin_user_ids: List[str], grievance_ref: str,
                         submitter_name: str, link: Optional[str] = None) -> List[NotificationEvent]:
    return [
        send_notification(
            db, admin_id,
            "New Grievance Submitted",
            f"{submitter_name} has submitted a new grievance: {grievance_ref}",
            type="info", priority="high", category="grievance", link=link,
        )
        for admin_id in admin_user_ids
    ]


def notify_system_maintenance(db: Session, user_ids: List[str], maintenance_date: str,
                              duration: str) -> List[NotificationEvent]:
    return [
        send_notification(
            db, user_id,
            "Scheduled System Maintenance",
            f"The system will be under maintenance on {maintenance_date} for approximately {duration}. "
            f"Please plan accordingly.",
            type="warning", priority="high", category="system",
        )
        for user_id in user_ids
    ]
