"""Staff inbox: ticket event notifications and their read state."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from servicedesk.db.enums import NotificationType
from servicedesk.db.models import Notification, Ticket
from servicedesk.schemas.auth import UserSession


# Repeats of the same ticket event for the same user inside this window are dropped.
REPEAT_WINDOW = timedelta(hours=1)

TICKET_ENTITY = "ticket"


def _recently_notified(db: Session, ticket: Ticket, event_key: str, user_ids: list[UUID]) -> set[UUID]:
    since = datetime.now(timezone.utc) - REPEAT_WINDOW
    rows = (
        db.query(Notification.user_id)
        .filter(
            Notification.organization_id == ticket.organization_id,
            Notification.entity_type == TICKET_ENTITY,
            Notification.entity_id == ticket.id,
            Notification.dedupe_key == event_key,
            Notification.user_id.in_(user_ids),
            Notification.created_at > since,
        )
        .all()
    )
    return {row.user_id for row in rows}


def notify_ticket_event(
    db: Session,
    ticket: Ticket,
    user_ids: list[UUID],
    type: NotificationType,
    title: str,
    event_key: str,
    body: str | None = None,
) -> list[Notification]:
    """
    Notify staff users about one event on a ticket.

    ``event_key`` identifies the event within the ticket (for example
    ``status:in_progress``). Users already notified of the same event on the
    same ticket within REPEAT_WINDOW are skipped. Returns the notifications
    that were created, committed in a single transaction.
    """
    recipients = list(dict.fromkeys(user_ids))
    if not recipients:
        return []
    skip = _recently_notified(db, ticket, event_key, recipients)

    created = [
        Notification(
            organization_id=ticket.organization_id,
            user_id=user_id,
            type=type.value,
            title=title,
            body=body,
            entity_type=TICKET_ENTITY,
            entity_id=ticket.id,
            dedupe_key=event_key,
        )
        for user_id in recipients
        if user_id not in skip
    ]
    if created:
        db.add_all(created)
        db.commit()
    return created


def list_inbox(
    db: Session,
    session: UserSession,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[Notification]:
    query = db.query(Notification).filter(
        Notification.user_id == session.user_id,
        Notification.organization_id == session.org_id,
    )
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    return query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()


def mark_read(db: Session, session: UserSession, notification_id: UUID) -> Notification:
    """Mark one of the caller's notifications read. Someone else's is a 404."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == session.user_id,
        Notification.organization_id == session.org_id,
    ).first()
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")

    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return notification
