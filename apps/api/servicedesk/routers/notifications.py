"""In-app notification APIs for the current staff user."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from servicedesk.core.deps import get_current_session, get_db, require_csrf_header
from servicedesk.schemas.auth import UserSession
from servicedesk.schemas.common import ApiResponse
from servicedesk.schemas.notification import NotificationRead
from servicedesk.services import notification_service

router = APIRouter(prefix="/me", tags=["Notifications"])


@router.get("/notifications", response_model=ApiResponse[list[NotificationRead]])
def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    notifications = notification_service.list_inbox(
        db,
        session,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return ApiResponse(data=[NotificationRead.model_validate(n) for n in notifications])


@router.post(
    "/notifications/{notification_id}/read",
    response_model=ApiResponse[NotificationRead],
    dependencies=[Depends(require_csrf_header)],
)
def mark_notification_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    notification = notification_service.mark_read(db, session, notification_id)
    return ApiResponse(data=NotificationRead.model_validate(notification))
