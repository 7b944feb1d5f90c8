"""Time entry APIs."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from servicedesk.core.deps import get_current_session, get_db, require_csrf_header
from servicedesk.schemas.auth import UserSession
from servicedesk.schemas.common import ApiResponse, MessageResponse
from servicedesk.schemas.time_entry import TimeEntryCreate, TimeEntryRead, TimeEntryUpdate
from servicedesk.services import time_entry_service

router = APIRouter(prefix="/entries", tags=["Time Entries"])


@router.get("", response_model=ApiResponse[list[TimeEntryRead]])
def list_entries(
    project_id: UUID | None = Query(None, alias="projectId"),
    ticket_id: UUID | None = Query(None, alias="ticketId"),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    entries = time_entry_service.list_entries(
        db, session.org_id, session.user_id, project_id=project_id, ticket_id=ticket_id
    )
    return ApiResponse(data=[TimeEntryRead.model_validate(e) for e in entries])


@router.post(
    "",
    response_model=ApiResponse[TimeEntryRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_entry(
    data: TimeEntryCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Create an entry; a linked ticket gets a time_logged activity."""
    entry = time_entry_service.create_entry(db, session.org_id, session.user_id, data)
    return ApiResponse(data=TimeEntryRead.model_validate(entry))


@router.put(
    "/{entry_id}",
    response_model=ApiResponse[TimeEntryRead],
    dependencies=[Depends(require_csrf_header)],
)
def update_entry(
    entry_id: UUID,
    data: TimeEntryUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    entry = time_entry_service.update_entry(db, session.org_id, session.user_id, entry_id, data)
    return ApiResponse(data=TimeEntryRead.model_validate(entry))


@router.delete(
    "/{entry_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf_header)],
)
def delete_entry(
    entry_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    time_entry_service.delete_entry(db, session.org_id, session.user_id, entry_id)
    return MessageResponse(message="Time entry deleted")
