"""Staff ticket APIs: tickets, comments, tags, contacts, activities, attachments and SLA policies."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from servicedesk.core.deps import (
    get_current_session,
    get_db,
    get_notification_dispatcher,
    require_csrf_header,
    require_roles,
)
from servicedesk.db.enums import (
    ROLES_CAN_HARD_DELETE,
    ROLES_CAN_MANAGE_SETTINGS,
    TicketPriority,
    TicketStatus,
)
from servicedesk.db.models import Ticket
from servicedesk.schemas.auth import UserSession
from servicedesk.schemas.common import ApiResponse, MessageResponse
from servicedesk.schemas.contact import ContactCreate, ContactRead
from servicedesk.schemas.sla import SlaPolicyCreate, SlaPolicyRead, SlaPolicyUpdate
from servicedesk.schemas.ticketing import (
    ActivityPage,
    ActivityRead,
    AttachmentRead,
    CommentCreate,
    CommentRead,
    TagCreate,
    TagRead,
    TagUpdate,
    TicketCreate,
    TicketDetail,
    TicketRead,
    TicketStats,
    TicketUpdate,
)
from servicedesk.schemas.time_entry import TimeEntryRead
from servicedesk.services import (
    attachment_service,
    contact_service,
    sla_service,
    tag_service,
    ticket_activity_service,
    ticket_service,
    time_entry_service,
)
from servicedesk.services.notification_dispatcher import NotificationDispatcher
from servicedesk.services.ticket_activity_service import Actor

router = APIRouter(prefix="/tickets", tags=["Tickets"])

_settings_admin = require_roles(list(ROLES_CAN_MANAGE_SETTINGS))
_hard_delete_admin = require_roles(list(ROLES_CAN_HARD_DELETE))


def _uploads(files: list[UploadFile]) -> list[tuple[str, str, object]]:
    return [
        (f.filename or "file", f.content_type or "application/octet-stream", f.file)
        for f in files
    ]


def _ticket_detail(db: Session, ticket: Ticket) -> TicketDetail:
    entries = time_entry_service.list_ticket_entries(db, ticket.organization_id, ticket.id)
    detail = TicketDetail.model_validate(ticket)
    return detail.model_copy(
        update={"time_entries": [TimeEntryRead.model_validate(e) for e in entries]}
    )


# =============================================================================
# Collection routes (declared before /{ticket_id})
# =============================================================================

@router.get("", response_model=ApiResponse[list[TicketRead]])
def list_tickets(
    status: TicketStatus | None = None,
    customer_id: Annotated[UUID | None, Query(alias="customerId")] = None,
    priority: TicketPriority | None = None,
    assigned_to_user_id: Annotated[UUID | None, Query(alias="assignedToUserId")] = None,
    tag_id: Annotated[UUID | None, Query(alias="tagId")] = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """List tenant tickets (filters: status, customerId, priority)."""
    tickets = ticket_service.list_tickets(
        db,
        org_id=session.org_id,
        status=status,
        customer_id=customer_id,
        priority=priority,
        assigned_to_user_id=assigned_to_user_id,
        tag_id=tag_id,
    )
    return ApiResponse(data=[TicketRead.model_validate(t) for t in tickets])


@router.post(
    "",
    response_model=ApiResponse[TicketRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_ticket(
    data: TicketCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    ticket = ticket_service.create_ticket(
        db,
        org_id=session.org_id,
        data=data,
        actor=Actor.user(session.user_id),
        dispatcher=dispatcher,
    )
    return ApiResponse(data=TicketRead.model_validate(ticket))


@router.get("/stats", response_model=ApiResponse[TicketStats])
def ticket_stats(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    stats = ticket_service.get_ticket_stats(db, session.org_id)
    return ApiResponse(data=TicketStats.model_validate(stats))


# =============================================================================
# Tags
# =============================================================================

@router.get("/tags", response_model=ApiResponse[list[TagRead]])
def list_tags(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return ApiResponse(data=[TagRead.model_validate(t) for t in tag_service.list_tags(db, session.org_id)])


@router.post(
    "/tags",
    response_model=ApiResponse[TagRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_tag(
    data: TagCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_settings_admin),
):
    """Create a tag. Duplicate names within the organization are a 400."""
    tag = tag_service.create_tag(db, session.org_id, data)
    return ApiResponse(data=TagRead.model_validate(tag))


@router.put(
    "/tags/{tag_id}",
    response_model=ApiResponse[TagRead],
    dependencies=[Depends(require_csrf_header)],
)
def update_tag(
    tag_id: UUID,
    data: TagUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_settings_admin),
):
    tag = tag_service.update_tag(db, session.org_id, tag_id, data)
    return ApiResponse(data=TagRead.model_validate(tag))


@router.delete(
    "/tags/{tag_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf_header)],
)
def delete_tag(
    tag_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_settings_admin),
):
    tag_service.delete_tag(db, session.org_id, tag_id)
    return MessageResponse(message="Tag deleted")


# =============================================================================
# Customer contacts
# =============================================================================

@router.get("/contacts/{customer_id}", response_model=ApiResponse[list[ContactRead]])
def list_contacts(
    customer_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    contacts = contact_service.list_contacts(db, session.org_id, customer_id)
    return ApiResponse(data=[ContactRead.model_validate(c) for c in contacts])


@router.post(
    "/contacts",
    response_model=ApiResponse[ContactRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_contact(
    data: ContactCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Add a portal contact to a customer. The first contact is made primary."""
    contact = contact_service.create_contact(db, session.org_id, data)
    return ApiResponse(data=ContactRead.model_validate(contact))


# =============================================================================
# SLA policies
# =============================================================================

@router.get("/sla/policies", response_model=ApiResponse[list[SlaPolicyRead]])
def list_sla_policies(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    policies = sla_service.list_policies(db, session.org_id)
    return ApiResponse(data=[SlaPolicyRead.model_validate(p) for p in policies])


@router.post(
    "/sla/policies",
    response_model=ApiResponse[SlaPolicyRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_sla_policy(
    data: SlaPolicyCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_settings_admin),
):
    """Create a policy. A new default replaces the previous default for that priority."""
    policy = sla_service.create_policy(db, session.org_id, data)
    return ApiResponse(data=SlaPolicyRead.model_validate(policy))


@router.put(
    "/sla/policies/{policy_id}",
    response_model=ApiResponse[SlaPolicyRead],
    dependencies=[Depends(require_csrf_header)],
)
def update_sla_policy(
    policy_id: UUID,
    data: SlaPolicyUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_settings_admin),
):
    policy = sla_service.update_policy(db, session.org_id, policy_id, data)
    return ApiResponse(data=SlaPolicyRead.model_validate(policy))


@router.delete(
    "/sla/policies/{policy_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf_header)],
)
def delete_sla_policy(
    policy_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_settings_admin),
):
    sla_service.delete_policy(db, session.org_id, policy_id)
    return MessageResponse(message="SLA policy deleted")


@router.post(
    "/sla/apply/{ticket_id}",
    response_model=ApiResponse[TicketRead],
    dependencies=[Depends(require_csrf_header)],
)
def apply_sla(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Recompute SLA deadlines for an existing ticket."""
    ticket = sla_service.apply_sla_to_ticket(db, session.org_id, ticket_id)
    return ApiResponse(data=TicketRead.model_validate(ticket))


# =============================================================================
# Single ticket
# =============================================================================

@router.get("/{ticket_id}", response_model=ApiResponse[TicketDetail])
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Ticket with all comments (internal included) and linked time entries."""
    ticket = ticket_service.get_ticket(db, session.org_id, ticket_id)
    return ApiResponse(data=_ticket_detail(db, ticket))


@router.put(
    "/{ticket_id}",
    response_model=ApiResponse[TicketRead],
    dependencies=[Depends(require_csrf_header)],
)
def update_ticket(
    ticket_id: UUID,
    data: TicketUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Partial update; one activity per changed field."""
    ticket = ticket_service.update_ticket(
        db,
        org_id=session.org_id,
        ticket_id=ticket_id,
        data=data,
        actor=Actor.user(session.user_id),
        dispatcher=dispatcher,
    )
    return ApiResponse(data=TicketRead.model_validate(ticket))


@router.delete(
    "/{ticket_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf_header)],
)
def delete_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_hard_delete_admin),
):
    ticket_service.delete_ticket(db, session.org_id, ticket_id)
    return MessageResponse(message="Ticket deleted")


@router.post(
    "/{ticket_id}/comments",
    response_model=ApiResponse[CommentRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def add_comment(
    ticket_id: UUID,
    data: CommentCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    comment = ticket_service.add_comment(
        db,
        org_id=session.org_id,
        ticket_id=ticket_id,
        content=data.content,
        actor=Actor.user(session.user_id),
        is_internal=data.is_internal,
        dispatcher=dispatcher,
    )
    return ApiResponse(data=CommentRead.model_validate(comment))


@router.post(
    "/{ticket_id}/tags/{tag_id}",
    response_model=ApiResponse[TicketRead],
    dependencies=[Depends(require_csrf_header)],
)
def add_ticket_tag(
    ticket_id: UUID,
    tag_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Assign a tag (idempotent)."""
    ticket_service.add_tag(db, session.org_id, ticket_id, tag_id, Actor.user(session.user_id))
    ticket = ticket_service.get_ticket(db, session.org_id, ticket_id)
    return ApiResponse(data=TicketRead.model_validate(ticket))


@router.delete(
    "/{ticket_id}/tags/{tag_id}",
    response_model=ApiResponse[TicketRead],
    dependencies=[Depends(require_csrf_header)],
)
def remove_ticket_tag(
    ticket_id: UUID,
    tag_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Unassign a tag (idempotent)."""
    ticket_service.remove_tag(db, session.org_id, ticket_id, tag_id, Actor.user(session.user_id))
    ticket = ticket_service.get_ticket(db, session.org_id, ticket_id)
    return ApiResponse(data=TicketRead.model_validate(ticket))


@router.get("/{ticket_id}/activities", response_model=ApiResponse[ActivityPage])
def list_activities(
    ticket_id: UUID,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Activity timeline, newest first."""
    ticket = ticket_service.get_ticket(db, session.org_id, ticket_id)
    page = ticket_activity_service.list_activities(
        db, session.org_id, ticket.id, limit=limit, offset=offset
    )
    return ApiResponse(
        data=ActivityPage(
            items=[ActivityRead.model_validate(a) for a in page.items],
            total=page.total,
            limit=page.limit,
            offset=page.offset,
        )
    )


@router.get("/{ticket_id}/attachments", response_model=ApiResponse[list[AttachmentRead]])
def list_attachments(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    ticket = ticket_service.get_ticket(db, session.org_id, ticket_id)
    attachments = attachment_service.list_ticket_attachments(db, ticket.id)
    return ApiResponse(data=[AttachmentRead.model_validate(a) for a in attachments])


@router.post(
    "/{ticket_id}/attachments",
    response_model=ApiResponse[list[AttachmentRead]],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def upload_attachments(
    ticket_id: UUID,
    files: list[UploadFile] = File(...),
    comment_id: UUID | None = Form(None, alias="commentId"),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Upload up to 5 files (10 MB each)."""
    ticket = ticket_service.get_ticket(db, session.org_id, ticket_id)
    attachments = ticket_service.add_attachments(
        db, ticket, _uploads(files), Actor.user(session.user_id), comment_id=comment_id
    )
    return ApiResponse(data=[AttachmentRead.model_validate(a) for a in attachments])
