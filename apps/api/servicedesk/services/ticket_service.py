"""Ticket lifecycle: creation, field updates, status transitions, comments and tags."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from servicedesk.core.config import settings
from servicedesk.db.enums import (
    ACTIVE_TICKET_STATUSES,
    DONE_TICKET_STATUSES,
    REOPENABLE_TICKET_STATUSES,
    TicketActivityType,
    TicketPriority,
    TicketStatus,
)
from servicedesk.db.models import (
    Customer,
    CustomerContact,
    Project,
    Ticket,
    TicketComment,
    TicketTagAssignment,
    TimeEntry,
    User,
)
from servicedesk.schemas.ticketing import TicketCreate, TicketUpdate
from servicedesk.services import attachment_service, sequence_service, sla_service, tag_service
from servicedesk.services.notification_dispatcher import (
    NotificationDispatcher,
    dispatch_reply_added,
    dispatch_status_changed,
    dispatch_ticket_created,
)
from servicedesk.services.ticket_activity_service import (
    ActivityBatch,
    Actor,
    log_activity,
    record_activities,
)

logger = logging.getLogger(__name__)


# Used only when TICKET_STRICT_TRANSITIONS is enabled; otherwise any status may
# follow any other.
ALLOWED_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.OPEN: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.WAITING, TicketStatus.RESOLVED,
        TicketStatus.CLOSED, TicketStatus.ARCHIVED,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.OPEN, TicketStatus.WAITING, TicketStatus.RESOLVED,
        TicketStatus.CLOSED, TicketStatus.ARCHIVED,
    }),
    TicketStatus.WAITING: frozenset({
        TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED,
        TicketStatus.CLOSED, TicketStatus.ARCHIVED,
    }),
    TicketStatus.RESOLVED: frozenset({
        TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.WAITING,
        TicketStatus.CLOSED, TicketStatus.ARCHIVED,
    }),
    TicketStatus.CLOSED: frozenset({
        TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.WAITING,
        TicketStatus.ARCHIVED,
    }),
    TicketStatus.ARCHIVED: frozenset({TicketStatus.OPEN}),
}

_NOT_NULLABLE_FIELDS = {"customer_id", "title", "status", "priority"}


@dataclass(frozen=True)
class StatusChange:
    old_status: str
    new_status: str
    action_type: TicketActivityType


@dataclass(frozen=True)
class TicketStatsData:
    open_count: int
    in_progress_count: int
    waiting_count: int
    resolved_count: int
    closed_count: int
    archived_count: int
    critical_count: int
    high_priority_count: int
    total_count: int


# =============================================================================
# Utility helpers
# =============================================================================

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _commit(db: Session) -> None:
    """Commit the primary write; roll back and re-raise on failure."""
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


def _ensure_customer_in_org(db: Session, org_id: UUID, customer_id: UUID) -> Customer:
    customer = db.query(Customer).filter(
        Customer.id == customer_id,
        Customer.organization_id == org_id,
    ).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


def _ensure_project_in_org(db: Session, org_id: UUID, project_id: UUID) -> Project:
    project = db.query(Project).filter(
        Project.id == project_id,
        Project.organization_id == org_id,
    ).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def _ensure_user_in_org(db: Session, org_id: UUID, user_id: UUID) -> User:
    user = db.query(User).filter(
        User.id == user_id,
        User.organization_id == org_id,
    ).first()
    if not user:
        raise HTTPException(status_code=400, detail="Assignee is not a member of this organization")
    return user


# =============================================================================
# Reads
# =============================================================================

def get_ticket(db: Session, org_id: UUID, ticket_id: UUID) -> Ticket:
    """
    Load a ticket owned by the organization.

    Absent and not-yours are indistinguishable (404).
    """
    ticket = db.query(Ticket).filter(
        Ticket.id == ticket_id,
        Ticket.organization_id == org_id,
    ).first()
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


def list_tickets(
    db: Session,
    org_id: UUID,
    status: TicketStatus | None = None,
    customer_id: UUID | None = None,
    priority: TicketPriority | None = None,
    assigned_to_user_id: UUID | None = None,
    tag_id: UUID | None = None,
) -> list[Ticket]:
    """List organization tickets, newest first."""
    query = db.query(Ticket).filter(Ticket.organization_id == org_id)

    if status:
        query = query.filter(Ticket.status == status.value)
    if customer_id:
        query = query.filter(Ticket.customer_id == customer_id)
    if priority:
        query = query.filter(Ticket.priority == priority.value)
    if assigned_to_user_id:
        query = query.filter(Ticket.assigned_to_user_id == assigned_to_user_id)
    if tag_id:
        query = query.join(
            TicketTagAssignment, TicketTagAssignment.ticket_id == Ticket.id
        ).filter(TicketTagAssignment.tag_id == tag_id)

    return query.order_by(Ticket.created_at.desc()).all()


def get_ticket_stats(db: Session, org_id: UUID) -> TicketStatsData:
    """Counts per status plus open critical/high tickets."""
    not_done = Ticket.status.notin_([s.value for s in DONE_TICKET_STATUSES])

    def _count(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    row = db.query(
        _count(Ticket.status == TicketStatus.OPEN.value),
        _count(Ticket.status == TicketStatus.IN_PROGRESS.value),
        _count(Ticket.status == TicketStatus.WAITING.value),
        _count(Ticket.status == TicketStatus.RESOLVED.value),
        _count(Ticket.status == TicketStatus.CLOSED.value),
        _count(Ticket.status == TicketStatus.ARCHIVED.value),
        _count((Ticket.priority == TicketPriority.CRITICAL.value) & not_done),
        _count((Ticket.priority == TicketPriority.HIGH.value) & not_done),
        func.count(Ticket.id),
    ).filter(Ticket.organization_id == org_id).one()

    return TicketStatsData(*(int(value) for value in row))


# =============================================================================
# Creation
# =============================================================================

def create_ticket(
    db: Session,
    org_id: UUID,
    data: TicketCreate,
    actor: Actor,
    contact: CustomerContact | None = None,
    dispatcher: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> Ticket:
    """
    Create a ticket with the next ticket number and SLA deadlines.

    The sequence increment and the ticket insert commit together. Missing SLA
    policy is not an error; the ticket simply has no deadlines. Portal-created
    tickets (contact given) emit a ticketCreated notification.
    """
    customer = _ensure_customer_in_org(db, org_id, data.customer_id)
    if data.project_id:
        _ensure_project_in_org(db, org_id, data.project_id)

    now = _as_utc(now or _now_utc())
    try:
        ticket_number = sequence_service.next_ticket_number(db, org_id)
        ticket = Ticket(
            organization_id=org_id,
            ticket_number=ticket_number,
            customer_id=customer.id,
            project_id=data.project_id,
            created_by_contact_id=contact.id if contact else None,
            title=data.title,
            description=data.description,
            status=TicketStatus.OPEN.value,
            priority=data.priority.value,
            created_at=now,
            updated_at=now,
        )
        sla_service.stamp_ticket(
            ticket, sla_service.resolve_sla(db, org_id, ticket.priority, now)
        )
        db.add(ticket)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(ticket)

    log_activity(
        db,
        org_id,
        ticket.id,
        actor,
        TicketActivityType.CREATED,
        new_value=ticket.ticket_number,
        details={"priority": ticket.priority, "status": ticket.status},
    )
    if contact is not None:
        dispatch_ticket_created(db, dispatcher, ticket, customer, contact)
    return ticket


# =============================================================================
# Status transitions
# =============================================================================

def _status_action(old: TicketStatus, new: TicketStatus) -> TicketActivityType:
    """Activity type is keyed by the target state, except reopen from done."""
    if new == TicketStatus.RESOLVED:
        return TicketActivityType.RESOLVED
    if new == TicketStatus.CLOSED:
        return TicketActivityType.CLOSED
    if new == TicketStatus.ARCHIVED:
        return TicketActivityType.ARCHIVED
    if old in REOPENABLE_TICKET_STATUSES and new in ACTIVE_TICKET_STATUSES:
        return TicketActivityType.REOPENED
    return TicketActivityType.STATUS_CHANGED


def apply_status(ticket: Ticket, new_status: TicketStatus, now: datetime) -> StatusChange | None:
    """
    Move a ticket to new_status and apply the derived effects.

    Returns None when the status is unchanged.
    """
    old_status = TicketStatus(ticket.status)
    if new_status == old_status:
        return None

    if settings.TICKET_STRICT_TRANSITIONS and new_status not in ALLOWED_TRANSITIONS[old_status]:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change status from {old_status.value} to {new_status.value}",
        )

    ticket.status = new_status.value
    if new_status == TicketStatus.RESOLVED:
        ticket.resolved_at = now
        ticket.closed_at = None
    elif new_status == TicketStatus.CLOSED:
        ticket.closed_at = now
    elif new_status in ACTIVE_TICKET_STATUSES:
        ticket.resolved_at = None
        ticket.closed_at = None

    if (
        new_status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)
        and not ticket.sla_resolution_breached
        and sla_service.is_resolution_late(ticket, now)
    ):
        ticket.sla_resolution_breached = True

    return StatusChange(
        old_status=old_status.value,
        new_status=new_status.value,
        action_type=_status_action(old_status, new_status),
    )


def change_status(
    db: Session,
    ticket: Ticket,
    new_status: TicketStatus,
    actor: Actor,
    dispatcher: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> StatusChange | None:
    """Status-only transition with activity and notification (portal close/reopen)."""
    now = _as_utc(now or _now_utc())
    change = apply_status(ticket, new_status, now)
    if change is None:
        return None
    ticket.updated_at = now
    _commit(db)
    db.refresh(ticket)

    log_activity(
        db,
        ticket.organization_id,
        ticket.id,
        actor,
        change.action_type,
        old_value=change.old_status,
        new_value=change.new_status,
    )
    dispatch_status_changed(db, dispatcher, ticket, change.old_status, change.new_status)
    return change


# =============================================================================
# Field updates
# =============================================================================

def _str(value) -> str | None:
    if value is None:
        return None
    return str(value.value) if hasattr(value, "value") else str(value)


def update_ticket(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    data: TicketUpdate,
    actor: Actor,
    dispatcher: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> Ticket:
    """
    Apply a partial update.

    Only fields present in the payload are touched. Each changed tracked field
    (title, description, status, priority, assignee) yields one activity.
    updated_at is always bumped. When expected_updated_at is given and no
    longer matches, the update is rejected with 409.
    """
    ticket = get_ticket(db, org_id, ticket_id)
    updates = data.model_dump(exclude_unset=True)
    expected_updated_at = updates.pop("expected_updated_at", None)

    if expected_updated_at is not None and _as_utc(expected_updated_at) != _as_utc(ticket.updated_at):
        raise HTTPException(
            status_code=409,
            detail="Ticket was modified by someone else. Reload and try again.",
        )

    for field in _NOT_NULLABLE_FIELDS:
        if field in updates and updates[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")

    now = _as_utc(now or _now_utc())
    batch = ActivityBatch(org_id=org_id, ticket_id=ticket.id, actor=actor)
    status_change: StatusChange | None = None

    if "customer_id" in updates and updates["customer_id"] != ticket.customer_id:
        ticket.customer_id = _ensure_customer_in_org(db, org_id, updates["customer_id"]).id

    if "project_id" in updates and updates["project_id"] != ticket.project_id:
        if updates["project_id"] is not None:
            _ensure_project_in_org(db, org_id, updates["project_id"])
        ticket.project_id = updates["project_id"]

    if "title" in updates and updates["title"] != ticket.title:
        batch.add(TicketActivityType.TITLE_CHANGED, ticket.title, updates["title"])
        ticket.title = updates["title"]

    if "description" in updates and updates["description"] != ticket.description:
        batch.add(TicketActivityType.DESCRIPTION_CHANGED, ticket.description, updates["description"])
        ticket.description = updates["description"]

    if "status" in updates:
        status_change = apply_status(ticket, updates["status"], now)
        if status_change:
            batch.add(status_change.action_type, status_change.old_status, status_change.new_status)

    if "priority" in updates and updates["priority"].value != ticket.priority:
        batch.add(TicketActivityType.PRIORITY_CHANGED, ticket.priority, updates["priority"].value)
        ticket.priority = updates["priority"].value

    if "assigned_to_user_id" in updates:
        new_assignee = updates["assigned_to_user_id"]
        if new_assignee != ticket.assigned_to_user_id:
            if new_assignee is not None:
                _ensure_user_in_org(db, org_id, new_assignee)
            action = (
                TicketActivityType.UNASSIGNED if new_assignee is None
                else TicketActivityType.ASSIGNED
            )
            batch.add(action, _str(ticket.assigned_to_user_id), _str(new_assignee))
            ticket.assigned_to_user_id = new_assignee

    ticket.updated_at = now
    _commit(db)
    db.refresh(ticket)

    record_activities(db, batch)
    if status_change:
        dispatch_status_changed(
            db, dispatcher, ticket, status_change.old_status, status_change.new_status
        )
    return ticket


def delete_ticket(db: Session, org_id: UUID, ticket_id: UUID) -> None:
    """
    Hard delete (admin). Comments, attachments, activities and tag links go
    with the ticket; linked time entries are kept and unlinked.
    """
    ticket = get_ticket(db, org_id, ticket_id)
    attachments = list(ticket.attachments)
    ticket_number = ticket.ticket_number
    db.query(TimeEntry).filter(TimeEntry.ticket_id == ticket.id).update(
        {TimeEntry.ticket_id: None}, synchronize_session=False
    )
    db.delete(ticket)
    _commit(db)
    attachment_service.discard_files(attachments)
    logger.info(
        "Ticket deleted",
        extra={"org_id": str(org_id), "ticket_id": str(ticket_id), "ticket_number": ticket_number},
    )


# =============================================================================
# Comments
# =============================================================================

def add_comment_to_ticket(
    db: Session,
    ticket: Ticket,
    content: str,
    actor: Actor,
    is_internal: bool = False,
    dispatcher: NotificationDispatcher | None = None,
    now: datetime | None = None,
    system: bool = False,
) -> TicketComment:
    """
    Append a comment to an already-authorized ticket.

    A non-internal comment sets first_response_at if it is still unset (and
    flags a late first response). Internal comments require a staff author.
    System comments (status notes written on behalf of the actor) neither
    count as a response nor notify.
    """
    if (actor.user_id is None) == (actor.contact_id is None):
        raise HTTPException(status_code=400, detail="Comment needs exactly one author")
    if is_internal and actor.user_id is None:
        raise HTTPException(status_code=400, detail="Only staff can add internal comments")

    now = _as_utc(now or _now_utc())
    comment = TicketComment(
        ticket_id=ticket.id,
        user_id=actor.user_id,
        customer_contact_id=actor.contact_id,
        is_internal=is_internal,
        content=content,
        created_at=now,
    )
    db.add(comment)

    if not is_internal and not system and ticket.first_response_at is None:
        ticket.first_response_at = now
        if not ticket.sla_first_response_breached and sla_service.is_first_response_late(ticket, now):
            ticket.sla_first_response_breached = True
    ticket.updated_at = now

    _commit(db)
    db.refresh(comment)

    log_activity(
        db,
        ticket.organization_id,
        ticket.id,
        actor,
        TicketActivityType.INTERNAL_COMMENT_ADDED if is_internal else TicketActivityType.COMMENT_ADDED,
        details={"commentId": str(comment.id)},
    )
    if not system:
        dispatch_reply_added(db, dispatcher, ticket, comment)
    return comment


def add_comment(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    content: str,
    actor: Actor,
    is_internal: bool = False,
    dispatcher: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> TicketComment:
    """Staff comment on an organization ticket."""
    ticket = get_ticket(db, org_id, ticket_id)
    return add_comment_to_ticket(
        db, ticket, content, actor, is_internal=is_internal, dispatcher=dispatcher, now=now
    )


def list_comments(db: Session, ticket_id: UUID, include_internal: bool = True) -> list[TicketComment]:
    """
    Comments oldest first.

    include_internal=False is the portal view; internal rows never load.
    """
    query = db.query(TicketComment).filter(TicketComment.ticket_id == ticket_id)
    if not include_internal:
        query = query.filter(TicketComment.is_internal.is_(False))
    return query.order_by(TicketComment.created_at.asc()).all()


# =============================================================================
# Tags
# =============================================================================

def add_tag(db: Session, org_id: UUID, ticket_id: UUID, tag_id: UUID, actor: Actor) -> bool:
    """
    Assign a tag. Returns False (and logs nothing) if it was already assigned.
    """
    ticket = get_ticket(db, org_id, ticket_id)
    tag = tag_service.get_tag(db, org_id, tag_id)

    if db.get(TicketTagAssignment, (ticket.id, tag.id)):
        return False

    db.add(TicketTagAssignment(ticket_id=ticket.id, tag_id=tag.id))
    ticket.updated_at = _now_utc()
    try:
        db.commit()
    except IntegrityError:
        # Concurrent assignment won the race
        db.rollback()
        return False

    log_activity(
        db, org_id, ticket.id, actor, TicketActivityType.TAG_ADDED,
        new_value=tag.name, details={"tagId": str(tag.id)},
    )
    return True


def remove_tag(db: Session, org_id: UUID, ticket_id: UUID, tag_id: UUID, actor: Actor) -> bool:
    """Unassign a tag. Returns False if it was not assigned."""
    ticket = get_ticket(db, org_id, ticket_id)
    tag = tag_service.get_tag(db, org_id, tag_id)

    assignment = db.get(TicketTagAssignment, (ticket.id, tag.id))
    if not assignment:
        return False

    db.delete(assignment)
    ticket.updated_at = _now_utc()
    _commit(db)

    log_activity(
        db, org_id, ticket.id, actor, TicketActivityType.TAG_REMOVED,
        old_value=tag.name, details={"tagId": str(tag.id)},
    )
    return True


# =============================================================================
# Attachments
# =============================================================================

def add_attachments(
    db: Session,
    ticket: Ticket,
    uploads: list,
    actor: Actor,
    comment_id: UUID | None = None,
) -> list:
    """Store uploads on an authorized ticket; one attachment_added activity per file."""
    if comment_id is not None:
        comment = db.query(TicketComment).filter(
            TicketComment.id == comment_id,
            TicketComment.ticket_id == ticket.id,
        ).first()
        if not comment:
            raise HTTPException(status_code=404, detail="Comment not found")

    attachments = attachment_service.save_uploads(
        db,
        ticket.id,
        uploads,
        uploaded_by_user_id=actor.user_id,
        uploaded_by_contact_id=actor.contact_id,
        comment_id=comment_id,
    )
    ticket.updated_at = _now_utc()
    try:
        db.commit()
    except Exception:
        db.rollback()
        attachment_service.discard_files(attachments)
        raise

    batch = ActivityBatch(org_id=ticket.organization_id, ticket_id=ticket.id, actor=actor)
    for attachment in attachments:
        db.refresh(attachment)
        batch.add(
            TicketActivityType.ATTACHMENT_ADDED,
            new_value=attachment.filename,
            details={
                "attachmentId": str(attachment.id),
                "fileSize": attachment.file_size,
                "mimeType": attachment.mime_type,
            },
        )
    record_activities(db, batch)
    return attachments
