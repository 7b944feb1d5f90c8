"""Time tracking entries and their ticket linkage."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from servicedesk.db.enums import TicketActivityType
from servicedesk.db.models import Project, Ticket, TimeEntry
from servicedesk.schemas.time_entry import TimeEntryCreate, TimeEntryUpdate
from servicedesk.services.ticket_activity_service import Actor, log_activity


def format_duration(seconds: int) -> str:
    """'2h 5m' when there is at least one hour, else '5m'."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _ensure_project(db: Session, org_id: UUID, project_id: UUID) -> None:
    exists = db.query(Project.id).filter(
        Project.id == project_id,
        Project.organization_id == org_id,
    ).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Project not found")


def _get_ticket(db: Session, org_id: UUID, ticket_id: UUID) -> Ticket:
    ticket = db.query(Ticket).filter(
        Ticket.id == ticket_id,
        Ticket.organization_id == org_id,
    ).first()
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


def _log_time(db: Session, org_id: UUID, user_id: UUID, entry: TimeEntry) -> None:
    log_activity(
        db,
        org_id,
        entry.ticket_id,
        Actor.user(user_id),
        TicketActivityType.TIME_LOGGED,
        new_value=format_duration(entry.duration),
        details={
            "timeEntryId": str(entry.id),
            "duration": entry.duration,
            "description": entry.description,
        },
    )


def list_entries(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    project_id: UUID | None = None,
    ticket_id: UUID | None = None,
) -> list[TimeEntry]:
    """The user's own entries, most recent start first."""
    query = db.query(TimeEntry).filter(
        TimeEntry.organization_id == org_id,
        TimeEntry.user_id == user_id,
    )
    if project_id:
        query = query.filter(TimeEntry.project_id == project_id)
    if ticket_id:
        query = query.filter(TimeEntry.ticket_id == ticket_id)
    return query.order_by(TimeEntry.start_time.desc()).all()


def list_ticket_entries(db: Session, org_id: UUID, ticket_id: UUID) -> list[TimeEntry]:
    """All entries linked to a ticket (any user), most recent start first."""
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.organization_id == org_id,
            TimeEntry.ticket_id == ticket_id,
        )
        .order_by(TimeEntry.start_time.desc())
        .all()
    )


def get_entry(db: Session, org_id: UUID, user_id: UUID, entry_id: UUID) -> TimeEntry:
    entry = db.query(TimeEntry).filter(
        TimeEntry.id == entry_id,
        TimeEntry.organization_id == org_id,
        TimeEntry.user_id == user_id,
    ).first()
    if not entry:
        raise HTTPException(status_code=404, detail="Time entry not found")
    return entry


def create_entry(db: Session, org_id: UUID, user_id: UUID, data: TimeEntryCreate) -> TimeEntry:
    """
    Create an entry. Linking a ticket bumps its updated_at and logs
    time_logged on it.
    """
    _ensure_project(db, org_id, data.project_id)
    ticket = _get_ticket(db, org_id, data.ticket_id) if data.ticket_id else None

    now = datetime.now(timezone.utc)
    entry = TimeEntry(
        organization_id=org_id,
        user_id=user_id,
        project_id=data.project_id,
        ticket_id=data.ticket_id,
        start_time=data.start_time,
        end_time=data.end_time,
        duration=data.duration,
        description=data.description,
        is_running=data.is_running,
        created_at=now,
        updated_at=now,
    )
    db.add(entry)
    if ticket is not None:
        ticket.updated_at = now
    db.commit()
    db.refresh(entry)

    if ticket is not None:
        _log_time(db, org_id, user_id, entry)
    return entry


def update_entry(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    entry_id: UUID,
    data: TimeEntryUpdate,
) -> TimeEntry:
    """
    Partial update. Moving the entry to a different ticket logs time_logged
    on the new ticket; unlinking (null) logs nothing.
    """
    entry = get_entry(db, org_id, user_id, entry_id)
    updates = data.model_dump(exclude_unset=True)
    old_ticket_id = entry.ticket_id

    if updates.get("project_id") is not None:
        _ensure_project(db, org_id, updates["project_id"])
    new_ticket = None
    if "ticket_id" in updates and updates["ticket_id"] is not None and updates["ticket_id"] != old_ticket_id:
        new_ticket = _get_ticket(db, org_id, updates["ticket_id"])

    for field, value in updates.items():
        if value is None and field in {"start_time", "duration", "project_id", "is_running"}:
            continue
        setattr(entry, field, value)

    now = datetime.now(timezone.utc)
    entry.updated_at = now
    if new_ticket is not None:
        new_ticket.updated_at = now
    db.commit()
    db.refresh(entry)

    if new_ticket is not None:
        _log_time(db, org_id, user_id, entry)
    return entry


def delete_entry(db: Session, org_id: UUID, user_id: UUID, entry_id: UUID) -> None:
    entry = get_entry(db, org_id, user_id, entry_id)
    db.delete(entry)
    db.commit()
