"""Ticket activity timeline - append-only audit trail of ticket changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from servicedesk.core.side_effects import SideEffectResult, run_best_effort
from servicedesk.db.enums import TicketActivityType
from servicedesk.db.models import TicketActivity


@dataclass(frozen=True)
class Actor:
    """Who performed a change: a staff user, a portal contact, or the system."""

    user_id: UUID | None = None
    contact_id: UUID | None = None

    @classmethod
    def user(cls, user_id: UUID) -> "Actor":
        return cls(user_id=user_id)

    @classmethod
    def contact(cls, contact_id: UUID) -> "Actor":
        return cls(contact_id=contact_id)


SYSTEM = Actor()


@dataclass
class ActivityEntry:
    """A pending activity record, collected during a mutation."""

    action_type: TicketActivityType
    old_value: str | None = None
    new_value: str | None = None
    details: dict | None = None


@dataclass(frozen=True)
class ActivityPage:
    items: list[TicketActivity]
    total: int
    limit: int
    offset: int


@dataclass
class ActivityBatch:
    """Activities for one ticket mutation, written together after commit."""

    org_id: UUID
    ticket_id: UUID
    actor: Actor = SYSTEM
    entries: list[ActivityEntry] = field(default_factory=list)

    def add(
        self,
        action_type: TicketActivityType,
        old_value: str | None = None,
        new_value: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.entries.append(ActivityEntry(action_type, old_value, new_value, details))


def _write_activities(db: Session, batch: ActivityBatch) -> int:
    for entry in batch.entries:
        db.add(
            TicketActivity(
                organization_id=batch.org_id,
                ticket_id=batch.ticket_id,
                actor_user_id=batch.actor.user_id,
                actor_contact_id=batch.actor.contact_id,
                action_type=entry.action_type.value,
                old_value=entry.old_value,
                new_value=entry.new_value,
                details=entry.details,
            )
        )
    db.commit()
    return len(batch.entries)


def record_activities(db: Session, batch: ActivityBatch) -> SideEffectResult:
    """
    Persist a batch of activities, best-effort.

    Must be called after the primary mutation is committed. On failure the
    session is rolled back (which only discards the activity rows) and the
    error is logged, never raised.
    """
    if not batch.entries:
        return SideEffectResult(name="ticket_activity", ok=True, value=0)
    return run_best_effort(
        "ticket_activity",
        _write_activities,
        db,
        batch,
        on_error=db.rollback,
    )


def log_activity(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    actor: Actor,
    action_type: TicketActivityType,
    old_value: str | None = None,
    new_value: str | None = None,
    details: dict | None = None,
) -> SideEffectResult:
    """Record a single activity (best-effort, commits on its own)."""
    batch = ActivityBatch(org_id=org_id, ticket_id=ticket_id, actor=actor)
    batch.add(action_type, old_value, new_value, details)
    return record_activities(db, batch)


def list_activities(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    limit: int = 50,
    offset: int = 0,
) -> ActivityPage:
    """
    Timeline for a ticket, newest first.

    Ties on created_at are broken by insertion order (seq).
    """
    query = db.query(TicketActivity).filter(
        TicketActivity.organization_id == org_id,
        TicketActivity.ticket_id == ticket_id,
    )
    total = query.count()
    items = (
        query.order_by(TicketActivity.created_at.desc(), TicketActivity.seq.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return ActivityPage(items=items, total=total, limit=limit, offset=offset)
