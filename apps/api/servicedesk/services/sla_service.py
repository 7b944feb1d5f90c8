"""SLA policy management, deadline resolution and breach detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from servicedesk.db.enums import ACTIVE_TICKET_STATUSES, SlaPriority
from servicedesk.db.models import SlaPolicy, Ticket
from servicedesk.schemas.sla import SlaPolicyCreate, SlaPolicyUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlaDeadlines:
    """Resolved policy and the deadlines it implies."""

    policy_id: UUID
    first_response_due_at: datetime
    resolution_due_at: datetime


@dataclass(frozen=True)
class BreachSweepResult:
    tickets_checked: int
    first_response_breaches: int
    resolution_breaches: int


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Resolution
# =============================================================================

def find_applicable_policy(db: Session, org_id: UUID, priority: str) -> SlaPolicy | None:
    """
    Pick the active policy for a ticket priority.

    Precedence: exact priority over the 'all' wildcard, then is_default,
    then the oldest policy.
    """
    return (
        db.query(SlaPolicy)
        .filter(
            SlaPolicy.organization_id == org_id,
            SlaPolicy.is_active.is_(True),
            SlaPolicy.priority.in_([priority, SlaPriority.ALL.value]),
        )
        .order_by(
            case((SlaPolicy.priority == priority, 0), else_=1),
            case((SlaPolicy.is_default.is_(True), 0), else_=1),
            SlaPolicy.created_at.asc(),
        )
        .first()
    )


def compute_deadlines(policy: SlaPolicy, reference_time: datetime) -> SlaDeadlines:
    """
    Wall-clock offsets from reference_time.

    business_hours_only is not taken into account.
    """
    reference_time = _as_utc(reference_time)
    return SlaDeadlines(
        policy_id=policy.id,
        first_response_due_at=reference_time + timedelta(minutes=policy.first_response_minutes),
        resolution_due_at=reference_time + timedelta(minutes=policy.resolution_minutes),
    )


def resolve_sla(
    db: Session,
    org_id: UUID,
    priority: str,
    reference_time: datetime,
) -> SlaDeadlines | None:
    """Deadlines for a new ticket, or None when no policy applies."""
    policy = find_applicable_policy(db, org_id, priority)
    if not policy:
        return None
    return compute_deadlines(policy, reference_time)


def stamp_ticket(ticket: Ticket, deadlines: SlaDeadlines | None) -> None:
    """Copy resolved deadlines onto a ticket (no-op without a policy)."""
    if deadlines is None:
        return
    ticket.sla_policy_id = deadlines.policy_id
    ticket.first_response_due_at = deadlines.first_response_due_at
    ticket.resolution_due_at = deadlines.resolution_due_at


def apply_sla_to_ticket(db: Session, org_id: UUID, ticket_id: UUID) -> Ticket:
    """
    Recompute SLA deadlines for an existing ticket from its created_at.

    Raises:
        HTTPException 404: ticket not in organization
        HTTPException 400: no applicable policy
    """
    ticket = db.query(Ticket).filter(
        Ticket.id == ticket_id,
        Ticket.organization_id == org_id,
    ).first()
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")

    deadlines = resolve_sla(db, org_id, ticket.priority, ticket.created_at)
    if deadlines is None:
        raise HTTPException(status_code=400, detail="No applicable SLA policy found")

    stamp_ticket(ticket, deadlines)
    ticket.updated_at = _now_utc()
    db.commit()
    db.refresh(ticket)
    return ticket


# =============================================================================
# Policy CRUD
# =============================================================================

def list_policies(db: Session, org_id: UUID) -> list[SlaPolicy]:
    return (
        db.query(SlaPolicy)
        .filter(SlaPolicy.organization_id == org_id)
        .order_by(SlaPolicy.priority, SlaPolicy.created_at)
        .all()
    )


def get_policy(db: Session, org_id: UUID, policy_id: UUID) -> SlaPolicy:
    policy = db.query(SlaPolicy).filter(
        SlaPolicy.id == policy_id,
        SlaPolicy.organization_id == org_id,
    ).first()
    if not policy:
        raise HTTPException(status_code=404, detail="SLA policy not found")
    return policy


_NOT_NULLABLE_POLICY_FIELDS = (
    "name",
    "priority",
    "first_response_minutes",
    "resolution_minutes",
    "business_hours_only",
    "is_active",
    "is_default",
)


def _clear_other_defaults(
    db: Session,
    org_id: UUID,
    priority: str,
    keep_id: UUID | None,
) -> None:
    """Unset is_default on the other policies of the same priority bucket."""
    query = db.query(SlaPolicy).filter(
        SlaPolicy.organization_id == org_id,
        SlaPolicy.priority == priority,
        SlaPolicy.is_default.is_(True),
    )
    if keep_id is not None:
        query = query.filter(SlaPolicy.id != keep_id)
    query.update({SlaPolicy.is_default: False}, synchronize_session="fetch")


def create_policy(db: Session, org_id: UUID, data: SlaPolicyCreate) -> SlaPolicy:
    """Create a policy; marking it default demotes the current default in one commit."""
    policy = SlaPolicy(
        organization_id=org_id,
        name=data.name,
        description=data.description,
        priority=data.priority.value,
        first_response_minutes=data.first_response_minutes,
        resolution_minutes=data.resolution_minutes,
        business_hours_only=data.business_hours_only,
        is_active=data.is_active,
        is_default=data.is_default,
    )
    if data.is_default:
        _clear_other_defaults(db, org_id, policy.priority, keep_id=None)
    db.add(policy)
    db.commit()
    db.refresh(policy)
    return policy


def update_policy(
    db: Session,
    org_id: UUID,
    policy_id: UUID,
    data: SlaPolicyUpdate,
) -> SlaPolicy:
    policy = get_policy(db, org_id, policy_id)
    updates = data.model_dump(exclude_unset=True)
    for field in _NOT_NULLABLE_POLICY_FIELDS:
        if field in updates and updates[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")

    for field, value in updates.items():
        if isinstance(value, SlaPriority):
            value = value.value
        setattr(policy, field, value)

    if policy.is_default:
        _clear_other_defaults(db, org_id, policy.priority, keep_id=policy.id)

    policy.updated_at = _now_utc()
    db.commit()
    db.refresh(policy)
    return policy


def delete_policy(db: Session, org_id: UUID, policy_id: UUID) -> None:
    """Delete a policy. Tickets keep their stamped deadlines (FK set null)."""
    policy = get_policy(db, org_id, policy_id)
    db.query(Ticket).filter(
        Ticket.organization_id == org_id,
        Ticket.sla_policy_id == policy.id,
    ).update({Ticket.sla_policy_id: None}, synchronize_session=False)
    db.delete(policy)
    db.commit()


# =============================================================================
# Breach detection
# =============================================================================

def is_first_response_late(ticket: Ticket, responded_at: datetime) -> bool:
    return (
        ticket.first_response_due_at is not None
        and _as_utc(responded_at) > _as_utc(ticket.first_response_due_at)
    )


def is_resolution_late(ticket: Ticket, resolved_at: datetime) -> bool:
    return (
        ticket.resolution_due_at is not None
        and _as_utc(resolved_at) > _as_utc(ticket.resolution_due_at)
    )


def check_sla_breaches(
    db: Session,
    now: datetime | None = None,
    org_id: UUID | None = None,
) -> BreachSweepResult:
    """
    Flag overdue tickets across all organizations (or one).

    Flags only ever go from False to True.
    """
    now = _as_utc(now or _now_utc())
    active = [status.value for status in ACTIVE_TICKET_STATUSES]

    query = db.query(Ticket).filter(
        Ticket.status.in_(active),
        or_(
            (Ticket.sla_first_response_breached.is_(False))
            & Ticket.first_response_at.is_(None)
            & (Ticket.first_response_due_at < now),
            (Ticket.sla_resolution_breached.is_(False))
            & (Ticket.resolution_due_at < now),
        ),
    )
    if org_id is not None:
        query = query.filter(Ticket.organization_id == org_id)

    tickets = query.all()
    first_response_breaches = 0
    resolution_breaches = 0
    for ticket in tickets:
        if (
            not ticket.sla_first_response_breached
            and ticket.first_response_at is None
            and is_first_response_late(ticket, now)
        ):
            ticket.sla_first_response_breached = True
            first_response_breaches += 1
        if not ticket.sla_resolution_breached and is_resolution_late(ticket, now):
            ticket.sla_resolution_breached = True
            resolution_breaches += 1

    db.commit()
    if first_response_breaches or resolution_breaches:
        logger.info(
            "SLA breach sweep flagged tickets",
            extra={
                "first_response_breaches": first_response_breaches,
                "resolution_breaches": resolution_breaches,
            },
        )
    return BreachSweepResult(
        tickets_checked=len(tickets),
        first_response_breaches=first_response_breaches,
        resolution_breaches=resolution_breaches,
    )
