"""
Customer portal view of tickets.

Every read and write here is scoped to the contact's customer AND the
customer's organization. Internal comments and attachments bound to them are
filtered out in the queries, so they never reach a portal response.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from servicedesk.core.capabilities import PortalCapability, ensure_capability
from servicedesk.db.enums import REOPENABLE_TICKET_STATUSES, TicketActivityType, TicketStatus
from servicedesk.db.models import CustomerContact, Ticket, TicketAttachment, TicketComment
from servicedesk.schemas.auth import ContactSession
from servicedesk.schemas.portal import PortalTicketCreate
from servicedesk.schemas.ticketing import TicketCreate
from servicedesk.services import attachment_service, ticket_service
from servicedesk.services.notification_dispatcher import NotificationDispatcher
from servicedesk.services.ticket_activity_service import Actor, log_activity

STATUS_ALL = "all"
CLOSED_BY_CUSTOMER_NOTE = "Ticket was closed by the customer."
REOPENED_BY_CUSTOMER_NOTE = "Ticket was reopened by the customer."


def _scoped_query(db: Session, contact: ContactSession):
    query = db.query(Ticket).filter(
        Ticket.customer_id == contact.customer_id,
        Ticket.organization_id == contact.org_id,
    )
    if not contact.capabilities.allows(PortalCapability.VIEW_ALL_TICKETS):
        query = query.filter(Ticket.created_by_contact_id == contact.contact_id)
    return query


def get_ticket(db: Session, contact: ContactSession, ticket_id: UUID) -> Ticket:
    """Ticket visible to this contact, else 404."""
    ticket = _scoped_query(db, contact).filter(Ticket.id == ticket_id).first()
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


def list_tickets(db: Session, contact: ContactSession, status: str | None = None) -> list[Ticket]:
    """
    Tickets visible to the contact, most recently updated first.

    Archived tickets are hidden unless status is 'all' or 'archived'.
    """
    query = _scoped_query(db, contact)
    if status and status != STATUS_ALL:
        try:
            status_value = TicketStatus(status).value
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status '{status}'")
        query = query.filter(Ticket.status == status_value)
    elif not status:
        query = query.filter(Ticket.status != TicketStatus.ARCHIVED.value)
    return query.order_by(Ticket.updated_at.desc()).all()


def list_comments(db: Session, ticket: Ticket) -> list[TicketComment]:
    """Only external comments, ever."""
    return ticket_service.list_comments(db, ticket.id, include_internal=False)


def create_ticket(
    db: Session,
    contact: ContactSession,
    data: PortalTicketCreate,
    dispatcher: NotificationDispatcher | None = None,
) -> Ticket:
    """Create a ticket for the contact's own customer (needs can_create_tickets)."""
    ensure_capability(contact.capabilities, PortalCapability.CREATE_TICKETS)
    contact_row = db.get(CustomerContact, contact.contact_id)
    return ticket_service.create_ticket(
        db,
        contact.org_id,
        TicketCreate(
            customer_id=contact.customer_id,
            title=data.title,
            description=data.description,
            priority=data.priority,
        ),
        Actor.contact(contact.contact_id),
        contact=contact_row,
        dispatcher=dispatcher,
    )


def add_comment(
    db: Session,
    contact: ContactSession,
    ticket_id: UUID,
    content: str,
    dispatcher: NotificationDispatcher | None = None,
) -> TicketComment:
    ticket = get_ticket(db, contact, ticket_id)
    return ticket_service.add_comment_to_ticket(
        db, ticket, content, Actor.contact(contact.contact_id), dispatcher=dispatcher
    )


def close_ticket(
    db: Session,
    contact: ContactSession,
    ticket_id: UUID,
    dispatcher: NotificationDispatcher | None = None,
) -> Ticket:
    ticket = get_ticket(db, contact, ticket_id)
    if ticket.status == TicketStatus.CLOSED.value:
        raise HTTPException(status_code=400, detail="Ticket is already closed")

    actor = Actor.contact(contact.contact_id)
    ticket_service.change_status(db, ticket, TicketStatus.CLOSED, actor, dispatcher=dispatcher)
    ticket_service.add_comment_to_ticket(db, ticket, CLOSED_BY_CUSTOMER_NOTE, actor, system=True)
    return ticket


def reopen_ticket(
    db: Session,
    contact: ContactSession,
    ticket_id: UUID,
    dispatcher: NotificationDispatcher | None = None,
) -> Ticket:
    ticket = get_ticket(db, contact, ticket_id)
    if TicketStatus(ticket.status) not in REOPENABLE_TICKET_STATUSES:
        raise HTTPException(status_code=400, detail="Ticket is not closed or resolved")

    actor = Actor.contact(contact.contact_id)
    ticket_service.change_status(db, ticket, TicketStatus.OPEN, actor, dispatcher=dispatcher)
    ticket_service.add_comment_to_ticket(db, ticket, REOPENED_BY_CUSTOMER_NOTE, actor, system=True)
    return ticket


def rate_ticket(
    db: Session,
    contact: ContactSession,
    ticket_id: UUID,
    rating: int,
    feedback: str | None = None,
) -> Ticket:
    """Satisfaction rating (1-5) for a resolved or closed ticket."""
    ticket = get_ticket(db, contact, ticket_id)
    if TicketStatus(ticket.status) not in REOPENABLE_TICKET_STATUSES:
        raise HTTPException(status_code=400, detail="Can only rate closed or resolved tickets")

    old_rating = ticket.satisfaction_rating
    ticket.satisfaction_rating = rating
    ticket.satisfaction_feedback = feedback
    ticket.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(ticket)

    log_activity(
        db,
        ticket.organization_id,
        ticket.id,
        Actor.contact(contact.contact_id),
        TicketActivityType.RATING_ADDED,
        old_value=str(old_rating) if old_rating is not None else None,
        new_value=str(rating),
        details={"feedback": feedback},
    )
    return ticket


# =============================================================================
# Attachments
# =============================================================================

def upload_attachments(
    db: Session,
    contact: ContactSession,
    ticket_id: UUID,
    uploads: list,
) -> list[TicketAttachment]:
    ticket = get_ticket(db, contact, ticket_id)
    return ticket_service.add_attachments(db, ticket, uploads, Actor.contact(contact.contact_id))


def list_attachments(db: Session, contact: ContactSession, ticket_id: UUID) -> list[TicketAttachment]:
    ticket = get_ticket(db, contact, ticket_id)
    return attachment_service.list_ticket_attachments(db, ticket.id, include_internal=False)


def delete_attachment(
    db: Session,
    contact: ContactSession,
    ticket_id: UUID,
    attachment_id: UUID,
) -> None:
    """Only the contact who uploaded a file may delete it."""
    ticket = get_ticket(db, contact, ticket_id)
    attachment_service.delete_contact_attachment(db, ticket.id, attachment_id, contact.contact_id)
