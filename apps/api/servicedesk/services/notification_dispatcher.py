"""
Ticket notification fan-out.

The ticket engine emits three intents (ticket created, status changed, reply
added). A dispatcher turns them into deliveries; the default one persists
in-app notifications for staff and logs the customer-facing e-mail intent.
Delivery of e-mail/push is handled elsewhere.

Dispatch always runs after the primary mutation has committed and never
raises into the request.
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from servicedesk.core.side_effects import SideEffectResult, run_best_effort
from servicedesk.db.enums import NotificationType, Role, TicketStatus
from servicedesk.db.models import Customer, CustomerContact, Ticket, TicketComment, User
from servicedesk.services import notification_service

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    """Consumer of ticket notification intents."""

    def ticket_created(
        self,
        ticket: Ticket,
        customer: Customer,
        contact: CustomerContact | None,
    ) -> None: ...

    def ticket_status_changed(
        self,
        ticket: Ticket,
        old_status: str,
        new_status: str,
    ) -> None: ...

    def ticket_reply_added(self, ticket: Ticket, comment: TicketComment) -> None: ...


class InAppNotificationDispatcher:
    """Persist staff notifications; log e-mail intents for customer contacts."""

    def __init__(self, db: Session):
        self.db = db

    def _staff_admins(self, org_id: UUID) -> list[UUID]:
        rows = (
            self.db.query(User.id)
            .filter(
                User.organization_id == org_id,
                User.role == Role.ADMIN.value,
                User.is_active.is_(True),
            )
            .all()
        )
        return [row.id for row in rows]

    def _staff_recipients(self, ticket: Ticket) -> list[UUID]:
        """Assignee if any, otherwise the organization's admins."""
        if ticket.assigned_to_user_id:
            return [ticket.assigned_to_user_id]
        return self._staff_admins(ticket.organization_id)

    def _notify_staff(
        self,
        user_ids: list[UUID],
        ticket: Ticket,
        type: NotificationType,
        title: str,
        body: str | None,
        event_key: str,
    ) -> None:
        notification_service.notify_ticket_event(
            self.db, ticket, user_ids, type, title, event_key=event_key, body=body
        )

    def _email_contact(self, contact_id: UUID | None, ticket: Ticket, template: str) -> None:
        if not contact_id:
            return
        contact = self.db.get(CustomerContact, contact_id)
        if not contact or not contact.is_active:
            return
        logger.info(
            "Queued customer e-mail",
            extra={
                "template": template,
                "ticket_id": str(ticket.id),
                "contact_id": str(contact.id),
            },
        )

    def ticket_created(self, ticket, customer, contact) -> None:
        self._notify_staff(
            self._staff_admins(ticket.organization_id),
            ticket,
            NotificationType.TICKET_CREATED,
            title=f"New ticket {ticket.ticket_number}",
            body=f"{customer.name}: {ticket.title}",
            event_key="created",
        )
        if contact is not None:
            self._email_contact(contact.id, ticket, "ticket_created_confirmation")

    def ticket_status_changed(self, ticket, old_status, new_status) -> None:
        if ticket.assigned_to_user_id:
            self._notify_staff(
                [ticket.assigned_to_user_id],
                ticket,
                NotificationType.TICKET_STATUS_CHANGED,
                title=f"Ticket {ticket.ticket_number} status changed",
                body=f"Status changed from {old_status} to {new_status}",
                event_key=f"status:{new_status}",
            )
        self._email_contact(ticket.created_by_contact_id, ticket, "ticket_status_changed")

    def ticket_reply_added(self, ticket, comment) -> None:
        if comment.is_internal:
            return
        if comment.customer_contact_id:
            self._notify_staff(
                self._staff_recipients(ticket),
                ticket,
                NotificationType.TICKET_REPLY_ADDED,
                title=f"New reply on {ticket.ticket_number}",
                body=comment.content[:200],
                event_key=f"reply:{comment.id}",
            )
        else:
            self._email_contact(ticket.created_by_contact_id, ticket, "ticket_reply_added")


# =============================================================================
# Best-effort dispatch helpers (called by ticket services after commit)
# =============================================================================

def _dispatch(db: Session, name: str, fn, *args) -> SideEffectResult:
    return run_best_effort(f"notify.{name}", fn, *args, on_error=db.rollback)


def dispatch_ticket_created(
    db: Session,
    dispatcher: NotificationDispatcher | None,
    ticket: Ticket,
    customer: Customer,
    contact: CustomerContact | None,
) -> SideEffectResult | None:
    if dispatcher is None:
        return None
    return _dispatch(db, "ticket_created", dispatcher.ticket_created, ticket, customer, contact)


def dispatch_status_changed(
    db: Session,
    dispatcher: NotificationDispatcher | None,
    ticket: Ticket,
    old_status: str,
    new_status: str,
) -> SideEffectResult | None:
    """Archival is internal housekeeping and never notifies anyone."""
    if dispatcher is None or new_status == TicketStatus.ARCHIVED.value:
        return None
    return _dispatch(
        db, "ticket_status_changed", dispatcher.ticket_status_changed, ticket, old_status, new_status
    )


def dispatch_reply_added(
    db: Session,
    dispatcher: NotificationDispatcher | None,
    ticket: Ticket,
    comment: TicketComment,
) -> SideEffectResult | None:
    if dispatcher is None or comment.is_internal:
        return None
    return _dispatch(db, "ticket_reply_added", dispatcher.ticket_reply_added, ticket, comment)
