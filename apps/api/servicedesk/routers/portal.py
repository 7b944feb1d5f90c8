"""Customer portal ticket APIs (Bearer token, contact-scoped)."""

from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from servicedesk.core.capabilities import PortalCapability
from servicedesk.core.deps import (
    get_current_contact,
    get_db,
    get_notification_dispatcher,
    require_portal_capability,
)
from servicedesk.db.models import Customer, Ticket
from servicedesk.schemas.auth import ContactSession
from servicedesk.schemas.common import ApiResponse, MessageResponse
from servicedesk.schemas.portal import (
    PortalAttachmentRead,
    PortalCommentCreate,
    PortalCommentRead,
    PortalMe,
    PortalRatingCreate,
    PortalTicketCreate,
    PortalTicketDetail,
    PortalTicketRead,
)
from servicedesk.services import portal_service
from servicedesk.services.notification_dispatcher import NotificationDispatcher

router = APIRouter(prefix="/customer-portal", tags=["Customer Portal"])


def _ticket_detail(db: Session, ticket: Ticket) -> PortalTicketDetail:
    comments = portal_service.list_comments(db, ticket)
    return PortalTicketDetail.model_validate(ticket).model_copy(
        update={"comments": [PortalCommentRead.model_validate(c) for c in comments]}
    )


@router.get("/me", response_model=ApiResponse[PortalMe])
def get_me(
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
):
    """Current contact, their customer and portal capabilities."""
    customer = db.get(Customer, contact.customer_id)
    return ApiResponse(
        data=PortalMe(
            id=contact.contact_id,
            customer_id=contact.customer_id,
            customer_name=customer.name,
            name=contact.name,
            email=contact.email,
            capabilities=contact.capabilities,
        )
    )


@router.get("/tickets", response_model=ApiResponse[list[PortalTicketRead]])
def list_tickets(
    status: str | None = None,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
):
    """Customer tickets; archived hidden unless status=all or status=archived."""
    tickets = portal_service.list_tickets(db, contact, status=status)
    return ApiResponse(data=[PortalTicketRead.model_validate(t) for t in tickets])


@router.post("/tickets", response_model=ApiResponse[PortalTicketRead], status_code=201)
def create_ticket(
    data: PortalTicketCreate,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(require_portal_capability(PortalCapability.CREATE_TICKETS)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    ticket = portal_service.create_ticket(db, contact, data, dispatcher=dispatcher)
    return ApiResponse(data=PortalTicketRead.model_validate(ticket))


@router.get("/tickets/{ticket_id}", response_model=ApiResponse[PortalTicketDetail])
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
):
    """Ticket with external comments only."""
    ticket = portal_service.get_ticket(db, contact, ticket_id)
    return ApiResponse(data=_ticket_detail(db, ticket))


@router.post(
    "/tickets/{ticket_id}/comments",
    response_model=ApiResponse[PortalCommentRead],
    status_code=201,
)
def add_comment(
    ticket_id: UUID,
    data: PortalCommentCreate,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    comment = portal_service.add_comment(db, contact, ticket_id, data.content, dispatcher=dispatcher)
    return ApiResponse(data=PortalCommentRead.model_validate(comment))


@router.post("/tickets/{ticket_id}/close", response_model=MessageResponse)
def close_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    portal_service.close_ticket(db, contact, ticket_id, dispatcher=dispatcher)
    return MessageResponse(message="Ticket closed successfully")


@router.post("/tickets/{ticket_id}/reopen", response_model=MessageResponse)
def reopen_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    portal_service.reopen_ticket(db, contact, ticket_id, dispatcher=dispatcher)
    return MessageResponse(message="Ticket reopened successfully")


@router.post("/tickets/{ticket_id}/rate", response_model=MessageResponse)
def rate_ticket(
    ticket_id: UUID,
    data: PortalRatingCreate,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
):
    portal_service.rate_ticket(db, contact, ticket_id, data.rating, data.feedback)
    return MessageResponse(message="Thank you for your feedback!")


@router.get(
    "/tickets/{ticket_id}/attachments",
    response_model=ApiResponse[list[PortalAttachmentRead]],
)
def list_attachments(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
):
    """Attachments, excluding files bound to internal comments."""
    attachments = portal_service.list_attachments(db, contact, ticket_id)
    return ApiResponse(data=[PortalAttachmentRead.model_validate(a) for a in attachments])


@router.post(
    "/tickets/{ticket_id}/attachments",
    response_model=ApiResponse[list[PortalAttachmentRead]],
    status_code=201,
)
def upload_attachments(
    ticket_id: UUID,
    files: list[UploadFile] = File(...),
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
):
    uploads = [
        (f.filename or "file", f.content_type or "application/octet-stream", f.file)
        for f in files
    ]
    attachments = portal_service.upload_attachments(db, contact, ticket_id, uploads)
    return ApiResponse(data=[PortalAttachmentRead.model_validate(a) for a in attachments])


@router.delete(
    "/tickets/{ticket_id}/attachments/{attachment_id}",
    response_model=MessageResponse,
)
def delete_attachment(
    ticket_id: UUID,
    attachment_id: UUID,
    db: Session = Depends(get_db),
    contact: ContactSession = Depends(get_current_contact),
):
    """Only the uploading contact may delete an attachment."""
    portal_service.delete_attachment(db, contact, ticket_id, attachment_id)
    return MessageResponse(message="Attachment deleted")
