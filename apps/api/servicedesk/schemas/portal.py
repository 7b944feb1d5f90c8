"""Pydantic schemas for the customer portal surface."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from servicedesk.core.capabilities import PortalCapabilities
from servicedesk.db.enums import TicketPriority, TicketStatus
from servicedesk.schemas.common import ApiModel


class PortalMe(ApiModel):
    id: UUID
    customer_id: UUID
    customer_name: str
    name: str
    email: str
    capabilities: PortalCapabilities


class PortalTicketCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    priority: TicketPriority = TicketPriority.NORMAL


class PortalCommentCreate(ApiModel):
    content: str = Field(..., min_length=1, max_length=5000)


class PortalRatingCreate(ApiModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: str | None = Field(None, max_length=5000)


class PortalTicketRead(ApiModel):
    """Ticket fields a customer contact may see (no SLA or assignment data)."""

    id: UUID
    ticket_number: str
    title: str
    description: str | None = None
    status: TicketStatus
    priority: TicketPriority
    customer_name: str | None = None
    project_name: str | None = None
    satisfaction_rating: int | None = None
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None
    closed_at: datetime | None = None


class PortalCommentRead(ApiModel):
    id: UUID
    content: str
    author_name: str
    is_from_customer: bool
    created_at: datetime


class PortalAttachmentRead(ApiModel):
    id: UUID
    filename: str
    file_url: str
    file_size: int
    mime_type: str
    uploaded_by_name: str
    created_at: datetime


class PortalTicketDetail(PortalTicketRead):
    comments: list[PortalCommentRead] = Field(default_factory=list)
