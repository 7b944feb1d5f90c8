"""Pydantic schemas for tickets, comments, tags, attachments and activities."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, Field

from servicedesk.db.enums import TicketPriority, TicketStatus
from servicedesk.schemas.common import ApiModel
from servicedesk.schemas.time_entry import TimeEntryRead


class TagRead(ApiModel):
    """Tenant ticket tag."""

    id: UUID
    name: str
    color: str
    created_at: datetime


class TagCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field("#3B82F6", max_length=20)


class TagUpdate(ApiModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    color: str | None = Field(None, max_length=20)


class TicketCreate(ApiModel):
    """Request to create a ticket (staff side)."""

    customer_id: UUID
    project_id: UUID | None = None
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    priority: TicketPriority = TicketPriority.NORMAL


class TicketUpdate(ApiModel):
    """
    Partial ticket update.

    Only fields present in the request body are applied; an explicit null
    for assigned_to_user_id unassigns.
    """

    customer_id: UUID | None = None
    project_id: UUID | None = None
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assigned_to_user_id: UUID | None = None
    # Optional optimistic-concurrency check; omitted means last write wins
    expected_updated_at: datetime | None = None


class TicketRead(ApiModel):
    """Ticket as seen by tenant staff."""

    id: UUID
    ticket_number: str
    customer_id: UUID
    customer_name: str | None = None
    project_id: UUID | None = None
    project_name: str | None = None
    created_by_contact_id: UUID | None = None
    title: str
    description: str | None = None
    status: TicketStatus
    priority: TicketPriority
    assigned_to_user_id: UUID | None = None
    sla_policy_id: UUID | None = None
    first_response_due_at: datetime | None = None
    resolution_due_at: datetime | None = None
    first_response_at: datetime | None = None
    sla_first_response_breached: bool = False
    sla_resolution_breached: bool = False
    satisfaction_rating: int | None = None
    satisfaction_feedback: str | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    tags: list[TagRead] = Field(default_factory=list)


class CommentCreate(ApiModel):
    content: str = Field(..., min_length=1, max_length=5000)
    is_internal: bool = False


class CommentRead(ApiModel):
    """Ticket comment (staff view, includes internal comments)."""

    id: UUID
    ticket_id: UUID
    user_id: UUID | None = None
    customer_contact_id: UUID | None = None
    is_internal: bool
    content: str
    author_name: str | None = None
    author_type: str
    created_at: datetime


class AttachmentRead(ApiModel):
    id: UUID
    ticket_id: UUID
    comment_id: UUID | None = None
    filename: str
    file_url: str
    file_size: int
    mime_type: str
    uploaded_by_user_id: UUID | None = None
    uploaded_by_contact_id: UUID | None = None
    created_at: datetime


class TicketDetail(TicketRead):
    """Ticket with comments, attachments and linked time entries."""

    comments: list[CommentRead] = Field(default_factory=list)
    attachments: list[AttachmentRead] = Field(default_factory=list)
    time_entries: list[TimeEntryRead] = Field(default_factory=list)


class ActivityRead(ApiModel):
    """Immutable timeline entry."""

    id: UUID
    ticket_id: UUID
    actor_user_id: UUID | None = None
    actor_contact_id: UUID | None = None
    action_type: str
    old_value: str | None = None
    new_value: str | None = None
    # "metadata" on the wire; read from the ORM attribute "details"
    details: dict | None = Field(
        None,
        validation_alias=AliasChoices("details", "metadata"),
        serialization_alias="metadata",
    )
    created_at: datetime


class ActivityPage(ApiModel):
    items: list[ActivityRead]
    total: int
    limit: int
    offset: int


class TicketStats(ApiModel):
    open_count: int
    in_progress_count: int
    waiting_count: int
    resolved_count: int
    closed_count: int
    archived_count: int
    critical_count: int
    high_priority_count: int
    total_count: int
