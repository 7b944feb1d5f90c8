"""Pydantic schemas for customer portal contacts managed by staff."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from servicedesk.schemas.common import ApiModel


class ContactCreate(ApiModel):
    customer_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    can_create_tickets: bool = True
    can_view_all_tickets: bool = False


class ContactRead(ApiModel):
    """A customer's portal contact as seen by staff."""

    id: UUID
    customer_id: UUID
    name: str
    email: str
    is_primary: bool
    can_create_tickets: bool
    can_view_all_tickets: bool
    last_login: datetime | None = None
    created_at: datetime
