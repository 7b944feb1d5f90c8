"""Pydantic schemas for in-app notifications."""

from datetime import datetime
from uuid import UUID

from servicedesk.schemas.common import ApiModel


class NotificationRead(ApiModel):
    id: UUID
    type: str
    title: str
    body: str | None = None
    entity_type: str | None = None
    entity_id: UUID | None = None
    read_at: datetime | None = None
    created_at: datetime
