"""Pydantic schemas for time entries."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from servicedesk.schemas.common import ApiModel


class TimeEntryCreate(ApiModel):
    start_time: datetime
    end_time: datetime | None = None
    duration: int = Field(..., ge=0, description="Seconds")
    project_id: UUID
    ticket_id: UUID | None = None
    description: str | None = Field(None, max_length=1000)
    is_running: bool = False


class TimeEntryUpdate(ApiModel):
    """Partial update; ticket_id may be set to null to unlink."""
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: int | None = Field(None, ge=0)
    project_id: UUID | None = None
    ticket_id: UUID | None = None
    description: str | None = Field(None, max_length=1000)
    is_running: bool | None = None


class TimeEntryRead(ApiModel):
    id: UUID
    user_id: UUID
    project_id: UUID
    ticket_id: UUID | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration: int
    description: str | None = None
    is_running: bool
    created_at: datetime
    updated_at: datetime
