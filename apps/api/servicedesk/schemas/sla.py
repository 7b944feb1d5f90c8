"""Pydantic schemas for SLA policies."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from servicedesk.db.enums import SlaPriority
from servicedesk.schemas.common import ApiModel


class SlaPolicyCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    priority: SlaPriority
    first_response_minutes: int = Field(..., ge=1)
    resolution_minutes: int = Field(..., ge=1)
    business_hours_only: bool = False
    is_active: bool = True
    is_default: bool = False


class SlaPolicyUpdate(ApiModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    priority: SlaPriority | None = None
    first_response_minutes: int | None = Field(None, ge=1)
    resolution_minutes: int | None = Field(None, ge=1)
    business_hours_only: bool | None = None
    is_active: bool | None = None
    is_default: bool | None = None


class SlaPolicyRead(ApiModel):
    id: UUID
    name: str
    description: str | None = None
    priority: SlaPriority
    first_response_minutes: int
    resolution_minutes: int
    business_hours_only: bool
    is_active: bool
    is_default: bool
    created_at: datetime
    updated_at: datetime


class SlaBreachSweepResult(ApiModel):
    tickets_checked: int
    first_response_breaches: int
    resolution_breaches: int
