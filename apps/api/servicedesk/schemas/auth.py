"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from servicedesk.core.capabilities import PortalCapabilities
from servicedesk.db.enums import Role


class UserSession(BaseModel):
    """
    Full session context for authenticated staff requests.

    Returned by the get_current_session dependency.
    """
    user_id: UUID
    org_id: UUID
    role: Role
    email: str
    display_name: str


class ContactSession(BaseModel):
    """Session context for an authenticated customer portal contact."""
    contact_id: UUID
    customer_id: UUID
    org_id: UUID
    name: str
    email: str
    capabilities: PortalCapabilities
