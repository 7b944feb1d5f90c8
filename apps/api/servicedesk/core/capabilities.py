"""Customer portal capability set.

Every portal operation that depends on a contact flag goes through
ensure_capability so the check exists in exactly one place.
"""

from enum import Enum

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PortalCapability(str, Enum):
    """Capability flags carried by a customer contact."""

    CREATE_TICKETS = "can_create_tickets"
    VIEW_ALL_TICKETS = "can_view_all_tickets"
    VIEW_DEVICES = "can_view_devices"
    VIEW_INVOICES = "can_view_invoices"
    VIEW_QUOTES = "can_view_quotes"


DENIED_MESSAGES: dict[PortalCapability, str] = {
    PortalCapability.CREATE_TICKETS: "You are not allowed to create tickets",
    PortalCapability.VIEW_ALL_TICKETS: "You are not allowed to view all tickets",
    PortalCapability.VIEW_DEVICES: "You are not allowed to view devices",
    PortalCapability.VIEW_INVOICES: "You are not allowed to view invoices",
    PortalCapability.VIEW_QUOTES: "You are not allowed to view quotes",
}


class PortalCapabilities(BaseModel):
    """Snapshot of a contact's portal permissions."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    can_create_tickets: bool = False
    can_view_all_tickets: bool = False
    can_view_devices: bool = False
    can_view_invoices: bool = False
    can_view_quotes: bool = False

    @classmethod
    def from_contact(cls, contact) -> "PortalCapabilities":
        """Read the flags off a CustomerContact row."""
        return cls(**{cap.value: bool(getattr(contact, cap.value)) for cap in PortalCapability})

    def allows(self, capability: PortalCapability) -> bool:
        return bool(getattr(self, capability.value))


def ensure_capability(capabilities: PortalCapabilities, capability: PortalCapability) -> None:
    """
    Raise 403 if the capability is missing.

    Missing capability is a permission error, never a validation error.
    """
    if not capabilities.allows(capability):
        raise HTTPException(status_code=403, detail=DENIED_MESSAGES[capability])
