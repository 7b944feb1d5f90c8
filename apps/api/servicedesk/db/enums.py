"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Staff roles with increasing privilege levels.

    - AGENT: Works tickets, comments, logs time
    - ADMIN: Tenant admin (SLA policies, tags, hard deletes)
    """

    AGENT = "agent"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ARCHIVED = "archived"


class TicketPriority(str, Enum):
    """Ticket priority level."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class SlaPriority(str, Enum):
    """Priority an SLA policy applies to. ALL matches any ticket priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"
    ALL = "all"


class TicketActivityType(str, Enum):
    """Semantic ticket changes recorded in the activity timeline."""

    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    COMMENT_ADDED = "comment_added"
    INTERNAL_COMMENT_ADDED = "internal_comment_added"
    ATTACHMENT_ADDED = "attachment_added"
    TAG_ADDED = "tag_added"
    TAG_REMOVED = "tag_removed"
    TITLE_CHANGED = "title_changed"
    DESCRIPTION_CHANGED = "description_changed"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REOPENED = "reopened"
    ARCHIVED = "archived"
    RATING_ADDED = "rating_added"
    TIME_LOGGED = "time_logged"


class NotificationType(str, Enum):
    """Types of in-app staff notifications."""

    TICKET_CREATED = "ticket_created"
    TICKET_STATUS_CHANGED = "ticket_status_changed"
    TICKET_REPLY_ADDED = "ticket_reply_added"


# Statuses that count as "work still pending".
ACTIVE_TICKET_STATUSES = frozenset(
    {TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.WAITING}
)
# Statuses a ticket can be reopened from.
REOPENABLE_TICKET_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})
DONE_TICKET_STATUSES = frozenset(
    {TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.ARCHIVED}
)

ROLES_CAN_MANAGE_SETTINGS = {Role.ADMIN}
ROLES_CAN_HARD_DELETE = {Role.ADMIN}
