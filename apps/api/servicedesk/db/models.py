"""SQLAlchemy ORM models for tenants, customers, tickets and time tracking."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint, Uuid, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from servicedesk.db.base import Base
from servicedesk.db.enums import Role, TicketPriority, TicketStatus
from servicedesk.db.types import JSONType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Tenant & Staff Models
# =============================================================================

class Organization(Base):
    """
    A tenant (service provider account) in the multi-tenant system.

    Customers, tickets, sequences and SLA policies belong to an organization
    and must be scoped by organization_id in all queries.
    """
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    users: Mapped[list["User"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
    )
    customers: Mapped[list["Customer"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
    )


class User(Base):
    """Staff member of a tenant."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), default=Role.AGENT.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Bumped to revoke all outstanding session tokens
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    organization: Mapped["Organization"] = relationship(back_populates="users")


# =============================================================================
# Customers & Portal Contacts
# =============================================================================

class Customer(Base):
    """A tenant's client organization; the subject of tickets."""
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    organization: Mapped["Organization"] = relationship(back_populates="customers")
    contacts: Mapped[list["CustomerContact"]] = relationship(
        back_populates="customer",
        cascade="all, delete-orphan",
    )


class Project(Base):
    """Billable project, optionally tied to a customer."""
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )


class CustomerContact(Base):
    """
    Customer portal identity, scoped to exactly one customer.

    The can_* flags gate individual portal operations.
    """
    __tablename__ = "customer_contacts"
    __table_args__ = (
        UniqueConstraint("customer_id", "email", name="uq_customer_contacts_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    can_create_tickets: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_view_all_tickets: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_devices: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_invoices: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_quotes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    last_login: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    customer: Mapped["Customer"] = relationship(back_populates="contacts")


# =============================================================================
# Ticketing
# =============================================================================

class TicketSequence(Base):
    """Per-tenant ticket number counter (one row per organization)."""
    __tablename__ = "ticket_sequences"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    last_number: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )


class Ticket(Base):
    """
    Helpdesk ticket.

    ticket_number is TKT-NNNNNN, unique and monotonic per organization.
    SLA breach flags only ever move from False to True.
    """
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("organization_id", "ticket_number", name="uq_tickets_org_number"),
        Index("idx_tickets_org_status", "organization_id", "status"),
        Index("idx_tickets_org_customer", "organization_id", "customer_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    ticket_number: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )
    created_by_contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customer_contacts.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), default=TicketStatus.OPEN.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(32), default=TicketPriority.NORMAL.value, nullable=False
    )
    assigned_to_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # SLA
    sla_policy_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("sla_policies.id", ondelete="SET NULL"), nullable=True
    )
    first_response_due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    first_response_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sla_first_response_breached: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    sla_resolution_breached: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Satisfaction rating (portal)
    satisfaction_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    satisfaction_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    customer: Mapped["Customer"] = relationship()
    project: Mapped["Project | None"] = relationship()
    sla_policy: Mapped["SlaPolicy | None"] = relationship()
    comments: Mapped[list["TicketComment"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketComment.created_at",
    )
    attachments: Mapped[list["TicketAttachment"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
    )
    activities: Mapped[list["TicketActivity"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
    )
    tag_assignments: Mapped[list["TicketTagAssignment"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
    )

    @property
    def customer_name(self) -> str | None:
        return self.customer.name if self.customer else None

    @property
    def project_name(self) -> str | None:
        return self.project.name if self.project else None

    @property
    def tags(self) -> list["TicketTag"]:
        return sorted((a.tag for a in self.tag_assignments), key=lambda tag: tag.name)


class TicketComment(Base):
    """
    Comment on a ticket, authored by exactly one staff user or portal contact.

    Internal comments are staff-only and never leave the tenant side.
    """
    __tablename__ = "ticket_comments"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (customer_contact_id IS NULL)",
            name="ck_ticket_comments_single_author",
        ),
        CheckConstraint(
            "NOT is_internal OR user_id IS NOT NULL",
            name="ck_ticket_comments_internal_staff_only",
        ),
        Index("idx_ticket_comments_ticket_created", "ticket_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    customer_contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customer_contacts.id", ondelete="SET NULL"), nullable=True
    )
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="comments")
    user: Mapped["User | None"] = relationship()
    contact: Mapped["CustomerContact | None"] = relationship()

    @property
    def author_type(self) -> str:
        return "user" if self.user_id else "customer"

    @property
    def author_name(self) -> str:
        if self.user is not None:
            return self.user.display_name
        if self.contact is not None:
            return self.contact.name
        return "System"

    @property
    def is_from_customer(self) -> bool:
        return self.customer_contact_id is not None


class TicketAttachment(Base):
    """File metadata for a ticket upload. Bytes live in the attachment store."""
    __tablename__ = "ticket_attachments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    comment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("ticket_comments.id", ondelete="SET NULL"), nullable=True
    )
    uploaded_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    uploaded_by_contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customer_contacts.id", ondelete="SET NULL"), nullable=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    # Generated unique name in the store (uuid + original extension)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="attachments")
    comment: Mapped["TicketComment | None"] = relationship()
    uploaded_by_user: Mapped["User | None"] = relationship()
    uploaded_by_contact: Mapped["CustomerContact | None"] = relationship()

    @property
    def file_url(self) -> str:
        return f"/uploads/{self.storage_key}"

    @property
    def uploaded_by_name(self) -> str:
        if self.uploaded_by_user is not None:
            return self.uploaded_by_user.display_name
        if self.uploaded_by_contact is not None:
            return self.uploaded_by_contact.name
        return "System"


class TicketActivity(Base):
    """
    Immutable, append-only audit record of a ticket change.

    seq is a monotonic insertion counter used to break created_at ties.
    """
    __tablename__ = "ticket_activities"
    __table_args__ = (
        Index("idx_ticket_activities_ticket_seq", "ticket_id", "seq"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, default=uuid.uuid4, nullable=False)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    actor_contact_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="activities")


class SlaPolicy(Base):
    """
    Response/resolution targets for a priority (or 'all' as fallback).

    business_hours_only is stored but deadlines are wall-clock offsets.
    """
    __tablename__ = "sla_policies"
    __table_args__ = (
        Index("idx_sla_policies_org_priority", "organization_id", "priority"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(32), nullable=False)
    first_response_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    business_hours_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )


class TicketTag(Base):
    """Tenant-scoped colored label."""
    __tablename__ = "ticket_tags"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_ticket_tags_org_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), default="#3B82F6", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    assignments: Mapped[list["TicketTagAssignment"]] = relationship(
        back_populates="tag",
        cascade="all, delete-orphan",
    )


class TicketTagAssignment(Base):
    """Join row between a ticket and a tag."""
    __tablename__ = "ticket_tag_assignments"

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("ticket_tags.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="tag_assignments")
    tag: Mapped["TicketTag"] = relationship(back_populates="assignments")


# =============================================================================
# Time Tracking
# =============================================================================

class TimeEntry(Base):
    """Tracked work interval; duration is in seconds."""
    __tablename__ = "time_entries"
    __table_args__ = (
        Index("idx_time_entries_org_user", "organization_id", "user_id"),
        Index("idx_time_entries_ticket", "ticket_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_running: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )


# =============================================================================
# Notifications
# =============================================================================

class Notification(Base):
    """
    In-app notifications for staff users.

    Dedupe key prevents repeated alerts for the same ticket event.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notif_user_unread", "user_id", "read_at", "created_at"),
        Index("idx_notif_dedupe", "dedupe_key", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    dedupe_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
