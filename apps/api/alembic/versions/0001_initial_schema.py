"""Initial schema: tenants, customers, tickets, SLA, time tracking.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17

Creates:
- organizations, users
- customers, projects, customer_contacts
- ticket_sequences, sla_policies, tickets
- ticket_comments, ticket_attachments, ticket_activities
- ticket_tags, ticket_tag_assignments
- time_entries, notifications
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def _timestamps(*names: str) -> list[sa.Column]:
    return [
        sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        for name in names
    ]


def upgrade() -> None:
    # ==========================================================================
    # Tenants & staff
    # ==========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        *_timestamps('created_at', 'updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(32), server_default=sa.text("'agent'"), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('token_version', sa.Integer(), server_default=sa.text('1'), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])

    # ==========================================================================
    # Customers & portal contacts
    # ==========================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_organization_id', 'customers', ['organization_id'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_projects_organization_id', 'projects', ['organization_id'])

    op.create_table(
        'customer_contacts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('is_primary', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('can_create_tickets', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('can_view_all_tickets', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('can_view_devices', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('can_view_invoices', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('can_view_quotes', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'email', name='uq_customer_contacts_email'),
    )
    op.create_index('ix_customer_contacts_customer_id', 'customer_contacts', ['customer_id'])

    # ==========================================================================
    # Ticket numbering & SLA policies
    # ==========================================================================
    op.create_table(
        'ticket_sequences',
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('last_number', sa.BigInteger(), server_default=sa.text('0'), nullable=False),
        *_timestamps('updated_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('organization_id'),
    )

    op.create_table(
        'sla_policies',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(32), nullable=False),
        sa.Column('first_response_minutes', sa.Integer(), nullable=False),
        sa.Column('resolution_minutes', sa.Integer(), nullable=False),
        sa.Column('business_hours_only', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_sla_policies_org_priority', 'sla_policies', ['organization_id', 'priority'])

    # ==========================================================================
    # tickets
    # ==========================================================================
    op.create_table(
        'tickets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('ticket_number', sa.String(32), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=True),
        sa.Column('created_by_contact_id', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),

        # Workflow
        sa.Column('status', sa.String(32), server_default=sa.text("'open'"), nullable=False),
        sa.Column('priority', sa.String(32), server_default=sa.text("'normal'"), nullable=False),
        sa.Column('assigned_to_user_id', sa.Uuid(), nullable=True),

        # SLA
        sa.Column('sla_policy_id', sa.Uuid(), nullable=True),
        sa.Column('first_response_due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sla_first_response_breached', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('sla_resolution_breached', sa.Boolean(), server_default=sa.false(), nullable=False),

        # Satisfaction
        sa.Column('satisfaction_rating', sa.Integer(), nullable=True),
        sa.Column('satisfaction_feedback', sa.Text(), nullable=True),

        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by_contact_id'], ['customer_contacts.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['assigned_to_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['sla_policy_id'], ['sla_policies.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'ticket_number', name='uq_tickets_org_number'),
    )
    op.create_index('idx_tickets_org_status', 'tickets', ['organization_id', 'status'])
    op.create_index('idx_tickets_org_customer', 'tickets', ['organization_id', 'customer_id'])

    # ==========================================================================
    # Comments, attachments, activity log
    # ==========================================================================
    op.create_table(
        'ticket_comments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('customer_contact_id', sa.Uuid(), nullable=True),
        sa.Column('is_internal', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['customer_contact_id'], ['customer_contacts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            '(user_id IS NULL) <> (customer_contact_id IS NULL)',
            name='ck_ticket_comments_single_author',
        ),
        sa.CheckConstraint(
            'NOT is_internal OR user_id IS NOT NULL',
            name='ck_ticket_comments_internal_staff_only',
        ),
    )
    op.create_index('idx_ticket_comments_ticket_created', 'ticket_comments', ['ticket_id', 'created_at'])

    op.create_table(
        'ticket_attachments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), nullable=False),
        sa.Column('comment_id', sa.Uuid(), nullable=True),
        sa.Column('uploaded_by_user_id', sa.Uuid(), nullable=True),
        sa.Column('uploaded_by_contact_id', sa.Uuid(), nullable=True),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('storage_key', sa.String(512), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('mime_type', sa.String(100), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['comment_id'], ['ticket_comments.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['uploaded_by_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['uploaded_by_contact_id'], ['customer_contacts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ticket_attachments_ticket_id', 'ticket_attachments', ['ticket_id'])

    op.create_table(
        'ticket_activities',
        sa.Column(
            'seq',
            sa.BigInteger().with_variant(sa.Integer(), 'sqlite'),
            autoincrement=True,
            nullable=False,
        ),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), nullable=False),
        sa.Column('actor_user_id', sa.Uuid(), nullable=True),
        sa.Column('actor_contact_id', sa.Uuid(), nullable=True),
        sa.Column('action_type', sa.String(50), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('metadata', JSON, nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('seq'),
        sa.UniqueConstraint('id'),
    )
    op.create_index('idx_ticket_activities_ticket_seq', 'ticket_activities', ['ticket_id', 'seq'])

    # ==========================================================================
    # Tags
    # ==========================================================================
    op.create_table(
        'ticket_tags',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('color', sa.String(20), server_default=sa.text("'#3B82F6'"), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'name', name='uq_ticket_tags_org_name'),
    )

    op.create_table(
        'ticket_tag_assignments',
        sa.Column('ticket_id', sa.Uuid(), nullable=False),
        sa.Column('tag_id', sa.Uuid(), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['ticket_tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('ticket_id', 'tag_id'),
    )

    # ==========================================================================
    # Time tracking & notifications
    # ==========================================================================
    op.create_table(
        'time_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_running', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_time_entries_org_user', 'time_entries', ['organization_id', 'user_id'])
    op.create_index('idx_time_entries_ticket', 'time_entries', ['ticket_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('entity_type', sa.String(50), nullable=True),
        sa.Column('entity_id', sa.Uuid(), nullable=True),
        sa.Column('dedupe_key', sa.String(255), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_notif_user_unread', 'notifications', ['user_id', 'read_at', 'created_at'])
    op.create_index('idx_notif_dedupe', 'notifications', ['dedupe_key', 'created_at'])


def downgrade() -> None:
    for table in (
        'notifications',
        'time_entries',
        'ticket_tag_assignments',
        'ticket_tags',
        'ticket_activities',
        'ticket_attachments',
        'ticket_comments',
        'tickets',
        'sla_policies',
        'ticket_sequences',
        'customer_contacts',
        'projects',
        'customers',
        'users',
        'organizations',
    ):
        op.drop_table(table)
