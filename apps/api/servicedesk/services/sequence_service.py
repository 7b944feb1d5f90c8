"""Per-organization ticket number allocation."""

from uuid import UUID

from sqlalchemy import Uuid, bindparam, text
from sqlalchemy.orm import Session

from servicedesk.core.config import settings


# Insert-if-absent and increment in one statement: concurrent callers for the
# same organization serialize on the counter row, so no number is handed out
# twice. Works on PostgreSQL and SQLite (>= 3.35, for RETURNING).
_NEXT_NUMBER_SQL = text(
    """
    INSERT INTO ticket_sequences (organization_id, last_number, updated_at)
    VALUES (:org_id, 1, CURRENT_TIMESTAMP)
    ON CONFLICT (organization_id) DO UPDATE
    SET last_number = ticket_sequences.last_number + 1,
        updated_at = CURRENT_TIMESTAMP
    RETURNING last_number
    """
).bindparams(bindparam("org_id", type_=Uuid()))


def next_sequence_value(db: Session, org_id: UUID) -> int:
    """
    Atomically increment and return the organization's ticket counter.

    Runs inside the caller's transaction: if the ticket insert fails and the
    transaction rolls back, the increment is rolled back with it.
    """
    return int(db.execute(_NEXT_NUMBER_SQL, {"org_id": org_id}).scalar_one())


def format_ticket_number(value: int) -> str:
    """TKT-000042. Wider counters simply grow past the padding."""
    return f"{settings.TICKET_NUMBER_PREFIX}{value:0{settings.TICKET_NUMBER_WIDTH}d}"


def next_ticket_number(db: Session, org_id: UUID) -> str:
    """Allocate the next human-facing ticket number for an organization."""
    return format_ticket_number(next_sequence_value(db, org_id))
