"""Tests for per-organization ticket number allocation."""

from concurrent.futures import ThreadPoolExecutor

from servicedesk.db.models import TicketSequence
from servicedesk.services import sequence_service


def test_format_ticket_number_pads_to_six_digits():
    assert sequence_service.format_ticket_number(1) == "TKT-000001"
    assert sequence_service.format_ticket_number(42) == "TKT-000042"


def test_format_ticket_number_grows_past_padding():
    assert sequence_service.format_ticket_number(1234567) == "TKT-1234567"


def test_next_ticket_number_is_sequential(db, test_org):
    numbers = [sequence_service.next_ticket_number(db, test_org.id) for _ in range(3)]
    db.commit()

    assert numbers == ["TKT-000001", "TKT-000002", "TKT-000003"]
    assert db.get(TicketSequence, test_org.id).last_number == 3


def test_sequences_are_independent_per_organization(db, test_org, other_org_auth):
    other_org_id = other_org_auth.org.id

    assert sequence_service.next_ticket_number(db, test_org.id) == "TKT-000001"
    assert sequence_service.next_ticket_number(db, test_org.id) == "TKT-000002"
    assert sequence_service.next_ticket_number(db, other_org_id) == "TKT-000001"
    db.commit()


def test_rolled_back_increment_is_not_consumed(db, test_org):
    sequence_service.next_sequence_value(db, test_org.id)
    db.commit()

    sequence_service.next_sequence_value(db, test_org.id)
    db.rollback()

    assert sequence_service.next_sequence_value(db, test_org.id) == 2
    db.commit()


def test_concurrent_allocation_never_duplicates(session_factory, test_org):
    org_id = test_org.id

    def allocate(_):
        session = session_factory()
        try:
            value = sequence_service.next_sequence_value(session, org_id)
            session.commit()
            return value
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        values = list(pool.map(allocate, range(40)))

    assert len(set(values)) == 40
    assert sorted(values) == list(range(1, 41))
