"""Tests for the ticket lifecycle: creation, updates, status effects, comments and tags."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from servicedesk.core.config import settings
from servicedesk.db.enums import TicketPriority, TicketStatus
from servicedesk.db.models import Ticket, TicketActivity, TicketTag, TimeEntry
from servicedesk.schemas.ticketing import TicketUpdate
from servicedesk.services import ticket_activity_service, ticket_service
from servicedesk.services.ticket_activity_service import Actor, list_activities


T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def _actions(db, ticket) -> list[str]:
    """Activity types, oldest first."""
    page = list_activities(db, ticket.organization_id, ticket.id, limit=100)
    return [a.action_type for a in reversed(page.items)]


def _update(db, org, user, ticket, now=None, **fields):
    return ticket_service.update_ticket(
        db, org.id, ticket.id, TicketUpdate(**fields), Actor.user(user.id), now=now
    )


@pytest.fixture
def tag(db, test_org):
    tag = TicketTag(organization_id=test_org.id, name="hardware", color="#EF4444")
    db.add(tag)
    db.commit()
    return tag


# =============================================================================
# Creation
# =============================================================================

def test_create_ticket_sets_defaults_and_logs_created(db, ticket_factory):
    ticket = ticket_factory(priority=TicketPriority.HIGH)

    assert ticket.ticket_number == "TKT-000001"
    assert ticket.status == TicketStatus.OPEN.value
    assert ticket.priority == TicketPriority.HIGH.value
    assert ticket.created_by_contact_id is None
    assert _actions(db, ticket) == ["created"]


def test_create_ticket_for_foreign_customer_is_404(db, test_user, other_org_auth):
    from servicedesk.schemas.ticketing import TicketCreate

    with pytest.raises(HTTPException) as exc:
        ticket_service.create_ticket(
            db,
            other_org_auth.org.id,
            TicketCreate(customer_id=other_org_auth.user.id, title="Nope"),
            Actor.user(test_user.id),
        )
    assert exc.value.status_code == 404
    assert db.query(Ticket).count() == 0


def test_staff_created_ticket_does_not_notify(db, ticket_factory, dispatcher):
    ticket_factory(dispatcher=dispatcher)

    assert dispatcher.created == []


def test_portal_created_ticket_notifies(db, ticket_factory, test_contact, dispatcher):
    ticket = ticket_factory(contact=test_contact, dispatcher=dispatcher)

    assert ticket.created_by_contact_id == test_contact.id
    assert dispatcher.created == [(ticket.id, ticket.customer_id, test_contact.id)]


def test_ticket_numbers_increase_per_creation(db, ticket_factory):
    numbers = [ticket_factory(title=f"t{i}").ticket_number for i in range(3)]

    assert numbers == ["TKT-000001", "TKT-000002", "TKT-000003"]


# =============================================================================
# Status transitions
# =============================================================================

def test_resolve_close_reopen_timestamps(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory()

    ticket = _update(db, test_org, test_user, ticket, status=TicketStatus.RESOLVED, now=T0)
    assert ticket.resolved_at == T0
    assert ticket.closed_at is None

    ticket = _update(db, test_org, test_user, ticket, status=TicketStatus.CLOSED, now=T0 + timedelta(hours=1))
    assert ticket.resolved_at == T0
    assert ticket.closed_at == T0 + timedelta(hours=1)

    ticket = _update(db, test_org, test_user, ticket, status=TicketStatus.OPEN)
    assert ticket.resolved_at is None
    assert ticket.closed_at is None

    assert _actions(db, ticket) == ["created", "resolved", "closed", "reopened"]


def test_closed_back_to_resolved_clears_closed_at(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory()
    ticket = _update(db, test_org, test_user, ticket, status=TicketStatus.CLOSED, now=T0)
    assert ticket.closed_at == T0

    ticket = _update(db, test_org, test_user, ticket, status=TicketStatus.RESOLVED, now=T0 + timedelta(hours=1))

    assert ticket.resolved_at == T0 + timedelta(hours=1)
    assert ticket.closed_at is None


def test_plain_status_change_and_archive(db, test_org, test_user, ticket_factory, dispatcher):
    ticket = ticket_factory()

    _update(db, test_org, test_user, ticket, status=TicketStatus.IN_PROGRESS)
    ticket_service.update_ticket(
        db, test_org.id, ticket.id, TicketUpdate(status=TicketStatus.ARCHIVED),
        Actor.user(test_user.id), dispatcher=dispatcher,
    )

    assert _actions(db, ticket) == ["created", "status_changed", "archived"]
    assert dispatcher.status_changes == []


def test_status_change_dispatches_notification(db, test_org, test_user, ticket_factory, dispatcher):
    ticket = ticket_factory()

    ticket_service.update_ticket(
        db, test_org.id, ticket.id, TicketUpdate(status=TicketStatus.WAITING),
        Actor.user(test_user.id), dispatcher=dispatcher,
    )

    assert dispatcher.status_changes == [(ticket.id, "open", "waiting")]


def test_same_status_is_not_a_change(db, test_org, test_user, ticket_factory, dispatcher):
    ticket = ticket_factory()

    ticket_service.update_ticket(
        db, test_org.id, ticket.id, TicketUpdate(status=TicketStatus.OPEN),
        Actor.user(test_user.id), dispatcher=dispatcher,
    )

    assert _actions(db, ticket) == ["created"]
    assert dispatcher.status_changes == []


def test_any_transition_allowed_by_default(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory()
    _update(db, test_org, test_user, ticket, status=TicketStatus.ARCHIVED)

    ticket = _update(db, test_org, test_user, ticket, status=TicketStatus.RESOLVED)

    assert ticket.status == TicketStatus.RESOLVED.value


def test_strict_mode_rejects_unlisted_transition(db, test_org, test_user, ticket_factory, monkeypatch):
    monkeypatch.setattr(settings, "TICKET_STRICT_TRANSITIONS", True)
    ticket = ticket_factory()
    _update(db, test_org, test_user, ticket, status=TicketStatus.ARCHIVED)

    with pytest.raises(HTTPException) as exc:
        _update(db, test_org, test_user, ticket, status=TicketStatus.RESOLVED)
    assert exc.value.status_code == 400

    ticket = _update(db, test_org, test_user, ticket, status=TicketStatus.OPEN)
    assert ticket.status == TicketStatus.OPEN.value


# =============================================================================
# Field updates
# =============================================================================

def test_one_activity_per_changed_field(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory(title="Old title")

    _update(
        db, test_org, test_user, ticket,
        title="New title",
        description="Details",
        priority=TicketPriority.CRITICAL,
    )

    activities = {
        a.action_type: a
        for a in db.query(TicketActivity).filter(TicketActivity.ticket_id == ticket.id)
    }
    assert set(activities) == {"created", "title_changed", "description_changed", "priority_changed"}
    assert activities["title_changed"].old_value == "Old title"
    assert activities["title_changed"].new_value == "New title"
    assert activities["priority_changed"].old_value == "normal"
    assert activities["priority_changed"].new_value == "critical"


def test_partial_update_leaves_other_fields(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory(title="Keep me", priority=TicketPriority.HIGH)

    ticket = _update(db, test_org, test_user, ticket, description="Only this")

    assert ticket.title == "Keep me"
    assert ticket.priority == TicketPriority.HIGH.value
    assert ticket.description == "Only this"


def test_update_always_bumps_updated_at(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory(now=T0)

    ticket = _update(db, test_org, test_user, ticket, now=T0 + timedelta(minutes=5))

    assert ticket.updated_at == T0 + timedelta(minutes=5)
    assert _actions(db, ticket) == ["created"]


def test_assignment_activities(db, test_org, test_user, agent_auth, ticket_factory):
    ticket = ticket_factory()
    agent = agent_auth.user

    _update(db, test_org, test_user, ticket, assigned_to_user_id=test_user.id)
    _update(db, test_org, test_user, ticket, assigned_to_user_id=agent.id)
    _update(db, test_org, test_user, ticket, assigned_to_user_id=None)

    rows = (
        db.query(TicketActivity)
        .filter(TicketActivity.ticket_id == ticket.id, TicketActivity.action_type != "created")
        .order_by(TicketActivity.seq)
        .all()
    )
    assert [(r.action_type, r.old_value, r.new_value) for r in rows] == [
        ("assigned", None, str(test_user.id)),
        ("assigned", str(test_user.id), str(agent.id)),
        ("unassigned", str(agent.id), None),
    ]


def test_assignee_from_other_org_is_rejected(db, test_org, test_user, other_org_auth, ticket_factory):
    ticket = ticket_factory()

    with pytest.raises(HTTPException) as exc:
        _update(db, test_org, test_user, ticket, assigned_to_user_id=other_org_auth.user.id)
    assert exc.value.status_code == 400


def test_null_for_required_field_is_400(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory()

    with pytest.raises(HTTPException) as exc:
        _update(db, test_org, test_user, ticket, title=None)
    assert exc.value.status_code == 400


def test_stale_expected_updated_at_is_409(db, test_org, test_user, ticket_factory):
    ticket = ticket_factory(now=T0)
    _update(db, test_org, test_user, ticket, title="Someone else", now=T0 + timedelta(minutes=1))

    with pytest.raises(HTTPException) as exc:
        _update(db, test_org, test_user, ticket, title="Mine", expected_updated_at=T0)
    assert exc.value.status_code == 409

    ticket = _update(
        db, test_org, test_user, ticket,
        title="Mine", expected_updated_at=T0 + timedelta(minutes=1),
    )
    assert ticket.title == "Mine"


def test_update_in_other_org_is_404(db, test_user, other_org_auth, ticket_factory):
    ticket = ticket_factory()

    with pytest.raises(HTTPException) as exc:
        _update(db, other_org_auth.org, test_user, ticket, title="Hijack")
    assert exc.value.status_code == 404


# =============================================================================
# Comments
# =============================================================================

def test_first_response_set_once(db, test_user, ticket_factory):
    ticket = ticket_factory(now=T0)
    actor = Actor.user(test_user.id)

    ticket_service.add_comment_to_ticket(db, ticket, "First", actor, now=T0 + timedelta(minutes=5))
    ticket_service.add_comment_to_ticket(db, ticket, "Second", actor, now=T0 + timedelta(minutes=9))
    db.refresh(ticket)

    assert ticket.first_response_at == T0 + timedelta(minutes=5)
    assert ticket.updated_at == T0 + timedelta(minutes=9)


def test_internal_comment_is_not_a_response(db, test_user, ticket_factory):
    ticket = ticket_factory()

    ticket_service.add_comment_to_ticket(db, ticket, "Note to self", Actor.user(test_user.id), is_internal=True)
    db.refresh(ticket)

    assert ticket.first_response_at is None
    assert _actions(db, ticket) == ["created", "internal_comment_added"]


def test_contact_cannot_write_internal_comment(db, test_contact, ticket_factory):
    ticket = ticket_factory()

    with pytest.raises(HTTPException) as exc:
        ticket_service.add_comment_to_ticket(
            db, ticket, "Secret", Actor.contact(test_contact.id), is_internal=True
        )
    assert exc.value.status_code == 400


def test_reply_notifications(db, test_user, test_contact, ticket_factory, dispatcher):
    ticket = ticket_factory()

    public = ticket_service.add_comment_to_ticket(
        db, ticket, "Public", Actor.user(test_user.id), dispatcher=dispatcher
    )
    ticket_service.add_comment_to_ticket(
        db, ticket, "Internal", Actor.user(test_user.id), is_internal=True, dispatcher=dispatcher
    )
    customer_reply = ticket_service.add_comment_to_ticket(
        db, ticket, "Thanks", Actor.contact(test_contact.id), dispatcher=dispatcher
    )

    assert dispatcher.replies == [(ticket.id, public.id), (ticket.id, customer_reply.id)]


def test_comment_activity_references_comment(db, test_user, ticket_factory):
    ticket = ticket_factory()

    comment = ticket_service.add_comment_to_ticket(db, ticket, "Hello", Actor.user(test_user.id))

    activity = list_activities(db, ticket.organization_id, ticket.id).items[0]
    assert activity.action_type == "comment_added"
    assert activity.details == {"commentId": str(comment.id)}


def test_list_comments_hides_internal_when_asked(db, test_user, ticket_factory):
    ticket = ticket_factory()
    actor = Actor.user(test_user.id)
    ticket_service.add_comment_to_ticket(db, ticket, "External", actor)
    ticket_service.add_comment_to_ticket(db, ticket, "Internal", actor, is_internal=True)

    assert [c.content for c in ticket_service.list_comments(db, ticket.id)] == ["External", "Internal"]
    assert [c.content for c in ticket_service.list_comments(db, ticket.id, include_internal=False)] == [
        "External"
    ]


# =============================================================================
# Tags
# =============================================================================

def test_tag_add_remove_idempotent(db, test_org, test_user, ticket_factory, tag):
    ticket = ticket_factory()
    actor = Actor.user(test_user.id)

    assert ticket_service.add_tag(db, test_org.id, ticket.id, tag.id, actor) is True
    assert ticket_service.add_tag(db, test_org.id, ticket.id, tag.id, actor) is False
    db.refresh(ticket)
    assert [t.name for t in ticket.tags] == ["hardware"]

    assert ticket_service.remove_tag(db, test_org.id, ticket.id, tag.id, actor) is True
    assert ticket_service.remove_tag(db, test_org.id, ticket.id, tag.id, actor) is False

    assert _actions(db, ticket) == ["created", "tag_added", "tag_removed"]


def test_tag_from_other_org_is_404(db, test_user, other_org_auth, ticket_factory):
    foreign = TicketTag(organization_id=other_org_auth.org.id, name="foreign")
    db.add(foreign)
    db.commit()
    ticket = ticket_factory()

    with pytest.raises(HTTPException) as exc:
        ticket_service.add_tag(db, ticket.organization_id, ticket.id, foreign.id, Actor.user(test_user.id))
    assert exc.value.status_code == 404


def test_list_tickets_filters(db, test_org, test_user, ticket_factory, tag):
    low = ticket_factory(title="low", priority=TicketPriority.LOW)
    high = ticket_factory(title="high", priority=TicketPriority.HIGH)
    _update(db, test_org, test_user, high, status=TicketStatus.WAITING)
    ticket_service.add_tag(db, test_org.id, low.id, tag.id, Actor.user(test_user.id))

    assert [t.id for t in ticket_service.list_tickets(db, test_org.id, priority=TicketPriority.HIGH)] == [high.id]
    assert [t.id for t in ticket_service.list_tickets(db, test_org.id, status=TicketStatus.WAITING)] == [high.id]
    assert [t.id for t in ticket_service.list_tickets(db, test_org.id, tag_id=tag.id)] == [low.id]


def test_ticket_stats(db, test_org, test_user, ticket_factory):
    ticket_factory(priority=TicketPriority.CRITICAL)
    done = ticket_factory(priority=TicketPriority.CRITICAL)
    ticket_factory(priority=TicketPriority.HIGH)
    _update(db, test_org, test_user, done, status=TicketStatus.RESOLVED)

    stats = ticket_service.get_ticket_stats(db, test_org.id)

    assert stats.open_count == 2
    assert stats.resolved_count == 1
    assert stats.critical_count == 1
    assert stats.high_priority_count == 1
    assert stats.total_count == 3


# =============================================================================
# Deletion & best-effort side effects
# =============================================================================

def test_delete_ticket_unlinks_time_entries(db, test_org, test_user, test_project, ticket_factory):
    ticket = ticket_factory()
    ticket_service.add_comment_to_ticket(db, ticket, "bye", Actor.user(test_user.id))
    entry = TimeEntry(
        organization_id=test_org.id,
        user_id=test_user.id,
        project_id=test_project.id,
        ticket_id=ticket.id,
        start_time=T0,
        duration=600,
    )
    db.add(entry)
    db.commit()

    ticket_service.delete_ticket(db, test_org.id, ticket.id)

    assert db.get(Ticket, ticket.id) is None
    assert db.query(TicketActivity).count() == 0
    db.refresh(entry)
    assert entry.ticket_id is None


def test_activity_failure_does_not_block_mutation(db, test_org, test_user, ticket_factory, monkeypatch):
    ticket = ticket_factory()

    def boom(db, batch):
        raise RuntimeError("activity store down")

    monkeypatch.setattr(ticket_activity_service, "_write_activities", boom)
    ticket = _update(db, test_org, test_user, ticket, title="Still saved")

    db.refresh(ticket)
    assert ticket.title == "Still saved"
    assert db.query(TicketActivity).filter(TicketActivity.action_type == "title_changed").count() == 0


def test_dispatch_failure_does_not_block_comment(db, test_user, ticket_factory):
    class BrokenDispatcher:
        def ticket_reply_added(self, ticket, comment):
            raise RuntimeError("smtp down")

    ticket = ticket_factory()

    comment = ticket_service.add_comment_to_ticket(
        db, ticket, "Hello", Actor.user(test_user.id), dispatcher=BrokenDispatcher()
    )

    assert comment.id is not None
    assert [c.id for c in ticket_service.list_comments(db, ticket.id)] == [comment.id]
