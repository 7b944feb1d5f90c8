"""
Tests for the customer portal surface.

Covers contact scoping, internal comment filtering, capability gates,
close/reopen/rate and portal attachments.
"""

import uuid

import pytest

from servicedesk.core.capabilities import PortalCapabilities
from servicedesk.core.security import create_portal_token
from servicedesk.db.enums import TicketStatus
from servicedesk.db.models import Customer, Ticket, TicketActivity
from servicedesk.schemas.auth import ContactSession
from servicedesk.schemas.ticketing import TicketCreate, TicketUpdate
from servicedesk.services import portal_service, ticket_service
from servicedesk.services.ticket_activity_service import Actor


@pytest.fixture
def commented_ticket(db, test_user, test_contact, ticket_factory):
    """Ticket with one external and one internal staff comment."""
    ticket = ticket_factory(contact=test_contact)
    actor = Actor.user(test_user.id)
    ticket_service.add_comment_to_ticket(db, ticket, "We are looking into it", actor)
    ticket_service.add_comment_to_ticket(db, ticket, "Customer is on legacy plan", actor, is_internal=True)
    return ticket


def _set_status(db, ticket, user, status):
    ticket_service.update_ticket(
        db, ticket.organization_id, ticket.id, TicketUpdate(status=status), Actor.user(user.id)
    )


# =============================================================================
# Identity & auth
# =============================================================================

async def test_me_returns_contact_and_capabilities(portal_client, test_contact, test_customer):
    response = await portal_client.get("/customer-portal/me")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == str(test_contact.id)
    assert data["customerName"] == test_customer.name
    assert data["capabilities"]["canCreateTickets"] is True
    assert data["capabilities"]["canViewInvoices"] is False


async def test_missing_token_is_401(client):
    response = await client.get("/customer-portal/tickets")

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "No token provided"}


async def test_staff_token_is_not_a_portal_token(client, test_auth):
    response = await client.get(
        "/customer-portal/tickets", headers={"Authorization": f"Bearer {test_auth.token}"}
    )

    assert response.status_code == 403


async def test_portal_token_is_not_a_staff_session(client, portal_token):
    client.cookies.set("desk_session", portal_token)

    response = await client.get("/tickets")

    assert response.status_code == 401


# =============================================================================
# Visibility
# =============================================================================

async def test_portal_detail_hides_internal_comments(portal_client, authed_client, commented_ticket):
    portal = await portal_client.get(f"/customer-portal/tickets/{commented_ticket.id}")
    staff = await authed_client.get(f"/tickets/{commented_ticket.id}")

    assert portal.status_code == 200
    assert [c["content"] for c in portal.json()["data"]["comments"]] == ["We are looking into it"]
    assert "slaPolicyId" not in portal.json()["data"]
    assert sorted(c["content"] for c in staff.json()["data"]["comments"]) == [
        "Customer is on legacy plan",
        "We are looking into it",
    ]


def test_portal_service_never_returns_internal_comments(db, test_contact, commented_ticket):
    session = ContactSession(
        contact_id=test_contact.id,
        customer_id=test_contact.customer_id,
        org_id=commented_ticket.organization_id,
        name=test_contact.name,
        email=test_contact.email,
        capabilities=PortalCapabilities.from_contact(test_contact),
    )
    ticket = portal_service.get_ticket(db, session, commented_ticket.id)

    comments = portal_service.list_comments(db, ticket)

    assert [c.is_internal for c in comments] == [False]


async def test_archived_hidden_by_default(db, portal_client, test_user, ticket_factory):
    active = ticket_factory(title="active")
    archived = ticket_factory(title="archived")
    _set_status(db, archived, test_user, TicketStatus.ARCHIVED)

    default = await portal_client.get("/customer-portal/tickets")
    everything = await portal_client.get("/customer-portal/tickets", params={"status": "all"})
    only_archived = await portal_client.get("/customer-portal/tickets", params={"status": "archived"})

    assert [t["id"] for t in default.json()["data"]] == [str(active.id)]
    assert {t["id"] for t in everything.json()["data"]} == {str(active.id), str(archived.id)}
    assert [t["id"] for t in only_archived.json()["data"]] == [str(archived.id)]


async def test_invalid_status_filter_is_400(portal_client):
    response = await portal_client.get("/customer-portal/tickets", params={"status": "pending"})

    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_other_customers_ticket_is_404(db, portal_client, test_org, test_user):
    other_customer = Customer(organization_id=test_org.id, name="Globex")
    db.add(other_customer)
    db.commit()
    ticket = ticket_service.create_ticket(
        db, test_org.id, TicketCreate(customer_id=other_customer.id, title="Not yours"),
        Actor.user(test_user.id),
    )

    response = await portal_client.get(f"/customer-portal/tickets/{ticket.id}")
    listing = await portal_client.get("/customer-portal/tickets")

    assert response.status_code == 404
    assert listing.json()["data"] == []


async def test_contact_without_view_all_sees_only_own(
    client, restricted_contact, test_contact, ticket_factory
):
    own = ticket_factory(title="mine", contact=restricted_contact)
    ticket_factory(title="colleague", contact=test_contact)
    ticket_factory(title="staff")
    token = create_portal_token(restricted_contact.id, restricted_contact.customer_id)

    response = await client.get(
        "/customer-portal/tickets", headers={"Authorization": f"Bearer {token}"}
    )

    assert [t["id"] for t in response.json()["data"]] == [str(own.id)]


# =============================================================================
# Creation & replies
# =============================================================================

async def test_create_ticket_via_portal(db, portal_client, test_contact, dispatcher):
    response = await portal_client.post(
        "/customer-portal/tickets",
        json={"title": "VPN down", "description": "Since 9am", "priority": "high"},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["ticketNumber"] == "TKT-000001"
    assert data["status"] == "open"
    ticket = db.get(Ticket, uuid.UUID(data["id"]))
    assert ticket.created_by_contact_id == test_contact.id
    assert len(dispatcher.created) == 1


async def test_create_ticket_without_capability_is_403(client, restricted_contact, db):
    token = create_portal_token(restricted_contact.id, restricted_contact.customer_id)

    response = await client.post(
        "/customer-portal/tickets",
        json={"title": "Please"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 403
    assert response.json()["error"] == "You are not allowed to create tickets"
    assert db.query(Ticket).count() == 0


async def test_portal_reply_sets_first_response_and_notifies(db, portal_client, ticket_factory, dispatcher):
    ticket = ticket_factory()

    response = await portal_client.post(
        f"/customer-portal/tickets/{ticket.id}/comments", json={"content": "Any update?"}
    )

    assert response.status_code == 201
    assert response.json()["data"]["isFromCustomer"] is True
    assert len(dispatcher.replies) == 1
    db.refresh(ticket)
    assert ticket.first_response_at is not None


# =============================================================================
# Close / reopen / rate
# =============================================================================

async def test_close_then_reopen(db, portal_client, ticket_factory, dispatcher):
    ticket = ticket_factory()

    closed = await portal_client.post(f"/customer-portal/tickets/{ticket.id}/close")
    again = await portal_client.post(f"/customer-portal/tickets/{ticket.id}/close")
    db.refresh(ticket)

    assert closed.status_code == 200
    assert again.status_code == 400
    assert ticket.status == TicketStatus.CLOSED.value
    assert ticket.closed_at is not None
    # System note is not a first response
    assert ticket.first_response_at is None

    reopened = await portal_client.post(f"/customer-portal/tickets/{ticket.id}/reopen")
    db.refresh(ticket)

    assert reopened.status_code == 200
    assert ticket.status == TicketStatus.OPEN.value
    assert ticket.closed_at is None
    assert dispatcher.status_changes == [
        (ticket.id, "open", "closed"),
        (ticket.id, "closed", "open"),
    ]

    detail = await portal_client.get(f"/customer-portal/tickets/{ticket.id}")
    assert [c["content"] for c in detail.json()["data"]["comments"]] == [
        "Ticket was closed by the customer.",
        "Ticket was reopened by the customer.",
    ]
    actions = [
        a.action_type
        for a in db.query(TicketActivity).filter(TicketActivity.ticket_id == ticket.id).order_by(TicketActivity.seq)
    ]
    assert actions == ["created", "closed", "comment_added", "reopened", "comment_added"]


async def test_reopen_active_ticket_is_400(portal_client, ticket_factory):
    ticket = ticket_factory()

    response = await portal_client.post(f"/customer-portal/tickets/{ticket.id}/reopen")

    assert response.status_code == 400


async def test_rate_requires_done_ticket(db, portal_client, test_user, ticket_factory):
    ticket = ticket_factory()

    early = await portal_client.post(f"/customer-portal/tickets/{ticket.id}/rate", json={"rating": 5})
    assert early.status_code == 400

    _set_status(db, ticket, test_user, TicketStatus.RESOLVED)
    rated = await portal_client.post(
        f"/customer-portal/tickets/{ticket.id}/rate", json={"rating": 4, "feedback": "Quick fix"}
    )
    db.refresh(ticket)

    assert rated.status_code == 200
    assert ticket.satisfaction_rating == 4
    assert ticket.satisfaction_feedback == "Quick fix"
    rating = db.query(TicketActivity).filter(TicketActivity.action_type == "rating_added").one()
    assert rating.new_value == "4"


async def test_rating_out_of_range_is_400(portal_client, ticket_factory):
    ticket = ticket_factory()

    response = await portal_client.post(f"/customer-portal/tickets/{ticket.id}/rate", json={"rating": 6})

    assert response.status_code == 400
    assert response.json()["error"].startswith("rating:")


# =============================================================================
# Attachments
# =============================================================================

async def test_portal_upload_list_and_delete(portal_client, ticket_factory, attachment_storage):
    ticket = ticket_factory()

    uploaded = await portal_client.post(
        f"/customer-portal/tickets/{ticket.id}/attachments",
        files=[("files", ("error.txt", b"stack trace", "text/plain"))],
    )
    assert uploaded.status_code == 201
    attachment = uploaded.json()["data"][0]
    assert attachment["filename"] == "error.txt"
    assert attachment["uploadedByName"] == "Casey Contact"
    assert len(list(attachment_storage.iterdir())) == 1

    listing = await portal_client.get(f"/customer-portal/tickets/{ticket.id}/attachments")
    assert [a["id"] for a in listing.json()["data"]] == [attachment["id"]]

    deleted = await portal_client.delete(
        f"/customer-portal/tickets/{ticket.id}/attachments/{attachment['id']}"
    )
    assert deleted.status_code == 200
    assert list(attachment_storage.iterdir()) == []


async def test_portal_cannot_delete_staff_upload(authed_client, portal_client, ticket_factory):
    ticket = ticket_factory()
    staff_upload = await authed_client.post(
        f"/tickets/{ticket.id}/attachments",
        files=[("files", ("invoice.pdf", b"%PDF-1.4", "application/pdf"))],
    )
    attachment_id = staff_upload.json()["data"][0]["id"]

    response = await portal_client.delete(
        f"/customer-portal/tickets/{ticket.id}/attachments/{attachment_id}"
    )

    assert response.status_code == 404


async def test_attachments_on_internal_comments_are_hidden(db, authed_client, portal_client, test_user, ticket_factory):
    ticket = ticket_factory()
    note = ticket_service.add_comment_to_ticket(
        db, ticket, "Logs attached", Actor.user(test_user.id), is_internal=True
    )
    await authed_client.post(
        f"/tickets/{ticket.id}/attachments",
        files=[("files", ("internal.txt", b"secret", "text/plain"))],
        data={"commentId": str(note.id)},
    )
    await authed_client.post(
        f"/tickets/{ticket.id}/attachments",
        files=[("files", ("public.txt", b"hello", "text/plain"))],
    )

    staff = await authed_client.get(f"/tickets/{ticket.id}/attachments")
    portal = await portal_client.get(f"/customer-portal/tickets/{ticket.id}/attachments")

    assert sorted(a["filename"] for a in staff.json()["data"]) == ["internal.txt", "public.txt"]
    assert [a["filename"] for a in portal.json()["data"]] == ["public.txt"]

