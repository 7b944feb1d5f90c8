"""
Test configuration and fixtures.

Provides:
- A fresh SQLite database per test (tables created from the ORM metadata)
- Staff session and portal token minting for authenticated tests
- HTTPX AsyncClients with the proper cookie/CSRF or Bearer headers
- A recording notification dispatcher in place of the in-app one
"""
import os
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Must be set before the app (and its limiter/engine) is imported
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session, sessionmaker

from servicedesk.core.config import settings
from servicedesk.core.deps import COOKIE_NAME, get_db, get_notification_dispatcher
from servicedesk.core.security import create_portal_token, create_session_token
from servicedesk.db.base import Base
from servicedesk.db.enums import Role
from servicedesk.db.models import Customer, CustomerContact, Organization, Project, User
from servicedesk.db.session import build_engine
from servicedesk.main import app


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Session factory bound to a throwaway SQLite file."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def attachment_storage(tmp_path, monkeypatch):
    """Keep uploaded files inside the test's temp directory."""
    path = tmp_path / "attachments"
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(path))
    return path


def make_org(db: Session, name: str = "Test Organization") -> Organization:
    org = Organization(name=name, slug=f"test-org-{uuid.uuid4().hex[:8]}")
    db.add(org)
    db.commit()
    return org


def make_user(db: Session, org: Organization, role: Role = Role.ADMIN, name: str = "Test User") -> User:
    user = User(
        organization_id=org.id,
        email=f"user-{uuid.uuid4().hex[:8]}@test.com",
        display_name=name,
        role=role.value,
    )
    db.add(user)
    db.commit()
    return user


def make_contact(db: Session, customer: Customer, **flags) -> CustomerContact:
    contact = CustomerContact(
        customer_id=customer.id,
        name=flags.pop("name", "Casey Contact"),
        email=f"contact-{uuid.uuid4().hex[:8]}@customer.com",
        **flags,
    )
    db.add(contact)
    db.commit()
    return contact


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    return make_org(db)


@pytest.fixture(scope="function")
def test_user(db: Session, test_org: Organization) -> User:
    """Create an admin staff user in test_org."""
    return make_user(db, test_org)


@pytest.fixture(scope="function")
def test_customer(db: Session, test_org: Organization) -> Customer:
    customer = Customer(organization_id=test_org.id, name="Acme Corp", email="it@acme.test")
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture(scope="function")
def test_project(db: Session, test_org: Organization, test_customer: Customer) -> Project:
    project = Project(organization_id=test_org.id, customer_id=test_customer.id, name="Support")
    db.add(project)
    db.commit()
    return project


@pytest.fixture(scope="function")
def test_contact(db: Session, test_customer: Customer) -> CustomerContact:
    """Portal contact allowed to create and see all of the customer's tickets."""
    return make_contact(db, test_customer, can_create_tickets=True, can_view_all_tickets=True)


# =============================================================================
# Notification Fixtures
# =============================================================================

@dataclass
class RecordingDispatcher:
    """Collects notification intents instead of delivering them."""
    created: list = field(default_factory=list)
    status_changes: list = field(default_factory=list)
    replies: list = field(default_factory=list)

    def ticket_created(self, ticket, customer, contact) -> None:
        self.created.append((ticket.id, customer.id, contact.id if contact else None))

    def ticket_status_changed(self, ticket, old_status, new_status) -> None:
        self.status_changes.append((ticket.id, old_status, new_status))

    def ticket_reply_added(self, ticket, comment) -> None:
        self.replies.append((ticket.id, comment.id))


@pytest.fixture(scope="function")
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    org: Organization
    token: str
    cookie_name: str = COOKIE_NAME


def mint_auth(user: User, org: Organization) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        org_id=org.id,
        role=user.role,
        token_version=user.token_version,
    )
    return TestAuth(user=user, org=org, token=token)


@pytest.fixture(scope="function")
def test_auth(test_user: User, test_org: Organization) -> TestAuth:
    """Create JWT token for test user."""
    return mint_auth(test_user, test_org)


@pytest.fixture(scope="function")
def portal_token(test_contact: CustomerContact) -> str:
    return create_portal_token(test_contact.id, test_contact.customer_id)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def override_deps(db: Session, dispatcher: RecordingDispatcher):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    yield
    app.dependency_overrides.clear()


def staff_client(auth: TestAuth) -> AsyncClient:
    """AsyncClient with session cookie and CSRF header."""
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={auth.cookie_name: auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    )


@pytest.fixture(scope="function")
async def client(override_deps) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture(scope="function")
async def authed_client(override_deps, test_auth: TestAuth) -> AsyncGenerator[AsyncClient, None]:
    """Staff AsyncClient (admin role)."""
    async with staff_client(test_auth) as c:
        yield c


@pytest.fixture(scope="function")
async def portal_client(override_deps, portal_token: str) -> AsyncGenerator[AsyncClient, None]:
    """Customer portal AsyncClient with Bearer token."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {portal_token}"},
    ) as c:
        yield c


# =============================================================================
# Extra principals & factories
# =============================================================================

@pytest.fixture(scope="function")
def other_org_auth(db: Session) -> TestAuth:
    """Admin of a second, unrelated organization."""
    org = make_org(db, name="Other Organization")
    return mint_auth(make_user(db, org, name="Other Admin"), org)


@pytest.fixture(scope="function")
def agent_auth(db: Session, test_org: Organization) -> TestAuth:
    """Non-admin staff user in test_org."""
    return mint_auth(make_user(db, test_org, role=Role.AGENT, name="Agent Smith"), test_org)


@pytest.fixture(scope="function")
def restricted_contact(db: Session, test_customer: Customer) -> CustomerContact:
    """Contact with no portal capabilities."""
    return make_contact(
        db, test_customer, name="Read Only", can_create_tickets=False, can_view_all_tickets=False
    )


@pytest.fixture(scope="function")
def ticket_factory(db: Session, test_org: Organization, test_customer: Customer, test_user: User):
    """Create tickets through the service, as test_user unless given a contact."""
    from servicedesk.db.enums import TicketPriority
    from servicedesk.schemas.ticketing import TicketCreate
    from servicedesk.services import ticket_service
    from servicedesk.services.ticket_activity_service import Actor

    def factory(title="Printer is on fire", priority=TicketPriority.NORMAL, contact=None, **kwargs):
        actor = Actor.contact(contact.id) if contact else Actor.user(test_user.id)
        return ticket_service.create_ticket(
            db,
            test_org.id,
            TicketCreate(customer_id=test_customer.id, title=title, priority=priority),
            actor,
            contact=contact,
            **kwargs,
        )

    return factory


@pytest.fixture(scope="function")
def client_for(override_deps):
    """Build a staff AsyncClient for any TestAuth (use as an async context manager)."""
    return staff_client
