"""CLI tools for service desk administration."""

import uuid

import click

from servicedesk.core.security import create_portal_token, create_session_token
from servicedesk.db.enums import Role
from servicedesk.db.models import Customer, Organization, User
from servicedesk.db.session import SessionLocal
from servicedesk.schemas.contact import ContactCreate
from servicedesk.services import contact_service, sla_service


@click.group()
def cli():
    """Service desk CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
@click.option("--admin-email", required=True, help="Admin email address")
@click.option("--admin-name", default="Admin", show_default=True, help="Admin display name")
def create_org(name: str, slug: str, admin_email: str, admin_name: str):
    """
    Create an organization with an initial admin user.

    Prints a session token for the admin (sign-in flows live elsewhere).

    Example:
        python -m servicedesk.cli create-org --name "Acme IT" --slug acme --admin-email admin@acme.com
    """
    db = SessionLocal()
    try:
        slug = slug.lower().strip()
        if not slug.replace("-", "").replace("_", "").isalnum():
            click.echo("❌ Slug must be alphanumeric (with optional hyphens/underscores)")
            return

        if db.query(Organization).filter(Organization.slug == slug).first():
            click.echo(f"❌ Organization with slug '{slug}' already exists")
            return

        if db.query(User).filter(User.email == admin_email.lower()).first():
            click.echo(f"❌ User {admin_email} already exists")
            return

        org = Organization(name=name, slug=slug)
        db.add(org)
        db.flush()

        admin = User(
            organization_id=org.id,
            email=admin_email.lower(),
            display_name=admin_name,
            role=Role.ADMIN.value,
        )
        db.add(admin)
        db.commit()

        click.echo(f"✓ Created organization: {name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"✓ Created admin {admin.email}")
        click.echo(
            "  Session token: "
            + create_session_token(admin.id, org.id, admin.role, admin.token_version)
        )
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--customer-id", required=True, help="Customer UUID")
@click.option("--name", required=True, help="Contact name")
@click.option("--email", required=True, help="Contact email")
@click.option("--can-create-tickets/--no-create-tickets", default=True, show_default=True)
@click.option("--can-view-all-tickets/--own-tickets-only", default=False, show_default=True)
def create_contact(
    customer_id: str,
    name: str,
    email: str,
    can_create_tickets: bool,
    can_view_all_tickets: bool,
):
    """Create a customer portal contact and print a portal token."""
    db = SessionLocal()
    try:
        customer = db.get(Customer, uuid.UUID(customer_id))
        if not customer:
            click.echo(f"❌ Customer {customer_id} not found")
            return

        contact = contact_service.create_contact(
            db,
            customer.organization_id,
            ContactCreate(
                customer_id=customer.id,
                name=name,
                email=email,
                can_create_tickets=can_create_tickets,
                can_view_all_tickets=can_view_all_tickets,
            ),
        )

        click.echo(f"✓ Created contact {contact.email} for {customer.name}")
        click.echo(f"  Portal token: {create_portal_token(contact.id, customer.id)}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def check_sla_breaches():
    """Flag tickets past their first-response or resolution deadline."""
    db = SessionLocal()
    try:
        result = sla_service.check_sla_breaches(db)
        click.echo(f"✓ Checked {result.tickets_checked} tickets")
        click.echo(f"  First response breaches: {result.first_response_breaches}")
        click.echo(f"  Resolution breaches: {result.resolution_breaches}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
