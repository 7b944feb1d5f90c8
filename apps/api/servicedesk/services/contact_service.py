"""Staff management of customer portal contacts."""

from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from servicedesk.db.models import Customer, CustomerContact
from servicedesk.schemas.contact import ContactCreate


DUPLICATE_CONTACT_MESSAGE = "Email already exists for this customer"


def _get_customer(db: Session, org_id: UUID, customer_id: UUID) -> Customer:
    customer = db.query(Customer).filter(
        Customer.id == customer_id,
        Customer.organization_id == org_id,
    ).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


def list_contacts(db: Session, org_id: UUID, customer_id: UUID) -> list[CustomerContact]:
    """Contacts of one customer, primary first then by name."""
    customer = _get_customer(db, org_id, customer_id)
    return (
        db.query(CustomerContact)
        .filter(CustomerContact.customer_id == customer.id)
        .order_by(CustomerContact.is_primary.desc(), CustomerContact.name)
        .all()
    )


def create_contact(db: Session, org_id: UUID, data: ContactCreate) -> CustomerContact:
    """
    Add a portal contact to a tenant customer.

    The customer's first contact becomes its primary contact. Emails are
    stored lowercased and are unique per customer.
    """
    customer = _get_customer(db, org_id, data.customer_id)
    has_contacts = db.query(CustomerContact.id).filter(
        CustomerContact.customer_id == customer.id
    ).first() is not None

    contact = CustomerContact(
        customer_id=customer.id,
        name=data.name.strip(),
        email=data.email.strip().lower(),
        is_primary=not has_contacts,
        can_create_tickets=data.can_create_tickets,
        can_view_all_tickets=data.can_view_all_tickets,
    )
    db.add(contact)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_CONTACT_MESSAGE)
    db.refresh(contact)
    return contact
