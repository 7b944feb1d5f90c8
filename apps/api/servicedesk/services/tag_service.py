"""Tenant-scoped ticket tags."""

from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from servicedesk.db.models import TicketTag
from servicedesk.schemas.ticketing import TagCreate, TagUpdate


DUPLICATE_TAG_MESSAGE = "A tag with this name already exists"


def list_tags(db: Session, org_id: UUID) -> list[TicketTag]:
    return (
        db.query(TicketTag)
        .filter(TicketTag.organization_id == org_id)
        .order_by(TicketTag.name)
        .all()
    )


def get_tag(db: Session, org_id: UUID, tag_id: UUID) -> TicketTag:
    tag = db.query(TicketTag).filter(
        TicketTag.id == tag_id,
        TicketTag.organization_id == org_id,
    ).first()
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")
    return tag


def _commit_or_conflict(db: Session) -> None:
    """Commit; a unique violation on (organization_id, name) becomes a 400."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_TAG_MESSAGE)


def create_tag(db: Session, org_id: UUID, data: TagCreate) -> TicketTag:
    tag = TicketTag(organization_id=org_id, name=data.name.strip(), color=data.color)
    db.add(tag)
    _commit_or_conflict(db)
    db.refresh(tag)
    return tag


def update_tag(db: Session, org_id: UUID, tag_id: UUID, data: TagUpdate) -> TicketTag:
    tag = get_tag(db, org_id, tag_id)
    if data.name is not None:
        tag.name = data.name.strip()
    if data.color is not None:
        tag.color = data.color
    _commit_or_conflict(db)
    db.refresh(tag)
    return tag


def delete_tag(db: Session, org_id: UUID, tag_id: UUID) -> None:
    """Delete a tag; its ticket assignments go with it."""
    tag = get_tag(db, org_id, tag_id)
    db.delete(tag)
    db.commit()
