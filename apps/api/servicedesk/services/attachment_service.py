"""Attachment storage and metadata for ticket uploads."""

import logging
import os
import uuid
from typing import BinaryIO

from fastapi import HTTPException
from sqlalchemy.orm import Session

from servicedesk.core.config import settings
from servicedesk.db.models import TicketAttachment, TicketComment

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

ALLOWED_MIME_TYPES = {
    # Images
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # Text
    "text/plain",
    "text/csv",
    # Archives
    "application/zip",
    "application/x-rar-compressed",
    "application/x-7z-compressed",
}


# =============================================================================
# Storage Backend (local filesystem)
# =============================================================================

def _get_local_storage_path() -> str:
    path = settings.LOCAL_STORAGE_PATH
    os.makedirs(path, exist_ok=True)
    return path


def build_storage_key(filename: str) -> str:
    """Random name keeping the original extension, e.g. 3f2a...9c.pdf."""
    _, ext = os.path.splitext(filename)
    return f"{uuid.uuid4()}{ext.lower()}"


def store_file(storage_key: str, file: BinaryIO) -> None:
    path = os.path.join(_get_local_storage_path(), storage_key)
    with open(path, "wb") as f:
        file.seek(0)
        f.write(file.read())


def delete_file(storage_key: str) -> None:
    path = os.path.join(_get_local_storage_path(), storage_key)
    if os.path.exists(path):
        os.remove(path)


def validate_file(content_type: str, file_size: int) -> str | None:
    """Return an error message, or None when the file is acceptable."""
    if content_type not in ALLOWED_MIME_TYPES:
        return f"File type {content_type} is not allowed"
    if file_size > settings.MAX_ATTACHMENT_BYTES:
        max_mb = settings.MAX_ATTACHMENT_BYTES / (1024 * 1024)
        return f"File size exceeds {max_mb:.0f} MB limit"
    return None


def _file_size(file: BinaryIO) -> int:
    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)
    return size


# =============================================================================
# Service Functions
# =============================================================================

def save_uploads(
    db: Session,
    ticket_id: uuid.UUID,
    uploads: list[tuple[str, str, BinaryIO]],
    uploaded_by_user_id: uuid.UUID | None = None,
    uploaded_by_contact_id: uuid.UUID | None = None,
    comment_id: uuid.UUID | None = None,
) -> list[TicketAttachment]:
    """
    Validate, store and record a batch of (filename, content_type, file) uploads.

    The whole batch is validated before anything is written. Rows are added to
    the session but not committed; stored files are removed again if the
    caller's commit fails (see discard_files).
    """
    if not uploads:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(uploads) > settings.MAX_ATTACHMENTS_PER_UPLOAD:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.MAX_ATTACHMENTS_PER_UPLOAD} files per upload",
        )

    sized = []
    for filename, content_type, file in uploads:
        size = _file_size(file)
        error = validate_file(content_type, size)
        if error:
            raise HTTPException(status_code=400, detail=error)
        sized.append((filename, content_type, file, size))

    attachments = []
    for filename, content_type, file, size in sized:
        storage_key = build_storage_key(filename)
        store_file(storage_key, file)
        attachment = TicketAttachment(
            ticket_id=ticket_id,
            comment_id=comment_id,
            uploaded_by_user_id=uploaded_by_user_id,
            uploaded_by_contact_id=uploaded_by_contact_id,
            filename=filename,
            storage_key=storage_key,
            file_size=size,
            mime_type=content_type,
        )
        db.add(attachment)
        attachments.append(attachment)
    return attachments


def discard_files(attachments: list[TicketAttachment]) -> None:
    for attachment in attachments:
        try:
            delete_file(attachment.storage_key)
        except OSError:
            logger.warning("Failed to remove stored file %s", attachment.storage_key)


def list_ticket_attachments(
    db: Session,
    ticket_id: uuid.UUID,
    include_internal: bool = True,
) -> list[TicketAttachment]:
    """
    Attachments of a ticket, oldest first.

    include_internal=False hides files bound to internal comments.
    """
    query = db.query(TicketAttachment).filter(TicketAttachment.ticket_id == ticket_id)
    if not include_internal:
        query = query.outerjoin(
            TicketComment, TicketAttachment.comment_id == TicketComment.id
        ).filter(
            (TicketAttachment.comment_id.is_(None)) | (TicketComment.is_internal.is_(False))
        )
    return query.order_by(TicketAttachment.created_at.asc()).all()


def delete_contact_attachment(
    db: Session,
    ticket_id: uuid.UUID,
    attachment_id: uuid.UUID,
    contact_id: uuid.UUID,
) -> None:
    """Delete an attachment uploaded by this contact (404 otherwise)."""
    attachment = db.query(TicketAttachment).filter(
        TicketAttachment.id == attachment_id,
        TicketAttachment.ticket_id == ticket_id,
        TicketAttachment.uploaded_by_contact_id == contact_id,
    ).first()
    if not attachment:
        raise HTTPException(
            status_code=404, detail="Attachment not found or not authorized to delete"
        )
    storage_key = attachment.storage_key
    db.delete(attachment)
    db.commit()
    try:
        delete_file(storage_key)
    except OSError:
        logger.warning("Failed to remove stored file %s", storage_key)
