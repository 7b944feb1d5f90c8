"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from servicedesk.core.capabilities import PortalCapabilities, PortalCapability, ensure_capability
from servicedesk.core.security import decode_portal_token, decode_session_token
from servicedesk.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "desk_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get authenticated staff user from session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists and is active
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    from servicedesk.db.models import User

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
        user_id = UUID(payload["sub"])
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    if user.token_version != payload.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")

    return user


def get_current_session(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get full staff session context: user_id, org_id, role.

    The tenant always comes from the user row, never from the request body.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: Unknown role
    """
    from servicedesk.db.enums import Role
    from servicedesk.schemas.auth import UserSession

    user = get_current_user(request, db)

    if not Role.has_value(user.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{user.role}'. Contact administrator."
        )

    return UserSession(
        user_id=user.id,
        org_id=user.organization_id,
        role=Role(user.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_roles(allowed_roles: list):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.delete("/{id}", dependencies=[Depends(require_roles([Role.ADMIN]))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action"
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on cookie-authenticated mutations.

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )


# =============================================================================
# Customer Portal
# =============================================================================

def get_current_contact(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get portal contact context from the Bearer token.

    Flags are re-read from the database on every request so revoking a
    capability takes effect immediately.

    Raises:
        HTTPException 401: No token
        HTTPException 403: Invalid token, inactive contact or customer mismatch
    """
    from servicedesk.db.models import CustomerContact
    from servicedesk.schemas.auth import ContactSession

    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="No token provided")

    try:
        payload = decode_portal_token(token)
        contact_id = UUID(payload["contact_id"])
    except Exception:
        raise HTTPException(status_code=403, detail="Invalid token")

    contact = db.query(CustomerContact).filter(CustomerContact.id == contact_id).first()
    if not contact or not contact.is_active:
        raise HTTPException(status_code=403, detail="Invalid token")
    if str(contact.customer_id) != payload.get("customer_id"):
        raise HTTPException(status_code=403, detail="Invalid token")

    return ContactSession(
        contact_id=contact.id,
        customer_id=contact.customer_id,
        org_id=contact.customer.organization_id,
        name=contact.name,
        email=contact.email,
        capabilities=PortalCapabilities.from_contact(contact),
    )


def require_portal_capability(capability: PortalCapability):
    """
    Dependency factory gating a portal route on a contact capability.

    Usage:
        @router.post("/tickets", dependencies=[Depends(require_portal_capability(PortalCapability.CREATE_TICKETS))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        contact = get_current_contact(request, db)
        ensure_capability(contact.capabilities, capability)
        return contact
    return dependency


# =============================================================================
# Notifications
# =============================================================================

def get_notification_dispatcher(db: Session = Depends(get_db)):
    """Notification dispatcher used by ticket mutations."""
    from servicedesk.services.notification_dispatcher import InAppNotificationDispatcher

    return InAppNotificationDispatcher(db)
