"""Security utilities for staff session tokens and customer portal tokens."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from servicedesk.core.config import settings


PORTAL_TOKEN_TYPE = "customer_portal"


# =============================================================================
# Session Token (JWT in cookie)
# =============================================================================

def create_session_token(
    user_id: UUID,
    org_id: UUID,
    role: str,
    token_version: int,
) -> str:
    """
    Create signed staff session JWT.

    Always signs with current secret (JWT_SECRET).
    Token contains user identity, org context, and revocation version.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "org_id": str(org_id),
        "role": role,
        "token_version": token_version,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> dict:
    """
    Decode and verify a JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error: jwt.InvalidTokenError | None = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore[misc]


def decode_session_token(token: str) -> dict:
    """Decode a staff session token (rejects portal tokens)."""
    payload = decode_token(token)
    if payload.get("type") == PORTAL_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Portal token used for staff session")
    return payload


# =============================================================================
# Customer Portal Token (Authorization: Bearer)
# =============================================================================

def create_portal_token(contact_id: UUID, customer_id: UUID) -> str:
    """Create signed customer portal JWT for a contact."""
    now = datetime.now(timezone.utc)
    payload = {
        "contact_id": str(contact_id),
        "customer_id": str(customer_id),
        "type": PORTAL_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(hours=settings.PORTAL_JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_portal_token(token: str) -> dict:
    """
    Decode a customer portal token.

    Raises:
        jwt.InvalidTokenError: Invalid signature/expiry or wrong token type
    """
    payload = decode_token(token)
    if payload.get("type") != PORTAL_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Invalid token type")
    return payload
