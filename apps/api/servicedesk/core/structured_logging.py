"""Structured logging helpers."""

import logging
from typing import Any


def configure_logging(level: str) -> None:
    """Configure root logging once for the API process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_log_context(
    *,
    user_id: str | None = None,
    org_id: str | None = None,
    contact_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict without request bodies or PII."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if org_id:
        context["org_id"] = org_id
    if contact_id:
        context["contact_id"] = contact_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
