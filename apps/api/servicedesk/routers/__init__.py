"""API routers."""

from servicedesk.routers.tickets import router as tickets_router
from servicedesk.routers.portal import router as portal_router
from servicedesk.routers.entries import router as entries_router
from servicedesk.routers.notifications import router as notifications_router
from servicedesk.routers.internal import router as internal_router

__all__ = [
    "tickets_router",
    "portal_router",
    "entries_router",
    "notifications_router",
    "internal_router",
]
