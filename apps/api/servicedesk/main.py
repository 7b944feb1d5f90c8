"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicedesk.core.config import settings
from servicedesk.core.rate_limit import limiter
from servicedesk.core.structured_logging import build_log_context, configure_logging
from servicedesk.db.session import engine

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logger.info("Sentry initialized for error tracking")


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Service Desk API",
    description="Multi-tenant helpdesk ticketing, SLA tracking and customer portal API",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Internal-Secret"],
    expose_headers=["X-Request-ID", "Content-Disposition"],
)


# ============================================================================
# Error envelope: {success: false, error: "..."}
# ============================================================================

def _error(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error(exc.status_code, detail, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 with the first field-level message."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error(400, message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error",
        exc_info=exc,
        extra=build_log_context(
            request_id=request.headers.get("X-Request-ID"),
            route=request.url.path,
            method=request.method,
        ),
    )
    return _error(500, "Internal server error")


# ============================================================================
# Routers
# ============================================================================

from servicedesk.routers import (  # noqa: E402
    entries_router,
    internal_router,
    notifications_router,
    portal_router,
    tickets_router,
)

app.include_router(tickets_router)
app.include_router(portal_router)
app.include_router(entries_router)
app.include_router(notifications_router)

# Internal endpoints (scheduled/cron jobs - protected by INTERNAL_SECRET)
app.include_router(internal_router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
