"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from portal.core.config import settings
from portal.core.errors import PortalError
from portal.core.structured_logging import build_log_context
from portal.db.session import engine

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
        send_default_pii=False,  # Don't send PII to Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from portal.core.rate_limit import limiter

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Support Portal API",
    description="Customer support portal over Linear: boards, activity and release notes",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Map domain errors to their HTTP status with a user-readable detail."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
            extra=build_log_context(
                request_id=request.headers.get("x-request-id"),
                route=request.url.path,
                method=request.method,
            ),
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.add_exception_handler(PortalError, portal_error_handler)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# ============================================================================
# Routers
# ============================================================================

from portal.routers import linear, portal, releases, webhooks

app.include_router(portal.router, tags=["portal"])  # /boards/... and /issues/...
app.include_router(releases.router, prefix="/releases", tags=["releases"])
app.include_router(linear.router, prefix="/linear", tags=["linear"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])


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
