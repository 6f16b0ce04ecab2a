"""
FastAPI application entry point for plexshare.

Grants and revokes Plex library shares from Stripe entitlement
webhooks and invite-code redemptions. Caller identity comes from the
signed session cookie set by the login flow.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from plexshare.config.settings import Settings, get_settings
from plexshare.platform.secrets import SecretRedactingFilter
from plexshare.api.routes import health
from plexshare.api.routes import webhooks_stripe
from plexshare.api.routes import invite_codes
from plexshare.api.routes import plex_users

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(SecretRedactingFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: Settings = app.state.settings
    logger.info("Starting plexshare API")

    database_url = settings.database_url
    masked = database_url.split("@")[-1] if "@" in database_url else database_url
    logger.info("Database configured", extra={"host_db": masked})
    logger.info(
        "Provisioning configured",
        extra={
            "entitlement_name": settings.stripe_entitlement_name,
            "shared_libraries": list(settings.plex_shared_libraries),
            "admin_configured": settings.plex_admin_user_id is not None,
            "webhook_secret_configured": bool(settings.stripe_webhook_secret),
        },
    )

    yield

    # Shutdown
    logger.info("Shutting down plexshare API")


async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings for middleware configuration (default: from environment)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="plexshare API",
        description="Plex library access provisioning from Stripe entitlements and invite codes",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Signed cookie carrying the caller's Plex identity
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret.value(),
        session_cookie=settings.session_cookie_name,
        same_site="lax",
        https_only=settings.session_https_only,
    )

    app.include_router(health.router)
    app.include_router(webhooks_stripe.router)
    app.include_router(invite_codes.router)
    app.include_router(plex_users.router)

    app.add_exception_handler(Exception, global_exception_handler)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
