"""OAuth Kit - FastAPI Application.

Serves the per-provider login, callback, logout and session routes on top of
the cookie-backed OAuth session engine.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request

from oauth_kit.auth.config import OAuthSettings, get_settings
from oauth_kit.auth.cookies import CookieOptions
from oauth_kit.auth.kit import APP_STATE_ATTR, OAuthKit
from oauth_kit.middleware.cookies import OAuthCookieMiddleware
from oauth_kit.middleware.logging import StructuredLoggingMiddleware
from oauth_kit.middleware.request_id import RequestIdMiddleware
from oauth_kit.routers import auth_router

SERVICE_NAME = "oauth-kit"
VERSION = "0.1.0"

log = logging.getLogger(SERVICE_NAME)


def build_kit(settings: OAuthSettings, http: Optional[httpx.AsyncClient] = None) -> OAuthKit:
    """Create the kit and register every provider from the providers file."""
    kit = OAuthKit(
        settings.build_cipher(),
        http=http,
        timeout=settings.http_timeout,
        cookie_options=CookieOptions(
            same_site=settings.cookie_same_site,
            path=settings.cookie_path,
            refresh_token_max_age=settings.refresh_token_max_age,
        ),
    )
    for reg in settings.load_registrations():
        kit.registry.register(reg.provider, reg.to_config(), instance_key=reg.instance_key)
    log.info("Registered OAuth providers: %s", ", ".join(kit.registry.keys()) or "none")
    return kit


def build_app(kit: Optional[OAuthKit] = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        kit: Pre-built kit; when omitted one is built from settings
    """

    settings = get_settings()

    # Fail startup on any config error, including env typos.
    config_errors = settings.validate()
    if config_errors:
        error_msg = "; ".join(config_errors)
        log.error("Configuration validation failed: %s", error_msg)
        raise RuntimeError(f"Configuration validation failed: {error_msg}")

    if kit is None:
        kit = build_kit(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(
            "Starting %s v%s",
            SERVICE_NAME,
            VERSION,
            extra={"service": SERVICE_NAME, "version": VERSION},
        )
        yield
        log.info("Shutting down %s", SERVICE_NAME)

    app = FastAPI(
        title="OAuth Kit",
        description="Cookie-backed multi-tenant OAuth 2.0 client sessions",
        version=VERSION,
        lifespan=lifespan,
    )

    # Last added runs first, so request IDs exist before logging.
    app.add_middleware(OAuthCookieMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    setattr(app.state, APP_STATE_ATTR, kit)
    app.state.service = SERVICE_NAME
    app.state.version = VERSION
    app.state.instance_id = str(uuid.uuid4())
    app.state.start_time = datetime.now(timezone.utc)

    app.include_router(auth_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": request.app.state.service,
            "version": request.app.state.version,
            "providers": len(kit.registry.keys()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": getattr(request.state, "request_id", None),
        }

    return app
