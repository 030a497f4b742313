"""Application factory for the FastAPI app.

Builds the edge pipeline explicitly: one rate-limit store per app instance,
the guards in their fixed order, and the edge router that runs them. Tests
create isolated apps with their own clock, store and session provider.
"""

from __future__ import annotations

import time
from typing import Callable

from fastapi import FastAPI

from siwes_guard.adapters.rate_limit.base import AbstractRateLimiter
from siwes_guard.api.routes import health_router, security_router
from siwes_guard.core.auth import SessionProvider
from siwes_guard.core.config import Settings
from siwes_guard.core.config import settings as default_settings
from siwes_guard.core.csrf import CsrfGuard
from siwes_guard.core.edge_router import EdgeRouter
from siwes_guard.core.exception_handlers import setup_exception_handlers
from siwes_guard.core.logging import configure_logging
from siwes_guard.core.middleware import request_id_middleware
from siwes_guard.core.openapi import apply_openapi_customizations
from siwes_guard.core.rate_limit import RateLimitGuard, build_rate_limiter


def create_app(
    settings: Settings | None = None,
    *,
    session_provider: SessionProvider | None = None,
    rate_limiter: AbstractRateLimiter | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the environment-loaded ones.
        session_provider: Session lookup for page access control; anonymous
            when omitted.
        rate_limiter: Store to count requests in; an in-memory one built
            from settings when omitted.
        clock: Time source shared by the limiter and the CSRF guard.

    Returns:
        Configured app. The limiter, settings and clock are on ``app.state``.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title=cfg.app.title,
        description=(
            "Request-edge protection for the SIWES logbook: per-client rate "
            "limiting, cookie-based CSRF tokens and page access redirects."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
    )

    limiter = (
        rate_limiter
        if rate_limiter is not None
        else build_rate_limiter(cfg.rate_limit, clock=clock)
    )
    app.state.settings = cfg
    app.state.rate_limiter = limiter
    app.state.clock = clock

    guards = [
        RateLimitGuard(limiter, cfg.rate_limit),
        CsrfGuard(
            cfg.csrf,
            secure_cookie=(
                cfg.csrf.cookie_secure
                if cfg.csrf.cookie_secure is not None
                else cfg.is_production
            ),
            clock=clock,
        ),
    ]

    # Middleware: the last registered runs first, so request ids wrap the edge.
    app.middleware("http")(
        EdgeRouter(settings=cfg, guards=guards, session_provider=session_provider)
    )
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api")
    app.include_router(security_router, prefix="/api")

    apply_openapi_customizations(app, cfg)

    return app
