"""Edge router: the first thing every request meets.

Stages, in order:

1. Static assets pass straight to the handler.
2. Guards (rate limiter, then CSRF) run through ``compose_guards``; the first
   rejection ends the request.
3. API paths continue with whatever headers/cookies the guards added; API
   handlers do their own session checks.
4. Page paths resolve the session and may be redirected, keeping the
   guards' headers and cookies:
   signed-in users away from auth pages, signed-out users away from
   protected pages.
5. Everything else reaches its handler, and the guards' headers and cookies
   are merged onto the handler's response.

Usage:
    app.middleware("http")(EdgeRouter(settings=..., guards=[...]))
"""

from __future__ import annotations

import logging
from typing import Sequence

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from siwes_guard.core.auth import (
    AnonymousSessionProvider,
    Session,
    SessionProvider,
    is_authenticated,
    resolve_session,
)
from siwes_guard.core.config import Settings
from siwes_guard.core.pipeline import ContinueResponse, Guard, compose_guards, is_success
from siwes_guard.core.routes import (
    classify_route,
    is_api,
    is_auth_page,
    is_protected_page,
    is_static_asset,
)

logger = logging.getLogger(__name__)


class EdgeRouter:
    """HTTP middleware sequencing the edge guards and page access rules."""

    def __init__(
        self,
        *,
        settings: Settings,
        guards: Sequence[Guard],
        session_provider: SessionProvider | None = None,
    ) -> None:
        self.settings = settings
        self.guards = tuple(guards)
        self.session_provider = session_provider or AnonymousSessionProvider()

    async def __call__(self, request: Request, call_next) -> Response:
        decision = await self.evaluate(request)
        if decision is None:
            return await call_next(request)
        if not isinstance(decision, ContinueResponse):
            return decision

        response: Response = await call_next(request)
        return decision.merge_into(response)

    async def evaluate(self, request: Request) -> Response | None:
        """Decide the request's fate before any handler runs.

        Returns:
            None for a static asset (handled untouched), a ``ContinueResponse``
            carrying guard annotations for pass-through, or a terminal
            rejection/redirect response.
        """
        path = request.url.path

        if is_static_asset(path, self.settings):
            return None

        response = compose_guards(request, self.guards)
        if not is_success(response):
            logger.info(
                "edge.rejected",
                extra={
                    "path": path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "route_class": classify_route(path, self.settings).value,
                },
            )
            return response

        if is_api(path, self.settings):
            return response

        session = await resolve_session(self.session_provider, request.headers)
        authenticated = is_authenticated(session)

        if authenticated and is_auth_page(path, self.settings):
            return self._redirect(request, response, self.settings.edge.dashboard_path)

        if not authenticated and is_protected_page(path, self.settings):
            return self._redirect(request, response, self.settings.edge.signin_path)

        denied = self.authorize(request, session)
        if denied is not None:
            return denied

        return response

    def authorize(self, request: Request, session: Session | None) -> Response | None:
        """Role-based authorisation hook for page routes.

        Returning a response ends the request with it. The base router
        enforces no roles.
        """
        return None

    def _redirect(self, request: Request, guarded: Response, target: str) -> Response:
        logger.info(
            "edge.redirect",
            extra={"path": request.url.path, "target": target},
        )
        redirect = RedirectResponse(url=str(request.url.replace(path=target, query="")))
        if isinstance(guarded, ContinueResponse):
            return guarded.merge_into(redirect)
        return redirect
