from __future__ import annotations

from fastapi import APIRouter, Query, Request

from siwes_guard.core.csrf import get_csrf_token
from siwes_guard.core.rate_limit import get_rate_limit_status
from siwes_guard.schemas.security import CsrfTokenResponse, RateLimitStatusResponse

router = APIRouter(tags=["Security"])


@router.get("/csrf-token", response_model=CsrfTokenResponse)
def read_csrf_token(request: Request) -> CsrfTokenResponse:
    """Expose the caller's anti-forgery token.

    The cookie is http-only, so pages that echo the token in the
    ``X-CSRF-Token`` header fetch it here. Because this is a GET, the edge
    pipeline has just issued a fresh cookie; that fresh token is returned.
    """
    token = getattr(request.state, "csrf_token", None)
    if token is None:
        token = get_csrf_token(
            request,
            cookie_name=request.app.state.settings.csrf.cookie_name,
            clock=request.app.state.clock,
        )
    return CsrfTokenResponse(token=token)


@router.get("/rate-limit/status", response_model=RateLimitStatusResponse)
def read_rate_limit_status(
    request: Request,
    path: str | None = Query(
        default=None,
        description="Path to report on; defaults to this endpoint's own path.",
    ),
) -> RateLimitStatusResponse:
    """Report the caller's remaining budget on a path without spending it."""
    target = path or request.url.path
    status = get_rate_limit_status(request.app.state.rate_limiter, request, target)
    return RateLimitStatusResponse(
        path=target,
        limit=status.limit,
        remaining=status.remaining,
        reset_at=status.reset_at_ms,
    )
