"""Rate limiting guard for the edge pipeline.

Strategy:
- Fixed window per client and concrete request path (``client:path``);
  paths are not templated, so ``/supervisor/review/1`` and
  ``/supervisor/review/2`` are counted separately.
- The client is identified from ``X-Forwarded-For`` (first hop), then
  ``X-Real-IP``, then the literal ``unknown``.

Deployment precondition: both headers are client-controlled unless a trusted
reverse proxy overwrites them. Without one, any client can pick its own
identity and sidestep the limit.
"""

from __future__ import annotations

import hashlib
import logging

from starlette.requests import Request
from starlette.responses import Response

from siwes_guard.adapters.rate_limit.base import AbstractRateLimiter, RateLimitStatus
from siwes_guard.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from siwes_guard.core.config import RateLimitSettings
from siwes_guard.core.errors import RateLimitExceeded, RateLimiterUnavailable
from siwes_guard.core.exception_handlers import build_rejection_response
from siwes_guard.core.routes import matches_prefix

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def build_rate_limiter(
    rate_limit_settings: RateLimitSettings,
    **kwargs,
) -> InMemoryFixedWindowRateLimiter:
    """Build the process-local limiter from settings.

    Extra keyword arguments (``clock``, ``rand``) are passed through, which
    is how tests pin time and randomness.
    """
    return InMemoryFixedWindowRateLimiter(
        limit=rate_limit_settings.max_requests,
        window_seconds=rate_limit_settings.window_seconds,
        sweep_probability=rate_limit_settings.sweep_probability,
        **kwargs,
    )


def get_client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return UNKNOWN_CLIENT


def build_rate_limit_key(client_id: str, path: str) -> str:
    return f"{client_id}:{path}"


def _hash_client_id(client_id: str) -> str:
    """Hash the client id for logging without recording addresses."""
    return hashlib.sha256(client_id.encode()).hexdigest()[:16]


def get_rate_limit_status(
    limiter: AbstractRateLimiter,
    request: Request,
    path: str,
) -> RateLimitStatus:
    """Report the caller's budget on ``path`` without spending any of it."""
    key = build_rate_limit_key(get_client_id(request), path)
    return limiter.status(key)


class RateLimitGuard:
    """Counts each non-exempt request and refuses it once over budget.

    Allowed requests get ``X-RateLimit-Limit``, ``X-RateLimit-Remaining`` and
    ``X-RateLimit-Reset`` (epoch ms) on the passed-in response. A refused
    request gets a fresh 429 response instead.
    """

    def __init__(self, limiter: AbstractRateLimiter, rate_limit_settings: RateLimitSettings) -> None:
        self.limiter = limiter
        self.settings = rate_limit_settings

    def __call__(self, request: Request, response: Response) -> Response:
        path = request.url.path
        if not self.settings.enabled or matches_prefix(path, self.settings.exempt_prefixes):
            return response

        try:
            return self._apply(request, response, path)
        except Exception:
            logger.exception(
                "rate_limit.error",
                extra={"path": path, "fail_open": self.settings.fail_open},
            )
            if self.settings.fail_open:
                return response
            return build_rejection_response(
                RateLimiterUnavailable(
                    code="rate_limiter_unavailable",
                    message="Service temporarily unavailable. Please try again shortly.",
                )
            )

    def _apply(self, request: Request, response: Response, path: str) -> Response:
        self.limiter.maybe_sweep()

        client_id = get_client_id(request)
        result = self.limiter.consume(build_rate_limit_key(client_id, path))

        if not result.allowed:
            retry_after = result.retry_after_seconds or 1
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "client_hash": _hash_client_id(client_id),
                    "path": path,
                    "limit": result.limit,
                    "count": result.count,
                    "retry_after_s": retry_after,
                },
            )
            return build_rejection_response(
                RateLimitExceeded.for_window(
                    limit=result.limit,
                    reset_at=result.reset_at_ms,
                    retry_after=retry_after,
                )
            )

        logger.debug(
            "rate_limit.allowed",
            extra={
                "client_hash": _hash_client_id(client_id),
                "path": path,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_at_ms)
        return response
