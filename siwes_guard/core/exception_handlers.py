"""Rejection responses and global exception handlers.

Guards and route handlers report refusals by raising ``GuardRejection``
subclasses; this module is the single place that turns them into the wire
format ``{"success": false, "error": "..."}``:

- RateLimitExceeded → 429, plus ``retryAfter`` and rate-limit headers
- RateLimiterUnavailable → 503
- Csrf* rejections → 403
- Any other AppError → 400
- Unexpected Exception → generic 500 (safety net)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from siwes_guard.core.errors import AppError, GuardRejection, RateLimitExceeded
from siwes_guard.core.logging import get_request_id

logger = logging.getLogger(__name__)


def build_rejection_response(exc: GuardRejection) -> JSONResponse:
    """Render a guard rejection as a terminal JSON response."""
    content: dict = {"success": False, "error": exc.message}
    headers: dict[str, str] = {}

    if isinstance(exc, RateLimitExceeded):
        details = exc.details or {}
        retry_after = int(details.get("retry_after", 0))
        content["retryAfter"] = retry_after
        headers = {
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(details.get("limit", 0)),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(details.get("reset_at", 0)),
        }

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers or None)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain errors raised from route handlers."""
    if isinstance(exc, GuardRejection):
        status_code = exc.status_code
        response = build_rejection_response(exc)
    else:
        status_code = 400
        response = JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.message},
        )

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )
    return response


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure with its traceback and returns a generic message so no
    implementation details reach the client.
    """
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={
            "error_type": type(exc).__name__,
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred. Please try again later.",
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
