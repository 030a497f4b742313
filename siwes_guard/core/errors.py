"""Application-level exception types.

Guard rejections are modelled as exceptions so guards, route handlers and the
global exception handlers share one mapping from failure to HTTP response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    limit: int
    reset_at: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class GuardRejection(AppError):
    """A request refused at the edge; terminal for that request."""

    status_code: ClassVar[int] = 403


class RateLimitExceeded(GuardRejection):
    """Client exceeded its request budget; retry after ``details['retry_after']``."""

    status_code: ClassVar[int] = 429

    @classmethod
    def for_window(cls, *, limit: int, reset_at: int, retry_after: int) -> "RateLimitExceeded":
        return cls(
            code="rate_limit_exceeded",
            message="Too many requests. Please try again later.",
            details={"limit": limit, "reset_at": reset_at, "retry_after": retry_after},
        )


class RateLimiterUnavailable(GuardRejection):
    """The limiter failed internally and is configured to fail closed."""

    status_code: ClassVar[int] = 503


class CsrfTokenMissing(GuardRejection):
    """State-changing request arrived without the token cookie."""


class CsrfTokenMalformed(GuardRejection):
    """Token cookie present but not in the expected shape."""


class CsrfTokenExpired(GuardRejection):
    """Token cookie is past its expiry."""


class CsrfTokenMismatch(GuardRejection):
    """Echoed header token does not match the cookie token."""


class CsrfGuardError(GuardRejection):
    """CSRF validation itself failed; the request is refused."""
