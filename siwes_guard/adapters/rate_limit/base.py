"""Rate limiter interfaces.

The guard depends on this abstraction (not the concrete implementation)
so storage can move to a shared backend with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of counting one request against a key.

    Attributes:
        allowed: Whether the request is within the window's budget.
        limit: Max requests per window.
        count: Requests seen in the current window, this one included.
        remaining: ``max(0, limit - count)``.
        reset_at: UNIX time in seconds when the current window expires.
        retry_after_seconds: Whole seconds until reset when blocked.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None

    @property
    def reset_at_ms(self) -> int:
        return int(self.reset_at * 1000)


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only snapshot of a key's budget."""

    limit: int
    remaining: int
    reset_at: float

    @property
    def reset_at_ms(self) -> int:
        return int(self.reset_at * 1000)


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and report whether it is allowed."""
        raise NotImplementedError

    @abstractmethod
    def status(self, key: str) -> RateLimitStatus:
        """Report the budget for ``key`` without counting a request."""
        raise NotImplementedError

    @abstractmethod
    def sweep_expired(self) -> int:
        """Drop windows that have expired; return how many were removed."""
        raise NotImplementedError

    def maybe_sweep(self) -> int:
        """Opportunistic sweep hook called once per counted request.

        Backends with native expiry (e.g. Redis TTLs) keep this no-op.
        """
        return 0
