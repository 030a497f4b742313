"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock covers every read-increment-write and the sweep.
- Windows are anchored at each key's first request, not at wall-clock
  boundaries.
- A window ends at ``reset_at`` itself (``now >= reset_at``), so a request
  landing exactly on the boundary opens a new window. The Next.js edge this
  replaces only reset once ``now > resetAt``; the two differ by that single
  instant.
"""

from __future__ import annotations

import math
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable

from siwes_guard.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitResult,
    RateLimitStatus,
)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    Keys are opaque to the limiter; the edge guard uses ``client:path``.
    Requests over the limit are still counted, so a client hammering a
    blocked route stays blocked until its window expires.

    Memory grows with the number of distinct keys. Expired windows are
    overwritten on their next hit; ``sweep_expired`` reclaims the ones that
    never see another request. ``maybe_sweep`` runs the sweep on a random
    fraction of calls.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        sweep_probability: float = 0.01,
        clock: Callable[[], float] = time.time,
        rand: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of requests per window.
            window_seconds: Length of a window in seconds.
            sweep_probability: Chance in [0, 1] that ``maybe_sweep`` sweeps.
            clock: Time source returning UNIX time in seconds.
            rand: Random source returning floats in [0, 1).

        Raises:
            ValueError: If any argument is out of range.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if not 0.0 <= sweep_probability <= 1.0:
            raise ValueError("sweep_probability must be within [0, 1]")

        self._limit = limit
        self._window_seconds = window_seconds
        self._sweep_probability = sweep_probability
        self._clock = clock
        self._rand = rand
        self._lock = threading.RLock()
        self._entries: dict[str, RateLimitEntry] = {}

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_entry(self, key: str) -> RateLimitEntry | None:
        """Return a copy of the stored entry for ``key``, if any."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return RateLimitEntry(count=entry.count, reset_at=entry.reset_at)

    @staticmethod
    def _is_expired(entry: RateLimitEntry, now: float) -> bool:
        return now >= entry.reset_at

    def consume(self, key: str) -> RateLimitResult:
        """Count one request for ``key``.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or self._is_expired(entry, now):
                entry = RateLimitEntry(count=0, reset_at=now + self._window_seconds)
                self._entries[key] = entry

            entry.count += 1
            count = entry.count
            reset_at = entry.reset_at

        remaining = max(0, self._limit - count)
        if count > self._limit:
            return RateLimitResult(
                allowed=False,
                limit=self._limit,
                count=count,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=max(1, math.ceil(reset_at - now)),
            )
        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            count=count,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=None,
        )

    def status(self, key: str) -> RateLimitStatus:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or self._is_expired(entry, now):
                return RateLimitStatus(
                    limit=self._limit,
                    remaining=self._limit,
                    reset_at=now + self._window_seconds,
                )
            return RateLimitStatus(
                limit=self._limit,
                remaining=max(0, self._limit - entry.count),
                reset_at=entry.reset_at,
            )

    def sweep_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [
                key for key, entry in self._entries.items() if self._is_expired(entry, now)
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def maybe_sweep(self) -> int:
        """Sweep with probability ``sweep_probability``; return entries removed."""
        if self._sweep_probability and self._rand() < self._sweep_probability:
            return self.sweep_expired()
        return 0

    def reset(self) -> None:
        """Forget every window."""
        with self._lock:
            self._entries.clear()
