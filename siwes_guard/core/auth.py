"""Session lookup boundary.

Session issuance (sign-in, JWT handling, user storage) lives outside this
package. The edge router only needs to know whether a request belongs to an
authenticated user, which it asks of an injected ``SessionProvider``.

Design principles:
- Dependency Injection: the provider is handed to ``create_app``
- Availability first: a failing provider degrades to "anonymous" instead of
  turning every page load into a 500
"""

from __future__ import annotations

import logging
from typing import Mapping, Protocol, runtime_checkable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SessionUser(BaseModel):
    id: str
    role: str


class Session(BaseModel):
    user: SessionUser


@runtime_checkable
class SessionProvider(Protocol):
    """Resolves the current session from request headers."""

    async def get_session(self, headers: Mapping[str, str]) -> Session | None:
        ...


class AnonymousSessionProvider:
    """Treats every request as signed out.

    Used when no provider is configured, so protected pages always redirect
    to sign-in.
    """

    async def get_session(self, headers: Mapping[str, str]) -> Session | None:
        return None


async def resolve_session(
    provider: SessionProvider,
    headers: Mapping[str, str],
) -> Session | None:
    """Ask ``provider`` for the session; never raises.

    Returns:
        The session, or None when there is none or the lookup failed.
    """
    try:
        session = await provider.get_session(headers)
    except Exception as exc:
        logger.error(
            "session.lookup_failed",
            exc_info=exc,
            extra={"error_type": type(exc).__name__},
        )
        return None

    if session is None or session.user is None:
        return None
    return session


def is_authenticated(session: Session | None) -> bool:
    return session is not None and session.user is not None
