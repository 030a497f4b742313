"""Cookie-based CSRF protection.

The cookie is the token store: its value is the compact JSON
``{"token": "<64 hex chars>", "expiresAt": <epoch ms>}`` and the server keeps
no table of issued tokens.

By default a state-changing request is accepted when it carries an unexpired,
well-formed cookie. That relies on ``SameSite=Strict`` to keep the browser
from attaching the cookie to cross-site requests. With
``CSRF_REQUIRE_HEADER_ECHO=true`` the client must also send the token in the
``X-CSRF-Token`` header (double-submit cookie), which does not depend on
same-site enforcement.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.requests import Request
from starlette.responses import Response

from siwes_guard.core.config import CsrfSettings
from siwes_guard.core.errors import (
    CsrfGuardError,
    CsrfTokenExpired,
    CsrfTokenMalformed,
    CsrfTokenMismatch,
    CsrfTokenMissing,
    GuardRejection,
)
from siwes_guard.core.exception_handlers import build_rejection_response
from siwes_guard.core.routes import matches_prefix

logger = logging.getLogger(__name__)

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})
TOKEN_BYTES = 32


class CsrfTokenData(BaseModel):
    """Shape of the cookie payload. Anything else is rejected as malformed."""

    model_config = ConfigDict(extra="forbid", strict=True, populate_by_name=True)

    token: str = Field(..., min_length=1)
    expires_at: int = Field(..., alias="expiresAt")

    def is_expired(self, now_ms: int) -> bool:
        # Valid through expiresAt itself; expired strictly after.
        return now_ms > self.expires_at

    def to_cookie_value(self) -> str:
        return json.dumps(
            self.model_dump(by_alias=True),
            separators=(",", ":"),
        )


def now_ms(clock: Callable[[], float] = time.time) -> int:
    return int(clock() * 1000)


def generate_csrf_token(
    ttl_seconds: int,
    clock: Callable[[], float] = time.time,
) -> CsrfTokenData:
    return CsrfTokenData(
        token=secrets.token_hex(TOKEN_BYTES),
        expires_at=now_ms(clock) + ttl_seconds * 1000,
    )


def parse_csrf_cookie(value: str) -> CsrfTokenData:
    """Parse a cookie value into token data.

    Raises:
        CsrfTokenMalformed: On invalid JSON or any shape mismatch.
    """
    try:
        return CsrfTokenData.model_validate_json(value)
    except ValidationError as exc:
        raise CsrfTokenMalformed(
            code="csrf_token_malformed",
            message="Invalid CSRF token format",
        ) from exc


def _read_valid_token(
    request: Request,
    cookie_name: str,
    clock: Callable[[], float],
) -> CsrfTokenData | None:
    raw = request.cookies.get(cookie_name)
    if raw is None:
        return None
    try:
        data = parse_csrf_cookie(raw)
    except CsrfTokenMalformed:
        return None
    if data.is_expired(now_ms(clock)):
        return None
    return data


def get_csrf_token(
    request: Request,
    cookie_name: str = "csrf-token",
    clock: Callable[[], float] = time.time,
) -> str | None:
    """Return the request's unexpired cookie token, or None."""
    data = _read_valid_token(request, cookie_name, clock)
    return data.token if data else None


def validate_csrf_token(
    request: Request,
    provided_token: str,
    cookie_name: str = "csrf-token",
    clock: Callable[[], float] = time.time,
) -> bool:
    """Check a client-supplied token against the request's cookie token."""
    data = _read_valid_token(request, cookie_name, clock)
    if data is None or not provided_token:
        return False
    return secrets.compare_digest(data.token, provided_token)


class CsrfGuard:
    """Validates state-changing requests and issues tokens.

    Tokens are issued on every GET and on any request that arrived without a
    cookie, so a page load always refreshes the expiry.
    """

    def __init__(
        self,
        csrf_settings: CsrfSettings,
        *,
        secure_cookie: bool,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = csrf_settings
        self.secure_cookie = secure_cookie
        self._clock = clock

    def __call__(self, request: Request, response: Response) -> Response:
        if not self.settings.enabled:
            return response

        method = request.method.upper()
        path = request.url.path

        if method in STATE_CHANGING_METHODS and not matches_prefix(
            path, self.settings.exempt_prefixes
        ):
            try:
                self.check(request)
            except GuardRejection as exc:
                logger.warning(
                    "csrf.rejected",
                    extra={"method": method, "path": path, "reason": exc.code},
                )
                return build_rejection_response(exc)
            except Exception:
                logger.exception("csrf.error", extra={"method": method, "path": path})
                return build_rejection_response(
                    CsrfGuardError(
                        code="csrf_error",
                        message="CSRF validation failed. Please refresh the page and try again.",
                    )
                )
            logger.debug("csrf.valid", extra={"method": method, "path": path})

        if method == "GET" or self.settings.cookie_name not in request.cookies:
            issued = self.issue(response, method=method, path=path)
            # The handler sees the cookie that is about to replace the request's.
            request.state.csrf_token = issued.token

        return response

    def check(self, request: Request) -> CsrfTokenData:
        """Validate the request's cookie (and echoed header, if required).

        Raises:
            CsrfTokenMissing, CsrfTokenMalformed, CsrfTokenExpired,
            CsrfTokenMismatch
        """
        raw = request.cookies.get(self.settings.cookie_name)
        if raw is None:
            raise CsrfTokenMissing(
                code="csrf_token_missing",
                message="CSRF token missing. Please refresh the page and try again.",
            )

        data = parse_csrf_cookie(raw)

        current = now_ms(self._clock)
        if data.is_expired(current):
            raise CsrfTokenExpired(
                code="csrf_token_expired",
                message="CSRF token expired. Please refresh the page and try again.",
                details={"context": {"expired_ms_ago": current - data.expires_at}},
            )

        if self.settings.require_header_echo:
            echoed = request.headers.get(self.settings.header_name, "")
            if not echoed or not secrets.compare_digest(echoed, data.token):
                raise CsrfTokenMismatch(
                    code="csrf_token_mismatch",
                    message="CSRF token mismatch. Please refresh the page and try again.",
                )

        return data

    def issue(self, response: Response, *, method: str = "GET", path: str = "") -> CsrfTokenData:
        """Mint a token and set it as the cookie on ``response``."""
        data = generate_csrf_token(self.settings.token_ttl_seconds, self._clock)
        response.set_cookie(
            self.settings.cookie_name,
            data.to_cookie_value(),
            max_age=self.settings.token_ttl_seconds,
            path="/",
            secure=self.secure_cookie,
            httponly=True,
            samesite="strict",
        )
        logger.info(
            "csrf.token_issued",
            extra={"method": method, "path": path, "expires_at": data.expires_at},
        )
        return data
